"""
Study flow rules: the visit/procedure model must be reflected in the documents.

These checks search the document's text values rather than aligned
entities, so a visit or procedure counts as present when its name appears
as a whole phrase anywhere in the document. Field names are not searched.
"""

import re
from dataclasses import asdict
from typing import Any, Iterator, List, Optional

from crossdoc_analyzer.models.bundle import DocumentType
from crossdoc_analyzer.models.issues import Category, CrossDocIssue, IssueLocation, Severity
from crossdoc_analyzer.rules.context import RuleContext
from crossdoc_analyzer.rules.registry import RuleDefinition

KEY_PROCEDURES = ("blood", "physical exam", "ecg", "vital", "laboratory")
KEY_VISIT_TYPES = ("baseline", "end_of_treatment")
DURATION_TOLERANCE_WEEKS = 4

_WEEKS = re.compile(r"(\d+)\s*weeks?", re.IGNORECASE)


def _string_values(value: Any) -> Iterator[str]:
    if isinstance(value, str):
        yield value
    elif isinstance(value, dict):
        for item in value.values():
            yield from _string_values(item)
    elif isinstance(value, (list, tuple)):
        for item in value:
            yield from _string_values(item)


def document_text(document) -> Optional[str]:
    """Lower-cased string values of a document, one per line; None when absent."""
    if document is None:
        return None
    return "\n".join(_string_values(asdict(document))).lower()


def mentions(text: str, phrase: str) -> bool:
    """Whole-phrase, case-insensitive search ("day 1" does not match "day 10")."""
    phrase = phrase.strip().lower()
    if not phrase:
        return False
    return re.search(rf"(?<!\w){re.escape(phrase)}(?!\w)", text) is not None


def visit_missing(ctx: RuleContext) -> List[CrossDocIssue]:
    flow = ctx.bundle.study_flow
    text = document_text(ctx.bundle.protocol)
    if flow is None or text is None:
        return []

    issues = []
    for visit in flow.visits:
        if mentions(text, visit.name) or mentions(text, visit.type.replace("_", " ")):
            continue
        issues.append(CrossDocIssue(
            code="SF_001_VISIT_MISSING",
            severity=Severity.WARNING,
            category=Category.STUDY_FLOW,
            message=f'Visit "{visit.name}" (Day {visit.day}) from Study Flow not found in Protocol',
            locations=[IssueLocation(DocumentType.PROTOCOL, "VISIT_SCHEDULE")],
        ))
    return issues


def procedure_missing_in_icf(ctx: RuleContext) -> List[CrossDocIssue]:
    """Key procedures (blood draws, ECG, vitals...) must be explained to subjects."""
    flow = ctx.bundle.study_flow
    text = document_text(ctx.bundle.icf)
    if flow is None or text is None:
        return []

    issues = []
    for procedure in flow.procedures:
        name = procedure.name.lower().replace("_", " ")
        if not any(key in name for key in KEY_PROCEDURES) or mentions(text, name):
            continue
        issues.append(CrossDocIssue(
            code="SF_002_PROCEDURE_MISSING_ICF",
            severity=Severity.WARNING,
            category=Category.STUDY_FLOW,
            message=f'Procedure "{procedure.name}" from Study Flow not described in ICF',
            locations=[IssueLocation(DocumentType.ICF, "PROCEDURES")],
        ))
    return issues


def duration_mismatch(ctx: RuleContext) -> List[CrossDocIssue]:
    """Week counts in the Protocol should agree with the study flow duration."""
    flow = ctx.bundle.study_flow
    text = document_text(ctx.bundle.protocol)
    if flow is None or text is None or flow.total_duration_days <= 0:
        return []

    flow_weeks = int(flow.total_duration_days / 7 + 0.5)
    mentioned = []
    for match in _WEEKS.finditer(text):
        value = int(match.group(1))
        if value not in mentioned:
            mentioned.append(value)

    issues = []
    for value in mentioned:
        if value > DURATION_TOLERANCE_WEEKS and abs(value - flow_weeks) > DURATION_TOLERANCE_WEEKS:
            issues.append(CrossDocIssue(
                code="SF_003_DURATION_MISMATCH",
                severity=Severity.WARNING,
                category=Category.STUDY_FLOW,
                message=f"Protocol mentions {value} weeks but Study Flow duration is {flow_weeks} weeks",
                locations=[IssueLocation(DocumentType.PROTOCOL, "STUDY_DURATION")],
            ))
    return issues


def csr_visit_missing(ctx: RuleContext) -> List[CrossDocIssue]:
    flow = ctx.bundle.study_flow
    text = document_text(ctx.bundle.csr)
    if flow is None or text is None:
        return []

    issues = []
    for visit in flow.visits:
        if visit.type not in KEY_VISIT_TYPES:
            continue
        if mentions(text, visit.name) or mentions(text, f"day {visit.day}"):
            continue
        issues.append(CrossDocIssue(
            code="SF_004_CSR_VISIT_MISSING",
            severity=Severity.INFO,
            category=Category.STUDY_FLOW,
            message=f'Key visit "{visit.name}" (Day {visit.day}) not explicitly mentioned in CSR',
            locations=[IssueLocation(DocumentType.CSR, "RESULTS")],
        ))
    return issues


RULES = [
    RuleDefinition(
        code="SF_001_VISIT_MISSING",
        category=Category.STUDY_FLOW,
        default_severity=Severity.WARNING,
        evaluate=visit_missing,
        description="Study flow visits must appear in the Protocol",
    ),
    RuleDefinition(
        code="SF_002_PROCEDURE_MISSING_ICF",
        category=Category.STUDY_FLOW,
        default_severity=Severity.WARNING,
        evaluate=procedure_missing_in_icf,
        description="Key study flow procedures must be described in the ICF",
    ),
    RuleDefinition(
        code="SF_003_DURATION_MISMATCH",
        category=Category.STUDY_FLOW,
        default_severity=Severity.WARNING,
        evaluate=duration_mismatch,
        description="Protocol durations must agree with the study flow",
    ),
    RuleDefinition(
        code="SF_004_CSR_VISIT_MISSING",
        category=Category.STUDY_FLOW,
        default_severity=Severity.INFO,
        evaluate=csr_visit_missing,
        description="CSR should reference key study flow visits",
    ),
]
