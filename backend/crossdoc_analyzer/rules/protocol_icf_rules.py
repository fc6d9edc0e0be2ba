"""
Protocol-ICF rules: the consent form must describe what the Protocol asks of subjects.
"""

from typing import List

from crossdoc_analyzer.models.bundle import DocumentType
from crossdoc_analyzer.models.issues import Category, CrossDocIssue, IssueLocation, Severity
from crossdoc_analyzer.rules.context import RuleContext
from crossdoc_analyzer.rules.registry import RuleDefinition


def schedule_mismatch(ctx: RuleContext) -> List[CrossDocIssue]:
    bundle = ctx.bundle
    if bundle.protocol is None or bundle.icf is None:
        return []
    if not bundle.protocol.visit_schedule or bundle.icf.procedure_descriptions:
        return []

    return [CrossDocIssue(
        code="ICF_SCHEDULE_MISMATCH",
        severity=Severity.ERROR,
        category=Category.PROTOCOL_ICF,
        message="Protocol visit schedule not described in ICF",
        details=(
            "The Informed Consent Form must clearly describe all study visits and procedures to "
            "ensure subjects understand their participation burden."
        ),
        locations=[
            IssueLocation(DocumentType.PROTOCOL, "VISIT_SCHEDULE"),
            IssueLocation(DocumentType.ICF, "PROCEDURES"),
        ],
    )]


def risk_missing(ctx: RuleContext) -> List[CrossDocIssue]:
    """Invasive procedures require a risk section."""
    bundle = ctx.bundle
    if bundle.protocol is None or bundle.icf is None:
        return []

    invasive = [p for p in bundle.icf.procedure_descriptions if p.invasive]
    if not invasive or bundle.icf.risks:
        return []

    return [CrossDocIssue(
        code="ICF_RISK_MISSING",
        severity=Severity.CRITICAL,
        category=Category.PROTOCOL_ICF,
        message="Invasive procedures described but risks not explained in ICF",
        details=(
            f"{len(invasive)} invasive procedure(s) are mentioned, but the ICF does not contain "
            "adequate risk information. This is a regulatory requirement."
        ),
        locations=[
            IssueLocation(DocumentType.ICF, "PROCEDURES"),
            IssueLocation(DocumentType.ICF, "RISKS"),
        ],
    )]


def treatment_incomplete(ctx: RuleContext) -> List[CrossDocIssue]:
    bundle = ctx.bundle
    if bundle.protocol is None or bundle.icf is None:
        return []
    if not bundle.protocol.arms or bundle.icf.treatment_descriptions:
        return []

    return [CrossDocIssue(
        code="ICF_TREATMENT_INCOMPLETE",
        severity=Severity.WARNING,
        category=Category.PROTOCOL_ICF,
        message="Treatment arms not adequately described in ICF",
        details=(
            "The ICF should clearly describe all treatment options, including placebo if "
            "applicable, so subjects understand what they may receive."
        ),
        locations=[
            IssueLocation(DocumentType.PROTOCOL, "TREATMENT_ARMS"),
            IssueLocation(DocumentType.ICF, "TREATMENTS"),
        ],
    )]


RULES = [
    RuleDefinition(
        code="ICF_SCHEDULE_MISMATCH",
        category=Category.PROTOCOL_ICF,
        default_severity=Severity.ERROR,
        evaluate=schedule_mismatch,
        description="ICF must describe the Protocol visit schedule",
    ),
    RuleDefinition(
        code="ICF_RISK_MISSING",
        category=Category.PROTOCOL_ICF,
        default_severity=Severity.CRITICAL,
        evaluate=risk_missing,
        description="Invasive procedures must have a risk description",
    ),
    RuleDefinition(
        code="ICF_TREATMENT_INCOMPLETE",
        category=Category.PROTOCOL_ICF,
        default_severity=Severity.WARNING,
        evaluate=treatment_incomplete,
        description="ICF must describe the Protocol treatment arms",
    ),
]
