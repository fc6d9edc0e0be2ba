"""
Global rules: checks that span the whole document package.
"""

from typing import List

from crossdoc_analyzer.models.bundle import DocumentType
from crossdoc_analyzer.models.issues import Category, CrossDocIssue, IssueLocation, Severity
from crossdoc_analyzer.rules.context import RuleContext
from crossdoc_analyzer.rules.registry import RuleDefinition

POPULATION_MIN_LENGTH = 50


def purpose_drift(ctx: RuleContext) -> List[CrossDocIssue]:
    """Fires when any primary objective link is unaligned."""
    bundle = ctx.bundle
    if bundle.ib is None or bundle.protocol is None:
        return []

    unaligned = [link for link in ctx.alignments.objectives if link.type == "primary" and not link.aligned]
    if not unaligned:
        return []

    locations = [
        IssueLocation(DocumentType.IB, "OBJECTIVES"),
        IssueLocation(DocumentType.PROTOCOL, "OBJECTIVES"),
    ]
    if bundle.sap is not None:
        locations.append(IssueLocation(DocumentType.SAP, "OBJECTIVES"))

    return [CrossDocIssue(
        code="GLOBAL_PURPOSE_DRIFT",
        severity=Severity.CRITICAL,
        category=Category.GLOBAL,
        message="Study purpose is not consistent across documents",
        details=(
            "The primary objective/purpose of the study must be consistently stated in all key "
            "documents (IB, Protocol, SAP, ICF, CSR). Inconsistencies may cause regulatory concerns."
        ),
        locations=locations,
    )]


def population_incoherent(ctx: RuleContext) -> List[CrossDocIssue]:
    bundle = ctx.bundle
    if bundle.ib is None and bundle.protocol is None:
        return []

    has_ib_population = bool(
        bundle.ib is not None
        and bundle.ib.target_population
        and len(bundle.ib.target_population) > POPULATION_MIN_LENGTH
    )
    has_protocol_criteria = bool(bundle.protocol is not None and bundle.protocol.inclusion_criteria)

    issues = []
    if not has_ib_population and not has_protocol_criteria:
        issues.append(CrossDocIssue(
            code="GLOBAL_POPULATION_INCOHERENT",
            severity=Severity.ERROR,
            category=Category.GLOBAL,
            message="Target population not adequately defined",
            details=(
                "The study population must be clearly defined in the IB and Protocol with "
                "specific inclusion/exclusion criteria."
            ),
            locations=[
                IssueLocation(DocumentType.IB, "TARGET_POPULATION"),
                IssueLocation(DocumentType.PROTOCOL, "ELIGIBILITY_CRITERIA"),
            ],
        ))

    if has_protocol_criteria and bundle.sap is not None and not bundle.sap.analysis_populations:
        issues.append(CrossDocIssue(
            code="GLOBAL_ANALYSIS_POPULATIONS_MISSING",
            severity=Severity.WARNING,
            category=Category.GLOBAL,
            message="Analysis populations not defined in SAP",
            details=(
                "The SAP should define analysis populations (FAS, PP, Safety) based on the "
                "Protocol eligibility criteria."
            ),
            locations=[
                IssueLocation(DocumentType.PROTOCOL, "ELIGIBILITY_CRITERIA"),
                IssueLocation(DocumentType.SAP, "ANALYSIS_SETS"),
            ],
        ))

    return issues


def version_missing(ctx: RuleContext) -> List[CrossDocIssue]:
    """One aggregated issue listing present documents without a version."""
    bundle = ctx.bundle
    without_version = [
        doc_type for doc_type in bundle.present_types()
        if not bundle.get(doc_type).version
    ]
    if not without_version:
        return []

    return [CrossDocIssue(
        code="GLOBAL_VERSION_MISSING",
        severity=Severity.INFO,
        category=Category.GLOBAL,
        message=f"{len(without_version)} document(s) missing version information",
        details=(
            f"Documents without version: {', '.join(t.value for t in without_version)}. "
            "All controlled documents should have version numbers for traceability."
        ),
        locations=[IssueLocation(doc_type, "HEADER") for doc_type in without_version],
    )]


RULES = [
    RuleDefinition(
        code="GLOBAL_PURPOSE_DRIFT",
        category=Category.GLOBAL,
        default_severity=Severity.CRITICAL,
        evaluate=purpose_drift,
        description="Study purpose must be consistent across all documents",
    ),
    RuleDefinition(
        code="GLOBAL_POPULATION_INCOHERENT",
        category=Category.GLOBAL,
        default_severity=Severity.ERROR,
        evaluate=population_incoherent,
        description="Target population must be coherent across documents",
    ),
    RuleDefinition(
        code="GLOBAL_VERSION_MISSING",
        category=Category.GLOBAL,
        default_severity=Severity.INFO,
        evaluate=version_missing,
        description="Controlled documents must carry a version",
    ),
]
