"""
Protocol-CSR rules: the study report must reflect what the Protocol and SAP planned.
"""

from typing import List

from crossdoc_analyzer.models.bundle import DocumentType, EntityLevel
from crossdoc_analyzer.models.issues import Category, CrossDocIssue, IssueLocation, Severity
from crossdoc_analyzer.rules.context import RuleContext
from crossdoc_analyzer.rules.registry import RuleDefinition


def method_mismatch(ctx: RuleContext) -> List[CrossDocIssue]:
    """SAP tests exist but the CSR documents no methods."""
    bundle = ctx.bundle
    if bundle.sap is None or bundle.csr is None:
        return []
    if not bundle.sap.statistical_tests or bundle.csr.actual_methods:
        return []

    return [CrossDocIssue(
        code="CSR_METHOD_MISMATCH",
        severity=Severity.ERROR,
        category=Category.PROTOCOL_CSR,
        message="Statistical methods not documented in CSR",
        details=(
            "The CSR must document the statistical methods that were actually used, as specified "
            "in the SAP."
        ),
        locations=[
            IssueLocation(DocumentType.SAP, "STATISTICAL_METHODS"),
            IssueLocation(DocumentType.CSR, "METHODS"),
        ],
    )]


def endpoint_mismatch(ctx: RuleContext) -> List[CrossDocIssue]:
    """Every Protocol primary endpoint must be reported in the CSR (aggregated)."""
    bundle = ctx.bundle
    if bundle.protocol is None or bundle.csr is None:
        return []

    missing = [
        link for link in ctx.alignments.endpoints
        if link.type == EntityLevel.PRIMARY.value and link.csr_endpoint_id is None
    ]
    if not missing:
        return []

    return [CrossDocIssue(
        code="CSR_ENDPOINT_MISMATCH",
        severity=Severity.CRITICAL,
        category=Category.PROTOCOL_CSR,
        message=f"{len(missing)} primary endpoint(s) from Protocol not reported in CSR",
        details=(
            "All primary endpoints defined in the Protocol must be reported in the CSR, even if "
            "results are negative or inconclusive."
        ),
        locations=[
            IssueLocation(DocumentType.PROTOCOL, "ENDPOINTS"),
            IssueLocation(DocumentType.CSR, "RESULTS"),
        ],
    )]


def deviations_missing(ctx: RuleContext) -> List[CrossDocIssue]:
    bundle = ctx.bundle
    if bundle.protocol is None or bundle.csr is None:
        return []
    if bundle.csr.deviations_overview:
        return []

    return [CrossDocIssue(
        code="CSR_DEVIATIONS_MISSING",
        severity=Severity.INFO,
        category=Category.PROTOCOL_CSR,
        message="Protocol deviations not documented in CSR",
        details="The CSR should include a summary of protocol deviations, even if none occurred.",
        locations=[IssueLocation(DocumentType.CSR, "DEVIATIONS")],
    )]


RULES = [
    RuleDefinition(
        code="CSR_METHOD_MISMATCH",
        category=Category.PROTOCOL_CSR,
        default_severity=Severity.ERROR,
        evaluate=method_mismatch,
        description="CSR must document the SAP statistical methods",
    ),
    RuleDefinition(
        code="CSR_ENDPOINT_MISMATCH",
        category=Category.PROTOCOL_CSR,
        default_severity=Severity.CRITICAL,
        evaluate=endpoint_mismatch,
        description="CSR must report all Protocol primary endpoints",
    ),
    RuleDefinition(
        code="CSR_DEVIATIONS_MISSING",
        category=Category.PROTOCOL_CSR,
        default_severity=Severity.INFO,
        evaluate=deviations_missing,
        description="CSR should summarize protocol deviations",
    ),
]
