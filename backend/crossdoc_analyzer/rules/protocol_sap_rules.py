"""
Protocol-SAP rules: consistency between the Protocol and the Statistical Analysis Plan.

PRIMARY_ENDPOINT_DRIFT and TEST_MISMATCH carry auto-fixable suggestions
whose patches are generated for the balanced strategy.
"""

from typing import List

from crossdoc_analyzer.autofix.patches import (
    APPROPRIATE_TESTS,
    BALANCED,
    fix_primary_endpoint_drift,
    fix_test_mismatch,
    is_test_appropriate,
    statistical_test_block_id,
)
from crossdoc_analyzer.models.bundle import DocumentType, EntityLevel
from crossdoc_analyzer.models.issues import Category, CrossDocIssue, IssueLocation, Severity, Suggestion
from crossdoc_analyzer.rules.context import RuleContext
from crossdoc_analyzer.rules.registry import RuleDefinition

ESSENTIAL_POPULATIONS = ("FAS", "PPS", "SAF")


def primary_endpoint_drift(ctx: RuleContext) -> List[CrossDocIssue]:
    """Fires when the Protocol has primary endpoints and none aligns to the SAP."""
    bundle = ctx.bundle
    if bundle.protocol is None or bundle.sap is None:
        return []

    primary_links = [link for link in ctx.alignments.endpoints if link.type == EntityLevel.PRIMARY.value]
    aligned_primary = [link for link in primary_links if link.sap_aligned and link.sap_endpoint_id]
    if not primary_links or aligned_primary:
        return []

    patches = fix_primary_endpoint_drift(bundle, BALANCED)
    return [CrossDocIssue(
        code="PRIMARY_ENDPOINT_DRIFT",
        severity=Severity.CRITICAL,
        category=Category.PROTOCOL_SAP,
        message="Primary endpoint differs between Protocol and SAP",
        details=(
            "The primary endpoint defined in the Statistical Analysis Plan does not match the "
            "primary endpoint in the Protocol. This is a critical regulatory issue that must be "
            "resolved before study start."
        ),
        locations=[
            IssueLocation(DocumentType.PROTOCOL, "ENDPOINTS"),
            IssueLocation(DocumentType.SAP, "PRIMARY_ANALYSIS"),
        ],
        suggestions=[
            Suggestion(
                id="ALIGN_SAP_PRIMARY_ENDPOINT",
                label="Align SAP primary endpoint with Protocol",
                auto_fixable=bool(patches),
                patches=patches,
            ),
        ],
    )]


def statistical_test_mismatch(ctx: RuleContext) -> List[CrossDocIssue]:
    """One issue per SAP test that does not suit its Protocol endpoint's data type."""
    bundle = ctx.bundle
    if bundle.protocol is None or bundle.sap is None:
        return []

    endpoints = {ep.id: ep for ep in bundle.protocol.endpoints if ep.id}
    issues = []
    for test in bundle.sap.statistical_tests:
        endpoint = endpoints.get(test.endpoint_id)
        if endpoint is None or is_test_appropriate(test.test, endpoint.data_type):
            continue

        allowed = APPROPRIATE_TESTS[endpoint.data_type]
        patches = fix_test_mismatch(bundle, BALANCED, endpoint_id=endpoint.id)
        issues.append(CrossDocIssue(
            code="TEST_MISMATCH",
            severity=Severity.ERROR,
            category=Category.PROTOCOL_SAP,
            message=f'Statistical test "{test.test}" may not be appropriate for {endpoint.data_type} endpoint',
            details=(
                f'The endpoint "{endpoint.name}" is {endpoint.data_type}, but the SAP specifies '
                f'"{test.test}". Consider using: {", ".join(allowed)}.'
            ),
            locations=[
                IssueLocation(DocumentType.PROTOCOL, "ENDPOINTS", endpoint.id),
                IssueLocation(DocumentType.SAP, "STATISTICAL_METHODS", statistical_test_block_id(test.endpoint_id)),
            ],
            suggestions=[
                Suggestion(
                    id="USE_RECOMMENDED_TEST",
                    label="Use the recommended test for this endpoint type",
                    auto_fixable=bool(patches),
                    patches=patches,
                ),
            ],
        ))
    return issues


def sample_size_driver_mismatch(ctx: RuleContext) -> List[CrossDocIssue]:
    bundle = ctx.bundle
    if bundle.protocol is None or bundle.sap is None:
        return []

    primary = bundle.protocol.endpoints_of_type(EntityLevel.PRIMARY.value)
    driver = bundle.sap.sample_size_driver_endpoint
    if not primary or not driver:
        return []

    driver_lower = driver.lower()
    for endpoint in primary:
        name = endpoint.name.lower()
        if name and (driver_lower in name or name in driver_lower):
            return []

    return [CrossDocIssue(
        code="SAMPLE_SIZE_DRIVER_MISMATCH",
        severity=Severity.ERROR,
        category=Category.PROTOCOL_SAP,
        message="Sample size calculation not based on primary endpoint",
        details=(
            f'The SAP indicates sample size was calculated for "{driver}", but this does not match '
            "the Protocol primary endpoint(s). Sample size should be driven by the primary endpoint."
        ),
        locations=[
            IssueLocation(DocumentType.PROTOCOL, "ENDPOINTS"),
            IssueLocation(DocumentType.SAP, "SAMPLE_SIZE"),
        ],
    )]


def analysis_population_inconsistent(ctx: RuleContext) -> List[CrossDocIssue]:
    """Essential analysis sets (FAS, PPS, SAF) must be declared on both sides."""
    bundle = ctx.bundle
    if bundle.protocol is None or bundle.sap is None:
        return []

    protocol_pops = {p.abbreviation.upper() for p in bundle.protocol.analysis_populations}
    sap_pops = {p.abbreviation.upper() for p in bundle.sap.analysis_populations}

    issues = []
    for population in ESSENTIAL_POPULATIONS:
        in_protocol = population in protocol_pops
        in_sap = population in sap_pops

        if in_protocol and not in_sap:
            issues.append(CrossDocIssue(
                code="ANALYSIS_POPULATION_MISSING_IN_SAP",
                severity=Severity.WARNING,
                category=Category.PROTOCOL_SAP,
                message=f'Analysis population "{population}" defined in Protocol but missing in SAP',
                locations=[
                    IssueLocation(DocumentType.PROTOCOL, "ANALYSIS_POPULATIONS", population),
                    IssueLocation(DocumentType.SAP, "ANALYSIS_SETS"),
                ],
            ))
        elif in_sap and not in_protocol:
            issues.append(CrossDocIssue(
                code="ANALYSIS_POPULATION_MISSING_IN_PROTOCOL",
                severity=Severity.WARNING,
                category=Category.PROTOCOL_SAP,
                message=f'Analysis population "{population}" defined in SAP but missing in Protocol',
                locations=[
                    IssueLocation(DocumentType.SAP, "ANALYSIS_SETS", population),
                    IssueLocation(DocumentType.PROTOCOL, "ANALYSIS_POPULATIONS"),
                ],
            ))
    return issues


def multiplicity_strategy_missing(ctx: RuleContext) -> List[CrossDocIssue]:
    """Structural check: more than one primary endpoint requires a multiplicity strategy."""
    bundle = ctx.bundle
    if bundle.protocol is None or bundle.sap is None:
        return []

    primary = bundle.protocol.endpoints_of_type(EntityLevel.PRIMARY.value)
    if len(primary) <= 1 or bundle.sap.multiplicity_strategy:
        return []

    return [CrossDocIssue(
        code="MULTIPLICITY_STRATEGY_MISSING",
        severity=Severity.ERROR,
        category=Category.PROTOCOL_SAP,
        message=f"{len(primary)} primary endpoints but no multiplicity adjustment strategy defined",
        details=(
            "When multiple primary endpoints are tested, a multiplicity adjustment strategy "
            "(e.g., Bonferroni, Holm, hierarchical testing) must be specified to control "
            "Type I error rate."
        ),
        locations=[
            IssueLocation(DocumentType.PROTOCOL, "ENDPOINTS"),
            IssueLocation(DocumentType.SAP, "MULTIPLICITY"),
        ],
    )]


RULES = [
    RuleDefinition(
        code="PRIMARY_ENDPOINT_DRIFT",
        category=Category.PROTOCOL_SAP,
        default_severity=Severity.CRITICAL,
        evaluate=primary_endpoint_drift,
        description="Primary endpoint must match between Protocol and SAP",
    ),
    RuleDefinition(
        code="TEST_MISMATCH",
        category=Category.PROTOCOL_SAP,
        default_severity=Severity.ERROR,
        evaluate=statistical_test_mismatch,
        description="Statistical test must be appropriate for the endpoint data type",
    ),
    RuleDefinition(
        code="SAMPLE_SIZE_DRIVER_MISMATCH",
        category=Category.PROTOCOL_SAP,
        default_severity=Severity.ERROR,
        evaluate=sample_size_driver_mismatch,
        description="Sample size driver endpoint must be a primary endpoint",
    ),
    RuleDefinition(
        code="ANALYSIS_POPULATION_INCONSISTENT",
        category=Category.PROTOCOL_SAP,
        default_severity=Severity.WARNING,
        evaluate=analysis_population_inconsistent,
        description="Essential analysis populations must be defined in both Protocol and SAP",
    ),
    RuleDefinition(
        code="MULTIPLICITY_STRATEGY_MISSING",
        category=Category.PROTOCOL_SAP,
        default_severity=Severity.ERROR,
        evaluate=multiplicity_strategy_missing,
        description="Multiple primary endpoints require a multiplicity strategy",
    ),
]
