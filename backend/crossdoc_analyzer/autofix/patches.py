"""
Patch generators for auto-fixable issues.

A generator turns an issue plus the bundle it was found in into block-level
patches. The strategy decides which document is treated as the source of
truth:

- balanced: endpoint definitions follow the Protocol, statistical methods
  are corrected in the SAP (each fix edits the document that owns the detail)
- align_to_protocol: the Protocol is authoritative; only SAP blocks change
- align_to_sap: the SAP is authoritative; only Protocol blocks change
"""

import logging
from typing import Callable, Dict, List, Optional

from crossdoc_analyzer.models.bundle import CrossDocBundle, DocumentType, EntityLevel
from crossdoc_analyzer.models.issues import CrossDocIssue, Patch

logger = logging.getLogger(__name__)

BALANCED = "balanced"
ALIGN_TO_PROTOCOL = "align_to_protocol"
ALIGN_TO_SAP = "align_to_sap"

STRATEGIES = (BALANCED, ALIGN_TO_PROTOCOL, ALIGN_TO_SAP)

# Allowed statistical tests per endpoint data type
APPROPRIATE_TESTS: Dict[str, List[str]] = {
    "continuous": ["t-test", "ancova", "anova", "mmrm", "mann-whitney", "wilcoxon"],
    "binary": ["chi-square", "fisher exact", "cmh", "logistic regression"],
    "time_to_event": ["log-rank", "cox regression", "kaplan-meier"],
    "ordinal": ["mann-whitney", "wilcoxon", "proportional odds"],
    "count": ["poisson regression", "negative binomial", "glmm"],
}

# Test written into the SAP when a declared test is not appropriate
RECOMMENDED_TESTS: Dict[str, str] = {
    "continuous": "ANCOVA",
    "binary": "Chi-square test",
    "time_to_event": "Log-rank test",
    "ordinal": "Mann-Whitney U test",
    "count": "Poisson regression",
}


def validate_strategy(strategy: str) -> str:
    if strategy not in STRATEGIES:
        raise ValueError(f"Unknown auto-fix strategy: {strategy!r} (expected one of {', '.join(STRATEGIES)})")
    return strategy


def statistical_test_block_id(endpoint_id: str) -> str:
    """Block id of the SAP statistical test declared for an endpoint."""
    return f"test-{endpoint_id}"


def is_test_appropriate(test: str, data_type: Optional[str]) -> bool:
    """
    Whether a test name is acceptable for an endpoint data type.

    Unknown data types accept any test. Names match when an allowed test
    appears in the declared name ("Log-rank test" matches "log-rank").
    """
    allowed = APPROPRIATE_TESTS.get(data_type or "")
    if not allowed:
        return True
    name = (test or "").lower()
    return any(candidate in name for candidate in allowed)


def data_type_for_test(test: str) -> Optional[str]:
    """First data type whose allowed tests include the declared test."""
    for data_type in APPROPRIATE_TESTS:
        if is_test_appropriate(test, data_type):
            return data_type
    return None


# =============================================================================
# GENERATORS
# =============================================================================


def fix_primary_endpoint_drift(bundle: CrossDocBundle, strategy: str = BALANCED) -> List[Patch]:
    """Copy the first primary endpoint's name and description across documents."""
    protocol, sap = bundle.protocol, bundle.sap
    if protocol is None or sap is None:
        return []

    protocol_primary = next(iter(protocol.endpoints_of_type(EntityLevel.PRIMARY.value)), None)
    sap_primary = next(iter(sap.primary_endpoints), None)
    if protocol_primary is None or sap_primary is None:
        return []

    if strategy == ALIGN_TO_SAP:
        return [
            Patch(
                document_type=DocumentType.PROTOCOL,
                document_id=protocol.id,
                block_id=protocol_primary.id,
                field="name",
                old_value=protocol_primary.name,
                new_value=sap_primary.name,
            ),
            Patch(
                document_type=DocumentType.PROTOCOL,
                document_id=protocol.id,
                block_id=protocol_primary.id,
                field="description",
                old_value=protocol_primary.description,
                new_value=sap_primary.description,
            ),
        ]

    return [
        Patch(
            document_type=DocumentType.SAP,
            document_id=sap.id,
            block_id=sap_primary.id,
            field="name",
            old_value=sap_primary.name,
            new_value=protocol_primary.name,
        ),
        Patch(
            document_type=DocumentType.SAP,
            document_id=sap.id,
            block_id=sap_primary.id,
            field="description",
            old_value=sap_primary.description,
            new_value=protocol_primary.description,
        ),
    ]


def fix_test_mismatch(
    bundle: CrossDocBundle,
    strategy: str = BALANCED,
    endpoint_id: Optional[str] = None,
) -> List[Patch]:
    """
    Patches for inappropriate statistical tests.

    With the SAP as source of truth the Protocol endpoint data type is
    changed to one the declared test supports; otherwise the SAP test is
    replaced with the recommended test for the endpoint data type.
    """
    protocol, sap = bundle.protocol, bundle.sap
    if protocol is None or sap is None:
        return []

    endpoints = {ep.id: ep for ep in protocol.endpoints if ep.id}
    patches = []
    for test in sap.statistical_tests:
        if endpoint_id is not None and test.endpoint_id != endpoint_id:
            continue
        endpoint = endpoints.get(test.endpoint_id)
        if endpoint is None or is_test_appropriate(test.test, endpoint.data_type):
            continue

        if strategy == ALIGN_TO_SAP:
            data_type = data_type_for_test(test.test)
            if data_type is None:
                logger.info(f"No data type supports test {test.test!r}; endpoint {endpoint.id} left unchanged")
                continue
            patches.append(Patch(
                document_type=DocumentType.PROTOCOL,
                document_id=protocol.id,
                block_id=endpoint.id,
                field="data_type",
                old_value=endpoint.data_type,
                new_value=data_type,
            ))
        else:
            patches.append(Patch(
                document_type=DocumentType.SAP,
                document_id=sap.id,
                block_id=statistical_test_block_id(test.endpoint_id),
                field="test",
                old_value=test.test,
                new_value=RECOMMENDED_TESTS[endpoint.data_type],
            ))
    return patches


def _endpoint_id_from_issue(issue: CrossDocIssue) -> Optional[str]:
    for location in issue.locations:
        if location.document_type == DocumentType.PROTOCOL and location.block_id:
            return location.block_id
    return None


PATCH_GENERATORS: Dict[str, Callable[[CrossDocIssue, CrossDocBundle, str], List[Patch]]] = {
    "PRIMARY_ENDPOINT_DRIFT": lambda issue, bundle, strategy: fix_primary_endpoint_drift(bundle, strategy),
    "TEST_MISMATCH": lambda issue, bundle, strategy: fix_test_mismatch(
        bundle, strategy, endpoint_id=_endpoint_id_from_issue(issue)
    ),
}


def generate_patches(issue: CrossDocIssue, bundle: CrossDocBundle, strategy: str = BALANCED) -> List[Patch]:
    """Patches resolving an issue under a strategy; empty when the code has no generator."""
    validate_strategy(strategy)
    generator = PATCH_GENERATORS.get(issue.code)
    if generator is None:
        return []
    return generator(issue, bundle, strategy)
