"""
Endpoint alignment across Protocol, SAP and CSR.

Protocol endpoints are the left side. Matching is constrained by level:
a primary endpoint is only compared with the partner's primary pool and a
secondary endpoint only with its secondary pool. Secondary partners are
consumed one-to-one; primary partners may be shared.

SAP matching scores name and description separately (60/40). When either
side has no description only the names are compared.

The CSR extension records which reported endpoint (if any) each Protocol
endpoint corresponds to, matched on endpoint name.
"""

import logging
from typing import Dict, List, Optional, Sequence, Set, Tuple

from crossdoc_analyzer.alignment.similarity import BestMatch, combined_similarity, find_best_scored
from crossdoc_analyzer.models.alignment import EndpointLink
from crossdoc_analyzer.models.bundle import (
    CsrDocument,
    CsrEndpoint,
    EntityLevel,
    ProtocolDocument,
    ProtocolEndpoint,
    SapDocument,
    SapEndpoint,
)

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT_THRESHOLD = 0.7

NAME_WEIGHT = 0.6
DESCRIPTION_WEIGHT = 0.4

# Levels whose partner pool is consumed one-to-one
_EXCLUSIVE_LEVELS = {EntityLevel.SECONDARY.value}


def _well_formed(endpoints, source: str) -> list:
    valid = []
    for endpoint in endpoints:
        if not endpoint.id or not endpoint.name:
            logger.warning(f"Skipping malformed {source} endpoint (id={endpoint.id!r}): missing id or name")
            continue
        valid.append(endpoint)
    return valid


def endpoint_similarity(protocol_endpoint: ProtocolEndpoint, sap_endpoint: SapEndpoint) -> float:
    """Weighted name/description score; name only when a description is missing."""
    name_score = combined_similarity(protocol_endpoint.name, sap_endpoint.name)
    if not protocol_endpoint.description or not sap_endpoint.description:
        return name_score
    description_score = combined_similarity(protocol_endpoint.description, sap_endpoint.description)
    return NAME_WEIGHT * name_score + DESCRIPTION_WEIGHT * description_score


def _match(
    level: str,
    pools: Dict[str, Sequence],
    used: Dict[str, Set[str]],
    scorer,
    threshold: float,
) -> Optional[BestMatch]:
    """Best match in the level's pool, honoring one-to-one consumption."""
    pool = pools.get(level, ())
    if level in _EXCLUSIVE_LEVELS:
        taken = used.setdefault(level, set())
        pool = [candidate for candidate in pool if candidate.id not in taken]
    match = find_best_scored(pool, scorer, threshold=threshold)
    if match is not None and level in _EXCLUSIVE_LEVELS:
        used[level].add(match.candidate.id)
    return match


def _sap_pools(sap: SapDocument) -> Dict[str, List[SapEndpoint]]:
    return {
        EntityLevel.PRIMARY.value: _well_formed(sap.primary_endpoints, "SAP"),
        EntityLevel.SECONDARY.value: _well_formed(sap.secondary_endpoints, "SAP"),
    }


def _csr_pools(csr: CsrDocument) -> Dict[str, List[CsrEndpoint]]:
    return {
        EntityLevel.PRIMARY.value: _well_formed(csr.reported_primary_endpoints, "CSR"),
        EntityLevel.SECONDARY.value: _well_formed(csr.reported_secondary_endpoints, "CSR"),
    }


def _aggregate(partners: List[Tuple[float, bool]]) -> Tuple[float, bool]:
    """Aggregate over present partner documents: min score, all aligned."""
    if not partners:
        return 0.0, False
    return min(score for score, _ in partners), all(aligned for _, aligned in partners)


def map_endpoints(
    protocol: Optional[ProtocolDocument],
    sap: Optional[SapDocument] = None,
    csr: Optional[CsrDocument] = None,
    threshold: float = DEFAULT_ENDPOINT_THRESHOLD,
) -> List[EndpointLink]:
    """
    Align Protocol endpoints to SAP (name and description) and CSR (name).

    Returns one EndpointLink per well-formed Protocol endpoint, in Protocol
    order. Without a Protocol there is nothing to align and the result is empty.
    """
    if protocol is None:
        return []

    sap_pools = _sap_pools(sap) if sap is not None else {}
    csr_pools = _csr_pools(csr) if csr is not None else {}
    sap_used: Dict[str, Set[str]] = {}
    csr_used: Dict[str, Set[str]] = {}

    links = []
    for endpoint in _well_formed(protocol.endpoints, "Protocol"):
        partners: List[Tuple[float, bool]] = []
        fields = {"protocol_endpoint_id": endpoint.id, "type": endpoint.type}

        if sap is not None:
            match = _match(endpoint.type, sap_pools, sap_used,
                           lambda candidate: endpoint_similarity(endpoint, candidate), threshold)
            if match is not None:
                fields.update(sap_endpoint_id=match.candidate.id, sap_score=match.score, sap_aligned=True)
            partners.append((match.score if match else 0.0, match is not None))

        if csr is not None:
            match = _match(endpoint.type, csr_pools, csr_used,
                           lambda candidate: combined_similarity(endpoint.name, candidate.name), threshold)
            if match is not None:
                fields.update(csr_endpoint_id=match.candidate.id, csr_score=match.score, csr_aligned=True)
            partners.append((match.score if match else 0.0, match is not None))

        score, aligned = _aggregate(partners)
        links.append(EndpointLink(score=score, aligned=aligned, **fields))

    logger.debug(
        f"Endpoint mapping: {sum(1 for link in links if link.aligned)}/{len(links)} aligned "
        f"(sap={'yes' if sap else 'no'}, csr={'yes' if csr else 'no'})"
    )
    return links
