"""
Objective alignment between the Investigator's Brochure and the Protocol.

Each IB objective is matched against Protocol objectives of the same level
(primary to primary, secondary to secondary). One link is produced per
well-formed IB objective, matched or not.
"""

import logging
from typing import Dict, List, Optional

from crossdoc_analyzer.alignment.similarity import find_best_match
from crossdoc_analyzer.models.alignment import AlignmentLink
from crossdoc_analyzer.models.bundle import IbDocument, Objective, ProtocolDocument

logger = logging.getLogger(__name__)

DEFAULT_OBJECTIVE_THRESHOLD = 0.7


def _well_formed(objectives, source: str) -> List[Objective]:
    valid = []
    for obj in objectives:
        if not obj.id or not obj.description:
            logger.warning(f"Skipping malformed {source} objective (id={obj.id!r}): missing id or description")
            continue
        valid.append(obj)
    return valid


def _group_by_type(objectives: List[Objective]) -> Dict[str, List[Objective]]:
    grouped: Dict[str, List[Objective]] = {}
    for obj in objectives:
        grouped.setdefault(obj.type, []).append(obj)
    return grouped


def map_objectives(
    ib: Optional[IbDocument],
    protocol: Optional[ProtocolDocument],
    threshold: float = DEFAULT_OBJECTIVE_THRESHOLD,
) -> List[AlignmentLink]:
    """
    Align IB objectives to Protocol objectives.

    Args:
        ib: Left-side document (may be None)
        protocol: Right-side document (None behaves like an empty objective list)
        threshold: Minimum combined similarity for a link to count as aligned

    Returns:
        One AlignmentLink per well-formed IB objective, in IB order
    """
    if ib is None:
        return []

    left = _well_formed(ib.objectives, "IB")
    right = _well_formed(protocol.objectives, "Protocol") if protocol is not None else []
    pools = _group_by_type(right)

    links = []
    for objective in left:
        match = find_best_match(
            objective.description,
            pools.get(objective.type, []),
            lambda candidate: candidate.description,
            threshold=threshold,
        )
        if match is None:
            links.append(AlignmentLink(
                left_id=objective.id,
                right_id=None,
                type=objective.type,
                score=0.0,
                aligned=False,
            ))
        else:
            links.append(AlignmentLink(
                left_id=objective.id,
                right_id=match.candidate.id,
                type=objective.type,
                score=match.score,
                aligned=True,
            ))

    aligned = sum(1 for link in links if link.aligned)
    logger.debug(f"Objective mapping: {aligned}/{len(links)} aligned (threshold={threshold})")
    return links
