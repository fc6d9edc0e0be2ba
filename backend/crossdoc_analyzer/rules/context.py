"""
Rule context builder.

Runs every mapper exactly once for a bundle and packages the result with the
bundle as the read-only input shared by all rules of a validation run.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from crossdoc_analyzer.alignment.dose_map import map_doses
from crossdoc_analyzer.alignment.endpoints_map import map_endpoints
from crossdoc_analyzer.alignment.objectives_map import map_objectives
from crossdoc_analyzer.models.alignment import Alignments, AlignmentThresholds
from crossdoc_analyzer.models.bundle import CrossDocBundle

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RuleContext:
    """Immutable input to every rule: the bundle and its alignments."""
    bundle: CrossDocBundle
    alignments: Alignments = field(default_factory=Alignments)
    thresholds: AlignmentThresholds = field(default_factory=AlignmentThresholds)


def build_alignments(bundle: CrossDocBundle, thresholds: AlignmentThresholds) -> Alignments:
    return Alignments(
        objectives=tuple(map_objectives(bundle.ib, bundle.protocol, threshold=thresholds.objectives)),
        endpoints=tuple(map_endpoints(bundle.protocol, bundle.sap, bundle.csr, threshold=thresholds.endpoints)),
        doses=tuple(map_doses(bundle.ib, bundle.protocol, threshold=thresholds.doses)),
    )


def build_rule_context(
    bundle: CrossDocBundle,
    thresholds: Optional[AlignmentThresholds] = None,
) -> RuleContext:
    """
    Build the shared context for one validation run.

    Args:
        bundle: Documents available for this run (any subset)
        thresholds: Per-call-site similarity thresholds (defaults if None)

    Returns:
        RuleContext with alignments for every document pair present
    """
    thresholds = thresholds or AlignmentThresholds()
    alignments = build_alignments(bundle, thresholds)

    logger.info(
        f"Built rule context: documents={[t.value for t in bundle.present_types()]}, "
        f"objective_links={len(alignments.objectives)}, "
        f"endpoint_links={len(alignments.endpoints)}, "
        f"dose_links={len(alignments.doses)}"
    )
    return RuleContext(bundle=bundle, alignments=alignments, thresholds=thresholds)
