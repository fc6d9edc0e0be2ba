"""
Alignment link models.

A link records how one left-side entity matched the right-side document:
the best partner id (or None), its score and whether the score met the
call-site threshold. Mappers emit exactly one link per well-formed left
entity, including unmatched ones.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple


@dataclass(frozen=True)
class AlignmentThresholds:
    """Per-call-site similarity thresholds."""
    objectives: float = 0.7
    endpoints: float = 0.7
    doses: float = 0.7
    low_similarity: float = 0.8

    def to_dict(self) -> Dict[str, float]:
        return {
            "objectives": self.objectives,
            "endpoints": self.endpoints,
            "doses": self.doses,
            "lowSimilarity": self.low_similarity,
        }


@dataclass(frozen=True)
class AlignmentLink:
    """Generic left/right link (objectives and doses)."""
    left_id: str
    right_id: Optional[str]
    type: str
    score: float
    aligned: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "leftId": self.left_id,
            "rightId": self.right_id,
            "type": self.type,
            "score": round(self.score, 4),
            "aligned": self.aligned,
        }


@dataclass(frozen=True)
class EndpointLink:
    """
    Protocol endpoint linked to its SAP and CSR partners.

    The aggregate flag holds when every present partner document aligned;
    the aggregate score is the lowest per-partner score.
    """
    protocol_endpoint_id: str
    type: str
    sap_endpoint_id: Optional[str] = None
    sap_score: float = 0.0
    sap_aligned: bool = False
    csr_endpoint_id: Optional[str] = None
    csr_score: float = 0.0
    csr_aligned: bool = False
    score: float = 0.0
    aligned: bool = False

    @property
    def left_id(self) -> str:
        return self.protocol_endpoint_id

    @property
    def right_id(self) -> Optional[str]:
        return self.sap_endpoint_id

    def to_dict(self) -> Dict[str, Any]:
        return {
            "protocolEndpointId": self.protocol_endpoint_id,
            "sapEndpointId": self.sap_endpoint_id,
            "csrEndpointId": self.csr_endpoint_id,
            "type": self.type,
            "sapScore": round(self.sap_score, 4),
            "csrScore": round(self.csr_score, 4),
            "score": round(self.score, 4),
            "aligned": self.aligned,
        }


@dataclass(frozen=True)
class Alignments:
    """All alignment links computed for one validation run."""
    objectives: Tuple[AlignmentLink, ...] = ()
    endpoints: Tuple[EndpointLink, ...] = ()
    doses: Tuple[AlignmentLink, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "objectives": [link.to_dict() for link in self.objectives],
            "endpoints": [link.to_dict() for link in self.endpoints],
            "doses": [link.to_dict() for link in self.doses],
        }
