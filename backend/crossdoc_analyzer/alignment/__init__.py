"""
Entity Alignment

Lexical similarity metrics and the mappers that use them to align
semantically-equivalent entities across document pairs.

Mappers:
    map_objectives - IB objectives to Protocol objectives (same level)
    map_endpoints  - Protocol endpoints to SAP and CSR endpoints (same level)
    map_doses      - IB dose regimens to Protocol treatment arms (normalized)

Usage:
    from crossdoc_analyzer.alignment import map_objectives, combined_similarity

    links = map_objectives(bundle.ib, bundle.protocol, threshold=0.7)
"""

from .similarity import (
    BestMatch,
    are_similar,
    combined_similarity,
    cosine_similarity,
    find_best_match,
    find_best_scored,
    jaccard_similarity,
    levenshtein_distance,
    levenshtein_similarity,
    normalize_text,
)
from .objectives_map import map_objectives
from .endpoints_map import endpoint_similarity, map_endpoints
from .dose_map import compare_doses, map_doses, normalize_dose, normalize_frequency, normalize_route

__all__ = [
    "BestMatch",
    "are_similar",
    "combined_similarity",
    "cosine_similarity",
    "find_best_match",
    "find_best_scored",
    "jaccard_similarity",
    "levenshtein_distance",
    "levenshtein_similarity",
    "normalize_text",
    "map_objectives",
    "map_endpoints",
    "endpoint_similarity",
    "map_doses",
    "compare_doses",
    "normalize_dose",
    "normalize_frequency",
    "normalize_route",
]
