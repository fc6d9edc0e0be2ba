"""
Dose regimen alignment between the Investigator's Brochure and Protocol arms.

Dose regimens are written in many equivalent ways ("10 mg", "10mg",
"10 milligrams"; "PO", "oral"; "QD", "once daily"), so every field is
normalized before scoring. The regimen score is a weighted average of the
fields present on both sides:

    dose 0.5, route 0.3, frequency 0.2

Strength comparison is numeric: equal amounts in the same unit score 1.0 and
amounts within 10% of each other score 0.9.
"""

import logging
import re
from typing import List, Optional, Tuple

from crossdoc_analyzer.alignment.similarity import combined_similarity, normalize_text
from crossdoc_analyzer.models.alignment import AlignmentLink
from crossdoc_analyzer.models.bundle import DosingInfo, IbDocument, ProtocolDocument, TreatmentArm

logger = logging.getLogger(__name__)

DEFAULT_DOSE_THRESHOLD = 0.7

FIELD_WEIGHTS = {
    "dose": 0.5,
    "route": 0.3,
    "frequency": 0.2,
}

DOSE_TOLERANCE = 0.1

# =============================================================================
# NORMALIZATION TABLES
# =============================================================================

# Order matters: longer unit names first
UNIT_PATTERNS = [
    (re.compile(r"micrograms?"), "mcg"),
    (re.compile(r"µg|μg|(?<=[\d\s])ug\b"), "mcg"),
    (re.compile(r"milligrams?"), "mg"),
    (re.compile(r"grams?"), "g"),
    (re.compile(r"milliliters?|millilitres?"), "ml"),
    (re.compile(r"international units?"), "iu"),
]

ROUTE_ALIASES = {
    "po": "oral",
    "per os": "oral",
    "by mouth": "oral",
    "orally": "oral",
    "iv": "intravenous",
    "intravenously": "intravenous",
    "sc": "subcutaneous",
    "sq": "subcutaneous",
    "subq": "subcutaneous",
    "subcutaneously": "subcutaneous",
    "im": "intramuscular",
    "intramuscularly": "intramuscular",
    "top": "topical",
    "inh": "inhaled",
}

FREQUENCY_ALIASES = {
    "qd": "once daily",
    "od": "once daily",
    "daily": "once daily",
    "once a day": "once daily",
    "once per day": "once daily",
    "bid": "twice daily",
    "twice a day": "twice daily",
    "twice per day": "twice daily",
    "tid": "three times daily",
    "three times a day": "three times daily",
    "qid": "four times daily",
    "four times a day": "four times daily",
    "qw": "once weekly",
    "weekly": "once weekly",
    "once a week": "once weekly",
    "q2w": "every 2 weeks",
    "every two weeks": "every 2 weeks",
    "biweekly": "every 2 weeks",
    "q3w": "every 3 weeks",
    "every three weeks": "every 3 weeks",
    "q4w": "every 4 weeks",
    "every four weeks": "every 4 weeks",
    "monthly": "every 4 weeks",
    "prn": "as needed",
    "as required": "as needed",
}

_AMOUNT = re.compile(r"(\d+(?:\.\d+)?)([a-z]+)")


def normalize_dose(dose: Optional[str]) -> str:
    """Canonical strength notation: '10 Milligrams' -> '10mg'."""
    if not dose:
        return ""
    text = dose.lower().replace(",", "")
    for pattern, unit in UNIT_PATTERNS:
        text = pattern.sub(unit, text)
    return re.sub(r"\s+", "", text)


def normalize_route(route: Optional[str]) -> str:
    text = normalize_text(route)
    return ROUTE_ALIASES.get(text, text)


def normalize_frequency(frequency: Optional[str]) -> str:
    text = normalize_text(frequency)
    return FREQUENCY_ALIASES.get(text, text)


# =============================================================================
# FIELD COMPARISON
# =============================================================================


def compare_doses(dose_a: str, dose_b: str) -> float:
    """
    Compare two strengths.

    Returns:
        1.0 for equal normalized strengths, 0.9 within the numeric tolerance,
        0.5 for different amounts in the same unit, lower for unit mismatch.
        Falls back to text similarity when no amount can be parsed.
    """
    norm_a = normalize_dose(dose_a)
    norm_b = normalize_dose(dose_b)

    if norm_a == norm_b:
        return 1.0

    match_a = _AMOUNT.search(norm_a)
    match_b = _AMOUNT.search(norm_b)
    if not match_a or not match_b:
        return combined_similarity(dose_a, dose_b)

    value_a, unit_a = float(match_a.group(1)), match_a.group(2)
    value_b, unit_b = float(match_b.group(1)), match_b.group(2)

    if unit_a != unit_b:
        return 0.15

    if value_a == value_b:
        return 1.0

    largest = max(value_a, value_b)
    if largest > 0 and abs(value_a - value_b) / largest < DOSE_TOLERANCE:
        return 0.9

    return 0.5


def _compare_text(a: str, b: str) -> float:
    if a == b:
        return 1.0
    return combined_similarity(a, b)


def score_regimen(dose: DosingInfo, arm: TreatmentArm) -> float:
    """Weighted regimen score over the fields present on both sides."""
    field_scores: List[Tuple[float, float]] = []

    if dose.dose and arm.dose:
        field_scores.append((FIELD_WEIGHTS["dose"], compare_doses(dose.dose, arm.dose)))
    if dose.route and arm.route:
        field_scores.append((
            FIELD_WEIGHTS["route"],
            _compare_text(normalize_route(dose.route), normalize_route(arm.route)),
        ))
    if dose.frequency and arm.frequency:
        field_scores.append((
            FIELD_WEIGHTS["frequency"],
            _compare_text(normalize_frequency(dose.frequency), normalize_frequency(arm.frequency)),
        ))

    total_weight = sum(weight for weight, _ in field_scores)
    if total_weight == 0:
        return 0.0
    return sum(weight * score for weight, score in field_scores) / total_weight


# =============================================================================
# MAPPING
# =============================================================================


def _well_formed_doses(doses) -> List[DosingInfo]:
    valid = []
    for dose in doses:
        if not dose.id or not dose.dose:
            logger.warning(f"Skipping malformed IB dose (id={dose.id!r}): missing id or dose")
            continue
        valid.append(dose)
    return valid


def _well_formed_arms(arms) -> List[TreatmentArm]:
    valid = []
    for arm in arms:
        if not arm.id:
            logger.warning(f"Skipping malformed Protocol arm (name={arm.name!r}): missing id")
            continue
        valid.append(arm)
    return valid


def map_doses(
    ib: Optional[IbDocument],
    protocol: Optional[ProtocolDocument],
    threshold: float = DEFAULT_DOSE_THRESHOLD,
) -> List[AlignmentLink]:
    """
    Align each IB dose regimen to the best-scoring Protocol arm.

    Returns:
        One AlignmentLink (type "dose") per well-formed IB dose, in IB order
    """
    if ib is None:
        return []

    arms = _well_formed_arms(protocol.arms) if protocol is not None else []

    links = []
    for dose in _well_formed_doses(ib.dosing_information):
        best_arm: Optional[TreatmentArm] = None
        best_score = 0.0
        for arm in arms:
            score = score_regimen(dose, arm)
            if score >= threshold and (best_arm is None or score > best_score):
                best_arm, best_score = arm, score

        links.append(AlignmentLink(
            left_id=dose.id,
            right_id=best_arm.id if best_arm else None,
            type="dose",
            score=best_score,
            aligned=best_arm is not None,
        ))

    logger.debug(f"Dose mapping: {sum(1 for link in links if link.aligned)}/{len(links)} aligned")
    return links
