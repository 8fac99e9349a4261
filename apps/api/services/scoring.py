"""
Score derivation for the morning readiness check and the fatigue questionnaires.

Derived values are always recomputed from the raw item scores; the record models
in schemas.py call into this module during validation, so a total supplied by a
caller is never trusted.

FSS (Fatigue Severity Scale): 9 items scored 1-7, total is the item mean.
FACIT-F: 13 items scored 0-4. Fatigue-worded items are reversed (4 - score);
the two energy-worded items count as answered, so a higher total always means
less fatigue.
"""
from typing import Iterable, List, Optional, Sequence

READINESS_ITEM_COUNT = 5
READINESS_MIN = 1
READINESS_MAX = 10

FSS = "FSS"
FACIT_F = "FACIT-F"

SCALE_ITEM_COUNTS = {FSS: 9, FACIT_F: 13}
SCALE_ITEM_RANGES = {FSS: (1, 7), FACIT_F: (0, 4)}

# Zero-based FACIT-F items counted as answered ("I have energy",
# "I am able to do my usual activities")
FACIT_F_POSITIVE_ITEMS = frozenset({6, 7})
FACIT_F_ITEM_MAX = 4


def readiness_score(ratings: Iterable[int]) -> int:
    """Exercise readiness: the exact sum of the five morning ratings (5-50)."""
    values = list(ratings)
    if len(values) != READINESS_ITEM_COUNT:
        raise ValueError(f"Readiness needs {READINESS_ITEM_COUNT} ratings, got {len(values)}")
    for value in values:
        if not READINESS_MIN <= value <= READINESS_MAX:
            raise ValueError(f"Readiness ratings must be between {READINESS_MIN} and {READINESS_MAX}")
    return sum(values)


def readiness_recommendation(score: int) -> str:
    if score >= 40:
        return "Good to go - Ready for exercise"
    if score >= 30:
        return "Light exercise recommended"
    if score >= 20:
        return "Rest or gentle activity only"
    return "Rest recommended - Avoid exercise"


def validate_scale_scores(scale_type: str, scores: Sequence[int]) -> List[int]:
    if scale_type not in SCALE_ITEM_COUNTS:
        raise ValueError(f"Unknown fatigue scale type: {scale_type}")

    expected = SCALE_ITEM_COUNTS[scale_type]
    if len(scores) != expected:
        raise ValueError(f"{scale_type} requires {expected} item scores, got {len(scores)}")

    low, high = SCALE_ITEM_RANGES[scale_type]
    for position, score in enumerate(scores, start=1):
        if not low <= score <= high:
            raise ValueError(f"{scale_type} item {position} must be between {low} and {high}")
    return list(scores)


def fss_total(scores: Sequence[int]) -> float:
    validate_scale_scores(FSS, scores)
    return sum(scores) / len(scores)


def fss_interpretation(total: float) -> str:
    if total >= 5.5:
        return "Severe fatigue"
    if total >= 4.5:
        return "Significant fatigue"
    if total >= 3.5:
        return "Moderate fatigue"
    return "Minimal fatigue"


def facit_f_total(scores: Sequence[int], positive_items: Optional[Iterable[int]] = None) -> int:
    """Sum(positive ? score : 4 - score) over the 13 items."""
    validate_scale_scores(FACIT_F, scores)
    positive = FACIT_F_POSITIVE_ITEMS if positive_items is None else frozenset(positive_items)
    return sum(
        score if index in positive else FACIT_F_ITEM_MAX - score
        for index, score in enumerate(scores)
    )


def facit_f_interpretation(total: float) -> str:
    if total >= 40:
        return "Minimal fatigue"
    if total >= 30:
        return "Mild fatigue"
    if total >= 20:
        return "Moderate fatigue"
    return "Severe fatigue"


def scale_total(scale_type: str, scores: Sequence[int]) -> float:
    if scale_type == FSS:
        return fss_total(scores)
    if scale_type == FACIT_F:
        return facit_f_total(scores)
    raise ValueError(f"Unknown fatigue scale type: {scale_type}")


def scale_interpretation(scale_type: str, total: float) -> str:
    if scale_type == FSS:
        return fss_interpretation(total)
    if scale_type == FACIT_F:
        return facit_f_interpretation(total)
    raise ValueError(f"Unknown fatigue scale type: {scale_type}")
