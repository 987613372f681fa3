import math
from typing import Iterable


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def calculate_score(ideal_units: int, actual_units: int, failed: bool = False) -> int:
    """Map effort to a 0-100 score.

    A failed attempt scores 0. Otherwise the score is the ideal-to-actual
    ratio as a percentage, rounded half up and clamped to [0, 100]; no
    recorded effort at all scores 0.
    """
    if failed or actual_units <= 0:
        return 0
    raw = _round_half_up(100 * ideal_units / max(actual_units, 1))
    return max(0, min(100, raw))


def hazard_image_score(zone_count: int, clicks: int, timed_out: bool = False) -> int:
    """Score one hazard image; an image with no zones counts as perfect."""
    if timed_out:
        return 0
    if zone_count == 0:
        return 100
    return calculate_score(zone_count, clicks)


def hazard_session_score(image_scores: Iterable[int]) -> int:
    """Mean of per-image scores, forced to 0 if any image scored 0."""
    scores = list(image_scores)
    if not scores or any(s == 0 for s in scores):
        return 0
    return _round_half_up(sum(scores) / len(scores))


def match_score(pair_count: int, clicks: int, failed: bool = False) -> int:
    # One click to reveal each card is the minimum
    return calculate_score(pair_count * 2, clicks, failed)
