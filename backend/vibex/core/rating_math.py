"""Rating math - ELO-style reputation formulas and tier bands."""

import math

BASELINE_RATING = 1500

# Inclusive lower bound -> tier name, ascending
RATING_TIERS = [
    (0, "Newbie"),
    (1200, "Contributor"),
    (1400, "Specialist"),
    (1600, "Expert"),
    (1900, "Master"),
    (2200, "Grandmaster"),
]


def round_half_away(value: float) -> int:
    """Round to the nearest integer, halves away from zero."""
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


def k_factor(session_count: int) -> int:
    """Volatility coefficient; shrinks as the user gains experience."""
    if session_count < 10:
        return 40
    if session_count < 50:
        return 20
    return 10


def expected(rating: float) -> float:
    """Expected performance, a logistic curve centred on the baseline."""
    return 1 / (1 + 10 ** ((BASELINE_RATING - rating) / 400))


def new_rating(
    old: int, session_count: int, vouches_received: int, total_participants: int
) -> int:
    """Rating after a session: old + K * (actual - expected).

    `actual` is the share of the other participants who vouched. The
    result is not clamped, so a rating can drop below zero.
    """
    if total_participants > 1:
        actual = vouches_received / (total_participants - 1)
    else:
        actual = 0
    return round_half_away(old + k_factor(session_count) * (actual - expected(old)))


def _tier_index(rating: int) -> int:
    index = 0
    for i, (threshold, _) in enumerate(RATING_TIERS):
        if rating >= threshold:
            index = i
    return index


def tier(rating: int) -> str:
    """Get the highest tier whose lower bound is <= rating."""
    return RATING_TIERS[_tier_index(rating)][1]


def next_tier(rating: int) -> str | None:
    """Name of the tier after the current one, or None at the top."""
    index = _tier_index(rating)
    if index == len(RATING_TIERS) - 1:
        return None
    return RATING_TIERS[index + 1][1]


def progress_to_next_tier(rating: int) -> int:
    """Percentage of the way from the current band's floor to the next one."""
    index = _tier_index(rating)
    if index == len(RATING_TIERS) - 1:
        return 100
    floor, _ = RATING_TIERS[index]
    ceiling, _ = RATING_TIERS[index + 1]
    progress = round_half_away((rating - floor) / (ceiling - floor) * 100)
    return min(100, max(0, progress))


def all_tiers() -> list[dict]:
    """All tier bands for progression displays."""
    return [{"name": name, "min_rating": threshold} for threshold, name in RATING_TIERS]
