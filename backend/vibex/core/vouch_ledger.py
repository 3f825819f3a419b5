"""Vouch ledger - diminishing vouch points and vouch history records."""

from collections import defaultdict

MAX_VOUCH_POINTS = 10
POINTS_STEP = 2


def points_for_nth_vouch(n: int) -> int:
    """Points for a vouch when the voucher has already vouched `n` times.

    Yields 10, 8, 6, 4, 2, then 0 forever.
    """
    return max(0, MAX_VOUCH_POINTS - POINTS_STEP * n)


def build_history(vouches) -> list[dict]:
    """Assemble a user's received vouches into history records, newest first."""
    records = [
        {
            "id": v.id,
            "voucher_id": v.voucher_id,
            "session_id": v.session_id,
            "skill": v.skill,
            "points": v.points,
            "timestamp": v.created_at,
        }
        for v in vouches
    ]
    records.sort(key=lambda r: (r["timestamp"], r["id"]), reverse=True)
    return records


def skill_scores(vouches) -> dict[str, int]:
    """Total points per skill label."""
    totals: dict[str, int] = defaultdict(int)
    for v in vouches:
        totals[v.skill] += v.points
    return dict(totals)
