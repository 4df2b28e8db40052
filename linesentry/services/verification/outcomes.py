"""Resolve a recommendation's result from a final game score."""

from linesentry.models.domain import EventResult
from linesentry.services.verification.verifier import ActualResult


def _compare(value: float) -> ActualResult:
    if value > 0:
        return ActualResult.WON
    if value < 0:
        return ActualResult.LOST
    return ActualResult.PUSH


def resolve_outcome(
    market_type: str,
    outcome_name: str,
    point: float | None,
    result: EventResult,
) -> ActualResult | None:
    """
    Result for one side of a game market, or None while it cannot be decided.

    h2h settles on the winner (a draw pushes two-way markets and wins a
    Draw outcome), spreads on score difference plus the point, totals on
    the combined score against the point. Player markets need box-score
    data and are left pending.
    """
    if not result.is_final:
        return None

    home, away = result.home_score, result.away_score
    if outcome_name == result.home_team:
        margin = home - away
    elif outcome_name == result.away_team:
        margin = away - home
    else:
        margin = None

    if market_type == "h2h":
        if outcome_name.lower() == "draw":
            return ActualResult.WON if home == away else ActualResult.LOST
        if margin is None:
            return None
        return _compare(margin)

    if market_type == "spreads":
        if margin is None or point is None:
            return None
        return _compare(margin + point)

    if market_type == "totals":
        if point is None:
            return None
        total = home + away
        side = outcome_name.lower()
        if side == "over":
            return _compare(total - point)
        if side == "under":
            return _compare(point - total)
        return None

    return None
