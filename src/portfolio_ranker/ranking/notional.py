from __future__ import annotations

from collections.abc import Mapping
from enum import Enum

from portfolio_ranker.models import Notional, Score, Ticker


class Direction(Enum):
    """Which end of the sorted notionals is the most desirable."""

    GREATEST_WINS = "greatest_wins"
    LEAST_WINS = "least_wins"


def rank_notionals(values: Mapping[Ticker, Notional], direction: Direction) -> dict[Ticker, Score]:
    """Turn raw notionals into position-based scores in ``[0, 1]``.

    The least desirable value sits at rank index 0 and the most desirable at
    ``n - 1``; each score is ``rank_index / (n - 1)``. Equal notionals share the
    mean of the indices they span. A lone ticker scores ``1.0``.
    """
    if not values:
        return {}

    # Ascending for "greatest wins", descending for "least wins": index 0 always loses.
    ordered = sorted(values.items(), key=lambda item: item[1], reverse=direction is Direction.LEAST_WINS)
    n = len(ordered)
    if n == 1:
        return {ordered[0][0]: 1.0}

    scores: dict[Ticker, Score] = {}
    start = 0
    while start < n:
        end = start
        while end + 1 < n and ordered[end + 1][1] == ordered[start][1]:
            end += 1
        mean_index = (start + end) / 2
        for ticker, _ in ordered[start : end + 1]:
            scores[ticker] = mean_index / (n - 1)
        start = end + 1
    return scores


class NotionalRanker:
    """Scoring kernel bound to one direction, injected into factor rankers."""

    def __init__(self, direction: Direction = Direction.GREATEST_WINS) -> None:
        self.direction = direction

    def rank(self, values: Mapping[Ticker, Notional]) -> dict[Ticker, Score]:
        return rank_notionals(values, self.direction)

    def __repr__(self) -> str:
        return f"NotionalRanker({self.direction.name})"
