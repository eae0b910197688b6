from __future__ import annotations

from collections.abc import Callable, Hashable, Mapping
from typing import Protocol

from portfolio_ranker.models import Notional, Score, StockCandidates, Ticker
from portfolio_ranker.ranking.notional import Direction, NotionalRanker


class FactorRanker(Protocol):
    def rank(self, candidates: StockCandidates) -> dict[Ticker, Score]:
        ...


class NotionalScorer(Protocol):
    def rank(self, values: Mapping[Ticker, Notional]) -> dict[Ticker, Score]:
        ...


def select_notionals(
    candidates: StockCandidates,
    factor: Hashable,
    include: Callable[[Notional], bool],
    transform: Callable[[Notional], Notional] | None = None,
) -> dict[Ticker, Notional]:
    """Pick one factor per ticker, keeping only values accepted by ``include``.

    Tickers without the factor are skipped rather than scored as zero.
    """
    selected: dict[Ticker, Notional] = {}
    for ticker, factors in candidates.items():
        notional = factors.get(factor)
        if notional is None or not include(notional):
            continue
        selected[ticker] = transform(notional) if transform else notional
    return selected


def _positive(notional: Notional) -> bool:
    return notional > 0.0


def _negative(notional: Notional) -> bool:
    return notional < 0.0


class PositiveGreatestWinningRanker:
    """Ranks positive values of one factor; the greatest value wins."""

    def __init__(self, factor: Hashable, notional_ranker: NotionalScorer | None = None) -> None:
        self.factor = factor
        self.notional_ranker = notional_ranker or NotionalRanker(Direction.GREATEST_WINS)

    def rank(self, candidates: StockCandidates) -> dict[Ticker, Score]:
        return self.notional_ranker.rank(select_notionals(candidates, self.factor, _positive))

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.factor!s})"


class PositiveLeastWinningRanker:
    """Ranks positive values of one factor; the smallest value wins (e.g. a low P/E)."""

    def __init__(self, factor: Hashable, notional_ranker: NotionalScorer | None = None) -> None:
        self.factor = factor
        self.notional_ranker = notional_ranker or NotionalRanker(Direction.LEAST_WINS)

    def rank(self, candidates: StockCandidates) -> dict[Ticker, Score]:
        return self.notional_ranker.rank(select_notionals(candidates, self.factor, _positive))

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.factor!s})"


class NegativeLeastWinningRanker:
    """Ranks declines of one factor by magnitude; the smallest decline wins.

    Only negative values take part. They are passed on as absolute values.
    """

    def __init__(self, factor: Hashable, notional_ranker: NotionalScorer | None = None) -> None:
        self.factor = factor
        self.notional_ranker = notional_ranker or NotionalRanker(Direction.LEAST_WINS)

    def rank(self, candidates: StockCandidates) -> dict[Ticker, Score]:
        return self.notional_ranker.rank(select_notionals(candidates, self.factor, _negative, abs))

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.factor!s})"


class ForwardRanker:
    """Generic ranker for any factor where a larger positive value is better."""

    def __init__(self, factor_type: Hashable, notional_ranker: NotionalScorer | None = None) -> None:
        self.factor_type = factor_type
        self.notional_ranker = notional_ranker or NotionalRanker(Direction.GREATEST_WINS)

    def rank(self, candidates: StockCandidates) -> dict[Ticker, Score]:
        return self.notional_ranker.rank(select_notionals(candidates, self.factor_type, _positive))

    def __repr__(self) -> str:
        return f"ForwardRanker({self.factor_type!s})"


RANKER_STRATEGIES: dict[str, Callable[[Hashable], FactorRanker]] = {
    "positive_greatest": PositiveGreatestWinningRanker,
    "positive_least": PositiveLeastWinningRanker,
    "negative_least": NegativeLeastWinningRanker,
    "forward": ForwardRanker,
}


def build_ranker(strategy: str, factor: Hashable) -> FactorRanker:
    try:
        factory = RANKER_STRATEGIES[strategy]
    except KeyError:
        known = ", ".join(sorted(RANKER_STRATEGIES))
        raise ValueError(f"Unknown ranker strategy {strategy!r} (known: {known})") from None
    return factory(factor)
