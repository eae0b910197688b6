from __future__ import annotations

from collections.abc import Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor
import logging

from portfolio_ranker.models import Score, ScoringFactor, StockCandidates, Ticker
from portfolio_ranker.ranking.factor_rankers import (
    FactorRanker,
    NegativeLeastWinningRanker,
    PositiveGreatestWinningRanker,
    PositiveLeastWinningRanker,
)

LOGGER = logging.getLogger(__name__)


class StockRanker:
    """Sums the scores of every factor ranker into one composite score per ticker.

    Each ranker contributes with an implicit weight of 1. A ticker that no
    ranker scored is absent from the result.
    """

    def __init__(self, rankers: Iterable[FactorRanker], *, max_workers: int = 1) -> None:
        self.rankers: list[FactorRanker] = list(rankers)
        self.max_workers = max(1, max_workers)

    @classmethod
    def default(cls, *, max_workers: int = 1) -> StockRanker:
        return cls(
            [
                PositiveGreatestWinningRanker(ScoringFactor.DIVIDEND_YIELD),
                PositiveLeastWinningRanker(ScoringFactor.PE_RATIO),
                NegativeLeastWinningRanker(ScoringFactor.PRICE_EMA20_CHANGE),
                PositiveGreatestWinningRanker(ScoringFactor.PRICE_EMA200_CHANGE),
            ],
            max_workers=max_workers,
        )

    def rank(self, candidates: StockCandidates) -> dict[Ticker, Score]:
        if not self.rankers:
            return {}

        if self.max_workers > 1 and len(self.rankers) > 1:
            with ThreadPoolExecutor(max_workers=min(self.max_workers, len(self.rankers))) as executor:
                # map() keeps ranker order, so the sum below is the same as the sequential one.
                per_ranker = list(executor.map(lambda ranker: ranker.rank(candidates), self.rankers))
        else:
            per_ranker = [ranker.rank(candidates) for ranker in self.rankers]

        for ranker, scores in zip(self.rankers, per_ranker):
            LOGGER.debug("%r scored %d of %d tickers", ranker, len(scores), len(candidates))
        return sum_scores(per_ranker)


def sum_scores(score_maps: Sequence[dict[Ticker, Score]]) -> dict[Ticker, Score]:
    totals: dict[Ticker, Score] = {}
    for scores in score_maps:
        for ticker, score in scores.items():
            totals[ticker] = totals.get(ticker, 0.0) + score
    return totals
