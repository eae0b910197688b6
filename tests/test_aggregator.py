import pytest

from portfolio_ranker.models import ScoringFactor, StockCandidates
from portfolio_ranker.ranking.aggregator import StockRanker, sum_scores
from portfolio_ranker.ranking.factor_rankers import PositiveGreatestWinningRanker


class FakeFactorRanker:
    def __init__(self, scores):
        self.scores = scores
        self.seen = []

    def rank(self, candidates):
        self.seen.append(candidates)
        return dict(self.scores)


@pytest.fixture
def candidates():
    return StockCandidates(
        {
            "AAA": {
                ScoringFactor.PE_RATIO: 12.0,
                ScoringFactor.DIVIDEND_YIELD: 0.04,
                ScoringFactor.PRICE_EMA20_CHANGE: -0.03,
                ScoringFactor.PRICE_EMA200_CHANGE: 0.10,
            },
            "BBB": {
                ScoringFactor.PE_RATIO: 30.0,
                ScoringFactor.DIVIDEND_YIELD: 0.01,
                ScoringFactor.PRICE_EMA20_CHANGE: -0.01,
                ScoringFactor.PRICE_EMA200_CHANGE: 0.25,
            },
            "CCC": {ScoringFactor.PE_RATIO: -5.0},
            "DDD": {},
        }
    )


class TestStockRanker:
    def test_sum_scores(self):
        ranker1 = FakeFactorRanker({"A": 0.1, "B": 0.2})
        ranker2 = FakeFactorRanker({"A": 0.3})
        service = StockRanker([ranker1, ranker2])

        actual = service.rank(StockCandidates())

        assert actual == pytest.approx({"A": 0.4, "B": 0.2})

    def test_every_ranker_sees_same_candidates(self, candidates):
        rankers = [FakeFactorRanker({}), FakeFactorRanker({})]

        StockRanker(rankers).rank(candidates)

        assert all(r.seen == [candidates] for r in rankers)

    def test_no_rankers(self, candidates):
        assert StockRanker([]).rank(candidates) == {}

    def test_empty_candidates_with_default_rankers(self):
        assert StockRanker.default().rank(StockCandidates()) == {}

    def test_no_matching_factor(self):
        candidates = StockCandidates({"A": {ScoringFactor.LONG_TERM_CHANGE: 1.0}})

        assert StockRanker.default().rank(candidates) == {}

    def test_default_bindings(self, candidates):
        scores = StockRanker.default().rank(candidates)

        # AAA: yield 1 + P/E 1 + EMA20 0 + EMA200 0; BBB: 0 + 0 + 1 + 1
        assert scores == {"AAA": 2.0, "BBB": 2.0}
        assert "CCC" not in scores
        assert "DDD" not in scores

    def test_parallel_matches_sequential(self, candidates):
        sequential = StockRanker.default().rank(candidates)
        parallel = StockRanker.default(max_workers=4).rank(candidates)

        assert parallel == sequential

    def test_idempotent(self, candidates):
        service = StockRanker.default()

        assert service.rank(candidates) == service.rank(candidates)

    def test_order_of_rankers_does_not_matter(self, candidates):
        rankers = [
            PositiveGreatestWinningRanker(ScoringFactor.DIVIDEND_YIELD),
            PositiveGreatestWinningRanker(ScoringFactor.PRICE_EMA200_CHANGE),
        ]

        forward = StockRanker(rankers).rank(candidates)
        backward = StockRanker(list(reversed(rankers))).rank(candidates)

        assert forward == pytest.approx(backward)


class TestSumScores:
    def test_absent_ticker_unaffected(self):
        assert sum_scores([{"A": 0.5, "B": 0.25}, {"A": 0.25}]) == {"A": 0.75, "B": 0.25}

    def test_empty(self):
        assert sum_scores([]) == {}
