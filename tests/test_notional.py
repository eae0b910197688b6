import pytest

from portfolio_ranker.ranking.notional import Direction, NotionalRanker, rank_notionals


class TestRankNotionals:
    def test_least_wins_scenario(self):
        scores = rank_notionals({"A": 10.0, "B": 20.0, "C": 5.0}, Direction.LEAST_WINS)

        assert scores == {"C": 1.0, "A": 0.5, "B": 0.0}

    def test_greatest_wins_reverses_order(self):
        scores = rank_notionals({"A": 10.0, "B": 20.0, "C": 5.0}, Direction.GREATEST_WINS)

        assert scores == {"B": 1.0, "A": 0.5, "C": 0.0}

    def test_empty_input(self):
        assert rank_notionals({}, Direction.GREATEST_WINS) == {}

    def test_single_ticker_gets_max_score(self):
        assert rank_notionals({"A": 3.0}, Direction.LEAST_WINS) == {"A": 1.0}

    def test_key_set_preserved(self):
        values = {f"T{i}": float(i % 7) for i in range(25)}

        scores = rank_notionals(values, Direction.GREATEST_WINS)

        assert set(scores) == set(values)
        assert all(0.0 <= s <= 1.0 for s in scores.values())

    def test_ties_share_mean_rank(self):
        scores = rank_notionals({"A": 1.0, "B": 2.0, "C": 2.0, "D": 3.0}, Direction.GREATEST_WINS)

        assert scores["B"] == scores["C"]
        assert scores["B"] == pytest.approx(0.5)
        assert scores["A"] == 0.0
        assert scores["D"] == 1.0

    def test_all_equal(self):
        scores = rank_notionals({"A": 4.0, "B": 4.0, "C": 4.0}, Direction.LEAST_WINS)

        assert scores == {"A": 0.5, "B": 0.5, "C": 0.5}

    @pytest.mark.parametrize("direction", list(Direction))
    def test_monotonic(self, direction):
        values = {"A": 1.0, "B": 5.0, "C": 2.5, "D": 9.0}

        scores = rank_notionals(values, direction)

        for a in values:
            for b in values:
                if values[a] > values[b]:
                    if direction is Direction.GREATEST_WINS:
                        assert scores[a] >= scores[b]
                    else:
                        assert scores[a] <= scores[b]

    def test_deterministic(self):
        values = {"X": 0.3, "Y": 0.1, "Z": 0.3, "W": 0.2}

        assert rank_notionals(values, Direction.GREATEST_WINS) == rank_notionals(dict(values), Direction.GREATEST_WINS)


class TestNotionalRanker:
    def test_uses_bound_direction(self):
        ranker = NotionalRanker(Direction.LEAST_WINS)

        assert ranker.rank({"A": 1.0, "B": 2.0}) == {"A": 1.0, "B": 0.0}
