from datetime import date

from portfolio_ranker.models import ScoringFactor, StockCandidates
from portfolio_ranker.reporting.markdown_report import write_report
from portfolio_ranker.reporting.renderer import ArithmeticRenderer, ReportRenderer
from portfolio_ranker.reporting.tables import to_markdown_table


class TestReportRenderer:
    def test_entries_sorted_by_score_descendingly(self):
        renderer = ReportRenderer()
        candidates = StockCandidates({"A": {}, "B": {}})

        report = renderer.render(candidates, {"A": 1.0, "B": 2.0})

        assert [entry.ticker for entry in report] == ["B", "A"]

    def test_missing_score_counts_as_zero(self):
        renderer = ReportRenderer()
        candidates = StockCandidates({"A": {}, "B": {}, "C": {}})

        report = renderer.render(candidates, {"C": 0.5})

        assert [entry.ticker for entry in report] == ["C", "A", "B"]
        assert report[1].score == "0.00"

    def test_formats_factor_values(self):
        renderer = ReportRenderer(ArithmeticRenderer(precision=1))
        candidates = StockCandidates(
            {
                "A": {
                    ScoringFactor.PE_RATIO: 12.34,
                    ScoringFactor.DIVIDEND_YIELD: 0.025,
                    ScoringFactor.PRICE_EMA20_CHANGE: -0.031,
                }
            }
        )

        (entry,) = renderer.render(candidates, {"A": 1.5})

        assert entry.score == "150.0"
        assert entry.pe_ratio == "12.3"
        assert entry.dividend_yield == "2.5%"
        assert entry.pema_20 == "-3.1%"
        assert entry.pema_200 == "None"


class TestMarkdown:
    def test_table_rows(self):
        entries = ReportRenderer().render(StockCandidates({"A": {ScoringFactor.PE_RATIO: 10.0}}), {"A": 1.0})

        table = to_markdown_table(entries)

        lines = table.splitlines()
        assert lines[0].startswith("|Ticker|Score|P/E|")
        assert lines[2] == "|A|100.00|10.00|None|None|None|None|None|"

    def test_write_report(self, tmp_path):
        entries = ReportRenderer().render(StockCandidates({"A": {}}), {})

        path = write_report(entries, tmp_path / "out", date(2026, 10, 18))

        assert path.name == "20261018_ranking.md"
        assert "# Portfolio Ranking (2026-10-18)" in path.read_text(encoding="utf-8")
