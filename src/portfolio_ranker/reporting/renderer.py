from __future__ import annotations

from collections.abc import Hashable, Mapping
from dataclasses import dataclass

from portfolio_ranker.models import Notional, Score, ScoringFactor, StockCandidates, Ticker

MISSING = "None"


class ArithmeticRenderer:
    def __init__(self, precision: int = 2) -> None:
        self.precision = precision

    def render_float(self, value: float) -> str:
        return f"{value:.{self.precision}f}"

    def render_percentage(self, fraction: float) -> str:
        return f"{fraction * 100.0:.{self.precision}f}%"


@dataclass(slots=True)
class ReportEntry:
    ticker: str
    score: str
    pe_ratio: str = MISSING
    dividend_yield: str = MISSING
    pema_20: str = MISSING
    pema_200: str = MISSING
    long_term_change: str = MISSING
    short_term_change: str = MISSING


class ReportRenderer:
    """Orders candidates by composite score and formats their factor values."""

    def __init__(self, arithmetic_renderer: ArithmeticRenderer | None = None) -> None:
        self.arithmetic_renderer = arithmetic_renderer or ArithmeticRenderer()

    def render(self, candidates: StockCandidates, scores: Mapping[Ticker, Score]) -> list[ReportEntry]:
        # A ticker without any score sorts as 0; sorted() keeps candidate order among ties.
        ordered = sorted(candidates.items(), key=lambda item: scores.get(item[0], 0.0), reverse=True)
        return [self.render_entry(ticker, factors, scores.get(ticker, 0.0)) for ticker, factors in ordered]

    def render_score(self, score: float) -> str:
        return self.arithmetic_renderer.render_float(score * 100.0)

    def render_entry(self, ticker: Ticker, factors: Mapping[Hashable, Notional], score: float) -> ReportEntry:
        return ReportEntry(
            ticker=ticker,
            score=self.render_score(score),
            pe_ratio=self._render(factors.get(ScoringFactor.PE_RATIO), percentage=False),
            dividend_yield=self._render(factors.get(ScoringFactor.DIVIDEND_YIELD)),
            pema_20=self._render(factors.get(ScoringFactor.PRICE_EMA20_CHANGE)),
            pema_200=self._render(factors.get(ScoringFactor.PRICE_EMA200_CHANGE)),
            long_term_change=self._render(factors.get(ScoringFactor.LONG_TERM_CHANGE)),
            short_term_change=self._render(factors.get(ScoringFactor.SHORT_TERM_CHANGE)),
        )

    def _render(self, value: float | None, *, percentage: bool = True) -> str:
        if value is None:
            return MISSING
        if percentage:
            return self.arithmetic_renderer.render_percentage(value)
        return self.arithmetic_renderer.render_float(value)
