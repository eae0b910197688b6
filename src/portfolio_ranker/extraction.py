from __future__ import annotations

from datetime import datetime, timedelta, timezone
import logging
import math

from portfolio_ranker.collectors.ibkr import HistoricalBar, StockData
from portfolio_ranker.config import AppConfig
from portfolio_ranker.models import ScoringFactor, StockCandidates

LOGGER = logging.getLogger(__name__)

LONG_TERM_SPAN = timedelta(days=365 * 5)
ONE_MONTH = timedelta(days=30)


class ScoringFactorExtractor:
    """Builds the candidate set from portfolio positions, snapshots and price history."""

    def __init__(self, config: AppConfig) -> None:
        self.config = config

    def extract_scoring_factors(self, stock_data: StockData, now: datetime | None = None) -> StockCandidates:
        now = now or datetime.now(timezone.utc)
        candidates = StockCandidates.from_overrides(self.config.overrides)
        overridden = {(ticker, factor) for ticker, factors in self.config.overrides.items() for factor in factors}
        seen: set[str] = set()

        for position in stock_data.portfolio:
            conid = position.conid
            if position.ticker in seen:
                LOGGER.debug("Ticker %s held in more than one position; later values win", position.ticker)
            seen.add(position.ticker)
            snapshot = stock_data.market_snapshot.get(conid)
            values: dict[ScoringFactor, float | None] = {}
            if snapshot is not None:
                values[ScoringFactor.PE_RATIO] = snapshot.pe_ratio
                values[ScoringFactor.DIVIDEND_YIELD] = snapshot.dividend_yield
                values[ScoringFactor.PRICE_EMA20_CHANGE] = snapshot.price_ema20_change
                values[ScoringFactor.PRICE_EMA200_CHANGE] = snapshot.price_ema200_change
            values[ScoringFactor.LONG_TERM_CHANGE] = extract_long_term_price_change(conid, stock_data, now)
            values[ScoringFactor.SHORT_TERM_CHANGE] = extract_short_term_price_change(conid, stock_data, now)

            for factor, notional in values.items():
                if notional is None:
                    continue
                # Manual overrides win over market data.
                if (position.ticker, factor) in overridden:
                    continue
                if not math.isfinite(notional):
                    LOGGER.debug("Skipping non-finite %s for %s", factor.value, position.ticker)
                    continue
                candidates.add_candidate(position.ticker, factor, notional)

        LOGGER.info("Extracted scoring factors for %d tickers", len(candidates))
        return candidates


def extract_long_term_price_change(conid: int, stock_data: StockData, now: datetime) -> float | None:
    snapshot = stock_data.market_snapshot.get(conid)
    history = stock_data.long_term_market_history.get(conid)
    if snapshot is None or snapshot.last_price is None or not history:
        return None
    oldest = history[0]
    if _to_millis(now) - oldest.t < _millis(LONG_TERM_SPAN):
        return None
    return price_change(oldest.c, snapshot.last_price)


def extract_short_term_price_change(conid: int, stock_data: StockData, now: datetime) -> float | None:
    snapshot = stock_data.market_snapshot.get(conid)
    history = stock_data.short_term_market_history.get(conid)
    if snapshot is None or snapshot.last_price is None or not history:
        return None
    entry = last_month_entry(history, now)
    if entry is None:
        return None
    return price_change(entry.c, snapshot.last_price)


def price_change(old_price: float, new_price: float) -> float | None:
    if old_price == 0.0:
        return None
    return (new_price - old_price) / old_price


def last_month_entry(history: list[HistoricalBar], now: datetime) -> HistoricalBar | None:
    """Most recent bar that is between one and two months old."""
    now_ms = _to_millis(now)
    one_month = _millis(ONE_MONTH)
    for entry in reversed(history):
        age = now_ms - entry.t
        if one_month <= age <= one_month * 2:
            return entry
    return None


def _to_millis(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


def _millis(span: timedelta) -> int:
    return int(span.total_seconds() * 1000)
