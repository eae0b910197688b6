from __future__ import annotations

import math
from collections.abc import Hashable, Iterator, Mapping
from enum import Enum
from types import MappingProxyType

Ticker = str
Notional = float
Score = float


class ScoringFactor(str, Enum):
    """Known scoring dimensions. The ranking engine accepts any hashable factor key."""

    # Price over earnings.
    PE_RATIO = "PeRatio"
    # Annual dividend over price, as a fraction.
    DIVIDEND_YIELD = "DividendYield"
    # Price relative to its 20-day EMA, as a fraction (0.02 == 2% above).
    PRICE_EMA20_CHANGE = "PriceEma20Change"
    # Price relative to its 200-day EMA, as a fraction.
    PRICE_EMA200_CHANGE = "PriceEma200Change"
    # Change of the stock price over the last five years.
    LONG_TERM_CHANGE = "LongTermChange"
    # Change of the stock price over the last month.
    SHORT_TERM_CHANGE = "ShortTermChange"

    @classmethod
    def parse(cls, name: str) -> ScoringFactor:
        text = str(name).strip()
        for factor in cls:
            if text in (factor.value, factor.name):
                return factor
        raise ValueError(f"Unknown scoring factor: {name!r}")


class StockCandidates(Mapping[Ticker, Mapping[Hashable, Notional]]):
    """Per-ticker collection of factor values for one ranking pass.

    Built once by the extraction step and only read afterwards. Every stored
    notional is finite: the ranking engine relies on it and never checks again.
    """

    def __init__(self, data: Mapping[Ticker, Mapping[Hashable, Notional]] | None = None) -> None:
        self._data: dict[Ticker, dict[Hashable, Notional]] = {}
        for ticker, factors in (data or {}).items():
            self._data.setdefault(_check_ticker(ticker), {})
            for factor, notional in factors.items():
                self.add_candidate(ticker, factor, notional)

    @classmethod
    def from_overrides(cls, overrides: Mapping[Ticker, Mapping[Hashable, float]]) -> StockCandidates:
        candidates = cls()
        for ticker, factors in overrides.items():
            for factor, notional in factors.items():
                candidates.add_candidate(ticker, factor, notional)
        return candidates

    def add_candidate(self, ticker: Ticker, factor: Hashable, notional: Notional) -> None:
        value = float(notional)
        if not math.isfinite(value):
            raise ValueError(f"Non-finite notional for {ticker}/{factor}: {notional!r}")
        self._data.setdefault(_check_ticker(ticker), {})[factor] = value

    def __getitem__(self, ticker: Ticker) -> Mapping[Hashable, Notional]:
        return MappingProxyType(self._data[ticker])

    def __iter__(self) -> Iterator[Ticker]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"StockCandidates({self._data!r})"


def _check_ticker(ticker: Ticker) -> Ticker:
    if not isinstance(ticker, str) or not ticker:
        raise ValueError(f"Ticker must be a non-empty string, got {ticker!r}")
    return ticker
