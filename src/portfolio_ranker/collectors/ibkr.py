from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging
import os
import re
import time
from typing import Any

import requests
import urllib3

LOGGER = logging.getLogger(__name__)
DEFAULT_BASE_URL = "https://localhost:5000/v1/api"

FIELD_LAST_PRICE = "31"
FIELD_DIVIDEND_YIELD = "7287"
FIELD_PE_RATIO = "7290"
FIELD_PRICE_EMA200 = "7678"
FIELD_PRICE_EMA20 = "7681"
SNAPSHOT_FIELDS = [FIELD_LAST_PRICE, FIELD_PE_RATIO, FIELD_DIVIDEND_YIELD, FIELD_PRICE_EMA20, FIELD_PRICE_EMA200]

SHORT_TERM_PERIOD = ("3m", "1d")
LONG_TERM_PERIOD = ("5y", "1m")

_NUMBER_PATTERN = re.compile(r"-?\d+(?:\.\d+)?(?:[eE][-+]?\d+)?")


@dataclass(slots=True)
class Position:
    conid: int
    ticker: str


@dataclass(slots=True)
class MarketSnapshot:
    last_price: float | None = None
    pe_ratio: float | None = None
    # Fractions: 0.0321 for a 3.21% yield.
    dividend_yield: float | None = None
    price_ema20_change: float | None = None
    price_ema200_change: float | None = None


@dataclass(slots=True)
class HistoricalBar:
    # Close price and bar time in epoch milliseconds.
    c: float
    t: int


@dataclass(slots=True)
class StockData:
    portfolio: list[Position] = field(default_factory=list)
    market_snapshot: dict[int, MarketSnapshot] = field(default_factory=dict)
    short_term_market_history: dict[int, list[HistoricalBar]] = field(default_factory=dict)
    long_term_market_history: dict[int, list[HistoricalBar]] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "portfolio": [{"conid": p.conid, "ticker": p.ticker} for p in self.portfolio],
            "market_snapshot": {
                str(conid): {
                    "last_price": s.last_price,
                    "pe_ratio": s.pe_ratio,
                    "dividend_yield": s.dividend_yield,
                    "price_ema20_change": s.price_ema20_change,
                    "price_ema200_change": s.price_ema200_change,
                }
                for conid, s in self.market_snapshot.items()
            },
            "short_term_market_history": _history_to_dict(self.short_term_market_history),
            "long_term_market_history": _history_to_dict(self.long_term_market_history),
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> StockData:
        timestamp = datetime.fromisoformat(payload["timestamp"])
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)
        return cls(
            portfolio=[Position(conid=int(p["conid"]), ticker=str(p["ticker"])) for p in payload["portfolio"]],
            market_snapshot={
                int(conid): MarketSnapshot(**snapshot) for conid, snapshot in payload["market_snapshot"].items()
            },
            short_term_market_history=_history_from_dict(payload["short_term_market_history"]),
            long_term_market_history=_history_from_dict(payload["long_term_market_history"]),
            timestamp=timestamp,
        )


class IbkrApiError(RuntimeError):
    """Raised when the IBKR Client Portal gateway returns a non-success response."""


class IbkrApiClient:
    """Thin client for the IBKR Client Portal Web API served by a local gateway."""

    def __init__(
        self,
        base_url: str | None = None,
        timeout_seconds: int = 30,
        verify_ssl: bool | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = (base_url or os.getenv("IBKR_BASE_URL") or DEFAULT_BASE_URL).rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.session = session or requests.Session()
        if verify_ssl is None:
            verify_ssl = os.getenv("IBKR_VERIFY_SSL", "0") == "1"
        self.session.verify = verify_ssl
        if not verify_ssl:
            # The gateway ships a self-signed certificate.
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)
        self.max_retries = int(os.getenv("IBKR_MAX_RETRIES", "3"))

    def get_accounts(self) -> list[dict[str, Any]]:
        payload = self._request("GET", "/iserver/accounts")
        accounts = payload.get("accounts", []) if isinstance(payload, dict) else []
        return [{"accountId": a} if isinstance(a, str) else a for a in accounts]

    def get_positions(self, account_id: str) -> list[dict[str, Any]]:
        merged: list[dict[str, Any]] = []
        for page in range(100):
            items = self._request("GET", f"/portfolio/{account_id}/positions/{page}")
            if not isinstance(items, list) or not items:
                break
            merged.extend(items)
        return merged

    def get_snapshot(self, conids: list[int], fields: list[str]) -> list[dict[str, Any]]:
        params = {"conids": ",".join(str(c) for c in conids), "fields": ",".join(fields)}
        payload = self._request("GET", "/iserver/marketdata/snapshot", params=params)
        return payload if isinstance(payload, list) else []

    def get_history(self, conid: int, period: str, bar: str) -> list[dict[str, Any]]:
        params = {"conid": str(conid), "period": period, "bar": bar}
        payload = self._request("GET", "/iserver/marketdata/history", params=params)
        data = payload.get("data", []) if isinstance(payload, dict) else []
        return data if isinstance(data, list) else []

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, str] | None = None,
    ) -> Any:
        response = self._send(method, path, params)
        try:
            payload = response.json()
        except ValueError:
            payload = {}

        if not response.ok:
            message = payload.get("error") if isinstance(payload, dict) else None
            raise IbkrApiError(f"{method} {path} failed ({response.status_code}): {message or response.text}")

        return payload

    def _send(self, method: str, path: str, params: dict[str, str] | None) -> requests.Response:
        """Sends one request, sleeping and resending while the gateway answers 429."""
        attempt = 0
        while True:
            try:
                response = self.session.request(
                    method=method,
                    url=f"{self.base_url}{path}",
                    params=params,
                    timeout=self.timeout_seconds,
                )
            except requests.RequestException as exc:
                raise IbkrApiError(f"{method} {path} failed: {exc}") from exc
            if response.status_code != 429 or attempt >= self.max_retries:
                return response
            wait_s = _retry_delay(response, attempt)
            LOGGER.warning("Gateway throttled %s %s (attempt %d); waiting %ss", method, path, attempt + 1, wait_s)
            time.sleep(wait_s)
            attempt += 1


def _retry_delay(response: requests.Response, attempt: int) -> int:
    header = response.headers.get("Retry-After", "")
    if header.isdigit():
        return int(header)
    return min(2 ** attempt, 10)


class StockDataDownloader:
    """Collects positions, snapshots and price history for one account."""

    def __init__(self, client: IbkrApiClient | None = None, snapshot_batch_size: int = 50) -> None:
        self.client = client or IbkrApiClient()
        self.snapshot_batch_size = max(1, snapshot_batch_size)
        self.snapshot_retries = int(os.getenv("IBKR_SNAPSHOT_RETRIES", "3"))
        self.snapshot_retry_delay = float(os.getenv("IBKR_SNAPSHOT_RETRY_DELAY", "1"))

    def download_stock_data(self, account_id: str) -> StockData:
        # The gateway refuses market data requests until the account list was read once.
        self.client.get_accounts()

        portfolio = self._fetch_portfolio(account_id)
        conids = [position.conid for position in portfolio]
        LOGGER.info("Downloaded %d positions for account %s", len(portfolio), account_id)

        stock_data = StockData(
            portfolio=portfolio,
            market_snapshot=self._fetch_snapshots(conids),
            short_term_market_history=self._fetch_histories(conids, *SHORT_TERM_PERIOD),
            long_term_market_history=self._fetch_histories(conids, *LONG_TERM_PERIOD),
        )
        return stock_data

    def _fetch_portfolio(self, account_id: str) -> list[Position]:
        positions: list[Position] = []
        for row in self.client.get_positions(account_id):
            conid = row.get("conid")
            ticker = str(row.get("ticker") or row.get("contractDesc") or "").strip()
            if conid is None or not ticker:
                LOGGER.debug("Skipping position without conid/ticker: %s", row)
                continue
            positions.append(Position(conid=int(conid), ticker=ticker))
        return positions

    def _fetch_snapshots(self, conids: list[int]) -> dict[int, MarketSnapshot]:
        rows: dict[int, dict[str, Any]] = {}
        for start in range(0, len(conids), self.snapshot_batch_size):
            batch = conids[start : start + self.snapshot_batch_size]
            for attempt in range(self.snapshot_retries + 1):
                for row in self.client.get_snapshot(batch, SNAPSHOT_FIELDS):
                    if "conid" in row:
                        rows[int(row["conid"])] = row
                missing = [c for c in batch if not _has_snapshot_fields(rows.get(c))]
                if not missing or attempt >= self.snapshot_retries:
                    break
                # First snapshot calls only subscribe; the data arrives on a later call.
                LOGGER.debug("Snapshot incomplete for %d conids, retrying", len(missing))
                time.sleep(self.snapshot_retry_delay)
        return {conid: _parse_snapshot(row) for conid, row in rows.items()}

    def _fetch_histories(self, conids: list[int], period: str, bar: str) -> dict[int, list[HistoricalBar]]:
        histories: dict[int, list[HistoricalBar]] = {}
        for conid in conids:
            bars: list[HistoricalBar] = []
            for entry in self.client.get_history(conid, period, bar):
                close = parse_field(entry.get("c"))
                timestamp = entry.get("t")
                if close is None or timestamp is None:
                    continue
                bars.append(HistoricalBar(c=close, t=int(timestamp)))
            bars.sort(key=lambda b: b.t)
            histories[conid] = bars
        return histories


def parse_field(value: Any) -> float | None:
    """Parse a gateway value such as ``"C123.4"``, ``"1,234"`` or ``"3.21%"``.

    Percent values are returned as fractions.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip().replace(",", "")
    match = _NUMBER_PATTERN.search(text)
    if not match:
        return None
    number = float(match.group())
    if text.endswith("%"):
        number /= 100.0
    return number


def _parse_snapshot(row: dict[str, Any]) -> MarketSnapshot:
    return MarketSnapshot(
        last_price=parse_field(row.get(FIELD_LAST_PRICE)),
        pe_ratio=parse_field(row.get(FIELD_PE_RATIO)),
        dividend_yield=parse_field(row.get(FIELD_DIVIDEND_YIELD)),
        price_ema20_change=parse_field(row.get(FIELD_PRICE_EMA20)),
        price_ema200_change=parse_field(row.get(FIELD_PRICE_EMA200)),
    )


def _has_snapshot_fields(row: dict[str, Any] | None) -> bool:
    return row is not None and FIELD_LAST_PRICE in row


def _history_to_dict(history: dict[int, list[HistoricalBar]]) -> dict[str, list[dict[str, Any]]]:
    return {str(conid): [{"c": b.c, "t": b.t} for b in bars] for conid, bars in history.items()}


def _history_from_dict(payload: dict[str, Any]) -> dict[int, list[HistoricalBar]]:
    return {
        int(conid): [HistoricalBar(c=float(b["c"]), t=int(b["t"])) for b in bars] for conid, bars in payload.items()
    }
