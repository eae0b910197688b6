from __future__ import annotations

from datetime import datetime, timedelta, timezone
import json
import logging
from pathlib import Path
import tempfile

from portfolio_ranker.collectors.ibkr import StockData, StockDataDownloader

LOGGER = logging.getLogger(__name__)
CACHE_FILE_NAME = "portfolio-ranker-cache.json"
CACHE_MAX_AGE = timedelta(days=1)


class StockDataCacher:
    """Serves stock data from a JSON file cache, downloading when it is missing or a day old."""

    def __init__(
        self,
        downloader: StockDataDownloader | None = None,
        cache_path: str | Path | None = None,
    ) -> None:
        self.downloader = downloader or StockDataDownloader()
        self.cache_path = Path(cache_path) if cache_path else Path(tempfile.gettempdir()) / CACHE_FILE_NAME

    def fetch(self, account_id: str, use_cache: bool) -> StockData:
        if not use_cache:
            LOGGER.info("Cache disabled")
        else:
            cached = self._read_cache()
            if cached is None:
                LOGGER.info("Stock data not found in cache")
            elif cache_outdated(cached.timestamp):
                LOGGER.info("Cache is outdated (%s)", cached.timestamp.isoformat())
            else:
                LOGGER.info("Generating report using cached data from %s", self.cache_path)
                return cached

        LOGGER.info("Downloading stock data from IBKR")
        stock_data = self.downloader.download_stock_data(account_id)
        self.cache_path.parent.mkdir(parents=True, exist_ok=True)
        self.cache_path.write_text(json.dumps(stock_data.to_dict()), encoding="utf-8")
        return stock_data

    def _read_cache(self) -> StockData | None:
        if not self.cache_path.is_file():
            return None
        try:
            payload = json.loads(self.cache_path.read_text(encoding="utf-8"))
            return StockData.from_dict(payload)
        except (OSError, ValueError, KeyError, TypeError) as exc:
            LOGGER.warning("Ignoring unreadable cache %s: %s", self.cache_path, exc)
            return None


def cache_outdated(timestamp: datetime, now: datetime | None = None) -> bool:
    now = now or datetime.now(timezone.utc)
    return now - timestamp >= CACHE_MAX_AGE
