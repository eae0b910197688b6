from datetime import datetime, timedelta, timezone
import json
from unittest.mock import MagicMock

import pytest

from portfolio_ranker.collectors.cache import StockDataCacher, cache_outdated
from portfolio_ranker.collectors.ibkr import HistoricalBar, MarketSnapshot, Position, StockData


def make_stock_data(timestamp=None):
    return StockData(
        portfolio=[Position(conid=265598, ticker="AAPL")],
        market_snapshot={265598: MarketSnapshot(last_price=180.0, pe_ratio=29.5, dividend_yield=0.0052)},
        short_term_market_history={265598: [HistoricalBar(c=175.0, t=1_700_000_000_000)]},
        long_term_market_history={265598: []},
        timestamp=timestamp or datetime.now(timezone.utc),
    )


@pytest.fixture
def downloader():
    mock = MagicMock()
    mock.download_stock_data.return_value = make_stock_data()
    return mock


class TestStockDataCacher:
    def test_downloads_and_writes_when_cache_missing(self, tmp_path, downloader):
        cache_path = tmp_path / "cache.json"
        cacher = StockDataCacher(downloader, cache_path)

        result = cacher.fetch("U1", use_cache=True)

        downloader.download_stock_data.assert_called_once_with("U1")
        assert result == downloader.download_stock_data.return_value
        assert json.loads(cache_path.read_text(encoding="utf-8"))["portfolio"][0]["ticker"] == "AAPL"

    def test_uses_fresh_cache(self, tmp_path, downloader):
        cache_path = tmp_path / "cache.json"
        cached = make_stock_data()
        cache_path.write_text(json.dumps(cached.to_dict()), encoding="utf-8")

        result = StockDataCacher(downloader, cache_path).fetch("U1", use_cache=True)

        downloader.download_stock_data.assert_not_called()
        assert result == cached

    def test_outdated_cache_is_refreshed(self, tmp_path, downloader):
        cache_path = tmp_path / "cache.json"
        stale = make_stock_data(datetime.now(timezone.utc) - timedelta(days=2))
        cache_path.write_text(json.dumps(stale.to_dict()), encoding="utf-8")

        StockDataCacher(downloader, cache_path).fetch("U1", use_cache=True)

        downloader.download_stock_data.assert_called_once()

    def test_corrupt_cache_is_a_miss(self, tmp_path, downloader):
        cache_path = tmp_path / "cache.json"
        cache_path.write_text("{not json", encoding="utf-8")

        StockDataCacher(downloader, cache_path).fetch("U1", use_cache=True)

        downloader.download_stock_data.assert_called_once()

    def test_cache_disabled(self, tmp_path, downloader):
        cache_path = tmp_path / "cache.json"
        cache_path.write_text(json.dumps(make_stock_data().to_dict()), encoding="utf-8")

        StockDataCacher(downloader, cache_path).fetch("U1", use_cache=False)

        downloader.download_stock_data.assert_called_once()

    def test_download_errors_propagate(self, tmp_path, downloader):
        downloader.download_stock_data.side_effect = RuntimeError("gateway down")

        with pytest.raises(RuntimeError, match="gateway down"):
            StockDataCacher(downloader, tmp_path / "cache.json").fetch("U1", use_cache=False)


class TestCacheOutdated:
    def test_boundary(self):
        now = datetime(2026, 10, 18, tzinfo=timezone.utc)

        assert not cache_outdated(now - timedelta(hours=23), now)
        assert cache_outdated(now - timedelta(days=1), now)
