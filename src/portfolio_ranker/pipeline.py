from __future__ import annotations

from dataclasses import dataclass, field
import logging

from portfolio_ranker.collectors.cache import StockDataCacher
from portfolio_ranker.collectors.ibkr import IbkrApiClient, StockDataDownloader
from portfolio_ranker.config import AppConfig
from portfolio_ranker.extraction import ScoringFactorExtractor
from portfolio_ranker.models import Score, StockCandidates, Ticker
from portfolio_ranker.ranking.aggregator import StockRanker
from portfolio_ranker.reporting.renderer import ReportEntry, ReportRenderer

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class RankingResult:
    candidates: StockCandidates = field(default_factory=StockCandidates)
    scores: dict[Ticker, Score] = field(default_factory=dict)
    entries: list[ReportEntry] = field(default_factory=list)


class RankingPipeline:
    def __init__(
        self,
        config: AppConfig,
        *,
        cacher: StockDataCacher | None = None,
        ranker: StockRanker | None = None,
        renderer: ReportRenderer | None = None,
    ) -> None:
        self.config = config
        if cacher is None:
            client = IbkrApiClient(base_url=config.ibkr.base_url, timeout_seconds=config.ibkr.timeout_seconds)
            downloader = StockDataDownloader(client, snapshot_batch_size=config.ibkr.snapshot_batch_size)
            cacher = StockDataCacher(downloader, cache_path=config.cache_path)
        self.cacher = cacher
        self.extractor = ScoringFactorExtractor(config)
        self.ranker = ranker or config.build_stock_ranker()
        self.renderer = renderer or ReportRenderer()

    def run(self, use_cache: bool | None = None) -> RankingResult:
        use_cache = self.config.use_cache if use_cache is None else use_cache
        stock_data = self.cacher.fetch(self.config.account_id, use_cache)
        candidates = self.extractor.extract_scoring_factors(stock_data)
        scores = self.ranker.rank(candidates)
        LOGGER.info("Ranked %d of %d candidates with %d rankers", len(scores), len(candidates), len(self.ranker.rankers))
        entries = self.renderer.render(candidates, scores)
        return RankingResult(candidates=candidates, scores=scores, entries=entries)
