from __future__ import annotations

import argparse
from datetime import date
import logging
from pathlib import Path

from dotenv import load_dotenv

from portfolio_ranker.collectors.ibkr import IbkrApiError
from portfolio_ranker.config import LOG_LEVELS, ConfigError, load_config
from portfolio_ranker.pipeline import RankingPipeline
from portfolio_ranker.reporting.markdown_report import build_report, write_report

LOGGER = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Rank portfolio stocks by composite factor score")
    parser.add_argument("--config", required=True, help="Path to config YAML")
    parser.add_argument("--no-cache", dest="no_cache", action="store_true", help="Always download fresh data")
    parser.add_argument("--output", default=None, help="Directory to write the Markdown report to")
    parser.add_argument("--log-level", dest="log_level", default=None, type=str.upper, choices=LOG_LEVELS)
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    dotenv_path = Path.cwd() / ".env"
    load_dotenv(dotenv_path=dotenv_path if dotenv_path.is_file() else None, override=False)
    args = parse_args(argv)

    try:
        config = load_config(args.config)
    except ConfigError as exc:
        logging.basicConfig(level=logging.INFO)
        LOGGER.error("%s", exc)
        return 1

    logging.basicConfig(
        level=args.log_level or config.logging.level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    pipeline = RankingPipeline(config)
    try:
        result = pipeline.run(use_cache=False if args.no_cache else None)
    except IbkrApiError as exc:
        LOGGER.error("Failed to download stock data: %s", exc)
        return 1

    today = date.today()
    if args.output:
        report_path = write_report(result.entries, args.output, today)
        print(f"Report generated: {report_path}")
    else:
        print(build_report(result.entries, today))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
