from __future__ import annotations

from dataclasses import dataclass, field
import math
from pathlib import Path
from typing import Any

import yaml

from portfolio_ranker.models import ScoringFactor
from portfolio_ranker.ranking.aggregator import StockRanker
from portfolio_ranker.ranking.factor_rankers import build_ranker


LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


class ConfigError(ValueError):
    """Raised when the YAML config is missing, malformed or names unknown items."""


@dataclass(slots=True)
class IbkrConfig:
    base_url: str | None = None
    timeout_seconds: int = 30
    snapshot_batch_size: int = 50


@dataclass(slots=True)
class LoggingConfig:
    level: str = "INFO"


@dataclass(slots=True)
class RankerBinding:
    strategy: str
    factor: ScoringFactor


@dataclass(slots=True)
class AppConfig:
    account_id: str
    use_cache: bool = True
    cache_path: str | None = None
    max_workers: int = 1
    overrides: dict[str, dict[ScoringFactor, float]] = field(default_factory=dict)
    rankers: list[RankerBinding] = field(default_factory=list)
    ibkr: IbkrConfig = field(default_factory=IbkrConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def build_stock_ranker(self) -> StockRanker:
        if not self.rankers:
            return StockRanker.default(max_workers=self.max_workers)
        return StockRanker(
            [build_ranker(binding.strategy, binding.factor) for binding in self.rankers],
            max_workers=self.max_workers,
        )


def _load_yaml(path: Path) -> dict[str, Any]:
    try:
        with path.open("r", encoding="utf-8") as fh:
            loaded = yaml.safe_load(fh)
    except OSError as exc:
        raise ConfigError(f"Cannot read config {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
    if not isinstance(loaded, dict):
        raise ConfigError(f"Invalid config: {path}")
    return loaded


def _parse_factor(name: Any) -> ScoringFactor:
    try:
        return ScoringFactor.parse(name)
    except ValueError as exc:
        raise ConfigError(str(exc)) from exc


def _parse_overrides(raw: Any) -> dict[str, dict[ScoringFactor, float]]:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigError("'override' must map tickers to factor values")
    overrides: dict[str, dict[ScoringFactor, float]] = {}
    for ticker, factors in raw.items():
        if not isinstance(factors, dict):
            raise ConfigError(f"Override for {ticker} must map factors to numbers")
        parsed: dict[ScoringFactor, float] = {}
        for factor_name, value in factors.items():
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ConfigError(f"Override {ticker}/{factor_name} is not a number: {value!r}")
            if not math.isfinite(value):
                raise ConfigError(f"Override {ticker}/{factor_name} must be finite: {value!r}")
            parsed[_parse_factor(factor_name)] = float(value)
        overrides[str(ticker)] = parsed
    return overrides


def _parse_rankers(raw: Any) -> list[RankerBinding]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ConfigError("'rankers' must be a list")
    bindings: list[RankerBinding] = []
    for entry in raw:
        if not isinstance(entry, dict) or "strategy" not in entry or "factor" not in entry:
            raise ConfigError(f"Ranker entry needs 'strategy' and 'factor': {entry!r}")
        binding = RankerBinding(strategy=str(entry["strategy"]), factor=_parse_factor(entry["factor"]))
        try:
            build_ranker(binding.strategy, binding.factor)
        except ValueError as exc:
            raise ConfigError(str(exc)) from exc
        bindings.append(binding)
    return bindings


def parse_log_level(level: Any) -> str:
    text = str(level).strip().upper()
    if text not in LOG_LEVELS:
        raise ConfigError(f"Unknown log level {level!r} (known: {', '.join(LOG_LEVELS)})")
    return text


def _require_bool(loaded: dict[str, Any], key: str, default: bool) -> bool:
    value = loaded.get(key, default)
    if not isinstance(value, bool):
        raise ConfigError(f"'{key}' must be true or false, got {value!r}")
    return value


def _require_positive_int(section: dict[str, Any], key: str, default: int) -> int:
    value = section.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ConfigError(f"'{key}' must be a positive integer, got {value!r}")
    return value


def _optional_str(section: dict[str, Any], key: str) -> str | None:
    value = section.get(key)
    if value is not None and not isinstance(value, str):
        raise ConfigError(f"'{key}' must be a string, got {value!r}")
    return value


def _section(loaded: dict[str, Any], key: str) -> dict[str, Any]:
    value = loaded.get(key) or {}
    if not isinstance(value, dict):
        raise ConfigError(f"'{key}' must be a mapping")
    return value


def load_config(path: str | Path) -> AppConfig:
    cfg_path = Path(path)
    loaded = _load_yaml(cfg_path)

    account_id = str(loaded.get("account_id", "")).strip()
    if not account_id:
        raise ConfigError(f"'account_id' is required: {cfg_path}")

    ibkr_section = _section(loaded, "ibkr")
    logging_section = _section(loaded, "logging")
    unknown = (set(ibkr_section) - set(IbkrConfig.__slots__)) | (set(logging_section) - set(LoggingConfig.__slots__))
    if unknown:
        raise ConfigError(f"Unknown keys in {cfg_path}: {', '.join(sorted(unknown))}")
    ibkr = IbkrConfig(
        base_url=_optional_str(ibkr_section, "base_url"),
        timeout_seconds=_require_positive_int(ibkr_section, "timeout_seconds", 30),
        snapshot_batch_size=_require_positive_int(ibkr_section, "snapshot_batch_size", 50),
    )
    logging_config = LoggingConfig(level=parse_log_level(logging_section.get("level", "INFO")))

    return AppConfig(
        account_id=account_id,
        use_cache=_require_bool(loaded, "use_cache", True),
        cache_path=_optional_str(loaded, "cache_path"),
        max_workers=_require_positive_int(loaded, "max_workers", 1),
        overrides=_parse_overrides(loaded.get("override")),
        rankers=_parse_rankers(loaded.get("rankers")),
        ibkr=ibkr,
        logging=logging_config,
    )
