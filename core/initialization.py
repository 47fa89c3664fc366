"""
core/initialization.py
----------------------
Loads configuration from .env on top of the typed defaults and wires all
runtime components with simple dependency-injection (DI) overrides.
"""

from __future__ import annotations

import logging
import os
from dataclasses import replace
from typing import Dict, Optional

from dotenv import load_dotenv

from core.signal_handler import LoggingDispatcher
from models.config import EngineConfig, OnInvalidLevels
from modules.confluence import ConfluenceScorer
from modules.data_provider import BarCache, DataProvider
from modules.indicator import IndicatorCalculator
from modules.outcome_tracker import OutcomeTracker
from modules.persistence.sqlite import SQLitePersistence
from modules.signal_classifier import SignalClassifier
from modules.signal_engine import RateLimiter, SignalEngine, SignalPollingClient
from modules.trade_planner import TradePlanner
from utils.config_validator import validate_config


def _env_float(key: str, default: float) -> float:
    v = os.getenv(key)
    if v is None or v == "":
        return default
    return float(v)


def _env_int(key: str, default: int) -> int:
    v = os.getenv(key)
    if v is None or v == "":
        return default
    return int(v)


def _env_str(key: str, default: str) -> str:
    v = os.getenv(key)
    return v if v not in (None, "") else default


def load_configuration(env_path: str = "config.env") -> EngineConfig:
    """
    Load settings from an .env-style file and return a validated EngineConfig.
    Unset keys keep their defaults; malformed numbers raise ValueError.
    """
    log = logging.getLogger(__name__)
    load_dotenv(dotenv_path=env_path)

    base = EngineConfig()
    symbols_raw = os.getenv("SYMBOLS", "")

    indicator = replace(
        base.indicator,
        min_history_bars=_env_int("MIN_HISTORY_BARS", base.indicator.min_history_bars),
    )
    classifier = replace(
        base.classifier,
        cooldown_hours=_env_float("COOLDOWN_HOURS", base.classifier.cooldown_hours),
        max_signals_per_day=_env_int("MAX_SIGNALS_PER_DAY", base.classifier.max_signals_per_day),
    )
    risk = replace(
        base.risk,
        min_risk_reward=_env_float("MIN_RISK_REWARD", base.risk.min_risk_reward),
        portfolio_value=_env_float("PORTFOLIO_VALUE", base.risk.portfolio_value),
        max_position_pct=_env_float("MAX_POSITION_PCT", base.risk.max_position_pct),
        on_invalid_levels=OnInvalidLevels(_env_str("ON_INVALID_LEVELS", base.risk.on_invalid_levels.value).lower()),
    )
    tracking = replace(
        base.tracking,
        tracking_window_days=_env_int("TRACKING_WINDOW_DAYS", base.tracking.tracking_window_days),
        retention_days=_env_int("RETENTION_DAYS", base.tracking.retention_days),
    )

    config = replace(
        base,
        symbols=tuple(s.strip().upper() for s in symbols_raw.split(",") if s.strip()),
        db_path=_env_str("DB_PATH", base.db_path),
        history_days=_env_int("HISTORY_DAYS", base.history_days),
        max_concurrency=_env_int("MAX_CONCURRENCY", base.max_concurrency),
        max_requests_per_10s=_env_int("MAX_REQUESTS_PER_10S", base.max_requests_per_10s),
        indicator=indicator,
        classifier=classifier,
        risk=risk,
        tracking=tracking,
    )
    validate_config(config)

    log.debug("Parsed SYMBOLS: %s", config.symbols)
    log.debug("Invalid-levels policy: %s", config.risk.on_invalid_levels.value)
    return config


def initialize_components(
    config: EngineConfig,
    overrides: Optional[Dict[str, object]] = None,
    logger: Optional[logging.Logger] = None,
) -> Dict[str, object]:
    """
    Construct and wire together all runtime components (supports DI via overrides).

    Keys you can override:
    {"logger", "store", "data_provider", "calculator", "scorer", "classifier",
     "trade_planner", "tracker", "dispatcher", "rate_limiter", "market_data"}

    ``polling_client`` is only built when a ``market_data`` collaborator is given.
    """
    overrides = overrides or {}

    # 1) Logger
    from utils.logger import setup_logger, setup_package_logging
    setup_package_logging()
    logger = overrides.get("logger") or logger or setup_logger("signal_engine")

    # 2) Persistence
    store = overrides.get("store") or SQLitePersistence(config.db_path)

    # 3) Pipeline stages
    data_provider = overrides.get("data_provider") or DataProvider(cache=BarCache())
    calculator = overrides.get("calculator") or IndicatorCalculator(config.indicator, data_provider)
    scorer = overrides.get("scorer") or ConfluenceScorer(config.scoring)
    classifier = overrides.get("classifier") or SignalClassifier(config.classifier, store)
    trade_planner = overrides.get("trade_planner") or TradePlanner(config.risk)
    tracker = overrides.get("tracker") or OutcomeTracker(store, config.tracking)

    engine = SignalEngine(
        config,
        store,
        logger,
        calculator=calculator,
        scorer=scorer,
        classifier=classifier,
        trade_planner=trade_planner,
        tracker=tracker,
    )

    # 4) Delivery + batch client
    dispatcher = overrides.get("dispatcher") or LoggingDispatcher()
    market_data = overrides.get("market_data")
    polling_client = None
    if market_data is not None:
        polling_client = SignalPollingClient(
            config,
            market_data,
            engine,
            logger,
            data_provider=data_provider,
            dispatcher=dispatcher,
            rate_limiter=overrides.get("rate_limiter") or RateLimiter(config.max_requests_per_10s),
            tracker=tracker,
        )

    logger.info("✅ Store ready at %s", config.db_path)
    logger.info("✅ Signal engine initialized (%s invalid-levels policy)", config.risk.on_invalid_levels.value)
    if polling_client is None:
        logger.info("No market-data collaborator injected; polling client not created.")

    return {
        "logger": logger,
        "store": store,
        "data_provider": data_provider,
        "engine": engine,
        "tracker": tracker,
        "dispatcher": dispatcher,
        "polling_client": polling_client,
    }
