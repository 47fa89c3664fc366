from models.config import EngineConfig, OnInvalidLevels
from models.indicator import VolatilityRegime

_REGIME_ORDER = (
    VolatilityRegime.LOW,
    VolatilityRegime.NORMAL,
    VolatilityRegime.HIGH,
    VolatilityRegime.EXTREME,
)


def validate_config(config: EngineConfig) -> None:
    """Raise ValueError/TypeError if the configuration cannot drive the engine."""
    if not isinstance(config, EngineConfig):
        raise TypeError("config must be an EngineConfig.")

    if not isinstance(config.symbols, tuple):
        raise TypeError("symbols must be a tuple of strings.")

    if config.max_concurrency < 1:
        raise ValueError("max_concurrency must be at least 1.")

    if config.history_days < config.indicator.min_history_bars:
        raise ValueError("history_days must cover min_history_bars.")

    ind = config.indicator
    if ind.ema_fast >= ind.ema_slow:
        raise ValueError("ema_fast must be shorter than ema_slow.")
    if ind.macd_fast >= ind.macd_slow:
        raise ValueError("macd_fast must be shorter than macd_slow.")
    bounds = [b for b, _ in ind.volatility_breakpoints]
    if bounds != sorted(bounds):
        raise ValueError("volatility_breakpoints must be ascending.")

    risk = config.risk
    if risk.min_risk_reward <= 0:
        raise ValueError("min_risk_reward must be positive.")

    missing = [r.value for r in _REGIME_ORDER if r not in risk.atr_multipliers]
    if missing:
        raise ValueError(f"atr_multipliers missing regimes: {missing}")
    multipliers = [risk.atr_multipliers[r] for r in _REGIME_ORDER]
    if any(a >= b for a, b in zip(multipliers, multipliers[1:])):
        raise ValueError("atr_multipliers must increase from LOW to EXTREME.")

    if not isinstance(risk.on_invalid_levels, OnInvalidLevels):
        raise TypeError("on_invalid_levels must be an OnInvalidLevels member.")

    if not 0 < risk.max_position_pct <= 100:
        raise ValueError("max_position_pct must be in (0, 100].")
    if risk.portfolio_value <= 0:
        raise ValueError("portfolio_value must be positive.")
    if not 0 < risk.fallback_stop_pct < 100 or risk.fallback_take_profit_pct <= 0:
        raise ValueError("fallback percentages must be positive (stop below 100).")
    if risk.min_valid_risk_reward >= risk.max_valid_risk_reward:
        raise ValueError("risk/reward bounds are inverted.")

    cls = config.classifier
    if cls.cooldown_hours < 0 or cls.max_signals_per_day < 1:
        raise ValueError("cooldown_hours must be >= 0 and max_signals_per_day >= 1.")

    for low, high in config.tracking.confidence_buckets:
        if low >= high:
            raise ValueError(f"confidence bucket ({low}, {high}) is empty.")
    if config.tracking.tracking_window_days <= 0:
        raise ValueError("tracking_window_days must be positive.")
