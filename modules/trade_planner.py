from __future__ import annotations

import logging
import math
from typing import Optional

from models.config import RiskConfig
from models.indicator import IndicatorSnapshot
from models.risk import PositionSizing, RiskLevels
from models.signal import Signal, SignalType
from modules.sl_tp_planner import InvalidRiskLevelsError, SLTPPlanner

logger = logging.getLogger(__name__)

# signal types that describe a long entry and therefore get SL/TP and sizing
RISK_MANAGED_TYPES = (SignalType.BUY, SignalType.WARNING)


class TradePlanner:
    """Attach SL/TP and position size to a classified signal."""

    def __init__(self, config: Optional[RiskConfig] = None):
        self.config = config or RiskConfig()

    def plan_sl_tp(self, symbol: str, entry_price: float, snapshot: IndicatorSnapshot, confidence: float) -> RiskLevels:
        """Raises InvalidRiskLevelsError when the policy is REJECT and levels are unusable."""
        planner = SLTPPlanner(
            entry_price=entry_price,
            symbol=symbol,
            atr=snapshot.atr,
            regime=snapshot.volatility_regime,
            support=snapshot.support_level,
            resistance=snapshot.resistance_level,
            confidence=confidence,
            config=self.config,
        )
        return planner.get_plan()

    def calculate_position_size(self, entry: float, stop_loss: float, take_profit: float) -> PositionSizing:
        """
        Shares risked up to max_position_pct of the portfolio, then capped so the
        position value itself stays within the same budget.
        """
        cfg = self.config
        budget = cfg.portfolio_value * (cfg.max_position_pct / 100)
        risk_per_share = entry - stop_loss

        if risk_per_share <= 0 or entry <= 0:
            shares = 0  # prevent division by zero
        else:
            shares = math.floor(budget / risk_per_share)
            if shares * entry > budget:
                shares = math.floor(budget / entry)

        return PositionSizing(
            shares=shares,
            position_value=shares * entry,
            risk_per_share=max(risk_per_share, 0.0),
            max_risk_amount=budget,
            actual_risk_amount=shares * max(risk_per_share, 0.0),
            potential_gain=shares * max(take_profit - entry, 0.0),
        )

    def plan(self, signal: Signal, snapshot: IndicatorSnapshot) -> Optional[Signal]:
        """
        Return a copy of ``signal`` carrying risk levels and sizing, or None
        when the levels fail the quality gates. Sell signals pass through
        unchanged.
        """
        if signal.signal_type not in RISK_MANAGED_TYPES:
            return signal

        cfg = self.config
        try:
            levels = self.plan_sl_tp(signal.symbol, signal.entry_price, snapshot, signal.confidence)
        except InvalidRiskLevelsError as exc:
            logger.warning("Rejected %s signal for %s: %s", signal.tier.value, signal.symbol, exc)
            return None

        if signal.signal_type is SignalType.BUY:
            if levels.risk_reward_ratio + cfg.risk_reward_tolerance < cfg.min_risk_reward:
                logger.info(
                    "Rejected %s for %s: R/R %.2f below %.2f (%s)",
                    signal.tier.value, signal.symbol, levels.risk_reward_ratio, cfg.min_risk_reward, levels.reasoning,
                )
                return None
            if levels.stop_loss_pct > cfg.max_stop_loss_pct:
                logger.info("Rejected %s for %s: stop %.1f%% too wide", signal.tier.value, signal.symbol, levels.stop_loss_pct)
                return None

        sizing = self.calculate_position_size(signal.entry_price, levels.stop_loss, levels.take_profit)
        if not sizing.actionable:
            logger.warning(
                "%s: position size rounds to 0 shares (risk/share %.4f); flagged non-actionable",
                signal.symbol, sizing.risk_per_share,
            )

        return Signal.model_validate({
            **signal.model_dump(),
            "stop_loss": levels.stop_loss,
            "take_profit": levels.take_profit,
            "stop_loss_pct": levels.stop_loss_pct,
            "take_profit_pct": levels.take_profit_pct,
            "risk_reward_ratio": levels.risk_reward_ratio,
            "risk_method": levels.take_profit_method,
            "risk_reasoning": levels.reasoning,
            "suggested_shares": sizing.shares,
            "position_value": sizing.position_value,
            "max_risk_amount": sizing.actual_risk_amount,
            "potential_gain": sizing.potential_gain,
            "actionable": sizing.actionable,
            "entry_strategy": f"Enter near {signal.entry_price:.2f}; setup invalid below {levels.stop_loss:.2f}",
            "exit_strategy": (
                f"Take profit at {levels.take_profit:.2f} (+{levels.take_profit_pct:.1f}%), "
                f"stop at {levels.stop_loss:.2f} (-{levels.stop_loss_pct:.1f}%), R/R {levels.risk_reward_ratio:.1f}:1"
            ),
        })
