# sl_tp_planner.py

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import List, Optional

from models.config import OnInvalidLevels, RiskConfig
from models.indicator import VolatilityRegime
from models.risk import RiskLevels

logger = logging.getLogger(__name__)

PRICE_SIGNIFICANT_DIGITS = 6


def round_price(price: float, reference: float) -> float:
    """Round to at least 4 decimals and at least 6 significant digits of ``reference``."""
    decimals = max(4, PRICE_SIGNIFICANT_DIGITS - 1 - math.floor(math.log10(reference)))
    return round(price, decimals)


class InvalidRiskLevelsError(ValueError):
    """Computed levels break SL < entry < TP or the R/R bounds, and the policy is REJECT."""


@dataclass
class LevelCandidate:
    price: float
    score: float
    method: str


class SLTPPlanner:
    """
    Candidate-based SL/TP planning for a long entry.
    Stop and target candidates come from ATR, structure (support/resistance)
    and signal confidence; the best-scoring valid candidate wins.
    """

    def __init__(
        self,
        entry_price: float,
        symbol: str,
        *,
        atr: float,
        regime: VolatilityRegime,
        support: Optional[float],
        resistance: Optional[float],
        confidence: float,
        config: Optional[RiskConfig] = None,
    ):
        """
        :param entry_price: trade entry level (latest close)
        :param atr: average true range in price units (0 when unknown)
        :param support / resistance: structural levels from the enricher
        :param confidence: signal confidence 0-100
        """
        if entry_price <= 0:
            raise ValueError(f"{symbol}: entry price must be positive, got {entry_price}")
        self.entry = entry_price
        self.symbol = symbol
        self.atr = atr
        self.regime = regime
        self.confidence = confidence
        self.config = config or RiskConfig()
        self.stop_candidates: List[LevelCandidate] = []
        self.take_profit_candidates: List[LevelCandidate] = []
        self.ceiling: Optional[float] = None
        self.notes: List[str] = []
        self.support, self.resistance = self._checked_levels(support, resistance)

    def _checked_levels(self, support, resistance):
        cfg = self.config
        if support is None or support <= 0 or support >= self.entry:
            fixed = self.entry * cfg.invalid_support_factor
            logger.warning("%s: support %s not below entry %.4f; using %.4f", self.symbol, support, self.entry, fixed)
            self.notes.append("support corrected")
            support = fixed
        if resistance is None or resistance <= self.entry:
            fixed = self.entry * cfg.invalid_resistance_factor
            logger.warning("%s: resistance %s not above entry %.4f; using %.4f", self.symbol, resistance, self.entry, fixed)
            self.notes.append("resistance corrected")
            resistance = fixed
        return support, resistance

    # ---------------------------- stop loss ------------------------------ #
    def set_by_atr(self):
        """Volatility stop: wider multiples for more volatile regimes."""
        if self.atr <= 0:
            return
        multiplier = self.config.atr_multipliers[self.regime]
        atr_pct = self.atr / self.entry * 100
        self.stop_candidates.append(LevelCandidate(
            price=self.entry - self.atr * multiplier,
            score=max(50.0, 85.0 - atr_pct * 3),
            method=f"ATR ({multiplier}x)",
        ))

    def set_by_structure(self):
        """Stop just under support."""
        if self.support >= self.entry:
            return
        distance = (self.entry - self.support) / self.entry * 100
        self.stop_candidates.append(LevelCandidate(
            price=self.support * self.config.structural_stop_factor,
            score=95.0 if distance < 5 else max(60.0, 95.0 - distance * 2),
            method="Support",
        ))

    def set_by_confidence(self):
        """Fixed-percentage stop, tighter for higher confidence."""
        self.stop_candidates.append(self._confidence_stop())

    def _confidence_stop(self) -> LevelCandidate:
        cfg = self.config
        pct = next((p for floor, p in cfg.confidence_stop_bands if self.confidence >= floor),
                   cfg.default_confidence_stop_pct)
        return LevelCandidate(
            price=self.entry * (1 - pct / 100),
            score=float(self.confidence),
            method=f"Confidence ({pct:g}%)",
        )

    def select_stop(self) -> LevelCandidate:
        floor = self.entry * (1 - self.config.max_stop_pct / 100)
        valid = [c for c in self.stop_candidates if floor < c.price < self.entry]
        if not valid:
            logger.info("%s: no valid stop candidate; using confidence stop", self.symbol)
            return self._confidence_stop()
        # ties go to the stop closest to the entry
        return sorted(valid, key=lambda c: (-c.score, -c.price))[0]

    # ---------------------------- take profit ---------------------------- #
    def set_targets(self, stop: LevelCandidate):
        cfg = self.config
        risk = self.entry - stop.price

        self.take_profit_candidates.append(LevelCandidate(
            price=self.entry + risk * cfg.min_risk_reward,
            score=80.0,
            method=f"R/R ({cfg.min_risk_reward:g}:1)",
        ))

        if self.resistance > self.entry * (1 + cfg.min_resistance_gap_pct / 100):
            target = self.resistance * cfg.resistance_target_factor
            distance = (self.resistance - self.entry) / self.entry * 100
            self.ceiling = target
            self.take_profit_candidates.append(LevelCandidate(
                price=target,
                score=90.0 if distance > 8 else max(60.0, distance * 8),
                method="Resistance",
            ))

        multiple = next((m for floor, m in cfg.confidence_target_bands if self.confidence >= floor),
                        cfg.default_confidence_target_multiple)
        self.take_profit_candidates.append(LevelCandidate(
            price=self.entry + risk * multiple,
            score=float(self.confidence),
            method=f"Confidence ({multiple:g}x)",
        ))

    def select_take_profit(self, stop: LevelCandidate) -> tuple[float, str, bool]:
        cfg = self.config
        risk = self.entry - stop.price
        cap = self.entry * (1 + cfg.max_take_profit_pct / 100)
        minimum = self.entry + risk * cfg.min_risk_reward

        valid = [c for c in self.take_profit_candidates if self.entry < c.price <= cap]
        if valid:
            best = sorted(valid, key=lambda c: (-c.score, abs((c.price - self.entry) / risk - cfg.min_risk_reward)))[0]
            price, method = best.price, best.method
        else:
            price, method = minimum, f"R/R ({cfg.min_risk_reward:g}:1)"

        if price < minimum:
            self.notes.append(f"{method} target raised to minimum R/R")
            price, method = minimum, f"{method} + min R/R"

        limited = False
        if self.ceiling is not None and self.entry < self.ceiling < price:
            limited = minimum > self.ceiling
            if limited:
                achieved = (self.ceiling - self.entry) / risk
                self.notes.append(
                    f"resistance-limited: target capped at {self.ceiling:.6g}, "
                    f"R/R {achieved:.2f}:1 below minimum {cfg.min_risk_reward:g}:1"
                )
            else:
                self.notes.append(f"target capped below resistance at {self.ceiling:.6g}")
            price, method = self.ceiling, "Resistance ceiling"
        return price, method, limited

    # ---------------------------- validation ----------------------------- #
    def validate_levels(self, stop_loss: float, take_profit: float) -> List[str]:
        """Return the list of broken invariants (empty when the plan is sound)."""
        cfg = self.config
        problems = []
        if not stop_loss < self.entry < take_profit:
            problems.append(f"order SL {stop_loss:.6g} < entry {self.entry:.6g} < TP {take_profit:.6g}")
            return problems
        if (self.entry - stop_loss) / self.entry <= 0 or (take_profit - self.entry) / self.entry <= 0:
            problems.append("non-positive stop or target distance")
        rr = (take_profit - self.entry) / (self.entry - stop_loss)
        if not cfg.min_valid_risk_reward <= rr <= cfg.max_valid_risk_reward:
            problems.append(f"R/R {rr:.2f} outside [{cfg.min_valid_risk_reward}, {cfg.max_valid_risk_reward}]")
        return problems

    def get_plan(self) -> RiskLevels:
        """
        Build candidates, pick the best stop and target, validate, and apply
        the configured policy for invalid levels.
        """
        cfg = self.config
        self.set_by_atr()
        self.set_by_structure()
        self.set_by_confidence()
        stop = self.select_stop()
        self.set_targets(stop)
        take_profit, tp_method, limited = self.select_take_profit(stop)

        stop_loss = round_price(stop.price, self.entry)
        take_profit = round_price(take_profit, self.entry)
        stop_method = stop.method
        corrected = False

        problems = self.validate_levels(stop_loss, take_profit)
        if problems:
            if cfg.on_invalid_levels is OnInvalidLevels.REJECT:
                raise InvalidRiskLevelsError(f"{self.symbol}: {'; '.join(problems)}")
            logger.warning("%s: invalid risk levels (%s); applying fallback", self.symbol, "; ".join(problems))
            stop_loss = round_price(self.entry * (1 - cfg.fallback_stop_pct / 100), self.entry)
            take_profit = round_price(self.entry * (1 + cfg.fallback_take_profit_pct / 100), self.entry)
            stop_method = tp_method = "FALLBACK"
            limited = False
            corrected = True
            self.notes.append(f"fallback {cfg.fallback_stop_pct:g}%/{cfg.fallback_take_profit_pct:g}% applied")

        reasoning = [f"Stop: {stop_method} @ {stop_loss:.6g}", f"Target: {tp_method} @ {take_profit:.6g}"]
        return RiskLevels(
            stop_loss=stop_loss,
            take_profit=take_profit,
            stop_loss_pct=(self.entry - stop_loss) / self.entry * 100,
            take_profit_pct=(take_profit - self.entry) / self.entry * 100,
            risk_reward_ratio=(take_profit - self.entry) / (self.entry - stop_loss),
            method="FALLBACK" if corrected else f"{stop_method} / {tp_method}",
            reasoning=" | ".join(reasoning + self.notes),
            stop_method=stop_method,
            take_profit_method=tp_method,
            resistance_limited=limited,
            corrected=corrected,
        )
