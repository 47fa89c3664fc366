from __future__ import annotations

from dataclasses import dataclass


@dataclass
class RiskLevels:
    stop_loss: float
    take_profit: float
    stop_loss_pct: float
    take_profit_pct: float
    risk_reward_ratio: float
    method: str
    reasoning: str = ""
    stop_method: str = ""
    take_profit_method: str = ""
    resistance_limited: bool = False
    corrected: bool = False


@dataclass
class PositionSizing:
    shares: int
    position_value: float
    risk_per_share: float
    max_risk_amount: float
    actual_risk_amount: float
    potential_gain: float

    @property
    def actionable(self) -> bool:
        return self.shares > 0
