from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from utils.utils import ensure_utc, utc_now


class SignalType(str, Enum):
    BUY = "Buy"
    SELL = "Sell"
    WARNING = "Warning"
    HOLD = "Hold"
    NONE = "None"


class SignalTier(str, Enum):
    STRONG_BUY = "STRONG_BUY"
    MEDIUM_BUY = "MEDIUM_BUY"
    WARNING = "WARNING"
    SELL = "SELL"
    BASIC_BUY = "BASIC_BUY"


class Signal(BaseModel):
    symbol: str = Field(..., min_length=1)
    signal_type: SignalType
    tier: SignalTier
    confidence: int = Field(..., ge=0, le=100)
    reason: str = ""
    entry_price: float = Field(..., gt=0)
    rsi: float = Field(50.0, ge=0, le=100)
    macd_histogram: float = 0.0
    signal_hash: str = Field(..., min_length=1)
    created_at: datetime = Field(default_factory=utc_now)

    # risk fields, owned by the trade planner
    stop_loss: Optional[float] = Field(None, gt=0)
    take_profit: Optional[float] = Field(None, gt=0)
    stop_loss_pct: Optional[float] = None
    take_profit_pct: Optional[float] = None
    risk_reward_ratio: Optional[float] = None
    risk_method: Optional[str] = None
    risk_reasoning: Optional[str] = None
    suggested_shares: int = Field(0, ge=0)
    position_value: float = Field(0.0, ge=0)
    max_risk_amount: float = Field(0.0, ge=0)
    potential_gain: float = Field(0.0, ge=0)
    actionable: bool = True
    entry_strategy: Optional[str] = None
    exit_strategy: Optional[str] = None

    # delivery / tracking
    sent: bool = False
    sent_at: Optional[datetime] = None
    performance_record_id: Optional[int] = None

    @field_validator("created_at", "sent_at")
    @classmethod
    def normalize_dt(cls, v):
        return ensure_utc(v) if v is not None else v

    @model_validator(mode="after")
    def check_buy_levels(self) -> "Signal":
        if self.signal_type is SignalType.BUY and self.stop_loss is not None and self.take_profit is not None:
            if not self.stop_loss < self.entry_price < self.take_profit:
                raise ValueError(
                    f"buy levels out of order: SL {self.stop_loss} / entry {self.entry_price} / TP {self.take_profit}"
                )
        return self

    @property
    def has_risk_levels(self) -> bool:
        return self.stop_loss is not None and self.take_profit is not None
