from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class PriceBar(BaseModel):
    """One daily OHLCV bar, validated once at the data-provider boundary."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    open: float = Field(..., gt=0)
    high: float = Field(..., gt=0)
    low: float = Field(..., gt=0)
    close: float = Field(..., gt=0)
    volume: float = Field(0.0, ge=0)

    @field_validator("timestamp", mode="before")
    @classmethod
    def normalize_ts(cls, v):
        if isinstance(v, (int, float)):
            if v > 10**12:
                v /= 1000
            if v <= 0:
                raise ValueError("timestamp must be positive")
            return datetime.fromtimestamp(v, tz=timezone.utc)
        return v

    @field_validator("timestamp")
    @classmethod
    def ensure_utc(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)

    @model_validator(mode="after")
    def check_range(self) -> "PriceBar":
        if self.high < self.low:
            raise ValueError(f"high {self.high} is below low {self.low}")
        return self
