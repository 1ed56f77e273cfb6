"""TradingStats, TradeOutcome Pydantic models."""

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field


class TradingStats(BaseModel):
    total_trades: int = 0
    wins: int = 0
    losses: int = 0
    win_rate: float = 0.0  # percentage, 0-100


class TradeOutcome(BaseModel):
    model_config = ConfigDict(frozen=True)

    is_win: bool
    marked_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def label(self) -> str:
        return "win" if self.is_win else "loss"
