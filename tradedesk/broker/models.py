"""Account and position snapshots supplied by the account store."""

from dataclasses import dataclass
from datetime import datetime
from typing import Literal, Optional

PositionStatus = Literal["open", "closed", "all"]


@dataclass(frozen=True)
class AccountSnapshot:
    """Current state of a user's (demo) trading account."""

    user_id: str
    balance: float
    total_profit: float = 0.0
    total_loss: float = 0.0

    @property
    def day_start_balance(self) -> float:
        """Balance used as the day's baseline the first time it is seen."""
        return self.balance + self.total_profit - self.total_loss


@dataclass(frozen=True)
class PositionRecord:
    """A position as stored by the account store."""

    symbol: str
    side: Literal["buy", "sell"]
    entry_price: float
    quantity: float
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None
    is_auto_trade: bool = False
    status: Literal["open", "closed"] = "open"
    profit_loss: float = 0.0  # realised when closed, unrealised when open
    opened_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
