"""Collaborator interfaces — bar history and account/position storage.

The core never fetches or persists market or account data itself; callers
inject objects satisfying these protocols.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol, runtime_checkable

from tradedesk.broker.models import AccountSnapshot, PositionRecord, PositionStatus
from tradedesk.strategy.models import Bar


@runtime_checkable
class BarProvider(Protocol):
    """Source of already-fetched historical bars."""

    def get_bars(self, symbol: str, start: datetime, end: datetime) -> list[Bar]:
        """Return bars for *symbol* in ``[start, end]``, oldest-first."""
        ...


@runtime_checkable
class AccountStore(Protocol):
    """Read access to account balances and positions."""

    def get_account(self, user_id: str) -> Optional[AccountSnapshot]:
        """Return the user's account, or ``None`` if they have none."""
        ...

    def get_positions(self, user_id: str, status: PositionStatus = "all") -> list[PositionRecord]:
        """Return the user's positions filtered by *status*."""
        ...
