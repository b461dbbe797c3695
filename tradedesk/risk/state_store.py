"""Risk-manager state — per-user cooldowns and per-day starting balances.

``RiskStateStore`` is the persistence seam; ``InMemoryRiskStateStore`` keeps
state for the life of the process and ``SqliteRiskStateStore``
(``tradedesk.repos.risk_state_repo``) survives restarts.
"""

from __future__ import annotations

import threading
from datetime import date, datetime
from typing import Optional, Protocol, runtime_checkable


@runtime_checkable
class RiskStateStore(Protocol):
    """Storage for cooldown end-times and daily starting balances."""

    def get_cooldown(self, user_id: str) -> Optional[datetime]:
        ...

    def set_cooldown(self, user_id: str, ends_at: datetime) -> None:
        ...

    def clear_cooldown(self, user_id: str) -> None:
        ...

    def get_day_start_balance(self, user_id: str, day: date) -> Optional[float]:
        ...

    def set_day_start_balance(self, user_id: str, day: date, balance: float) -> None:
        ...


class InMemoryRiskStateStore:
    """Process-lifetime store; cleared on restart.

    Recording a day's starting balance drops every entry for earlier days.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._cooldowns: dict[str, datetime] = {}
        self._day_start: dict[tuple[str, date], float] = {}

    def get_cooldown(self, user_id: str) -> Optional[datetime]:
        with self._lock:
            return self._cooldowns.get(user_id)

    def set_cooldown(self, user_id: str, ends_at: datetime) -> None:
        with self._lock:
            self._cooldowns[user_id] = ends_at

    def clear_cooldown(self, user_id: str) -> None:
        with self._lock:
            self._cooldowns.pop(user_id, None)

    def get_day_start_balance(self, user_id: str, day: date) -> Optional[float]:
        with self._lock:
            return self._day_start.get((user_id, day))

    def set_day_start_balance(self, user_id: str, day: date, balance: float) -> None:
        with self._lock:
            for key in [k for k in self._day_start if k[1] < day]:
                del self._day_start[key]
            self._day_start[(user_id, day)] = balance
