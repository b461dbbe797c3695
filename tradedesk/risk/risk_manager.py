"""Risk manager — per-user gate in front of automated trade execution.

``check_risk_status`` evaluates, in order:

1. daily loss as a percentage of the day's starting balance
2. daily loss in absolute terms
3. consecutive losing auto-trades
4. concurrently open auto-trade positions
5. time since the last auto-trade
6. an active cooldown

Each violation sets ``can_trade=False`` and overwrites the reason, so the
last failing check wins.  Violations of 1–3 also start (or extend) a
cooldown, and an active cooldown overrides every other reason until it
elapses.  Violations are returned as data, never raised.

State (cooldown end-times, daily starting balances) lives in an injected
``RiskStateStore``; each user's check runs under that user's own lock.
"""

import dataclasses
import logging
import math
import threading
import weakref
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from tradedesk.broker.base import AccountStore
from tradedesk.broker.models import PositionRecord
from tradedesk.risk.position_sizer import PositionSize, calculate_position_size
from tradedesk.risk.state_store import InMemoryRiskStateStore, RiskStateStore

logger = logging.getLogger("tradedesk.risk")

Clock = Callable[[], datetime]


@dataclass(frozen=True)
class RiskLimits:
    """Conservative defaults for automated trading."""

    max_daily_loss_pct: float = 3.0
    max_daily_loss_amount: float = 500.0
    max_consecutive_losses: int = 3
    max_open_positions: int = 2
    min_seconds_between_trades: float = 300.0
    max_position_size_pct: float = 5.0
    required_ai_confidence: float = 75.0
    required_tech_confidence: float = 60.0
    cooldown_minutes: float = 60.0


@dataclass(frozen=True)
class RiskStatus:
    """Outcome of a risk check for one user."""

    can_trade: bool
    reason: str
    current_day_loss: float
    current_day_loss_pct: float
    consecutive_losses: int
    open_position_count: int
    last_trade_time: Optional[datetime]
    is_in_cooldown: bool
    cooldown_ends_at: Optional[datetime]
    account_balance: float
    today_start_balance: float


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    reason: str


def _local_now() -> datetime:
    return datetime.now().astimezone()


def _align(ts: datetime, ref: datetime) -> datetime:
    """Give naive *ts* the timezone of *ref* so the two compare."""
    if ts.tzinfo is None and ref.tzinfo is not None:
        return ts.replace(tzinfo=ref.tzinfo)
    if ts.tzinfo is not None and ref.tzinfo is None:
        return ts.replace(tzinfo=None)
    return ts


class RiskManager:
    """Stateful per-user risk gate.

    Args:
        account_store: Source of account snapshots and positions.
        state_store: Cooldown / daily-balance storage (in-memory default).
        limits: Risk limits (``RiskLimits()`` defaults).
        clock: Returns the current local time; its timezone defines
            "today" and local midnight.
    """

    def __init__(
        self,
        account_store: AccountStore,
        state_store: Optional[RiskStateStore] = None,
        limits: Optional[RiskLimits] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self._accounts = account_store
        self._state = state_store if state_store is not None else InMemoryRiskStateStore()
        self._limits = limits or RiskLimits()
        self._clock = clock or _local_now
        # Entries vanish once no check for that user holds the lock.
        self._locks: weakref.WeakValueDictionary = weakref.WeakValueDictionary()
        self._locks_guard = threading.Lock()

        logger.info(
            "Risk limits: daily loss %.1f%% / $%.2f, %d consecutive losses, "
            "AI confidence %.0f%%, tech confidence %.0f%%",
            self._limits.max_daily_loss_pct,
            self._limits.max_daily_loss_amount,
            self._limits.max_consecutive_losses,
            self._limits.required_ai_confidence,
            self._limits.required_tech_confidence,
        )

    # ── Limits ───────────────────────────────────────────────────────────

    def get_limits(self) -> RiskLimits:
        return self._limits

    def set_limits(self, **changes) -> RiskLimits:
        """Update selected limits, e.g. ``set_limits(max_open_positions=3)``."""
        known = {f.name for f in dataclasses.fields(RiskLimits)}
        unknown = sorted(set(changes) - known)
        if unknown:
            raise ValueError(f"Unknown risk limit(s): {', '.join(unknown)}")
        self._limits = dataclasses.replace(self._limits, **changes)
        logger.info("Updated risk limits: %s", self._limits)
        return self._limits

    # ── Status ───────────────────────────────────────────────────────────

    def check_risk_status(self, user_id: str) -> RiskStatus:
        """Decide whether *user_id* may open a new automated trade now."""
        with self._user_lock(user_id):
            return self._check(user_id)

    def _check(self, user_id: str) -> RiskStatus:
        limits = self._limits
        now = self._clock()

        account = self._accounts.get_account(user_id)
        if account is None:
            return RiskStatus(
                can_trade=False,
                reason="No account found",
                current_day_loss=0.0,
                current_day_loss_pct=0.0,
                consecutive_losses=0,
                open_position_count=0,
                last_trade_time=None,
                is_in_cooldown=False,
                cooldown_ends_at=None,
                account_balance=0.0,
                today_start_balance=0.0,
            )

        today = now.date()
        start_balance = self._state.get_day_start_balance(user_id, today)
        if start_balance is None:
            start_balance = account.day_start_balance
            self._state.set_day_start_balance(user_id, today, start_balance)

        closed = self._accounts.get_positions(user_id, "closed")
        open_positions = self._accounts.get_positions(user_id, "open")

        midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
        realized = sum(
            p.profit_loss for p in closed
            if p.is_auto_trade and p.closed_at is not None
            and _align(p.closed_at, now) >= midnight
        )
        unrealized = sum(p.profit_loss for p in open_positions)
        day_pnl = realized + unrealized

        day_loss = -day_pnl if day_pnl < 0 else 0.0
        day_loss_pct = day_loss / start_balance * 100.0 if start_balance > 0 else 0.0

        consecutive = self._count_consecutive_losses(closed, now)
        auto_open = [p for p in open_positions if p.is_auto_trade]
        last_trade_time = self._last_auto_trade_time(closed + open_positions, now)

        cooldown_end = self._state.get_cooldown(user_id)
        if cooldown_end is not None:
            cooldown_end = _align(cooldown_end, now)
        in_cooldown = cooldown_end is not None and now < cooldown_end

        can_trade = True
        reason = "Trading allowed"

        if day_loss_pct >= limits.max_daily_loss_pct:
            can_trade = False
            reason = (
                f"Daily loss limit reached: {day_loss_pct:.1f}% >= "
                f"{limits.max_daily_loss_pct:g}%"
            )
            self._start_cooldown(user_id, now)

        if day_loss >= limits.max_daily_loss_amount:
            can_trade = False
            reason = (
                f"Daily loss limit reached: ${day_loss:.2f} >= "
                f"${limits.max_daily_loss_amount:g}"
            )
            self._start_cooldown(user_id, now)

        if consecutive >= limits.max_consecutive_losses:
            can_trade = False
            reason = (
                f"Consecutive loss limit: {consecutive} >= "
                f"{limits.max_consecutive_losses}"
            )
            self._start_cooldown(user_id, now)

        if len(auto_open) >= limits.max_open_positions:
            can_trade = False
            reason = (
                f"Max open positions reached: {len(auto_open)} >= "
                f"{limits.max_open_positions}"
            )

        if last_trade_time is not None:
            elapsed = (now - last_trade_time).total_seconds()
            if elapsed < limits.min_seconds_between_trades:
                can_trade = False
                wait = math.ceil(limits.min_seconds_between_trades - elapsed)
                reason = f"Too soon since last trade. Wait {wait}s"

        if in_cooldown:
            can_trade = False
            mins_left = math.ceil((cooldown_end - now).total_seconds() / 60)
            reason = f"In cooldown period. {mins_left} minutes remaining"

        if not can_trade:
            logger.warning("Trading blocked for user %s: %s", user_id, reason)

        return RiskStatus(
            can_trade=can_trade,
            reason=reason,
            current_day_loss=day_loss,
            current_day_loss_pct=day_loss_pct,
            consecutive_losses=consecutive,
            open_position_count=len(auto_open),
            last_trade_time=last_trade_time,
            is_in_cooldown=in_cooldown,
            cooldown_ends_at=cooldown_end if in_cooldown else None,
            account_balance=account.balance,
            today_start_balance=start_balance,
        )

    # ── Cooldown ─────────────────────────────────────────────────────────

    def _start_cooldown(self, user_id: str, now: datetime) -> None:
        ends_at = now + timedelta(minutes=self._limits.cooldown_minutes)
        self._state.set_cooldown(user_id, ends_at)
        logger.info("Started cooldown for user %s until %s", user_id, ends_at.isoformat())

    def clear_cooldown(self, user_id: str) -> None:
        with self._user_lock(user_id):
            self._state.clear_cooldown(user_id)
        logger.info("Cleared cooldown for user %s", user_id)

    # ── Stateless validators ─────────────────────────────────────────────

    def validate_position_size(self, account_balance: float, position_value: float) -> ValidationResult:
        """Reject positions larger than ``max_position_size_pct`` of the balance."""
        if account_balance <= 0:
            return ValidationResult(False, "Account balance must be positive")

        position_pct = position_value / account_balance * 100.0
        if position_pct > self._limits.max_position_size_pct:
            return ValidationResult(
                False,
                f"Position size {position_pct:.1f}% exceeds max "
                f"{self._limits.max_position_size_pct:g}%",
            )
        return ValidationResult(True, "Position size acceptable")

    def validate_confidence(self, ai_confidence: float, tech_confidence: float) -> ValidationResult:
        """Require both the AI and the technical confidence to meet their floors."""
        if ai_confidence < self._limits.required_ai_confidence:
            return ValidationResult(
                False,
                f"AI confidence {ai_confidence:g}% < required "
                f"{self._limits.required_ai_confidence:g}%",
            )
        if tech_confidence < self._limits.required_tech_confidence:
            return ValidationResult(
                False,
                f"Technical confidence {tech_confidence:g}% < required "
                f"{self._limits.required_tech_confidence:g}%",
            )
        return ValidationResult(True, "Confidence levels acceptable")

    @staticmethod
    def recommended_position_size(
        account_balance: float,
        stop_loss_pct: float,
        risk_pct: float = 1.0,
    ) -> PositionSize:
        """Position value that loses *risk_pct* of the balance at the stop."""
        return calculate_position_size(account_balance, stop_loss_pct, risk_pct)

    # ── Helpers ──────────────────────────────────────────────────────────

    def _user_lock(self, user_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(user_id)
            if lock is None:
                lock = self._locks[user_id] = threading.Lock()
            return lock

    @staticmethod
    def _count_consecutive_losses(closed: list[PositionRecord], now: datetime) -> int:
        """Losing auto-trades counted back from the most recent close until a win."""
        floor = datetime.min.replace(tzinfo=timezone.utc) if now.tzinfo else datetime.min
        auto = sorted(
            (p for p in closed if p.is_auto_trade),
            key=lambda p: _align(p.closed_at, now) if p.closed_at else floor,
            reverse=True,
        )
        losses = 0
        for position in auto:
            if position.profit_loss < 0:
                losses += 1
            else:
                break
        return losses

    @staticmethod
    def _last_auto_trade_time(positions: list[PositionRecord], now: datetime) -> Optional[datetime]:
        opened = [
            _align(p.opened_at, now) for p in positions
            if p.is_auto_trade and p.opened_at is not None
        ]
        return max(opened) if opened else None
