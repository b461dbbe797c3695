"""Risk-state repository — SQLite storage for cooldowns and daily balances."""

from datetime import date, datetime
from typing import Optional

from tradedesk.config import Config
from tradedesk.repos.db import get_connection, init_db


class SqliteRiskStateStore:
    """``RiskStateStore`` backed by the ``risk_cooldowns`` and
    ``risk_daily_stats`` tables.

    Datetimes and dates are stored as ISO-8601 text.  Call
    :func:`tradedesk.repos.db.init_db` once before use, or build the
    store with :meth:`from_config`.

    Args:
        db_path: Path to the SQLite database file.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    @classmethod
    def from_config(cls, cfg: Config) -> "SqliteRiskStateStore":
        """Initialize ``cfg.db_path`` and return a store over it."""
        init_db(cfg.db_path)
        return cls(cfg.db_path)

    # ── Cooldowns ────────────────────────────────────────────────────────

    def get_cooldown(self, user_id: str) -> Optional[datetime]:
        conn = get_connection(self._db_path)
        try:
            row = conn.execute(
                "SELECT ends_at FROM risk_cooldowns WHERE user_id = ?",
                (user_id,),
            ).fetchone()
        finally:
            conn.close()
        return datetime.fromisoformat(row["ends_at"]) if row else None

    def set_cooldown(self, user_id: str, ends_at: datetime) -> None:
        conn = get_connection(self._db_path)
        try:
            conn.execute(
                """
                INSERT INTO risk_cooldowns (user_id, ends_at) VALUES (?, ?)
                ON CONFLICT(user_id) DO UPDATE SET ends_at = excluded.ends_at
                """,
                (user_id, ends_at.isoformat()),
            )
            conn.commit()
        finally:
            conn.close()

    def clear_cooldown(self, user_id: str) -> None:
        conn = get_connection(self._db_path)
        try:
            conn.execute("DELETE FROM risk_cooldowns WHERE user_id = ?", (user_id,))
            conn.commit()
        finally:
            conn.close()

    # ── Daily balances ───────────────────────────────────────────────────

    def get_day_start_balance(self, user_id: str, day: date) -> Optional[float]:
        conn = get_connection(self._db_path)
        try:
            row = conn.execute(
                "SELECT start_balance FROM risk_daily_stats WHERE user_id = ? AND day = ?",
                (user_id, day.isoformat()),
            ).fetchone()
        finally:
            conn.close()
        return float(row["start_balance"]) if row else None

    def set_day_start_balance(self, user_id: str, day: date, balance: float) -> None:
        conn = get_connection(self._db_path)
        try:
            conn.execute(
                """
                INSERT INTO risk_daily_stats (user_id, day, start_balance) VALUES (?, ?, ?)
                ON CONFLICT(user_id, day) DO UPDATE SET start_balance = excluded.start_balance
                """,
                (user_id, day.isoformat(), balance),
            )
            conn.commit()
        finally:
            conn.close()
