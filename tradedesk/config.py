"""TradeDesk — application configuration.

Loads .env variables into a typed config object.
Validates numeric variables on startup.
"""

import logging
import os
from dataclasses import dataclass

from dotenv import load_dotenv

from tradedesk.risk.risk_manager import RiskLimits


@dataclass(frozen=True)
class Config:
    """Typed configuration loaded from environment variables."""

    db_path: str
    log_level: str
    price_match_threshold_pct: float
    backtest_lookback: int
    pattern_max_age_minutes: float
    max_daily_loss_pct: float
    max_daily_loss_amount: float
    max_consecutive_losses: int
    max_open_positions: int
    min_seconds_between_trades: float
    max_position_size_pct: float
    required_ai_confidence: float
    required_tech_confidence: float
    cooldown_minutes: float

    def risk_limits(self) -> RiskLimits:
        """Return the configured limits for ``RiskManager``."""
        return RiskLimits(
            max_daily_loss_pct=self.max_daily_loss_pct,
            max_daily_loss_amount=self.max_daily_loss_amount,
            max_consecutive_losses=self.max_consecutive_losses,
            max_open_positions=self.max_open_positions,
            min_seconds_between_trades=self.min_seconds_between_trades,
            max_position_size_pct=self.max_position_size_pct,
            required_ai_confidence=self.required_ai_confidence,
            required_tech_confidence=self.required_tech_confidence,
            cooldown_minutes=self.cooldown_minutes,
        )


def _positive(name: str, default: str, cast=float):
    raw = os.environ.get(name, default)
    try:
        value = cast(raw)
    except ValueError:
        raise ValueError(f"Invalid value for {name}: {raw!r}") from None
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {raw!r}")
    return value


def load_config(env_path: str | None = None) -> Config:
    """Load configuration from environment variables.

    Raises ``ValueError`` with a message naming the variable when a numeric
    value is malformed or not positive.
    """
    load_dotenv(dotenv_path=env_path)

    log_level = os.environ.get("LOG_LEVEL", "INFO").upper()
    if not isinstance(logging.getLevelName(log_level), int):
        raise ValueError(f"Invalid value for LOG_LEVEL: {log_level!r}")

    return Config(
        db_path=os.environ.get("TRADEDESK_DB_PATH", "data/tradedesk.db"),
        log_level=log_level,
        price_match_threshold_pct=_positive("PRICE_MATCH_THRESHOLD_PCT", "0.5"),
        backtest_lookback=_positive("BACKTEST_LOOKBACK", "20", int),
        pattern_max_age_minutes=_positive("PATTERN_MAX_AGE_MINUTES", "5"),
        max_daily_loss_pct=_positive("MAX_DAILY_LOSS_PCT", "3"),
        max_daily_loss_amount=_positive("MAX_DAILY_LOSS_AMOUNT", "500"),
        max_consecutive_losses=_positive("MAX_CONSECUTIVE_LOSSES", "3", int),
        max_open_positions=_positive("MAX_OPEN_POSITIONS", "2", int),
        min_seconds_between_trades=_positive("MIN_SECONDS_BETWEEN_TRADES", "300"),
        max_position_size_pct=_positive("MAX_POSITION_SIZE_PCT", "5"),
        required_ai_confidence=_positive("REQUIRED_AI_CONFIDENCE", "75"),
        required_tech_confidence=_positive("REQUIRED_TECH_CONFIDENCE", "60"),
        cooldown_minutes=_positive("COOLDOWN_MINUTES", "60"),
    )


def configure_logging(level: str = "INFO") -> None:
    """Apply the application's log format at *level*."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
