"""Backtest data models — configuration, per-step records and results."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal, Optional

Direction = Literal["UP", "DOWN", "NEUTRAL"]
Timeframe = Literal["1min", "5min", "15min"]

# Bars ahead each prediction targets, per bar timeframe.
STEPS_AHEAD: dict[str, int] = {"1min": 1, "5min": 5, "15min": 15}

# Bars per 6.5 h trading session, used to annualise the Sharpe ratio.
PERIODS_PER_DAY: dict[str, int] = {"1min": 390, "5min": 78, "15min": 26}


@dataclass(frozen=True)
class BacktestConfig:
    """What to replay: a symbol, a date range and a bar timeframe."""

    symbol: str
    start_date: datetime
    end_date: datetime
    timeframe: Timeframe = "1min"
    lookback_period: Optional[int] = None


@dataclass(frozen=True)
class Prediction:
    """A price / direction forecast for ``steps_ahead`` bars."""

    predicted_price: float
    direction: Direction
    confidence: float
    model_type: str


@dataclass(frozen=True)
class BacktestTrade:
    """One replayed step: forecast versus the realised bar."""

    timestamp: datetime
    predicted_price: float
    actual_price: float
    predicted_direction: Direction
    actual_direction: Direction
    confidence: float
    price_difference: float
    percentage_difference: float
    is_direction_match: bool
    is_price_match: bool


@dataclass(frozen=True)
class EquityPoint:
    timestamp: datetime
    equity: float


@dataclass(frozen=True)
class StreakState:
    type: Literal["win", "loss"]
    count: int


@dataclass(frozen=True)
class BacktestMetrics:
    """Accuracy, error and risk-adjusted summary of a replay."""

    total_trades: int
    direction_accuracy: float
    price_accuracy: float
    average_error: float
    max_error: float
    min_error: float
    profitable_trades: int
    loss_trades: int
    neutral_trades: int
    avg_confidence: float
    sharpe_ratio: float
    max_drawdown: float  # percent of peak equity
    win_streak: int
    loss_streak: int
    current_streak: StreakState = field(default_factory=lambda: StreakState("win", 0))


@dataclass(frozen=True)
class BacktestResult:
    config: BacktestConfig
    metrics: BacktestMetrics
    trades: list[BacktestTrade]
    equity_curve: list[EquityPoint]
    run_time_ms: float = 0.0
