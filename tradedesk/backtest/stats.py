"""Backtest statistics — pure functions over replayed steps and equity."""

import math

from tradedesk.backtest.models import (
    PERIODS_PER_DAY,
    BacktestMetrics,
    BacktestTrade,
    EquityPoint,
    StreakState,
)
from tradedesk.risk.drawdown import DrawdownTracker

TRADING_DAYS_PER_YEAR = 252


def calculate_metrics(
    trades: list[BacktestTrade],
    equity_curve: list[EquityPoint],
    timeframe: str = "1min",
    starting_equity: float = 10_000.0,
) -> BacktestMetrics:
    """Summarise a replay.

    Accuracies and drawdown are percentages rounded to 2 decimals; errors
    are absolute percentage differences between forecast and actual.
    A step counts as a win when its predicted direction matched.
    """
    if not trades:
        return BacktestMetrics(
            total_trades=0,
            direction_accuracy=0.0,
            price_accuracy=0.0,
            average_error=0.0,
            max_error=0.0,
            min_error=0.0,
            profitable_trades=0,
            loss_trades=0,
            neutral_trades=0,
            avg_confidence=0.0,
            sharpe_ratio=0.0,
            max_drawdown=0.0,
            win_streak=0,
            loss_streak=0,
            current_streak=StreakState("win", 0),
        )

    total = len(trades)
    direction_matches = sum(1 for t in trades if t.is_direction_match)
    price_matches = sum(1 for t in trades if t.is_price_match)
    errors = [abs(t.percentage_difference) for t in trades]

    profitable = sum(
        1 for t in trades
        if (t.predicted_direction == "UP" and t.actual_price > t.predicted_price)
        or (t.predicted_direction == "DOWN" and t.actual_price < t.predicted_price)
    )
    losing = sum(
        1 for t in trades
        if (t.predicted_direction == "UP" and t.actual_price < t.predicted_price)
        or (t.predicted_direction == "DOWN" and t.actual_price > t.predicted_price)
    )
    neutral = sum(1 for t in trades if t.predicted_direction == "NEUTRAL")

    win_streak, loss_streak, current = _streaks([t.is_direction_match for t in trades])

    returns = _step_returns(equity_curve)
    periods_per_day = PERIODS_PER_DAY.get(timeframe, PERIODS_PER_DAY["1min"])

    return BacktestMetrics(
        total_trades=total,
        direction_accuracy=round(direction_matches / total * 100, 2),
        price_accuracy=round(price_matches / total * 100, 2),
        average_error=round(sum(errors) / total, 2),
        max_error=round(max(errors), 2),
        min_error=round(min(errors), 2),
        profitable_trades=profitable,
        loss_trades=losing,
        neutral_trades=neutral,
        avg_confidence=round(sum(t.confidence for t in trades) / total, 2),
        sharpe_ratio=round(_sharpe(returns, periods_per_day), 2),
        max_drawdown=round(_max_drawdown_pct(equity_curve, starting_equity), 2),
        win_streak=win_streak,
        loss_streak=loss_streak,
        current_streak=current,
    )


# ── Helpers ──────────────────────────────────────────────────────────────


def _streaks(outcomes: list[bool]) -> tuple[int, int, StreakState]:
    """Longest win run, longest loss run, and the run in progress."""
    best_win = 0
    best_loss = 0
    run_win = 0
    run_loss = 0
    for won in outcomes:
        if won:
            run_win += 1
            run_loss = 0
            best_win = max(best_win, run_win)
        else:
            run_loss += 1
            run_win = 0
            best_loss = max(best_loss, run_loss)

    if not outcomes:
        return 0, 0, StreakState("win", 0)
    if outcomes[-1]:
        return best_win, best_loss, StreakState("win", run_win)
    return best_win, best_loss, StreakState("loss", run_loss)


def _step_returns(equity_curve: list[EquityPoint]) -> list[float]:
    return [
        (cur.equity - prev.equity) / prev.equity
        for prev, cur in zip(equity_curve, equity_curve[1:])
        if prev.equity
    ]


def _sharpe(returns: list[float], periods_per_day: int) -> float:
    """Annualised Sharpe ratio of per-step returns.

    Uses sample standard deviation (n − 1) and
    ``sqrt(periods_per_day × 252)``.  Returns 0.0 when the series has
    fewer than 2 observations or zero variance.
    """
    n = len(returns)
    if n < 2:
        return 0.0
    mean = sum(returns) / n
    variance = sum((r - mean) ** 2 for r in returns) / (n - 1)
    std = math.sqrt(variance)
    if std == 0:
        return 0.0
    return mean / std * math.sqrt(periods_per_day * TRADING_DAYS_PER_YEAR)


def _max_drawdown_pct(equity_curve: list[EquityPoint], starting_equity: float) -> float:
    """Largest peak-to-trough decline of the equity curve, in percent."""
    tracker = DrawdownTracker(starting_equity)
    for point in equity_curve:
        tracker.update(point.equity)
    return tracker.max_drawdown_pct
