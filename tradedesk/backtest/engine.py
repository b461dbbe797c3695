"""Backtest engine — replays historical bars through the prediction engine.

For every bar ``i`` from ``lookback`` to ``n − steps_ahead`` the trailing
window is forecast ``steps_ahead`` bars forward and compared with the bar
that actually followed.  A synthetic equity curve (10 000 start, 10 % of
current equity per directional step) ranks strategies relative to each
other; it is not a capital simulation.  No orders are placed.
"""

import logging
import threading
import time
from typing import Callable, Optional

from tradedesk.backtest.models import (
    STEPS_AHEAD,
    BacktestConfig,
    BacktestResult,
    BacktestTrade,
    Direction,
    EquityPoint,
)
from tradedesk.backtest.predictor import PredictionEngine, classify_direction
from tradedesk.backtest.stats import calculate_metrics
from tradedesk.broker.base import BarProvider
from tradedesk.config import Config
from tradedesk.strategy.models import Bar

logger = logging.getLogger("tradedesk.backtest")

MIN_BARS = 30
DEFAULT_LOOKBACK = 20
STARTING_EQUITY = 10_000.0
POSITION_FRACTION = 0.1

ProgressCallback = Callable[[int, int], None]


class InsufficientDataError(ValueError):
    """Raised when a backtest range holds too few bars to be meaningful."""


class BacktestCancelled(RuntimeError):
    """Raised when a replay is cancelled through its cancel event."""


class BacktestEngine:
    """Simulates forecasting on historical bar data.

    Args:
        bar_provider: Source of historical bars for :meth:`run_backtest`.
        price_match_threshold: Percent error within which a forecast
            counts as a price match.
        default_lookback: Window length used when the config has none.
    """

    def __init__(
        self,
        bar_provider: Optional[BarProvider] = None,
        price_match_threshold: float = 0.5,
        default_lookback: int = DEFAULT_LOOKBACK,
    ) -> None:
        self._bar_provider = bar_provider
        self._predictor = PredictionEngine(price_match_threshold)
        self._default_lookback = default_lookback

    @classmethod
    def from_config(
        cls,
        cfg: Config,
        bar_provider: Optional[BarProvider] = None,
    ) -> "BacktestEngine":
        """Engine using the configured price-match threshold and lookback."""
        return cls(
            bar_provider,
            price_match_threshold=cfg.price_match_threshold_pct,
            default_lookback=cfg.backtest_lookback,
        )

    # ── Public API ───────────────────────────────────────────────────────

    def run_backtest(
        self,
        config: BacktestConfig,
        progress: Optional[ProgressCallback] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> BacktestResult:
        """Fetch the configured range from the bar provider and replay it.

        Raises:
            InsufficientDataError: Fewer than 30 bars in the range, or a
                lookback that leaves no steps to replay.
            ValueError: Unknown timeframe or a non-positive lookback.
            BacktestCancelled: *cancel_event* was set mid-replay.
        """
        if self._bar_provider is None:
            raise ValueError("run_backtest requires a bar_provider")
        bars = self._bar_provider.get_bars(config.symbol, config.start_date, config.end_date)
        return self.replay(config, bars, progress=progress, cancel_event=cancel_event)

    def replay(
        self,
        config: BacktestConfig,
        bars: list[Bar],
        progress: Optional[ProgressCallback] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> BacktestResult:
        """Replay *bars* (oldest-first) and compute metrics.

        Args:
            config: Symbol, range and timeframe of the run.
            bars: Historical bars covering the range.
            progress: Called as ``progress(done, total)`` after each step.
            cancel_event: Checked before each step; when set the replay
                stops with ``BacktestCancelled``.

        Returns:
            ``BacktestResult`` whose equity curve has one point more than
            it has trades.
        """
        started = time.perf_counter()

        if len(bars) < MIN_BARS:
            raise InsufficientDataError(
                f"Need at least {MIN_BARS} bars for a backtest, got {len(bars)}"
            )
        if config.timeframe not in STEPS_AHEAD:
            raise ValueError(
                f"timeframe must be one of {', '.join(STEPS_AHEAD)}, "
                f"got '{config.timeframe}'"
            )

        steps_ahead = STEPS_AHEAD[config.timeframe]
        lookback = (
            config.lookback_period if config.lookback_period is not None
            else self._default_lookback
        )
        if lookback < 1:
            raise ValueError(f"lookback_period must be positive, got {lookback}")
        total_steps = len(bars) - steps_ahead - lookback
        if total_steps < 1:
            raise InsufficientDataError(
                f"lookback {lookback} with {steps_ahead} step(s) ahead leaves no "
                f"steps in {len(bars)} bars"
            )

        logger.info(
            "Backtest %s %s: %d bars, lookback %d, %d step(s) ahead",
            config.symbol, config.timeframe, len(bars), lookback, steps_ahead,
        )

        equity = STARTING_EQUITY
        equity_curve: list[EquityPoint] = [EquityPoint(bars[lookback].timestamp, STARTING_EQUITY)]
        trades: list[BacktestTrade] = []

        for done, i in enumerate(range(lookback, len(bars) - steps_ahead), start=1):
            if cancel_event is not None and cancel_event.is_set():
                logger.info("Backtest %s cancelled after %d step(s)", config.symbol, done - 1)
                raise BacktestCancelled(f"Backtest for {config.symbol} cancelled")

            window = bars[i - lookback: i + 1]
            actual_bar = bars[i + steps_ahead]
            current_price = window[-1].close
            actual_price = actual_bar.close

            prediction = self._predictor.predict(window, steps_ahead)
            is_price_match, diff, pct = self._predictor.compare_with_actual(
                prediction.predicted_price, actual_price,
            )
            actual_direction = classify_direction(current_price, actual_price, steps_ahead)

            trade = BacktestTrade(
                timestamp=actual_bar.timestamp,
                predicted_price=prediction.predicted_price,
                actual_price=actual_price,
                predicted_direction=prediction.direction,
                actual_direction=actual_direction,
                confidence=prediction.confidence,
                price_difference=diff,
                percentage_difference=pct,
                is_direction_match=prediction.direction == actual_direction,
                is_price_match=is_price_match,
            )
            trades.append(trade)

            equity += self._calc_pnl(
                prediction.direction, current_price, actual_price,
                equity * POSITION_FRACTION,
            )
            equity_curve.append(EquityPoint(trade.timestamp, round(equity, 2)))

            if progress is not None:
                progress(done, total_steps)

        metrics = calculate_metrics(trades, equity_curve, config.timeframe, STARTING_EQUITY)
        run_time_ms = (time.perf_counter() - started) * 1000.0

        logger.info(
            "Backtest %s complete: %d steps, direction accuracy %.2f%%, final equity %.2f",
            config.symbol, metrics.total_trades, metrics.direction_accuracy,
            equity_curve[-1].equity,
        )

        return BacktestResult(
            config=config,
            metrics=metrics,
            trades=trades,
            equity_curve=equity_curve,
            run_time_ms=run_time_ms,
        )

    # ── Helpers ──────────────────────────────────────────────────────────

    @staticmethod
    def _calc_pnl(
        direction: Direction,
        entry_price: float,
        exit_price: float,
        position_size: float,
    ) -> float:
        """P&L of a notional *position_size* held in the predicted direction."""
        if direction == "NEUTRAL" or entry_price == 0:
            return 0.0
        pct_change = (exit_price - entry_price) / entry_price
        if direction == "UP":
            return position_size * pct_change
        return position_size * -pct_change
