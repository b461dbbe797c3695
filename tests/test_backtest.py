"""Tests for the backtest replay — prediction engine, replay loop and metrics."""

import dataclasses
import threading
from datetime import datetime, timedelta, timezone

import pytest

from tradedesk.backtest.engine import (
    BacktestCancelled,
    BacktestEngine,
    InsufficientDataError,
)
from tradedesk.backtest.models import BacktestConfig, BacktestTrade, EquityPoint
from tradedesk.backtest.predictor import PredictionEngine, _volatility, classify_direction
from tradedesk.backtest.stats import _sharpe, _streaks, calculate_metrics
from tradedesk.config import load_config
from tradedesk.strategy.models import Bar

_START = datetime(2025, 3, 3, 14, 30, tzinfo=timezone.utc)


# ── Helpers ──────────────────────────────────────────────────────────────


def _linear_bars(n: int, start: float = 100.0, step: float = 0.5) -> list[Bar]:
    bars = []
    for i in range(n):
        close = start + i * step
        bars.append(
            Bar(
                timestamp=_START + timedelta(minutes=i),
                open=close - step,
                high=close + 0.1,
                low=close - step - 0.1,
                close=close,
            )
        )
    return bars


def _config(timeframe: str = "1min") -> BacktestConfig:
    return BacktestConfig(
        symbol="AAPL",
        start_date=_START,
        end_date=_START + timedelta(hours=2),
        timeframe=timeframe,
    )


class _FakeBarProvider:
    def __init__(self, bars: list[Bar]) -> None:
        self.bars = bars
        self.calls: list[tuple] = []

    def get_bars(self, symbol, start, end):
        self.calls.append((symbol, start, end))
        return self.bars


def _trade(match: bool, pct: float = 0.1) -> BacktestTrade:
    return BacktestTrade(
        timestamp=_START,
        predicted_price=100.0,
        actual_price=100.1,
        predicted_direction="UP",
        actual_direction="UP" if match else "DOWN",
        confidence=60.0,
        price_difference=0.1,
        percentage_difference=pct,
        is_direction_match=match,
        is_price_match=abs(pct) <= 0.5,
    )


# ── Prediction engine ────────────────────────────────────────────────────


class TestPredictor:
    def test_classify_direction_band(self):
        assert classify_direction(100.0, 100.2, 1) == "UP"
        assert classify_direction(100.0, 99.8, 1) == "DOWN"
        assert classify_direction(100.0, 100.05, 1) == "NEUTRAL"
        # the band widens with the horizon
        assert classify_direction(100.0, 100.2, 5) == "NEUTRAL"

    def test_fallback_on_short_history(self):
        bars = _linear_bars(3)
        prediction = PredictionEngine().predict(bars, 1)
        assert prediction.predicted_price == bars[-1].close
        assert prediction.direction == "NEUTRAL"
        assert prediction.confidence == 10.0

    def test_rising_series_predicts_up(self):
        prediction = PredictionEngine().predict(_linear_bars(21), 1)
        assert prediction.direction == "UP"
        assert prediction.predicted_price > 110.0
        assert prediction.model_type == "ensemble_ma_lr"

    def test_confidence_decays_with_horizon(self):
        engine = PredictionEngine()
        bars = _linear_bars(21)
        assert engine.predict(bars, 5).confidence < engine.predict(bars, 1).confidence

    def test_confidence_capped(self):
        assert PredictionEngine().predict(_linear_bars(40), 1).confidence <= 95.0

    def test_compare_with_actual(self):
        is_match, diff, pct = PredictionEngine(0.5).compare_with_actual(100.0, 100.4)
        assert is_match
        assert diff == pytest.approx(0.4)
        assert pct == pytest.approx(0.4)

        is_match, _, pct = PredictionEngine(0.5).compare_with_actual(100.0, 101.0)
        assert not is_match
        assert pct == pytest.approx(1.0)

    def test_volatility_is_population_stdev_of_returns(self):
        bars = [Bar(_START + timedelta(minutes=i), c, c, c, c) for i, c in enumerate([100.0, 110.0, 99.0])]
        # returns +10 % and -10 %
        assert _volatility(bars) == pytest.approx(10.0)

    def test_volatility_degenerate(self):
        assert _volatility(_linear_bars(1)) == 0.0
        zeros = [Bar(_START + timedelta(minutes=i), 0.0, 0.0, 0.0, 0.0) for i in range(3)]
        assert _volatility(zeros) == 0.0


# ── Replay ───────────────────────────────────────────────────────────────


class TestReplay:
    def test_rejects_short_range(self):
        with pytest.raises(InsufficientDataError, match="30"):
            BacktestEngine().replay(_config(), _linear_bars(29))

    def test_insufficient_data_is_value_error(self):
        with pytest.raises(ValueError):
            BacktestEngine().replay(_config(), _linear_bars(10))

    def test_rejects_unknown_timeframe(self):
        with pytest.raises(ValueError, match="timeframe"):
            BacktestEngine().replay(_config("2min"), _linear_bars(40))

    def test_step_count_and_equity_curve(self):
        bars = _linear_bars(60)
        result = BacktestEngine().replay(_config(), bars)
        # lookback 20, one step ahead: steps i = 20 .. 58
        assert result.metrics.total_trades == 39
        assert len(result.trades) == 39
        assert len(result.equity_curve) == len(result.trades) + 1
        assert result.equity_curve[0].equity == 10_000.0
        assert result.equity_curve[0].timestamp == bars[20].timestamp
        assert result.trades[0].timestamp == bars[21].timestamp
        assert result.run_time_ms >= 0

    def test_steady_trend_is_read_correctly(self):
        result = BacktestEngine().replay(_config(), _linear_bars(60))
        assert result.metrics.direction_accuracy == 100.0
        assert result.metrics.win_streak == 39
        assert result.metrics.loss_streak == 0
        assert result.metrics.current_streak.type == "win"
        assert result.metrics.max_drawdown == 0.0
        assert result.equity_curve[-1].equity > 10_000.0

    def test_five_minute_timeframe_looks_five_bars_ahead(self):
        bars = _linear_bars(60)
        result = BacktestEngine().replay(_config("5min"), bars)
        assert len(result.trades) == 60 - 5 - 20
        assert result.trades[0].timestamp == bars[25].timestamp

    def test_custom_lookback(self):
        config = BacktestConfig("AAPL", _START, _START, "1min", lookback_period=10)
        result = BacktestEngine().replay(config, _linear_bars(40))
        assert len(result.trades) == 40 - 1 - 10

    def test_zero_lookback_rejected(self):
        config = BacktestConfig("AAPL", _START, _START, "1min", lookback_period=0)
        with pytest.raises(ValueError, match="lookback_period must be positive, got 0"):
            BacktestEngine().replay(config, _linear_bars(40))

    def test_negative_lookback_rejected(self):
        config = BacktestConfig("AAPL", _START, _START, "1min", lookback_period=-5)
        with pytest.raises(ValueError, match="got -5"):
            BacktestEngine().replay(config, _linear_bars(40))

    def test_lookback_leaving_no_steps(self):
        config = BacktestConfig("AAPL", _START, _START, "1min", lookback_period=39)
        with pytest.raises(InsufficientDataError, match="leaves no steps"):
            BacktestEngine().replay(config, _linear_bars(40))

    def test_from_config(self, tmp_path):
        cfg = dataclasses.replace(
            load_config(env_path=str(tmp_path / "missing.env")),
            backtest_lookback=10,
        )
        result = BacktestEngine.from_config(cfg).replay(_config(), _linear_bars(40))
        assert len(result.trades) == 40 - 1 - 10

    def test_progress_reported(self):
        seen = []
        BacktestEngine().replay(_config(), _linear_bars(40), progress=lambda d, t: seen.append((d, t)))
        assert seen[0] == (1, 19)
        assert seen[-1] == (19, 19)

    def test_cancellation(self):
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(BacktestCancelled):
            BacktestEngine().replay(_config(), _linear_bars(40), cancel_event=cancel)

    def test_run_backtest_uses_provider(self):
        provider = _FakeBarProvider(_linear_bars(40))
        config = _config()
        result = BacktestEngine(provider).run_backtest(config)
        assert provider.calls == [("AAPL", config.start_date, config.end_date)]
        assert result.config == config

    def test_run_backtest_without_provider(self):
        with pytest.raises(ValueError, match="bar_provider"):
            BacktestEngine().run_backtest(_config())

    def test_deterministic(self):
        bars = _linear_bars(50)
        a = BacktestEngine().replay(_config(), bars)
        b = BacktestEngine().replay(_config(), bars)
        assert a.trades == b.trades
        assert a.metrics == b.metrics


# ── Metrics ──────────────────────────────────────────────────────────────


class TestMetrics:
    def test_empty(self):
        metrics = calculate_metrics([], [EquityPoint(_START, 10_000.0)])
        assert metrics.total_trades == 0
        assert metrics.direction_accuracy == 0.0
        assert metrics.sharpe_ratio == 0.0

    def test_accuracy_and_errors(self):
        trades = [_trade(True, 0.2), _trade(True, -0.8), _trade(False, 0.4), _trade(True, 0.1)]
        curve = [EquityPoint(_START, 10_000.0 + i) for i in range(5)]
        metrics = calculate_metrics(trades, curve)
        assert metrics.direction_accuracy == 75.0
        assert metrics.price_accuracy == 75.0
        assert metrics.average_error == pytest.approx(0.38)
        assert metrics.max_error == 0.8
        assert metrics.min_error == 0.1
        assert metrics.avg_confidence == 60.0

    def test_drawdown_from_curve(self):
        curve = [
            EquityPoint(_START, 10_000.0),
            EquityPoint(_START, 11_000.0),
            EquityPoint(_START, 9_900.0),
            EquityPoint(_START, 10_500.0),
        ]
        metrics = calculate_metrics([_trade(True)] * 3, curve)
        assert metrics.max_drawdown == pytest.approx(10.0)

    def test_streaks(self):
        assert _streaks([True, True, False, True]) == (2, 1, _streaks([True])[2])
        best_win, best_loss, current = _streaks([True, False, False, False, True, True])
        assert (best_win, best_loss) == (2, 3)
        assert (current.type, current.count) == ("win", 2)
        _, _, current = _streaks([True, False, False])
        assert (current.type, current.count) == ("loss", 2)

    def test_sharpe_degenerate(self):
        assert _sharpe([], 390) == 0.0
        assert _sharpe([0.01], 390) == 0.0
        assert _sharpe([0.5, 0.5, 0.5], 390) == 0.0

    def test_sharpe_sign(self):
        assert _sharpe([0.01, 0.02, 0.015, 0.005], 390) > 0
        assert _sharpe([-0.01, -0.02, -0.015, -0.005], 390) < 0
