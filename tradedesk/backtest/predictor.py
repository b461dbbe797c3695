"""Simplified price predictor used by the backtest replay.

An equal-weight ensemble of two cheap models:

* moving-average crossover: ``last + (MA5 − MA20) × 0.5 × steps``
* least-squares line through the last 20 closes, extrapolated ``steps`` ahead

Direction uses a ±0.1 % × steps band around the last close.  Confidence
is the mean of the sub-model confidences, decayed 5 % per extra step of
horizon and capped at 95.
"""

import numpy as np

from tradedesk.backtest.models import Direction, Prediction
from tradedesk.strategy.models import Bar

MIN_BARS = 5
REGRESSION_POINTS = 20


def classify_direction(current: float, target: float, steps_ahead: int) -> Direction:
    """UP / DOWN when *target* moves beyond ``current × 0.1 % × steps_ahead``."""
    threshold = current * 0.001 * steps_ahead
    change = target - current
    if change > threshold:
        return "UP"
    if change < -threshold:
        return "DOWN"
    return "NEUTRAL"


class PredictionEngine:
    """Ensemble moving-average / linear-regression forecaster.

    Args:
        match_threshold: Percent error within which a forecast counts as a
            price match in :meth:`compare_with_actual`.
    """

    def __init__(self, match_threshold: float = 0.5) -> None:
        self._match_threshold = match_threshold

    def predict(self, bars: list[Bar], steps_ahead: int = 1) -> Prediction:
        """Forecast the close *steps_ahead* bars after the last bar."""
        if len(bars) < MIN_BARS:
            return self._fallback(bars)

        ma = self._moving_average(bars, steps_ahead)
        lr = self._linear_regression(bars, steps_ahead)

        predicted = (ma.predicted_price + lr.predicted_price) / 2
        last = bars[-1].close
        direction = classify_direction(last, predicted, steps_ahead)

        base_confidence = (ma.confidence + lr.confidence) / 2
        decay = 1 - (steps_ahead - 1) * 0.05
        confidence = min(base_confidence * decay, 95.0)

        return Prediction(
            predicted_price=round(predicted, 2),
            direction=direction,
            confidence=round(confidence, 2),
            model_type="ensemble_ma_lr",
        )

    def compare_with_actual(self, predicted_price: float, actual_price: float) -> tuple[bool, float, float]:
        """Return ``(is_match, price_difference, percentage_difference)``."""
        diff = actual_price - predicted_price
        pct = diff / predicted_price * 100.0 if predicted_price else 0.0
        return abs(pct) <= self._match_threshold, round(diff, 2), round(pct, 2)

    # ── Sub-models ───────────────────────────────────────────────────────

    def _moving_average(self, bars: list[Bar], steps_ahead: int) -> Prediction:
        short = bars[-min(5, len(bars)):]
        long = bars[-min(20, len(bars)):]
        short_ma = sum(b.close for b in short) / len(short)
        long_ma = sum(b.close for b in long) / len(long)

        trend = short_ma - long_ma
        predicted = bars[-1].close + trend * 0.5 * steps_ahead

        volatility = _volatility(bars[-10:])
        confidence = max(20.0, 80.0 - volatility * 10)

        if trend > 0:
            direction = "UP"
        elif trend < 0:
            direction = "DOWN"
        else:
            direction = "NEUTRAL"

        return Prediction(round(predicted, 2), direction, confidence, "moving_average")

    def _linear_regression(self, bars: list[Bar], steps_ahead: int) -> Prediction:
        recent = bars[-REGRESSION_POINTS:]
        x = np.arange(len(recent), dtype=float)
        y = np.array([b.close for b in recent], dtype=float)

        try:
            slope, intercept = np.polyfit(x, y, 1)
        except np.linalg.LinAlgError:
            return self._fallback(bars)

        predicted = float(slope * (len(recent) + steps_ahead - 1) + intercept)
        direction = classify_direction(recent[-1].close, predicted, steps_ahead)

        r2 = _r_squared(x, y, slope, intercept)
        confidence = max(30.0, min(90.0, r2 * 100))

        return Prediction(round(predicted, 2), direction, confidence, "linear_regression")

    @staticmethod
    def _fallback(bars: list[Bar]) -> Prediction:
        if not bars:
            return Prediction(0.0, "NEUTRAL", 0.0, "fallback")
        return Prediction(bars[-1].close, "NEUTRAL", 10.0, "fallback")


# ── Helpers ──────────────────────────────────────────────────────────────


def _volatility(bars: list[Bar]) -> float:
    """Population stdev of bar-to-bar returns, in percent."""
    closes = np.array([b.close for b in bars], dtype=float)
    if len(closes) < 2:
        return 0.0
    prev = closes[:-1]
    valid = prev != 0
    if not valid.any():
        return 0.0
    returns = np.diff(closes)[valid] / prev[valid]
    return float(np.std(returns) * 100)


def _r_squared(x: np.ndarray, y: np.ndarray, slope: float, intercept: float) -> float:
    ss_tot = float(np.sum((y - y.mean()) ** 2))
    if ss_tot == 0:
        return 0.0
    ss_res = float(np.sum((y - (slope * x + intercept)) ** 2))
    return max(0.0, 1 - ss_res / ss_tot)
