"""Technical indicators — EMA, RSI, MACD, Stochastic, ATR. Pure functions, no I/O.

None of these raise on short input.  Insufficient data degrades to a
neutral or last-value default so the signal engine always gets a number.
"""

from dataclasses import dataclass

from tradedesk.strategy.models import Bar


MACD_FAST = 12
MACD_SLOW = 26
MACD_SIGNAL = 9


@dataclass(frozen=True)
class MACDValues:
    """MACD line, signal line and histogram at the latest bar."""

    line: float
    signal: float
    histogram: float


@dataclass(frozen=True)
class StochasticValues:
    """Stochastic oscillator at the latest bar."""

    k: float
    d: float


# ── EMA ──────────────────────────────────────────────────────────────────


def calculate_ema(prices: list[float], period: int) -> float:
    """Return the EMA of *prices* at the last element.

    The first EMA value is seeded with the SMA of the first *period*
    prices, then smoothed with ``k = 2 / (period + 1)``.

    With fewer than *period* prices the last price is returned (``0.0``
    for an empty list).
    """
    if len(prices) < period:
        return prices[-1] if prices else 0.0

    k = 2.0 / (period + 1)
    ema = sum(prices[:period]) / period
    for price in prices[period:]:
        ema = (price - ema) * k + ema
    return ema


def calculate_ema_series(prices: list[float], period: int) -> list[float]:
    """Return the running EMA series of *prices*.

    Element ``i`` equals ``calculate_ema(prices[:i + 1], period)``: the raw
    price before the seed is available, the SMA seed at ``period - 1`` and
    the smoothed value afterwards.  Computed in a single pass.
    """
    series: list[float] = []
    if not prices:
        return series

    k = 2.0 / (period + 1)
    ema = 0.0
    for i, price in enumerate(prices):
        if i < period - 1:
            series.append(price)
        elif i == period - 1:
            ema = sum(prices[:period]) / period
            series.append(ema)
        else:
            ema = (price - ema) * k + ema
            series.append(ema)
    return series


# ── RSI ──────────────────────────────────────────────────────────────────


def calculate_rsi(prices: list[float], period: int = 14) -> float:
    """Calculate Wilder's Relative Strength Index at the last price.

    Seed averages are the SMA of the first *period* gains / losses; later
    steps use ``avg = (prev_avg × (period - 1) + current) / period``.

    Returns 50 with fewer than ``period + 1`` prices or when the window
    has no movement at all, and 100 when the average loss is zero.
    """
    if len(prices) < period + 1:
        return 50.0

    gains = 0.0
    losses = 0.0
    for i in range(1, period + 1):
        change = prices[i] - prices[i - 1]
        if change > 0:
            gains += change
        else:
            losses -= change

    avg_gain = gains / period
    avg_loss = losses / period

    for i in range(period + 1, len(prices)):
        change = prices[i] - prices[i - 1]
        if change > 0:
            avg_gain = (avg_gain * (period - 1) + change) / period
            avg_loss = (avg_loss * (period - 1)) / period
        else:
            avg_gain = (avg_gain * (period - 1)) / period
            avg_loss = (avg_loss * (period - 1) - change) / period

    if avg_loss == 0:
        return 100.0 if avg_gain > 0 else 50.0
    rs = avg_gain / avg_loss
    return 100.0 - 100.0 / (1.0 + rs)


# ── MACD ─────────────────────────────────────────────────────────────────


def calculate_macd(prices: list[float]) -> MACDValues:
    """Calculate MACD(12, 26, 9) at the last price.

    line      = EMA12 − EMA26
    signal    = EMA9 of the MACD values at indices 26 .. n−1
    histogram = line − signal

    When fewer than 9 MACD values exist the signal equals the line.
    """
    line = calculate_ema(prices, MACD_FAST) - calculate_ema(prices, MACD_SLOW)

    fast = calculate_ema_series(prices, MACD_FAST)
    slow = calculate_ema_series(prices, MACD_SLOW)
    macd_values = [fast[i] - slow[i] for i in range(MACD_SLOW, len(prices))]

    if len(macd_values) >= MACD_SIGNAL:
        signal = calculate_ema(macd_values, MACD_SIGNAL)
    else:
        signal = line

    return MACDValues(line=line, signal=signal, histogram=line - signal)


# ── Stochastic ───────────────────────────────────────────────────────────


def calculate_stochastic(bars: list[Bar], period: int = 14) -> StochasticValues:
    """Calculate the Stochastic oscillator over the trailing *period* bars.

    ``%K = (close − lowest low) / (highest high − lowest low) × 100``.
    ``%D`` is reported equal to ``%K`` (no 3-period smoothing).

    Returns 50 / 50 with fewer than *period* bars or a zero-width range.
    """
    if len(bars) < period:
        return StochasticValues(k=50.0, d=50.0)

    recent = bars[-period:]
    highest_high = max(b.high for b in recent)
    lowest_low = min(b.low for b in recent)
    close = bars[-1].close

    if highest_high == lowest_low:
        k = 50.0
    else:
        k = (close - lowest_low) / (highest_high - lowest_low) * 100.0
    return StochasticValues(k=k, d=k)


# ── ATR ──────────────────────────────────────────────────────────────────


def calculate_atr(bars: list[Bar], period: int = 14) -> float:
    """Calculate the Average True Range over the last *period* bars.

    ``TR = max(high − low, |high − prev_close|, |low − prev_close|)``

    Returns 0.0 with fewer than ``period + 1`` bars.
    """
    if len(bars) < period + 1:
        return 0.0

    tr_sum = 0.0
    for i in range(len(bars) - period, len(bars)):
        high = bars[i].high
        low = bars[i].low
        prev_close = bars[i - 1].close
        tr_sum += max(
            high - low,
            abs(high - prev_close),
            abs(low - prev_close),
        )
    return tr_sum / period


# ── Price change ─────────────────────────────────────────────────────────


def calculate_price_change(bars: list[Bar], lookback: int = 10) -> float:
    """Percentage change between the first and last close of the last *lookback* bars."""
    recent = bars[-lookback:]
    if not recent or recent[0].close == 0:
        return 0.0
    return (recent[-1].close - recent[0].close) / recent[0].close * 100.0
