"""Support/Resistance level detection from swing points — pure functions."""

from tradedesk.strategy.models import Bar, SupportResistance

TOUCH_TOLERANCE = 0.005
MAX_STRENGTH = 5


def _find_swing_highs(bars: list[Bar], window: int = 2) -> list[float]:
    """Identify swing high prices.

    A swing high is a bar whose high is strictly higher than the highs of
    the *window* bars on each side.
    """
    highs: list[float] = []
    for i in range(window, len(bars) - window):
        high = bars[i].high
        neighbours = bars[i - window: i] + bars[i + 1: i + window + 1]
        if all(b.high < high for b in neighbours):
            highs.append(high)
    return highs


def _find_swing_lows(bars: list[Bar], window: int = 2) -> list[float]:
    """Identify swing low prices (mirror of ``_find_swing_highs``)."""
    lows: list[float] = []
    for i in range(window, len(bars) - window):
        low = bars[i].low
        neighbours = bars[i - window: i] + bars[i + 1: i + window + 1]
        if all(b.low > low for b in neighbours):
            lows.append(low)
    return lows


def detect_support_resistance(
    bars: list[Bar],
    lookback: int = 50,
) -> SupportResistance:
    """Find the nearest support below and resistance above the last close.

    Args:
        bars: Bar history, oldest-first.
        lookback: Number of most-recent bars to analyse.

    Returns:
        ``SupportResistance`` with levels rounded to 2 decimals.  Without
        a swing level on the right side of price, the level falls back to
        2 % below / above price.  Strength is one plus the number of bars
        touching the level within 0.5 %, capped at 5.
    """
    if len(bars) < 10:
        last_close = bars[-1].close if bars else 0.0
        return SupportResistance(
            support=last_close * 0.98,
            resistance=last_close * 1.02,
            support_strength=1,
            resistance_strength=1,
        )

    recent = bars[-lookback:]
    price = recent[-1].close

    swing_highs = _find_swing_highs(recent) or [max(b.high for b in recent)]
    swing_lows = _find_swing_lows(recent) or [min(b.low for b in recent)]

    below = [s for s in swing_lows if s < price]
    support = max(below) if below else price * 0.98

    above = [r for r in swing_highs if r > price]
    resistance = min(above) if above else price * 1.02

    support_touches = sum(
        1 for b in recent
        if support and abs(b.low - support) / support < TOUCH_TOLERANCE
    )
    resistance_touches = sum(
        1 for b in recent
        if resistance and abs(b.high - resistance) / resistance < TOUCH_TOLERANCE
    )

    return SupportResistance(
        support=round(support, 2),
        resistance=round(resistance, 2),
        support_strength=min(support_touches + 1, MAX_STRENGTH),
        resistance_strength=min(resistance_touches + 1, MAX_STRENGTH),
    )
