"""Candlestick pattern detection — rule table over the most recent bars.

Only bars inside a short recency window are scanned, so a pattern is a
short-memory signal rather than a full-history scan.  Each candidate bar
is matched against ``PATTERN_RULES`` in fixed priority order.  A rule pairs
a geometric predicate with the trend contexts in which it applies: the same
shape can mean opposite things depending on the preceding 10-bar trend
(a hammer after a decline, a hanging man after a rally).
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Literal, Optional

from tradedesk.strategy.models import Bar, Bias, Pattern

Trend = Literal["uptrend", "downtrend", "sideways"]

MAX_PATTERNS = 10
MAX_SCANNED_BARS = 5


@dataclass(frozen=True)
class CandleMetrics:
    """Body and wick geometry of a single bar."""

    body: float
    total_range: float
    upper_wick: float
    lower_wick: float
    is_bullish: bool
    is_bearish: bool

    @property
    def body_ratio(self) -> float:
        return self.body / self.total_range if self.total_range else 0.0

    @property
    def upper_wick_ratio(self) -> float:
        return self.upper_wick / self.total_range if self.total_range else 0.0

    @property
    def lower_wick_ratio(self) -> float:
        return self.lower_wick / self.total_range if self.total_range else 0.0


@dataclass(frozen=True)
class PatternScan:
    """Patterns for the latest bars plus the wider prevailing trend."""

    patterns: list[Pattern]
    trend: Trend


def candle_metrics(bar: Bar) -> CandleMetrics:
    """Compute body / range / wick sizes for *bar*."""
    return CandleMetrics(
        body=abs(bar.close - bar.open),
        total_range=bar.high - bar.low,
        upper_wick=bar.high - max(bar.open, bar.close),
        lower_wick=min(bar.open, bar.close) - bar.low,
        is_bullish=bar.close > bar.open,
        is_bearish=bar.close < bar.open,
    )


def detect_local_trend(bars: list[Bar], lookback: int = 10) -> Trend:
    """Classify the trend over the last *lookback* bars.

    Uptrend when price rose more than 0.5 % and higher highs outnumber
    lower lows; downtrend is the mirror image; anything else is sideways.
    """
    if len(bars) < lookback:
        return "sideways"

    recent = bars[-lookback:]
    first = recent[0].close
    if first == 0:
        return "sideways"
    price_change = (recent[-1].close - first) / first * 100.0

    higher_highs = 0
    lower_lows = 0
    for prev, cur in zip(recent, recent[1:]):
        if cur.high > prev.high:
            higher_highs += 1
        if cur.low < prev.low:
            lower_lows += 1

    if price_change > 0.5 and higher_highs > lower_lows:
        return "uptrend"
    if price_change < -0.5 and lower_lows > higher_highs:
        return "downtrend"
    return "sideways"


# ── Rule predicates ──────────────────────────────────────────────────────


@dataclass(frozen=True)
class _Window:
    """The candidate bar and up to two predecessors."""

    bars: list[Bar]
    index: int

    def bar(self, offset: int = 0) -> Bar:
        return self.bars[self.index - offset]

    def metrics(self, offset: int = 0) -> CandleMetrics:
        return candle_metrics(self.bar(offset))


def _hammer_shape(w: _Window) -> bool:
    m = w.metrics()
    return m.body_ratio < 0.40 and m.lower_wick_ratio > 0.45 and m.upper_wick_ratio < 0.20


def _inverted_hammer_shape(w: _Window) -> bool:
    m = w.metrics()
    return m.body_ratio < 0.40 and m.upper_wick_ratio > 0.45 and m.lower_wick_ratio < 0.20


def _is_doji(w: _Window) -> bool:
    return w.metrics().body_ratio < 0.15


def _dragonfly_doji(w: _Window) -> bool:
    m = w.metrics()
    return _is_doji(w) and m.lower_wick_ratio > 0.6 and m.upper_wick_ratio < 0.1


def _gravestone_doji(w: _Window) -> bool:
    m = w.metrics()
    return _is_doji(w) and m.upper_wick_ratio > 0.6 and m.lower_wick_ratio < 0.1


def _plain_doji(w: _Window) -> bool:
    return _is_doji(w) and not _dragonfly_doji(w) and not _gravestone_doji(w)


def _bullish_engulfing(w: _Window) -> bool:
    prev, cur = w.bar(1), w.bar()
    pm, cm = w.metrics(1), w.metrics()
    return (
        pm.is_bearish
        and cm.is_bullish
        and cur.close > prev.open
        and cur.open <= prev.close
        and cm.body > pm.body * 1.1
    )


def _bearish_engulfing(w: _Window) -> bool:
    prev, cur = w.bar(1), w.bar()
    pm, cm = w.metrics(1), w.metrics()
    return (
        pm.is_bullish
        and cm.is_bearish
        and cur.close < prev.open
        and cur.open >= prev.close
        and cm.body > pm.body * 1.1
    )


def _bullish_marubozu(w: _Window) -> bool:
    cm = w.metrics()
    return cm.is_bullish and cm.body > w.metrics(1).total_range * 2


def _bearish_marubozu(w: _Window) -> bool:
    cm = w.metrics()
    return cm.is_bearish and cm.body > w.metrics(1).total_range * 2


def _small_middle_body(w: _Window) -> bool:
    m2 = w.metrics(1)
    return m2.total_range > 0 and m2.body / m2.total_range < 0.3


def _evening_star(w: _Window) -> bool:
    c1, c2, c3 = w.bar(2), w.bar(1), w.bar()
    if not (w.metrics(2).is_bullish and w.metrics().is_bullish and _small_middle_body(w)):
        return False
    return min(c2.open, c2.close) < min(c1.close, c3.open)


def _morning_star(w: _Window) -> bool:
    c1, c2, c3 = w.bar(2), w.bar(1), w.bar()
    if not (w.metrics(2).is_bearish and w.metrics().is_bullish and _small_middle_body(w)):
        return False
    return max(c2.open, c2.close) > max(c1.close, c3.open)


def _three_white_soldiers(w: _Window) -> bool:
    c1, c2, c3 = w.bar(2), w.bar(1), w.bar()
    if not all(w.metrics(k).is_bullish for k in (0, 1, 2)):
        return False
    return c1.close < c2.close < c3.close


def _three_black_crows(w: _Window) -> bool:
    c1, c2, c3 = w.bar(2), w.bar(1), w.bar()
    if not all(w.metrics(k).is_bearish for k in (0, 1, 2)):
        return False
    return c1.close > c2.close > c3.close


# ── Rule table ───────────────────────────────────────────────────────────


@dataclass(frozen=True)
class PatternRule:
    """A named pattern: shape predicate plus per-trend interpretation.

    ``outcomes`` maps a trend to ``(type, strength)``; a trend missing from
    the map means the rule does not fire in that context.
    """

    name: str
    min_bars: int
    matches: Callable[[_Window], bool]
    outcomes: dict[str, tuple[Bias, int]]
    description: str


def _in_any_trend(bias: Bias, strength: int) -> dict[str, tuple[Bias, int]]:
    return {t: (bias, strength) for t in ("uptrend", "downtrend", "sideways")}


PATTERN_RULES: tuple[PatternRule, ...] = (
    PatternRule(
        "Hammer", 1, _hammer_shape,
        {"downtrend": ("bullish", 4), "sideways": ("bullish", 3)},
        "Hammer pattern - potential bullish reversal with strong buying pressure",
    ),
    PatternRule(
        "Hanging Man", 1, _hammer_shape,
        {"uptrend": ("bearish", 3)},
        "Hanging Man pattern - uptrend may be losing momentum",
    ),
    PatternRule(
        "Shooting Star", 1, _inverted_hammer_shape,
        {"uptrend": ("bearish", 4), "sideways": ("bearish", 3)},
        "Shooting Star pattern - potential bearish reversal with selling pressure",
    ),
    PatternRule(
        "Inverted Hammer", 1, _inverted_hammer_shape,
        {"downtrend": ("bullish", 3)},
        "Inverted Hammer - potential bullish reversal",
    ),
    PatternRule(
        "Dragonfly Doji", 1, _dragonfly_doji,
        {"downtrend": ("bullish", 3), "uptrend": ("neutral", 3), "sideways": ("neutral", 3)},
        "Dragonfly Doji - bullish reversal potential after downtrend",
    ),
    PatternRule(
        "Gravestone Doji", 1, _gravestone_doji,
        {"uptrend": ("bearish", 3), "downtrend": ("neutral", 3), "sideways": ("neutral", 3)},
        "Gravestone Doji - bearish reversal potential after uptrend",
    ),
    PatternRule(
        "Doji", 1, _plain_doji,
        _in_any_trend("neutral", 2),
        "Doji - market indecision, watch for directional move",
    ),
    PatternRule(
        "Bullish Engulfing", 2, _bullish_engulfing,
        {"downtrend": ("bullish", 5), "uptrend": ("bullish", 4), "sideways": ("bullish", 4)},
        "Bullish Engulfing - strong upward reversal signal",
    ),
    PatternRule(
        "Bearish Engulfing", 2, _bearish_engulfing,
        {"uptrend": ("bearish", 5), "downtrend": ("bearish", 4), "sideways": ("bearish", 4)},
        "Bearish Engulfing - strong downward reversal signal",
    ),
    PatternRule(
        "Bullish Marubozu", 2, _bullish_marubozu,
        _in_any_trend("bullish", 4),
        "Bullish Marubozu - strong buying pressure with minimal wicks",
    ),
    PatternRule(
        "Bearish Marubozu", 2, _bearish_marubozu,
        _in_any_trend("bearish", 4),
        "Bearish Marubozu - strong selling pressure with minimal wicks",
    ),
    PatternRule(
        "Evening Star", 3, _evening_star,
        {"uptrend": ("bearish", 4)},
        "Evening Star - three-candle bearish reversal pattern",
    ),
    PatternRule(
        "Morning Star", 3, _morning_star,
        {"downtrend": ("bullish", 4)},
        "Morning Star - three-candle bullish reversal pattern",
    ),
    PatternRule(
        "Three White Soldiers", 3, _three_white_soldiers,
        _in_any_trend("bullish", 5),
        "Three White Soldiers - strong bullish continuation",
    ),
    PatternRule(
        "Three Black Crows", 3, _three_black_crows,
        _in_any_trend("bearish", 5),
        "Three Black Crows - strong bearish continuation",
    ),
)


# ── Detection ────────────────────────────────────────────────────────────


def _as_utc(ts: datetime) -> datetime:
    return ts if ts.tzinfo is not None else ts.replace(tzinfo=timezone.utc)


def _scan_start(bars: list[Bar], max_age_minutes: float, now: datetime) -> int:
    """Index of the first bar to scan.

    Walks back while bars are younger than *max_age_minutes*, then caps the
    scan at the ``MAX_SCANNED_BARS`` most recent bars.  The latest bar is
    always scanned, even when it is older than the window.
    """
    n = len(bars)
    cutoff = _as_utc(now) - timedelta(minutes=max_age_minutes)

    start = n - 1
    for i in range(n - 1, -1, -1):
        if _as_utc(bars[i].timestamp) >= cutoff:
            start = i
        else:
            break

    recent_count = n - start
    return max(start, n - min(MAX_SCANNED_BARS, recent_count))


def detect_patterns(
    bars: list[Bar],
    max_age_minutes: float = 5,
    now: Optional[datetime] = None,
) -> list[Pattern]:
    """Detect candlestick patterns on the most recent bars.

    Args:
        bars: Bar history, oldest-first.
        max_age_minutes: Recency window measured back from *now*.
        now: Reference time (defaults to the current UTC time).

    Returns:
        Up to ``MAX_PATTERNS`` patterns, unique per ``(name, bar_index)``,
        most recent bar first.  Identical input gives identical output.
    """
    if len(bars) < 3:
        return []
    if now is None:
        now = datetime.now(timezone.utc)

    found: list[Pattern] = []
    start = max(_scan_start(bars, max_age_minutes, now), 1)

    for i in range(start, len(bars)):
        window = _Window(bars, i)
        if window.metrics().total_range == 0:
            continue

        trend = detect_local_trend(bars[max(0, i - 9): i + 1], 10)
        for rule in PATTERN_RULES:
            if i + 1 < rule.min_bars:
                continue
            outcome = rule.outcomes.get(trend)
            if outcome is None or not rule.matches(window):
                continue
            bias, strength = outcome
            found.append(
                Pattern(
                    name=rule.name,
                    type=bias,
                    strength=strength,
                    description=rule.description,
                    bar_index=i,
                    timestamp=bars[i].timestamp,
                )
            )

    unique: dict[tuple[str, int], Pattern] = {}
    for pattern in found:
        unique.setdefault((pattern.name, pattern.bar_index), pattern)

    ordered = sorted(unique.values(), key=lambda p: -p.bar_index)
    return ordered[:MAX_PATTERNS]


def detect_all_patterns(
    bars: list[Bar],
    now: Optional[datetime] = None,
) -> PatternScan:
    """Recent patterns plus the trend over a 20..50 bar lookback."""
    patterns = detect_patterns(bars, now=now)
    lookback = min(max(20, int(len(bars) * 0.2)), 50)
    trend = detect_local_trend(bars, lookback) if len(bars) >= lookback else "sideways"
    return PatternScan(patterns=patterns, trend=trend)
