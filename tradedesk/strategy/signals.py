"""Signal fusion — weighted scoring of indicators and patterns into BUY/SELL/HOLD.

Every indicator category adds a fixed weight to a bullish or a bearish
total.  Candlestick patterns contribute ``strength × 8`` each; all matched
patterns are scored but only the most recent one is surfaced as a reason.

    net        = bullish − bearish
    confidence = min(|net| / (bullish + bearish) × 100, 95)
    decision   = BUY if net > 25, SELL if net < −25, else HOLD

A series shorter than ``MIN_BARS`` always yields HOLD with zero confidence.
"""

from datetime import datetime
from typing import Optional

from tradedesk.risk.trade_plan import build_trade_plan
from tradedesk.strategy.indicators import (
    calculate_atr,
    calculate_ema,
    calculate_macd,
    calculate_price_change,
    calculate_rsi,
    calculate_stochastic,
)
from tradedesk.strategy.models import (
    Bar,
    Bias,
    IndicatorSnapshot,
    Pattern,
    SignalReason,
    SignalResult,
)
from tradedesk.strategy.patterns import detect_patterns
from tradedesk.strategy.sr_levels import detect_support_resistance

MIN_BARS = 30

WEIGHTS = {
    "EMA_CROSSOVER": 25,
    "EMA_CROSSOVER_NEUTRAL": 10,
    "RSI_EXTREME": 20,
    "RSI_MODERATE": 10,
    "RSI_NEUTRAL": 5,
    "MACD_STRONG": 25,
    "MACD_WEAK": 15,
    "STOCHASTIC_EXTREME": 15,
    "STOCHASTIC_NEUTRAL": 5,
    "PRICE_TREND": 15,
    "PRICE_TREND_NEUTRAL": 5,
    "CANDLESTICK_BASE": 8,
}

THRESHOLDS = {
    "EMA_DIFF_PERCENT": 0.1,
    "RSI_OVERSOLD": 30,
    "RSI_OVERBOUGHT": 70,
    "RSI_BULLISH_ZONE": 45,
    "RSI_BEARISH_ZONE": 55,
    "STOCH_OVERSOLD": 20,
    "STOCH_OVERBOUGHT": 80,
    "PRICE_TREND_THRESHOLD": 0.5,
    "BUY_THRESHOLD": 25,
    "SELL_THRESHOLD": -25,
}


def calculate_indicators(
    bars: list[Bar],
    now: Optional[datetime] = None,
    pattern_max_age_minutes: float = 5,
) -> IndicatorSnapshot:
    """Compute every indicator at the latest bar.  Recomputed from scratch each call."""
    closes = [b.close for b in bars]
    macd = calculate_macd(closes)
    stoch = calculate_stochastic(bars, 14)

    return IndicatorSnapshot(
        ema12=calculate_ema(closes, 12),
        ema26=calculate_ema(closes, 26),
        rsi14=calculate_rsi(closes, 14),
        macd_line=macd.line,
        macd_signal=macd.signal,
        macd_histogram=macd.histogram,
        stoch_k=stoch.k,
        stoch_d=stoch.d,
        atr=calculate_atr(bars, 14),
        current_price=closes[-1] if closes else 0.0,
        price_change=calculate_price_change(bars, 10),
        patterns=tuple(detect_patterns(bars, pattern_max_age_minutes, now=now)),
    )


# ── Per-category scoring ─────────────────────────────────────────────────


def _score_ema(ind: IndicatorSnapshot) -> SignalReason:
    ema_diff = (ind.ema12 - ind.ema26) / ind.ema26 * 100.0 if ind.ema26 else 0.0
    if ema_diff > THRESHOLDS["EMA_DIFF_PERCENT"]:
        return SignalReason(
            "EMA Crossover", "bullish",
            f"EMA12 ({ind.ema12:.2f}) above EMA26 ({ind.ema26:.2f})",
            WEIGHTS["EMA_CROSSOVER"],
        )
    if ema_diff < -THRESHOLDS["EMA_DIFF_PERCENT"]:
        return SignalReason(
            "EMA Crossover", "bearish",
            f"EMA12 ({ind.ema12:.2f}) below EMA26 ({ind.ema26:.2f})",
            WEIGHTS["EMA_CROSSOVER"],
        )
    return SignalReason(
        "EMA Crossover", "neutral",
        "EMA12 and EMA26 are converging",
        WEIGHTS["EMA_CROSSOVER_NEUTRAL"],
    )


def _score_rsi(ind: IndicatorSnapshot) -> SignalReason:
    rsi = ind.rsi14
    if rsi < THRESHOLDS["RSI_OVERSOLD"]:
        return SignalReason(
            "RSI", "bullish",
            f"RSI ({rsi:.1f}) indicates oversold conditions",
            WEIGHTS["RSI_EXTREME"],
        )
    if rsi > THRESHOLDS["RSI_OVERBOUGHT"]:
        return SignalReason(
            "RSI", "bearish",
            f"RSI ({rsi:.1f}) indicates overbought conditions",
            WEIGHTS["RSI_EXTREME"],
        )
    if rsi < THRESHOLDS["RSI_BULLISH_ZONE"]:
        return SignalReason(
            "RSI", "bullish",
            f"RSI ({rsi:.1f}) showing potential upward momentum",
            WEIGHTS["RSI_MODERATE"],
        )
    if rsi > THRESHOLDS["RSI_BEARISH_ZONE"]:
        return SignalReason(
            "RSI", "bearish",
            f"RSI ({rsi:.1f}) showing potential downward pressure",
            WEIGHTS["RSI_MODERATE"],
        )
    return SignalReason(
        "RSI", "neutral",
        f"RSI ({rsi:.1f}) in neutral zone",
        WEIGHTS["RSI_NEUTRAL"],
    )


def _score_macd(ind: IndicatorSnapshot) -> SignalReason:
    hist = ind.macd_histogram
    line = ind.macd_line
    if hist > 0 and line > 0:
        return SignalReason(
            "MACD", "bullish",
            f"MACD histogram positive ({hist:.3f}), bullish momentum",
            WEIGHTS["MACD_STRONG"],
        )
    if hist < 0 and line < 0:
        return SignalReason(
            "MACD", "bearish",
            f"MACD histogram negative ({hist:.3f}), bearish momentum",
            WEIGHTS["MACD_STRONG"],
        )
    if hist > 0:
        return SignalReason(
            "MACD", "bullish",
            "MACD histogram turning positive",
            WEIGHTS["MACD_WEAK"],
        )
    if hist == 0 and line == 0:
        # Flat series: no momentum in either direction.
        return SignalReason("MACD", "neutral", "MACD flat, no momentum", 0)
    return SignalReason(
        "MACD", "bearish",
        f"MACD histogram negative ({hist:.3f}), bearish momentum",
        WEIGHTS["MACD_WEAK"],
    )


def _score_stochastic(ind: IndicatorSnapshot) -> SignalReason:
    k = ind.stoch_k
    if k < THRESHOLDS["STOCH_OVERSOLD"]:
        return SignalReason(
            "Stochastic", "bullish",
            f"Stochastic %K ({k:.1f}) in oversold territory",
            WEIGHTS["STOCHASTIC_EXTREME"],
        )
    if k > THRESHOLDS["STOCH_OVERBOUGHT"]:
        return SignalReason(
            "Stochastic", "bearish",
            f"Stochastic %K ({k:.1f}) in overbought territory",
            WEIGHTS["STOCHASTIC_EXTREME"],
        )
    return SignalReason(
        "Stochastic", "neutral",
        f"Stochastic %K ({k:.1f}) in neutral range",
        WEIGHTS["STOCHASTIC_NEUTRAL"],
    )


def _score_price_trend(ind: IndicatorSnapshot) -> SignalReason:
    change = ind.price_change
    if change > THRESHOLDS["PRICE_TREND_THRESHOLD"]:
        return SignalReason(
            "Price Trend", "bullish",
            f"Price up {change:.2f}% in recent period",
            WEIGHTS["PRICE_TREND"],
        )
    if change < -THRESHOLDS["PRICE_TREND_THRESHOLD"]:
        return SignalReason(
            "Price Trend", "bearish",
            f"Price down {abs(change):.2f}% in recent period",
            WEIGHTS["PRICE_TREND"],
        )
    return SignalReason(
        "Price Trend", "neutral",
        f"Price relatively stable ({change:.2f}%)",
        WEIGHTS["PRICE_TREND_NEUTRAL"],
    )


def _score_patterns(patterns: tuple[Pattern, ...]) -> tuple[int, int, SignalReason]:
    """Return ``(bullish, bearish, displayed_reason)`` for all patterns."""
    if not patterns:
        return 0, 0, SignalReason(
            "Candlestick Patterns", "neutral",
            "No significant candlestick patterns detected", 0,
        )

    bullish = 0
    bearish = 0
    for pattern in patterns:
        weight = pattern.strength * WEIGHTS["CANDLESTICK_BASE"]
        if pattern.type == "bullish":
            bullish += weight
        elif pattern.type == "bearish":
            bearish += weight

    latest = patterns[0]
    reason = SignalReason(
        "Candlestick Patterns", latest.type,
        f"{latest.name}: {latest.description}",
        latest.strength * WEIGHTS["CANDLESTICK_BASE"],
    )
    return bullish, bearish, reason


# ── Public API ───────────────────────────────────────────────────────────


def _insufficient_data(bars: list[Bar]) -> SignalResult:
    price = bars[-1].close if bars else 0.0
    return SignalResult(
        decision="HOLD",
        confidence=0.0,
        bullish_score=0,
        bearish_score=0,
        net_score=0,
        reasons=(
            SignalReason("Data", "neutral", "Insufficient data for analysis", 0),
        ),
        indicators=IndicatorSnapshot(
            ema12=price, ema26=price, rsi14=50.0,
            macd_line=0.0, macd_signal=0.0, macd_histogram=0.0,
            stoch_k=50.0, stoch_d=50.0, atr=0.0,
            current_price=price, price_change=0.0,
        ),
    )


def evaluate(
    bars: list[Bar],
    now: Optional[datetime] = None,
    pattern_max_age_minutes: float = 5,
) -> SignalResult:
    """Fuse indicators, patterns and S/R levels into a trade decision.

    Args:
        bars: Bar history, oldest-first.
        now: Reference time for the pattern recency window and plan
            expiry (defaults to the current UTC time).
        pattern_max_age_minutes: Only patterns completed within this many
            minutes of *now* are reported.

    Returns:
        ``SignalResult``.  Never raises on short or degenerate input.
    """
    if len(bars) < MIN_BARS:
        return _insufficient_data(bars)

    ind = calculate_indicators(bars, now=now, pattern_max_age_minutes=pattern_max_age_minutes)

    reasons: list[SignalReason] = [
        _score_ema(ind),
        _score_rsi(ind),
        _score_macd(ind),
        _score_stochastic(ind),
        _score_price_trend(ind),
    ]
    bullish = sum(r.weight for r in reasons if r.signal == "bullish")
    bearish = sum(r.weight for r in reasons if r.signal == "bearish")

    pattern_bull, pattern_bear, pattern_reason = _score_patterns(ind.patterns)
    bullish += pattern_bull
    bearish += pattern_bear
    reasons.append(pattern_reason)

    total = bullish + bearish
    net = bullish - bearish
    confidence = min(abs(net) / total * 100.0, 95.0) if total > 0 else 0.0

    if net > THRESHOLDS["BUY_THRESHOLD"]:
        decision = "BUY"
    elif net < THRESHOLDS["SELL_THRESHOLD"]:
        decision = "SELL"
    else:
        decision = "HOLD"

    levels = detect_support_resistance(bars)
    plan = build_trade_plan(
        decision, ind.current_price, ind.atr, levels, confidence, reasons, now=now,
    )

    if plan is None:
        buy_target, sell_target = levels.support, levels.resistance
    elif decision == "BUY":
        buy_target, sell_target = plan.entry_price, plan.take_profit_2
    else:
        buy_target, sell_target = plan.take_profit_2, plan.entry_price

    return SignalResult(
        decision=decision,
        confidence=round(confidence, 1),
        bullish_score=bullish,
        bearish_score=bearish,
        net_score=net,
        reasons=tuple(reasons),
        indicators=ind,
        buy_target=round(buy_target, 2),
        sell_target=round(sell_target, 2),
        trade_plan=plan,
        support_resistance=levels,
    )


def summarize_factors(result: SignalResult) -> dict:
    """Multi-factor view of a result: one factor per reason plus tallies."""
    counts: dict[Bias, int] = {"bullish": 0, "bearish": 0, "neutral": 0}
    for reason in result.reasons:
        counts[reason.signal] += 1

    return {
        "factors": [
            {
                "name": r.indicator,
                "signal": r.signal.upper(),
                "weight": r.weight,
                "description": r.description,
            }
            for r in result.reasons
        ],
        "overall_signal": result.decision,
        "bullish_count": counts["bullish"],
        "bearish_count": counts["bearish"],
        "neutral_count": counts["neutral"],
        "signal_strength": result.confidence,
    }
