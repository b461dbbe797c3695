"""Trade plan construction — entry, stop-loss and R-multiple targets. Pure math, no I/O.

BUY:
    Entry at market when price sits within 1.5 × ATR of support, otherwise
    a pending order 30 % of the way back towards support.
    SL = support − 0.5 × ATR.
SELL mirrors the rules around resistance.

Take-profits are placed at 1R, 2R and 3R from entry, where R is the
entry-to-stop distance.  The plan expires 60 minutes after creation.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional, Sequence

from tradedesk.strategy.models import SignalReason, SupportResistance, TradePlan

IMMEDIATE_ENTRY_ATR_MULT = 1.5
PULLBACK_FRACTION = 0.3
STOP_BUFFER_ATR_MULT = 0.5
PLAN_VALID_MINUTES = 60

# Levels are quoted to 2 decimals; one tick is the smallest step between them.
_PRECISION = 2
_TICK = 10 ** -_PRECISION


def _r(value: float) -> float:
    return round(value, _PRECISION)


def _drivers(reasons: Sequence[SignalReason], bias: str) -> str:
    names = [r.indicator for r in reasons if r.signal == bias and r.weight > 0]
    return ", ".join(names) if names else "none"


def build_trade_plan(
    decision: str,
    current_price: float,
    atr: float,
    support_resistance: SupportResistance,
    confidence: float,
    reasons: Sequence[SignalReason],
    now: Optional[datetime] = None,
) -> Optional[TradePlan]:
    """Build a precision trade plan for a BUY or SELL decision.

    Args:
        decision: ``"BUY"``, ``"SELL"`` or ``"HOLD"``.
        current_price: Latest close.
        atr: Current ATR(14).
        support_resistance: Nearest levels around price.
        confidence: Signal confidence (0–100), quoted in the analysis.
        reasons: Scored reasons; aligned ones are listed as drivers.
        now: Creation time (defaults to the current UTC time).

    Returns:
        ``TradePlan`` or ``None`` for HOLD.  For BUY the levels satisfy
        ``stop_loss < entry_price <= take_profit_1 < take_profit_2 <
        take_profit_3``; SELL is the descending mirror.

    Raises:
        ValueError: If *decision* is not BUY, SELL or HOLD.
    """
    if decision == "HOLD":
        return None
    if decision not in ("BUY", "SELL"):
        raise ValueError(f"decision must be 'BUY', 'SELL' or 'HOLD', got '{decision}'")

    support = support_resistance.support
    resistance = support_resistance.resistance

    if decision == "BUY":
        sign = 1
        distance = current_price - support
        stop_loss = support - atr * STOP_BUFFER_ATR_MULT
    else:
        sign = -1
        distance = resistance - current_price
        stop_loss = resistance + atr * STOP_BUFFER_ATR_MULT

    if distance < atr * IMMEDIATE_ENTRY_ATR_MULT:
        entry_price = current_price
        signal_type = "immediate"
    else:
        # Pull back towards the level (down for BUY, up for SELL)
        entry_price = current_price - sign * distance * PULLBACK_FRACTION
        signal_type = "pending"

    risk = abs(entry_price - stop_loss)

    entry = _r(entry_price)
    stop = _r(stop_loss)
    if sign * (entry - stop) <= 0:
        stop = _r(entry - sign * _TICK)

    tp1 = _r(entry_price + sign * risk)
    tp2 = _r(entry_price + sign * risk * 2)
    tp3 = _r(entry_price + sign * risk * 3)

    # Rounding can collapse adjacent targets; nudge them apart by 0.5R.
    nudge = max(risk * 0.5, _TICK)
    if sign * (tp1 - entry) < 0:
        tp1 = entry
    if sign * (tp2 - tp1) <= 0:
        tp2 = _r(tp1 + sign * nudge)
    if sign * (tp3 - tp2) <= 0:
        tp3 = _r(tp2 + sign * nudge)

    risk_amount = abs(entry - stop)
    potential_reward = abs(tp2 - entry)
    risk_reward_ratio = round(potential_reward / risk_amount, 1) if risk_amount > 0 else 0.0

    if decision == "BUY":
        action = "Enter now" if signal_type == "immediate" else f"Set buy order at ${entry:.2f}"
        analysis = (
            f"BUY Signal: {action}. "
            f"Price near support at ${support:.2f}. "
            f"Risk ${risk_amount:.2f} per unit. "
            f"Target resistance at ${resistance:.2f}. "
            f"Confidence {confidence:.1f}% (drivers: {_drivers(reasons, 'bullish')})."
        )
    else:
        action = "Enter now" if signal_type == "immediate" else f"Set sell order at ${entry:.2f}"
        analysis = (
            f"SELL Signal: {action}. "
            f"Price near resistance at ${resistance:.2f}. "
            f"Risk ${risk_amount:.2f} per unit. "
            f"Target support at ${support:.2f}. "
            f"Confidence {confidence:.1f}% (drivers: {_drivers(reasons, 'bearish')})."
        )

    if now is None:
        now = datetime.now(timezone.utc)

    return TradePlan(
        entry_price=entry,
        stop_loss=stop,
        take_profit_1=tp1,
        take_profit_2=tp2,
        take_profit_3=tp3,
        risk_reward_ratio=risk_reward_ratio,
        support_level=support,
        resistance_level=resistance,
        signal_type=signal_type,
        valid_until=now + timedelta(minutes=PLAN_VALID_MINUTES),
        risk_amount=_r(risk_amount),
        potential_reward=_r(potential_reward),
        analysis=analysis,
    )
