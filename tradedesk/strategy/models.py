"""Strategy data models — typed representations for signal outputs."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal, Optional

Decision = Literal["BUY", "SELL", "HOLD"]
Bias = Literal["bullish", "bearish", "neutral"]


@dataclass(frozen=True)
class Bar:
    """A single OHLCV bar.  Series are ascending with unique timestamps."""

    timestamp: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0


@dataclass(frozen=True)
class Pattern:
    """A candlestick pattern matched at ``bar_index``."""

    name: str
    type: Bias
    strength: int  # 1..5
    description: str
    bar_index: int
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class SignalReason:
    """One scored (or displayed-only) contribution to a decision."""

    indicator: str
    signal: Bias
    description: str
    weight: int


@dataclass(frozen=True)
class SupportResistance:
    """Nearest support and resistance levels around the current price."""

    support: float
    resistance: float
    support_strength: int
    resistance_strength: int


@dataclass(frozen=True)
class IndicatorSnapshot:
    """Indicator values at the latest bar."""

    ema12: float
    ema26: float
    rsi14: float
    macd_line: float
    macd_signal: float
    macd_histogram: float
    stoch_k: float
    stoch_d: float
    atr: float
    current_price: float
    price_change: float  # % change over the last 10 bars
    patterns: tuple[Pattern, ...] = ()


@dataclass(frozen=True)
class TradePlan:
    """Concrete entry / stop / target levels for a BUY or SELL decision."""

    entry_price: float
    stop_loss: float
    take_profit_1: float  # 1R
    take_profit_2: float  # 2R
    take_profit_3: float  # 3R
    risk_reward_ratio: float
    support_level: float
    resistance_level: float
    signal_type: Literal["immediate", "pending"]
    valid_until: datetime
    risk_amount: float
    potential_reward: float
    analysis: str


@dataclass(frozen=True)
class SignalResult:
    """Fused decision with its supporting evidence."""

    decision: Decision
    confidence: float
    bullish_score: int
    bearish_score: int
    net_score: int
    reasons: tuple[SignalReason, ...]
    indicators: IndicatorSnapshot
    buy_target: Optional[float] = None
    sell_target: Optional[float] = None
    trade_plan: Optional[TradePlan] = None
    support_resistance: Optional[SupportResistance] = field(default=None, compare=False)
