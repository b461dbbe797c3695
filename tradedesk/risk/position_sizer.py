"""Position sizing — pure math, no I/O.

Sizes a position so that hitting the stop-loss costs a fixed fraction of
the account balance.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class PositionSize:
    """Recommended notional position value and the loss it risks."""

    position_value: float
    max_loss: float


def calculate_position_size(
    balance: float,
    stop_loss_pct: float,
    risk_pct: float = 1.0,
) -> PositionSize:
    """Calculate a position value from the stop distance.

    Formula::

        max_loss       = balance × (risk_pct / 100)
        position_value = max_loss / (stop_loss_pct / 100)

    A 2 % stop with $100 at risk allows a $5,000 position.

    Args:
        balance: Current account balance.
        risk_pct: Percentage of balance to risk per trade (e.g. 1.0).
        stop_loss_pct: Entry-to-stop distance as a percentage of entry.

    Returns:
        ``PositionSize``; ``position_value`` is 0 when *stop_loss_pct* is
        not positive.

    Raises:
        ValueError: If *balance* or *risk_pct* is non-positive.
    """
    if balance <= 0:
        raise ValueError(f"balance must be positive, got {balance}")
    if risk_pct <= 0:
        raise ValueError(f"risk_pct must be positive, got {risk_pct}")

    max_loss = balance * (risk_pct / 100.0)
    position_value = max_loss / (stop_loss_pct / 100.0) if stop_loss_pct > 0 else 0.0
    return PositionSize(position_value=position_value, max_loss=max_loss)
