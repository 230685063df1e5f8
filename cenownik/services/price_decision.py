# cenownik/services/price_decision.py

"""Decides whether an observed price is a change and whether it hits target.

Pure functions only: no I/O, no clock.  A history record must be written
exactly when ``price_changed`` is true, and ``target_reached`` is only acted
upon for changed prices.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class PriceDecision:
    """Outcome of comparing a new observation against the stored price."""

    price_changed: bool
    target_reached: bool

    @property
    def should_record(self) -> bool:
        return self.price_changed

    @property
    def should_notify(self) -> bool:
        return self.price_changed and self.target_reached


def decide(
    previous_price: float,
    new_price: float,
    target_price: float | None = None,
) -> PriceDecision:
    """Compare prices numerically and check the optional target."""
    price_changed = float(new_price) != float(previous_price)
    target_reached = (
        target_price is not None and float(new_price) <= float(target_price)
    )
    return PriceDecision(
        price_changed=price_changed,
        target_reached=target_reached,
    )


def percentage_drop(
    previous_price: float | None, current_price: float,
) -> float:
    """Drop from previous to current in percent.

    Negative for a price increase; 0 when there is no positive previous
    price.
    """
    if previous_price is None or previous_price <= 0:
        return 0.0
    return (previous_price - current_price) / previous_price * 100


def savings(previous_price: float | None, current_price: float) -> float:
    """Absolute difference previous minus current, 0 without a previous."""
    if previous_price is None:
        return 0.0
    return previous_price - current_price
