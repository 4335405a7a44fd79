"""Risk-based position sizing and venue quantity rounding."""

from __future__ import annotations

from math import floor


class PositionSizer:
    """Sizes a trade so that hitting the stop loses at most a fixed share of capital."""

    def size(self, total_capital: float, risk_fraction: float, entry_price: float, stop_price: float) -> float:
        """Return quantity to trade; 0 means the risk per unit is undefined."""
        max_loss_budget = total_capital * risk_fraction
        risk_per_unit = abs(entry_price - stop_price)
        if risk_per_unit == 0:
            return 0.0
        return max(0.0, max_loss_budget / risk_per_unit)


def step_decimals(step: float) -> int:
    """Number of decimal places implied by a quantity increment (1.0 -> 0, 0.001 -> 3)."""
    text = f"{step:.10f}".rstrip("0")
    return len(text.split(".")[1])


def floor_to_step(qty: float, step: float) -> float:
    """Round quantity down to the venue's quantity increment."""
    if step <= 0 or qty <= 0:
        return max(0.0, qty)
    # Small epsilon so 0.2 / 0.00001 does not floor to 19999.
    units = floor(qty / step + 1e-9)
    return round(units * step, step_decimals(step))
