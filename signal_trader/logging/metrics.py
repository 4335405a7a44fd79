"""Metrics summary helpers."""

from __future__ import annotations

from dataclasses import asdict
from typing import Sequence

from signal_trader.accounting.position_ledger import LedgerStats, Position


def summarize_metrics(stats: LedgerStats, positions: Sequence[Position] = ()) -> dict[str, float]:
    """Build a flat metrics snapshot for reporting."""
    base = {k: float(v) for k, v in asdict(stats).items()}
    base["realized_pnl"] = sum(p.realized_pnl for p in positions)
    base["unrealized_pnl"] = sum(p.unrealized_pnl for p in positions)
    base["exposure"] = sum(p.current_price * p.quantity for p in positions)
    return base
