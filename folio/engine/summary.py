from __future__ import annotations

from datetime import date
from typing import Mapping, Sequence

from .types import Position, PortfolioValuationPoint, XirrResult
from .valuation import position_value
from .xirr import portfolio_xirr


def current_values(positions: Sequence[Position], prices: Mapping[str, float | None]) -> dict[str, float]:
    """Current value per position id, with the same neutral fallback as the valuation series."""
    return {pos.id: position_value(pos, prices.get(pos.instrument_key))[0] for pos in positions}


def position_gain_loss(position: Position, price: float | None) -> dict:
    value, used_fallback = position_value(position, price)
    amount = value - position.cost_basis
    pct = amount / position.cost_basis * 100.0 if position.cost_basis > 0 else 0.0
    return {
        "position_id": position.id,
        "current_value": _round(value),
        "gain": _round(amount),
        "gain_pct": _round(pct),
        "priced": not used_fallback,
    }


def _previous_value(valuations: Sequence[PortfolioValuationPoint], today: date) -> float | None:
    previous = [p for p in valuations if p.date < today]
    return previous[-1].total_value if previous else None


def portfolio_summary(
    positions: Sequence[Position],
    prices: Mapping[str, float | None],
    valuations: Sequence[PortfolioValuationPoint],
    today: date,
    xirr: XirrResult | None = None,
    previous_close: float | None = None,
) -> dict:
    """Totals, day change and XIRR as of ``today``.

    The day change compares against ``previous_close`` when given, the
    portfolio value at the last stored close before today. Without it the
    last valuation point before today stands in.
    """
    owned = [pos for pos in positions if pos.owned_on(today)]
    values = current_values(owned, prices)
    total_value = sum(values.values())
    total_invested = sum(pos.cost_basis for pos in owned)
    total_gain = total_value - total_invested
    gain_pct = total_gain / total_invested * 100.0 if total_invested > 0 else 0.0

    day_change = None
    day_change_pct = None
    prev = previous_close if previous_close is not None else _previous_value(valuations, today)
    if prev is not None:
        day_change = total_value - prev
        day_change_pct = day_change / prev * 100.0 if prev > 0 else None

    if xirr is None:
        xirr = portfolio_xirr(owned, total_value, today)
    return {
        "total_value": _round(total_value),
        "total_invested": _round(total_invested),
        "total_gain": _round(total_gain),
        "total_gain_pct": _round(gain_pct),
        "day_change": _round(day_change),
        "day_change_pct": _round(day_change_pct),
        "xirr_pct": _round(xirr.rate_pct),
        "xirr_status": xirr.status.value,
        "positions": [position_gain_loss(pos, prices.get(pos.instrument_key)) for pos in owned],
    }


def _round(val: float | None) -> float | None:
    # + 0.0 turns -0.0 into 0.0
    return None if val is None else round(val, 2) + 0.0
