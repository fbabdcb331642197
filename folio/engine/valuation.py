from __future__ import annotations

from datetime import date
from typing import Mapping, Sequence

import structlog

from .aligner import AlignedPrices
from .types import Position, PortfolioValuationPoint, PriceSeries

log = structlog.get_logger()


def position_value(position: Position, price: float | None) -> tuple[float, bool]:
    """Value of one owned position at ``price``.

    Returns (value, used_fallback). Without a usable price the position is
    carried at its cost basis (zero P&L) instead of dropping out of the sum.
    """
    purchase_price = position.purchase_price
    if price is None or purchase_price <= 0:
        return position.cost_basis, True
    relative_price = price / purchase_price
    return position.cost_basis * relative_price, False


def _value_on(positions: Sequence[Position], day: date, price_for) -> tuple[float, float, int, int]:
    total_value = 0.0
    total_invested = 0.0
    owned = 0
    fallbacks = 0
    for pos in positions:
        if not pos.owned_on(day):
            continue
        value, used_fallback = position_value(pos, price_for(pos))
        total_value += value
        total_invested += pos.cost_basis
        owned += 1
        fallbacks += int(used_fallback)
    return total_value, total_invested, owned, fallbacks


def chain_returns(values: Sequence[float], contributions: Sequence[float] | None = None) -> tuple[list[float], list[float]]:
    """Daily and cumulative (fraction) returns for a value series.

    ``contributions[i]`` is new money that entered on date i (cost basis of
    positions first owned that day); it is added to the previous value before
    dividing, so purchases do not register as market moves. Without it this
    is plain V(t) / V(t-1) - 1. The first cumulative return is exactly 0. A
    zero base yields a 0 daily return rather than a division error.
    """
    daily: list[float] = []
    cumulative: list[float] = []
    running = 0.0
    for i, value in enumerate(values):
        if i == 0:
            r = 0.0
            running = 0.0
        else:
            base = values[i - 1] + (contributions[i] if contributions else 0.0)
            r = value / base - 1.0 if base > 0 else 0.0
            running = (1.0 + running) * (1.0 + r) - 1.0
        daily.append(r)
        cumulative.append(running)
    return daily, cumulative


def build_valuation_series(
    positions: Sequence[Position],
    aligned: AlignedPrices,
    live_quotes: Mapping[str, float] | None = None,
) -> list[PortfolioValuationPoint]:
    """Time-weighted valuation series over the aligned grid.

    Each position is normalised to what was actually paid for it
    (cost_basis x price / purchase_price). Cost basis entering on a date is
    treated as an external flow when chaining, so later purchases move
    total_value without moving the cumulative return.
    """
    rows: list[tuple[date, float, float, int]] = []
    for day in aligned.dates:
        total_value, total_invested, owned, fallbacks = _value_on(
            positions, day, lambda pos: aligned.price(pos.instrument_key, day)
        )
        if owned == 0:
            continue
        rows.append((day, total_value, total_invested, fallbacks))

    if not rows:
        return []

    if live_quotes:
        rows[-1] = _apply_live_quotes(positions, aligned, rows[-1], live_quotes)

    invested = [row[2] for row in rows]
    contributions = [0.0] + [max(curr - prev, 0.0) for prev, curr in zip(invested, invested[1:])]
    daily, cumulative = chain_returns([row[1] for row in rows], contributions)
    return [
        PortfolioValuationPoint(
            date=day,
            total_value=total_value,
            total_invested=total_invested,
            cumulative_return_pct=cumulative[i] * 100.0,
            daily_return=daily[i],
            fallback_count=fallbacks,
        )
        for i, (day, total_value, total_invested, fallbacks) in enumerate(rows)
    ]


def closing_value_before(positions: Sequence[Position], aligned: AlignedPrices, day: date) -> float | None:
    """Total value at the last stored close strictly before ``day``; live quotes never enter it."""
    previous = [d for d in aligned.dates if d < day]
    if not previous:
        return None
    last = previous[-1]
    total_value, _invested, owned, _fallbacks = _value_on(
        positions, last, lambda pos: aligned.price(pos.instrument_key, last)
    )
    return total_value if owned else None


def _apply_live_quotes(positions, aligned: AlignedPrices, last_row, live_quotes: Mapping[str, float]):
    day = last_row[0]
    applied = 0

    def _price(pos: Position):
        nonlocal applied
        quote = live_quotes.get(pos.instrument_key)
        if quote is not None and quote > 0:
            applied += 1
            return float(quote)
        return aligned.price(pos.instrument_key, day)

    total_value, total_invested, _owned, fallbacks = _value_on(positions, day, _price)
    if applied == 0 or total_value <= 0:
        return last_row
    log.debug("valuation_live_override", date=day.isoformat(), quotes_applied=applied)
    return (day, total_value, total_invested, fallbacks)


def benchmark_return_series(series: PriceSeries | None, start: date | None = None) -> list[tuple[date, float]]:
    """Cumulative percent return of a benchmark relative to its first point on/after ``start``."""
    if not series:
        return []
    points = [p for p in series.points if start is None or p.date >= start]
    if not points:
        return []
    first = points[0].price
    return [(p.date, (p.price / first - 1.0) * 100.0 if first > 0 else 0.0) for p in points]
