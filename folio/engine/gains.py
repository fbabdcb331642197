from __future__ import annotations

from collections import defaultdict
from datetime import date
from typing import Sequence

from .types import GainsTable, PeriodGain, Position, PortfolioValuationPoint

VIEWS = ("monthly", "yearly")


def period_key(day: date, view: str) -> str:
    if view == "monthly":
        return f"{day.year:04d}-{day.month:02d}"
    if view == "yearly":
        return f"{day.year:04d}"
    raise ValueError(f"view must be one of {VIEWS}, got {view!r}")


def period_range(start: date, end: date, view: str) -> list[str]:
    """Every period key from ``start`` through ``end`` inclusive, gaps included."""
    if view not in VIEWS:
        raise ValueError(f"view must be one of {VIEWS}, got {view!r}")
    if start > end:
        return []
    if view == "yearly":
        return [f"{year:04d}" for year in range(start.year, end.year + 1)]
    keys = []
    year, month = start.year, start.month
    while (year, month) <= (end.year, end.month):
        keys.append(f"{year:04d}-{month:02d}")
        month += 1
        if month > 12:
            year, month = year + 1, 1
    return keys


def build_period_gains(
    valuations: Sequence[PortfolioValuationPoint],
    positions: Sequence[Position],
    view: str,
    today: date,
) -> GainsTable:
    """Per-period gain with new money stripped out.

    gain_i = end_i - (end_{i-1} + contributions_i), starting from end = 0.
    Periods without valuation data are enumerated but produce no row; their
    contributions roll into the next period that has data, as do purchases
    dated after a period's last valuation, so the gains always sum to final
    value minus total contributions. Money-weighted: never mixes in the
    chained return of the valuation series.
    """
    if view not in VIEWS:
        raise ValueError(f"view must be one of {VIEWS}, got {view!r}")
    if not valuations or not positions:
        return GainsTable(view=view)

    earliest = min(pos.purchase_date for pos in positions)
    keys = period_range(earliest, today, view)

    last_points: dict[str, PortfolioValuationPoint] = {}
    for point in sorted(valuations, key=lambda p: p.date):
        last_points[period_key(point.date, view)] = point

    purchases: dict[str, list[Position]] = defaultdict(list)
    for pos in positions:
        purchases[period_key(pos.purchase_date, view)].append(pos)

    periods: list[PeriodGain] = []
    cumulative_pl: list[float] = []
    prev_end = 0.0
    invested = 0.0
    pending = 0.0
    running_pl = 0.0
    for key in keys:
        last_point = last_points.get(key)
        deferred = 0.0
        for pos in purchases.get(key, ()):
            # bought after the period's last valuation: not in end value yet
            if last_point is not None and pos.purchase_date > last_point.date:
                deferred += pos.cost_basis
            else:
                pending += pos.cost_basis
        if last_point is None:
            pending += deferred
            continue
        end_value = last_point.total_value
        base = prev_end + pending
        gain = end_value - base
        gain_pct = gain / base * 100.0 if base > 0 else 0.0
        running_pl += gain
        invested += pending
        periods.append(
            PeriodGain(
                period_key=key,
                cumulative_invested=invested,
                period_end_value=end_value,
                period_gain=gain,
                period_gain_pct=gain_pct,
                contributions=pending,
            )
        )
        cumulative_pl.append(running_pl)
        prev_end = end_value
        pending = deferred

    return GainsTable(view=view, periods=tuple(periods), cumulative_pl=tuple(cumulative_pl))
