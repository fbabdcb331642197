from __future__ import annotations

from datetime import date
from typing import Mapping

import pandas as pd

from .types import PriceSeries


class AlignedPrices:
    """Dense forward-filled price grid; ``None`` marks "no price available yet"."""

    def __init__(self, dates: list[date], prices: dict[str, list[float | None]]):
        self.dates = dates
        self.prices = prices
        self._index = {d: i for i, d in enumerate(dates)}

    def __len__(self):
        return len(self.dates)

    @property
    def keys(self) -> list[str]:
        return list(self.prices)

    def price(self, key: str, day: date) -> float | None:
        column = self.prices.get(key)
        idx = self._index.get(day)
        if column is None or idx is None:
            return None
        return column[idx]

    def last_price(self, key: str) -> float | None:
        column = self.prices.get(key)
        if not column:
            return None
        return column[-1]

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(self.prices, index=pd.DatetimeIndex(pd.to_datetime(self.dates), name="date"), dtype=float)


def grid_dates(series_by_key: Mapping[str, PriceSeries | None], start: date | None = None, end: date | None = None) -> list[date]:
    """Union of every observed date inside [start, end]."""
    observed = set()
    for series in series_by_key.values():
        if not series:
            continue
        for point in series.points:
            if start is not None and point.date < start:
                continue
            if end is not None and point.date > end:
                continue
            observed.add(point.date)
    return sorted(observed)


def align_series(
    series_by_key: Mapping[str, PriceSeries | None],
    start: date | None = None,
    end: date | None = None,
) -> AlignedPrices:
    """Forward-fill every instrument onto the shared date grid.

    One cursor per instrument advances monotonically while the grid is swept
    in ascending order, so the whole alignment is a single pass over the
    points. Dates before an instrument's first observation stay ``None``;
    nothing is carried back from the future. Points before ``start`` still
    seed the forward fill for the first grid date.
    """
    dates = grid_dates(series_by_key, start, end)
    prices: dict[str, list[float | None]] = {}
    for key in sorted(series_by_key):
        series = series_by_key[key]
        points = series.points if series else ()
        column: list[float | None] = []
        cursor = -1
        for target in dates:
            while cursor + 1 < len(points) and points[cursor + 1].date <= target:
                cursor += 1
            column.append(points[cursor].price if cursor >= 0 else None)
        prices[key] = column
    return AlignedPrices(dates, prices)
