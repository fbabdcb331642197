"""Chart-friendly views of long daily histories."""
from __future__ import annotations

from typing import Sequence

import pandas as pd

from .types import PortfolioValuationPoint

RANGES = ("DAY", "MONTH", "YEAR", "ALL")
DAY_POINTS = 30


def valuations_to_series(valuations: Sequence[PortfolioValuationPoint], field: str = "total_value") -> pd.Series:
    if not valuations:
        return pd.Series(dtype=float)
    index = pd.DatetimeIndex(pd.to_datetime([p.date for p in valuations]), name="date")
    return pd.Series([getattr(p, field) for p in valuations], index=index, dtype=float, name=field)


def month_end(values: pd.Series) -> pd.Series:
    """Last observation of each calendar month, keeping its real date."""
    if values is None or values.empty:
        return pd.Series(dtype=float)
    v = values.sort_index()
    return v.groupby(v.index.to_period("M")).tail(1)


def filter_history(values: pd.Series, range_name: str) -> pd.Series:
    """DAY: last 30 points. MONTH: year to date. YEAR: last 365 days, month-end.
    ALL: full history, month-end."""
    if range_name not in RANGES:
        raise ValueError(f"range must be one of {RANGES}, got {range_name!r}")
    if values is None or values.empty:
        return pd.Series(dtype=float)
    v = values.sort_index()
    latest = v.index[-1]
    if range_name == "DAY":
        return v.tail(DAY_POINTS)
    if range_name == "MONTH":
        return v.loc[v.index >= pd.Timestamp(year=latest.year, month=1, day=1)]
    if range_name == "YEAR":
        return month_end(v.loc[v.index >= latest - pd.Timedelta(days=365)])
    return month_end(v)
