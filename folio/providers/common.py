import math

import pandas as pd

from ..engine.types import PriceSeries

# vendor column spellings -> canonical names
COLUMN_ALIASES = {
    "Date": "date",
    "Datetime": "date",
    "index": "date",
    "Close": "close",
    "Adj Close": "adj_close",
    "adjclose": "adj_close",
    "AdjClose": "adj_close",
}
PRICE_COLS = ("close", "adj_close")


def normalize_prices(df, symbol: str):
    """Vendor daily bars -> frame with date, close, adj_close, symbol sorted by date."""
    if df is None or not isinstance(df, pd.DataFrame) or df.empty:
        return None
    d = df.reset_index() if isinstance(df.index, pd.DatetimeIndex) else df.copy()
    d = d.rename(columns=COLUMN_ALIASES)
    if "date" not in d.columns or ("close" not in d.columns and "adj_close" not in d.columns):
        return None
    if "adj_close" not in d.columns:
        d["adj_close"] = d["close"]
    if "close" not in d.columns:
        d["close"] = d["adj_close"]
    d = d[["date", *PRICE_COLS]].copy()
    d["date"] = pd.to_datetime(d["date"]).dt.date
    for col in PRICE_COLS:
        d[col] = pd.to_numeric(d[col], errors="coerce")
    d["symbol"] = symbol
    return d.sort_values("date").reset_index(drop=True)


def _usable(price) -> bool:
    return price is not None and not math.isnan(price) and not math.isinf(price) and price >= 0


def frame_to_series(df, key: str) -> PriceSeries | None:
    """Canonical price frame -> PriceSeries (adj_close, else close); unusable rows dropped."""
    if df is None or getattr(df, "empty", True) or "date" not in df.columns:
        return None
    col = next((c for c in ("adj_close", "close") if c in df.columns), None)
    if col is None:
        return None
    pairs = [(day, float(price)) for day, price in zip(df["date"], df[col]) if day is not None and _usable(float(price))]
    return PriceSeries.from_pairs(key, pairs) if pairs else None


def series_to_records(series: PriceSeries) -> list[dict]:
    return [{"date": p.date.isoformat(), "price": p.price} for p in series.points]


def records_to_series(records, key: str) -> PriceSeries | None:
    """Inverse of series_to_records, for payloads read back from the cache."""
    if not records:
        return None
    df = pd.DataFrame.from_records(records)
    if "date" not in df.columns or "price" not in df.columns:
        return None
    df["date"] = pd.to_datetime(df["date"]).dt.date
    df["close"] = pd.to_numeric(df["price"], errors="coerce")
    return frame_to_series(df, key)
