from __future__ import annotations

import math
from datetime import date, timedelta

import numpy as np
import pandas as pd

from ..config import settings
from .types import PriceSeries, RiskMetrics

DAYS_PER_YEAR = 365.25
HORIZON_DAYS = {
    "1M": 30,
    "3M": 90,
    "6M": 180,
    "1Y": 365,
}
HORIZONS = ("1M", "3M", "6M", "1Y", "YTD", "Total")


def to_pandas(series: PriceSeries | None) -> pd.Series:
    if not series:
        return pd.Series(dtype=float)
    index = pd.DatetimeIndex(pd.to_datetime(series.dates), name="date")
    return pd.Series(series.prices, index=index, dtype=float, name=series.key)


def _as_datetime_index(series: pd.Series) -> pd.Series:
    if series is None:
        return series
    if not isinstance(series.index, pd.DatetimeIndex):
        series = series.copy()
        series.index = pd.to_datetime(series.index)
    return series.sort_index()


def log_returns(values: pd.Series) -> pd.Series:
    v = _as_datetime_index(values).dropna()
    if v.size < 2:
        return pd.Series(dtype=float)
    with np.errstate(divide="ignore", invalid="ignore"):
        rets = np.log(v / v.shift(1))
    return rets.iloc[1:].replace([np.inf, -np.inf], np.nan).dropna()


def cagr(values: pd.Series) -> float | None:
    """(P_last / P_first) ** (365.25 / days) - 1; short spans give extreme figures."""
    v = _as_datetime_index(values).dropna()
    if v.size < 2:
        return None
    first, last = float(v.iloc[0]), float(v.iloc[-1])
    days = (v.index[-1] - v.index[0]).days
    if days <= 0 or first <= 0:
        return None
    try:
        return float((last / first) ** (DAYS_PER_YEAR / days) - 1.0)
    except OverflowError:
        return math.inf


def annualized_volatility(returns: pd.Series, periods: int | None = None) -> float | None:
    periods = periods or settings.trading_days_per_year
    if returns is None or returns.size < 2:
        return None
    return float(returns.std(ddof=1) * np.sqrt(periods))


def max_drawdown(values: pd.Series) -> float | None:
    """Largest peak-to-trough fall as a positive fraction of the peak."""
    v = _as_datetime_index(values).dropna()
    if v.empty:
        return None
    peak = v.cummax()
    with np.errstate(divide="ignore", invalid="ignore"):
        dd = (peak - v) / peak
    dd = dd.replace([np.inf, -np.inf], np.nan).dropna()
    if dd.empty:
        return None
    return float(max(dd.max(), 0.0))


def sharpe_ratio(annual_return: float | None, volatility: float | None, rf_annual: float) -> float | None:
    if annual_return is None or volatility in (None, 0.0):
        return None
    return float((annual_return - rf_annual) / volatility)


def beta(fund_values: pd.Series, benchmark_values: pd.Series, min_overlap: int | None = None) -> float | None:
    """Cov(fund, benchmark) / Var(benchmark) over log returns between shared dates."""
    min_overlap = min_overlap or settings.beta_min_overlap
    if fund_values is None or benchmark_values is None:
        return None
    df = pd.concat(
        [_as_datetime_index(fund_values), _as_datetime_index(benchmark_values)],
        axis=1,
        join="inner",
    ).dropna()
    if df.shape[0] < min_overlap:
        return None
    fund_rets = log_returns(df.iloc[:, 0])
    bench_rets = log_returns(df.iloc[:, 1])
    rets = pd.concat([fund_rets, bench_rets], axis=1, join="inner").dropna()
    if rets.shape[0] < 2:
        return None
    var = rets.iloc[:, 1].var(ddof=1)
    if not var or np.isnan(var):
        return None
    cov = rets.iloc[:, 0].cov(rets.iloc[:, 1])
    return float(cov / var)


def alpha(fund_return: float | None, benchmark_return: float | None, beta_value: float | None, rf_annual: float) -> float | None:
    """Jensen's alpha in percent."""
    if fund_return is None or benchmark_return is None or beta_value is None:
        return None
    return float((fund_return - (rf_annual + beta_value * (benchmark_return - rf_annual))) * 100.0)


def _price_at_or_before(values: pd.Series, target: date) -> float | None:
    eligible = values.loc[values.index <= pd.Timestamp(target)]
    if eligible.empty:
        return None
    return float(eligible.iloc[-1])


def _simple_return_pct(current: float, past: float | None) -> float | None:
    if past is None or past == 0:
        return None
    return (current / past - 1.0) * 100.0


def horizon_returns(values: pd.Series, as_of: date | None = None) -> dict[str, float]:
    """Simple returns of the latest price against each horizon's anchor.

    The anchor is the nearest point at or before ``as_of`` minus the horizon
    (YTD anchors on 1 January of the current year). A horizon with no
    point that far back is left out rather than reported as 0 %.
    """
    v = _as_datetime_index(values).dropna()
    if v.size < 2:
        return {}
    current = float(v.iloc[-1])
    as_of = as_of or v.index[-1].date()
    out: dict[str, float] = {}
    for label in HORIZONS:
        if label == "Total":
            past = float(v.iloc[0])
        elif label == "YTD":
            past = _price_at_or_before(v, date(as_of.year, 1, 1))
        else:
            past = _price_at_or_before(v, as_of - timedelta(days=HORIZON_DAYS[label]))
        ret = _simple_return_pct(current, past)
        if ret is not None:
            out[label] = ret
    return out


def compute_risk_metrics(
    series: PriceSeries,
    benchmark: PriceSeries | None = None,
    risk_free_rate: float | None = None,
    as_of: date | None = None,
) -> RiskMetrics:
    rf = settings.risk_free_rate if risk_free_rate is None else risk_free_rate
    values = to_pandas(series)
    if values.size < 2:
        return RiskMetrics()

    annual = cagr(values)
    vol = annualized_volatility(log_returns(values))
    horizons = horizon_returns(values, as_of=as_of)

    beta_value = None
    alpha_value = None
    if benchmark:
        bench_values = to_pandas(benchmark)
        beta_value = beta(values, bench_values)
        alpha_value = alpha(annual, cagr(bench_values), beta_value, rf)

    return RiskMetrics(
        annualized_return_pct=_pct(annual),
        volatility_pct=_pct(vol),
        max_drawdown_pct=_pct(max_drawdown(values)),
        sharpe=sharpe_ratio(annual, vol, rf),
        alpha_pct=alpha_value,
        beta=beta_value,
        cumulative_return_pct=horizons.get("Total"),
        horizon_returns=horizons,
    )


def _pct(val: float | None) -> float | None:
    return None if val is None else val * 100.0
