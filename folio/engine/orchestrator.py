from __future__ import annotations

import time
import uuid
from datetime import date, timedelta
from typing import Sequence

import structlog

from ..config import settings
from ..fundinfo import from_yahoo_info, is_incomplete, merge_fund_info
from .aligner import align_series
from .gains import build_period_gains
from .metrics import compute_risk_metrics
from .summary import current_values, portfolio_summary
from .types import Position
from .valuation import benchmark_return_series, build_valuation_series, closing_value_before
from .xirr import portfolio_xirr

log = structlog.get_logger()

# extra history fetched before the first purchase so its first grid date has a price to carry forward
SEED_LOOKBACK_DAYS = 7
FUND_HISTORY_YEARS = 10


def run_portfolio(
    positions: Sequence[Position],
    market,
    today: date,
    view: str = "monthly",
    benchmark_symbol: str | None = None,
    live: bool = True,
) -> dict:
    """Full re-derivation of every portfolio output from one snapshot of positions and prices."""
    run_id = str(uuid.uuid4())
    if not positions:
        log.info("portfolio_run_empty", run_id=run_id)
        return {"run_id": run_id, "valuations": [], "gains": None, "summary": None, "xirr": None, "benchmark": [], "provenance": {}}

    def _step_start(step: str):
        log.debug("portfolio_step_start", run_id=run_id, step=step)
        return time.monotonic()

    def _step_done(step: str, started: float, **fields):
        log.info(
            "portfolio_step_done",
            run_id=run_id,
            step=step,
            elapsed_sec=round(time.monotonic() - started, 3),
            **fields,
        )

    earliest = min(pos.purchase_date for pos in positions)
    keys = sorted({pos.instrument_key for pos in positions})

    started = _step_start("fetch_prices")
    loaded = market.load(keys, earliest - timedelta(days=SEED_LOOKBACK_DAYS), today)
    series_by_key = {key: loaded.get(key) for key in keys}
    quotes = market.load_quotes(keys) if live else {}
    _step_done("fetch_prices", started, instruments=len(keys), loaded=len(loaded), quotes=len(quotes))

    started = _step_start("valuation")
    aligned = align_series(series_by_key, start=earliest, end=today)
    valuations = build_valuation_series(positions, aligned, live_quotes=quotes)
    _step_done("valuation", started, grid_dates=len(aligned), points=len(valuations))

    started = _step_start("gains")
    gains = build_period_gains(valuations, positions, view, today)
    latest_prices = {key: quotes.get(key) or aligned.last_price(key) for key in keys}
    owned = [pos for pos in positions if pos.owned_on(today)]
    xirr = portfolio_xirr(owned, sum(current_values(owned, latest_prices).values()), today)
    previous_close = closing_value_before(positions, aligned, today)
    summary = portfolio_summary(positions, latest_prices, valuations, today, xirr=xirr, previous_close=previous_close)
    _step_done("gains", started, periods=len(gains.periods), xirr_status=summary["xirr_status"])

    benchmark = []
    if benchmark_symbol:
        started = _step_start("benchmark")
        bench_series = market.load_series(benchmark_symbol, earliest, today)
        first_date = valuations[0].date if valuations else earliest
        benchmark = benchmark_return_series(bench_series, start=first_date)
        _step_done("benchmark", started, symbol=benchmark_symbol, points=len(benchmark))

    return {
        "run_id": run_id,
        "valuations": valuations,
        "gains": gains,
        "summary": summary,
        "xirr": xirr,
        "benchmark": benchmark,
        "provenance": dict(market.provenance),
    }


def fund_report(
    symbol: str,
    market,
    today: date,
    benchmark_symbol: str | None = None,
    fallback_symbol: str | None = None,
) -> dict:
    """Risk metrics for one instrument plus its fund metadata.

    When the metadata of ``symbol`` lacks composition data and a
    ``fallback_symbol`` (e.g. another listing of the same fund) is given,
    missing fields are completed from it.
    """
    start = date(today.year - FUND_HISTORY_YEARS, today.month, 1)
    series = market.load_series(symbol, start, today)
    benchmark_symbol = benchmark_symbol or settings.benchmark_symbol
    benchmark = market.load_series(benchmark_symbol, start, today) if series else None
    metrics = compute_risk_metrics(series, benchmark) if series else None

    info = from_yahoo_info(symbol, market.fund_info(symbol))
    if fallback_symbol and is_incomplete(info):
        info = merge_fund_info(info, from_yahoo_info(fallback_symbol, market.fund_info(fallback_symbol)))

    log.info(
        "fund_report_built",
        symbol=symbol,
        points=len(series) if series else 0,
        benchmark=benchmark_symbol,
        has_benchmark=bool(benchmark),
        has_info=info is not None,
    )
    return {"symbol": symbol, "metrics": metrics, "info": info, "points": len(series) if series else 0}
