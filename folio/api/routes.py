import math
from dataclasses import asdict
from datetime import date
from fastapi import APIRouter, Depends, HTTPException
from .schemas import (
    PortfolioRequest,
    HistoryResponse,
    GainsResponse,
    XirrResponse,
    SummaryResponse,
    RebalanceResponse,
    ProjectionRequest,
    FundMetricsResponse,
)
from ..engine.orchestrator import run_portfolio, fund_report
from ..engine.rebalance import rebalance_plan, target_weight_total
from ..engine.projection import project_growth
from ..engine.resample import filter_history, valuations_to_series
from ..config import settings
from ..market import MarketData, default_cache
from ..utils import today_local

router = APIRouter()


def get_market() -> MarketData:
    return MarketData(cache=default_cache())


def _finite(val):
    if val is None:
        return None
    return val if math.isfinite(val) else None


def _today(req_today: date | None) -> date:
    return req_today or today_local(settings.local_tz)


def _run(req: PortfolioRequest, market: MarketData, benchmark: bool = False) -> dict:
    try:
        positions = [p.to_position() for p in req.positions]
    except ValueError as e:
        raise HTTPException(422, str(e))
    if not positions:
        raise HTTPException(400, 'positions must not be empty')
    try:
        return run_portfolio(
            positions,
            market,
            _today(req.today),
            view=req.view,
            benchmark_symbol=(req.benchmark_symbol or settings.benchmark_symbol) if benchmark else None,
            live=req.live,
        )
    except ValueError as e:
        raise HTTPException(400, str(e))


@router.get(
    '/health',
    summary="Health check",
    description="Returns service status and local cache counters.",
    tags=["Health"],
)
def health():
    cache = default_cache()
    return {'ok': True, 'cache': cache.stats() if cache else 'disabled'}


@router.post(
    '/portfolio/history',
    response_model=HistoryResponse,
    summary="Valuation history",
    description=(
        "Time-weighted valuation series for the supplied positions. "
        "range: DAY (last 30 points), MONTH (year to date), YEAR (last 365 days, month-end), ALL (month-end). "
        "Includes the benchmark overlay when benchmark_symbol is set or configured."
    ),
    tags=["Portfolio"],
)
def portfolio_history(req: PortfolioRequest, market: MarketData = Depends(get_market)):
    result = _run(req, market, benchmark=True)
    valuations = result['valuations']
    kept = {ts.date() for ts in filter_history(valuations_to_series(valuations), req.range).index}
    points = [
        {
            'date': p.date,
            'total_value': p.total_value,
            'total_invested': p.total_invested,
            'cumulative_return_pct': p.cumulative_return_pct,
            'daily_return_pct': p.daily_return * 100.0,
            'fallback_count': p.fallback_count,
        }
        for p in valuations
        if p.date in kept
    ]
    benchmark = [{'date': d, 'cumulative_return_pct': pct} for d, pct in result['benchmark']]
    return {'run_id': result['run_id'], 'range': req.range, 'points': points, 'benchmark': benchmark}


@router.post(
    '/portfolio/gains',
    response_model=GainsResponse,
    summary="Period gains",
    description="Money-weighted gain/loss per calendar month or year with cumulative P&L.",
    tags=["Portfolio"],
)
def portfolio_gains(req: PortfolioRequest, market: MarketData = Depends(get_market)):
    result = _run(req, market)
    table = result['gains']
    periods = [
        {**asdict(period), 'cumulative_pl': cum}
        for period, cum in zip(table.periods, table.cumulative_pl)
    ]
    return {'run_id': result['run_id'], 'view': table.view, 'periods': periods, 'total_pl': table.total_pl}


@router.post(
    '/portfolio/xirr',
    response_model=XirrResponse,
    summary="Money-weighted annual return",
    description="XIRR of the position purchases against the current value. rate_pct is null unless converged.",
    tags=["Portfolio"],
)
def portfolio_xirr(req: PortfolioRequest, market: MarketData = Depends(get_market)):
    xirr = _run(req, market)['xirr']
    return {
        'status': xirr.status.value,
        'rate_pct': _finite(xirr.rate_pct),
        'method': xirr.method,
        'iterations': xirr.iterations,
    }


@router.post(
    '/portfolio/summary',
    response_model=SummaryResponse,
    summary="Portfolio summary",
    description="Totals, day change, XIRR and per-position gain/loss.",
    tags=["Portfolio"],
)
def portfolio_summary(req: PortfolioRequest, market: MarketData = Depends(get_market)):
    result = _run(req, market)
    summary = dict(result['summary'])
    summary['xirr_pct'] = _finite(summary['xirr_pct'])
    return {'run_id': result['run_id'], **summary}


@router.post(
    '/portfolio/rebalance',
    response_model=RebalanceResponse,
    summary="Rebalance plan",
    description="Current vs target weights and the amount to buy (+) or sell (-) per position.",
    tags=["Portfolio"],
)
def portfolio_rebalance(req: PortfolioRequest, market: MarketData = Depends(get_market)):
    result = _run(req, market)
    values = {row['position_id']: row['current_value'] for row in result['summary']['positions']}
    owned = [p.to_position() for p in req.positions if p.id in values]
    return {'target_weight_total': target_weight_total(owned), 'rows': rebalance_plan(owned, values)}


@router.post(
    '/portfolio/projection',
    summary="Growth projection",
    description="Year-end totals for a fixed monthly contribution and expected annual return.",
    tags=["Portfolio"],
)
def portfolio_projection(req: ProjectionRequest):
    try:
        return {'rows': project_growth(req.initial, req.monthly_contribution, req.annual_return_pct, req.years)}
    except ValueError as e:
        raise HTTPException(400, str(e))


@router.get(
    '/funds/{symbol}/metrics',
    response_model=FundMetricsResponse,
    summary="Fund risk metrics",
    description=(
        "CAGR, volatility, max drawdown, Sharpe, Alpha/Beta against a benchmark and horizon returns "
        "over up to ten years of daily prices, plus fund metadata. "
        "fallback_symbol completes missing metadata from another listing."
    ),
    tags=["Funds"],
)
def fund_metrics(
    symbol: str,
    benchmark: str | None = None,
    fallback_symbol: str | None = None,
    today: date | None = None,
    market: MarketData = Depends(get_market),
):
    report = fund_report(symbol, market, _today(today), benchmark_symbol=benchmark, fallback_symbol=fallback_symbol)
    if report['points'] == 0 and report['info'] is None:
        raise HTTPException(404, 'no data for symbol')
    metrics = None
    if report['metrics'] is not None:
        metrics = asdict(report['metrics'])
        for k, v in list(metrics.items()):
            if isinstance(v, float):
                metrics[k] = _finite(v)
    info = report['info'].model_dump(mode='json') if report['info'] is not None else None
    return {'symbol': symbol, 'points': report['points'], 'metrics': metrics, 'info': info}


@router.post(
    '/cache/{action}',
    summary="Cache admin",
    description="invalidate clears every entry, purge drops expired entries, stats returns counters.",
    tags=["Admin"],
)
def cache_admin(action: str):
    if action not in ('invalidate', 'purge', 'stats'):
        raise HTTPException(400, 'action must be invalidate|purge|stats')
    cache = default_cache()
    if cache is None:
        raise HTTPException(409, 'cache disabled')
    if action == 'invalidate':
        return {'ok': True, 'cleared': True, 'removed': cache.invalidate_all()}
    if action == 'purge':
        return {'ok': True, 'purged': cache.purge_expired()}
    return {'ok': True, **cache.stats()}


@router.delete(
    '/cache/{symbol}',
    summary="Invalidate symbol",
    description="Drops every cached entry (prices, quotes, fund info) of one symbol.",
    tags=["Admin"],
)
def cache_invalidate_symbol(symbol: str):
    cache = default_cache()
    if cache is None:
        raise HTTPException(409, 'cache disabled')
    return {'ok': True, 'symbol': symbol, 'removed': cache.invalidate_symbol(symbol)}
