"""Money-weighted annualised return (XIRR).

Newton-Raphson with an analytic derivative is tried first; when it stalls,
diverges or leaves the domain (rate <= -100 %) the root is searched by
bisection over a wide bracket. The outcome is always a tagged
:class:`XirrResult`; an unconverged iterate is never reported as a rate.
"""
from __future__ import annotations

from datetime import date
from typing import Sequence

import structlog

from ..config import settings
from .types import CashFlow, Position, XirrResult, XirrStatus

log = structlog.get_logger()

DAYS_PER_YEAR = 365.0
DIVERGENCE_LIMIT = 100.0
BISECTION_BRACKET = (-0.99, 10.0)
BISECTION_MAX_ITERATIONS = 200


def _year_fractions(flows: Sequence[CashFlow]) -> list[float]:
    d0 = min(f.date for f in flows)
    return [(f.date - d0).days / DAYS_PER_YEAR for f in flows]


def npv(rate: float, flows: Sequence[CashFlow]) -> float:
    years = _year_fractions(flows)
    return sum(f.amount / (1.0 + rate) ** t for f, t in zip(flows, years))


def npv_derivative(rate: float, flows: Sequence[CashFlow]) -> float:
    years = _year_fractions(flows)
    return sum(-t * f.amount * (1.0 + rate) ** (-t - 1.0) for f, t in zip(flows, years) if t != 0)


def _is_degenerate(flows: Sequence[CashFlow]) -> bool:
    if len(flows) < 2:
        return True
    has_negative = any(f.amount < 0 for f in flows)
    has_positive = any(f.amount > 0 for f in flows)
    if not (has_negative and has_positive):
        return True
    return len({f.date for f in flows}) < 2


def _newton(flows, guess: float, tolerance: float, max_iterations: int):
    rate = guess
    for i in range(1, max_iterations + 1):
        try:
            derivative = npv_derivative(rate, flows)
            if abs(derivative) < tolerance:
                return None, i
            next_rate = rate - npv(rate, flows) / derivative
        except OverflowError:
            return None, i
        if next_rate <= -1.0 or abs(next_rate) > DIVERGENCE_LIMIT:
            return None, i
        if abs(next_rate - rate) < tolerance:
            return next_rate, i
        rate = next_rate
    return None, max_iterations


def _bisection(flows, tolerance: float):
    lo, hi = BISECTION_BRACKET
    f_lo, f_hi = npv(lo, flows), npv(hi, flows)
    if f_lo == 0:
        return lo, 0
    if f_hi == 0:
        return hi, 0
    if f_lo * f_hi > 0:
        return None, 0
    for i in range(1, BISECTION_MAX_ITERATIONS + 1):
        mid = (lo + hi) / 2.0
        f_mid = npv(mid, flows)
        if f_mid == 0 or (hi - lo) / 2.0 < tolerance:
            return mid, i
        if f_lo * f_mid < 0:
            hi, f_hi = mid, f_mid
        else:
            lo, f_lo = mid, f_mid
    return None, BISECTION_MAX_ITERATIONS


def solve_xirr(
    flows: Sequence[CashFlow],
    guess: float | None = None,
    tolerance: float | None = None,
    max_iterations: int | None = None,
) -> XirrResult:
    guess = settings.xirr_guess if guess is None else guess
    tolerance = settings.xirr_tolerance if tolerance is None else tolerance
    max_iterations = settings.xirr_max_iterations if max_iterations is None else max_iterations

    flows = sorted(flows, key=lambda f: f.date)
    if _is_degenerate(flows):
        return XirrResult(XirrStatus.DEGENERATE)

    rate, iterations = _newton(flows, guess, tolerance, max_iterations)
    if rate is not None:
        return XirrResult(XirrStatus.CONVERGED, rate=rate, method="newton", iterations=iterations)

    log.debug("xirr_newton_failed", iterations=iterations, flows=len(flows))
    rate, bisections = _bisection(flows, tolerance)
    if rate is not None:
        return XirrResult(XirrStatus.CONVERGED, rate=rate, method="bisection", iterations=iterations + bisections)

    log.info("xirr_not_converged", flows=len(flows))
    return XirrResult(XirrStatus.NOT_CONVERGED, iterations=iterations + bisections)


def portfolio_cash_flows(positions: Sequence[Position], current_value: float, today: date) -> list[CashFlow]:
    """One outflow per purchase plus the current value as a final inflow dated today."""
    flows = [CashFlow(pos.purchase_date, -pos.cost_basis) for pos in positions]
    if current_value > 0:
        flows.append(CashFlow(today, current_value))
    return flows


def portfolio_xirr(positions: Sequence[Position], current_value: float, today: date) -> XirrResult:
    if not positions:
        return XirrResult(XirrStatus.DEGENERATE)
    return solve_xirr(portfolio_cash_flows(positions, current_value, today))
