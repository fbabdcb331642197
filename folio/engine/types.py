"""Value types shared by the engine.

All records are frozen: the engine reads snapshots supplied by the caller and
emits new records, it never patches old ones. Undefined metrics are ``None``.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Iterable


@dataclass(frozen=True)
class PricePoint:
    date: date
    price: float

    def __post_init__(self):
        if not isinstance(self.price, (int, float)) or math.isnan(self.price) or self.price < 0:
            raise ValueError(f"price must be a non-negative number, got {self.price!r}")


@dataclass(frozen=True)
class PriceSeries:
    """Ordered observations for one instrument; strictly increasing dates."""

    key: str
    points: tuple[PricePoint, ...] = ()

    def __post_init__(self):
        for prev, curr in zip(self.points, self.points[1:]):
            if curr.date <= prev.date:
                raise ValueError(f"{self.key}: dates must be strictly increasing ({prev.date} -> {curr.date})")

    @classmethod
    def from_pairs(cls, key: str, pairs: Iterable[tuple[date, float]]) -> "PriceSeries":
        """Build from unordered (date, price) rows; the last row wins on duplicate dates."""
        by_date: dict[date, float] = {}
        for d, price in pairs:
            by_date[d] = float(price)
        return cls(key, tuple(PricePoint(d, by_date[d]) for d in sorted(by_date)))

    def __len__(self):
        return len(self.points)

    @property
    def dates(self) -> list[date]:
        return [p.date for p in self.points]

    @property
    def prices(self) -> list[float]:
        return [p.price for p in self.points]


@dataclass(frozen=True)
class Position:
    id: str
    instrument_key: str
    shares: float
    cost_basis: float
    purchase_date: date
    target_weight: float | None = None
    name: str | None = None

    def __post_init__(self):
        if not self.shares > 0:
            raise ValueError(f"position {self.id}: shares must be > 0")
        if self.cost_basis < 0:
            raise ValueError(f"position {self.id}: cost_basis must be >= 0")
        if self.target_weight is not None and not 0 <= self.target_weight <= 100:
            raise ValueError(f"position {self.id}: target_weight must be within 0-100")

    @property
    def purchase_price(self) -> float:
        return self.cost_basis / self.shares

    def owned_on(self, day: date) -> bool:
        return self.purchase_date <= day


@dataclass(frozen=True)
class CashFlow:
    date: date
    amount: float


@dataclass(frozen=True)
class PortfolioValuationPoint:
    date: date
    total_value: float
    total_invested: float
    cumulative_return_pct: float
    daily_return: float = 0.0
    fallback_count: int = 0


@dataclass(frozen=True)
class PeriodGain:
    period_key: str
    cumulative_invested: float
    period_end_value: float
    period_gain: float
    period_gain_pct: float
    contributions: float = 0.0


@dataclass(frozen=True)
class GainsTable:
    view: str
    periods: tuple[PeriodGain, ...] = ()
    cumulative_pl: tuple[float, ...] = ()

    @property
    def total_pl(self) -> float | None:
        return self.cumulative_pl[-1] if self.cumulative_pl else None


@dataclass(frozen=True)
class RiskMetrics:
    annualized_return_pct: float | None = None
    volatility_pct: float | None = None
    max_drawdown_pct: float | None = None
    sharpe: float | None = None
    alpha_pct: float | None = None
    beta: float | None = None
    cumulative_return_pct: float | None = None
    horizon_returns: dict[str, float] = field(default_factory=dict)


class XirrStatus(str, Enum):
    CONVERGED = "converged"
    NOT_CONVERGED = "not_converged"
    DEGENERATE = "degenerate"


@dataclass(frozen=True)
class XirrResult:
    status: XirrStatus
    rate: float | None = None
    method: str | None = None
    iterations: int = 0

    @property
    def converged(self) -> bool:
        return self.status is XirrStatus.CONVERGED

    @property
    def rate_pct(self) -> float | None:
        return None if self.rate is None else self.rate * 100.0
