from datetime import date
from pydantic import BaseModel, Field
from typing import Optional, Literal, Dict, List

from ..engine.types import Position


class PositionIn(BaseModel):
    id: str
    instrument_key: str
    shares: float = Field(gt=0)
    cost_basis: float = Field(ge=0)
    purchase_date: date
    target_weight: Optional[float] = Field(default=None, ge=0, le=100)
    name: Optional[str] = None

    def to_position(self) -> Position:
        return Position(
            id=self.id,
            instrument_key=self.instrument_key,
            shares=self.shares,
            cost_basis=self.cost_basis,
            purchase_date=self.purchase_date,
            target_weight=self.target_weight,
            name=self.name,
        )


class PortfolioRequest(BaseModel):
    positions: List[PositionIn]
    today: Optional[date] = None
    view: Literal['monthly', 'yearly'] = 'monthly'
    live: bool = True
    benchmark_symbol: Optional[str] = None
    range: Literal['DAY', 'MONTH', 'YEAR', 'ALL'] = 'ALL'


class ValuationPointOut(BaseModel):
    date: date
    total_value: float
    total_invested: float
    cumulative_return_pct: float
    daily_return_pct: float
    fallback_count: int


class BenchmarkPointOut(BaseModel):
    date: date
    cumulative_return_pct: float


class HistoryResponse(BaseModel):
    run_id: str
    range: str
    points: List[ValuationPointOut]
    benchmark: List[BenchmarkPointOut] = []


class PeriodGainOut(BaseModel):
    period_key: str
    cumulative_invested: float
    period_end_value: float
    period_gain: float
    period_gain_pct: float
    contributions: float
    cumulative_pl: float


class GainsResponse(BaseModel):
    run_id: str
    view: str
    periods: List[PeriodGainOut]
    total_pl: Optional[float] = None


class XirrResponse(BaseModel):
    status: Literal['converged', 'not_converged', 'degenerate']
    rate_pct: Optional[float] = None
    method: Optional[str] = None
    iterations: int = 0


class PositionGainOut(BaseModel):
    position_id: str
    current_value: float
    gain: float
    gain_pct: float
    priced: bool


class SummaryResponse(BaseModel):
    run_id: str
    total_value: float
    total_invested: float
    total_gain: float
    total_gain_pct: float
    day_change: Optional[float] = None
    day_change_pct: Optional[float] = None
    xirr_pct: Optional[float] = None
    xirr_status: str
    positions: List[PositionGainOut]


class RebalanceRow(BaseModel):
    position_id: str
    instrument_key: str
    current_value: float
    current_weight_pct: float
    target_weight_pct: float
    diff_weight_pct: float
    diff_amount: float


class RebalanceResponse(BaseModel):
    target_weight_total: float
    rows: List[RebalanceRow]


class ProjectionRequest(BaseModel):
    initial: float = Field(ge=0)
    monthly_contribution: float = Field(default=0.0, ge=0)
    annual_return_pct: float
    years: int = Field(ge=0, le=100)


class RiskMetricsOut(BaseModel):
    annualized_return_pct: Optional[float] = None
    volatility_pct: Optional[float] = None
    max_drawdown_pct: Optional[float] = None
    sharpe: Optional[float] = None
    alpha_pct: Optional[float] = None
    beta: Optional[float] = None
    cumulative_return_pct: Optional[float] = None
    horizon_returns: Dict[str, float] = {}


class FundMetricsResponse(BaseModel):
    symbol: str
    points: int
    metrics: Optional[RiskMetricsOut] = None
    info: Optional[dict] = None
