"""Typed fund metadata and the primary-wins-unless-absent merge.

Upstream fund payloads are inconsistently shaped; everything optional is
modelled explicitly so a missing field is ``None`` (or an empty list), never
a guess.
"""
from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict


class Weighting(BaseModel):
    model_config = ConfigDict(frozen=True)
    name: str
    weight_pct: float
    symbol: Optional[str] = None


class AssetAllocation(BaseModel):
    model_config = ConfigDict(frozen=True)
    stocks_pct: Optional[float] = None
    bonds_pct: Optional[float] = None
    cash_pct: Optional[float] = None
    other_pct: Optional[float] = None


class ReportedRisk(BaseModel):
    model_config = ConfigDict(frozen=True)
    alpha3y: Optional[float] = None
    beta3y: Optional[float] = None
    sharpe3y: Optional[float] = None


class FundInfo(BaseModel):
    model_config = ConfigDict(frozen=True)
    symbol: str
    name: Optional[str] = None
    category: Optional[str] = None
    fund_family: Optional[str] = None
    currency: Optional[str] = None
    expense_ratio_pct: Optional[float] = None
    inception_date: Optional[date] = None
    description: Optional[str] = None
    website: Optional[str] = None
    holdings: list[Weighting] = []
    sectors: list[Weighting] = []
    regions: list[Weighting] = []
    asset_allocation: Optional[AssetAllocation] = None
    risk: Optional[ReportedRisk] = None


def _absent(value) -> bool:
    return value is None or value == "" or value == []


def merge_fund_info(primary: FundInfo | None, fallback: FundInfo | None) -> FundInfo | None:
    """Field by field: keep the primary value unless it is absent."""
    if primary is None:
        return fallback
    if fallback is None:
        return primary
    merged = {}
    for name in FundInfo.model_fields:
        value = getattr(primary, name)
        merged[name] = getattr(fallback, name) if _absent(value) else value
    return FundInfo(**merged)


def is_incomplete(info: FundInfo | None) -> bool:
    """True when the composition data is worth completing from another listing.

    Either nothing at all is known about the composition, or holdings/sectors
    exist but the geographic split is missing.
    """
    if info is None:
        return True
    has_holdings = bool(info.holdings)
    has_sectors = bool(info.sectors)
    has_regions = bool(info.regions)
    all_missing = not (has_holdings or has_sectors or has_regions)
    missing_regions = (has_holdings or has_sectors) and not has_regions
    return all_missing or missing_regions


def _raw(value):
    # Yahoo wraps numbers as {"raw": 0.12, "fmt": "12%"} in some endpoints
    if isinstance(value, dict):
        return value.get("raw")
    return value


def _as_float(value) -> float | None:
    value = _raw(value)
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _fraction_pct(value) -> float | None:
    val = _as_float(value)
    return None if val is None else val * 100.0


def _epoch_date(value) -> date | None:
    val = _as_float(value)
    if val is None:
        return None
    return datetime.fromtimestamp(val, tz=timezone.utc).date()


def from_yahoo_info(symbol: str, info: dict | None) -> FundInfo | None:
    if not info:
        return None
    holdings = [
        Weighting(name=h.get("holdingName") or h.get("symbol") or "Unknown", symbol=h.get("symbol"), weight_pct=_fraction_pct(h.get("holdingPercent")) or 0.0)
        for h in info.get("holdings") or []
        if isinstance(h, dict)
    ]
    sectors = []
    for entry in info.get("sectorWeightings") or []:
        if not isinstance(entry, dict):
            continue
        for sector, weight in entry.items():
            pct = _fraction_pct(weight)
            if pct is not None:
                sectors.append(Weighting(name=sector, weight_pct=pct))
    allocation = None
    if any(info.get(k) is not None for k in ("stockPosition", "bondPosition", "cashPosition", "otherPosition")):
        allocation = AssetAllocation(
            stocks_pct=_fraction_pct(info.get("stockPosition")),
            bonds_pct=_fraction_pct(info.get("bondPosition")),
            cash_pct=_fraction_pct(info.get("cashPosition")),
            other_pct=_fraction_pct(info.get("otherPosition")),
        )
    risk = None
    if info.get("alpha3Year") is not None or info.get("beta3Year") is not None or info.get("sharpeRatio3Year") is not None:
        risk = ReportedRisk(
            alpha3y=_as_float(info.get("alpha3Year")),
            beta3y=_as_float(info.get("beta3Year")),
            sharpe3y=_as_float(info.get("sharpeRatio3Year")),
        )
    expense = info.get("netExpenseRatio")
    return FundInfo(
        symbol=symbol,
        name=info.get("longName") or info.get("shortName"),
        category=info.get("category"),
        fund_family=info.get("fundFamily"),
        currency=info.get("currency"),
        # netExpenseRatio is already a percent; annualReportExpenseRatio is a fraction
        expense_ratio_pct=_as_float(expense) if expense is not None else _fraction_pct(info.get("annualReportExpenseRatio")),
        inception_date=_epoch_date(info.get("fundInceptionDate")),
        description=info.get("longBusinessSummary"),
        website=info.get("website"),
        holdings=holdings,
        sectors=sectors,
        asset_allocation=allocation,
        risk=risk,
    )
