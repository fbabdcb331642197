from __future__ import annotations


def project_growth(initial: float, monthly_contribution: float, annual_return_pct: float, years: int) -> list[dict]:
    """Year-end snapshots of a portfolio compounding monthly with a fixed contribution.

    Each month the contribution is added, then the month's return is applied.
    Row 0 is the starting point.
    """
    if years < 0:
        raise ValueError("years must be >= 0")
    monthly_rate = annual_return_pct / 100.0 / 12.0
    total = float(initial)
    principal = float(initial)
    rows = []
    for year in range(years + 1):
        rows.append({"year": year, "total": total, "principal": principal, "interest": total - principal})
        if year == years:
            break
        for _ in range(12):
            total = (total + monthly_contribution) * (1.0 + monthly_rate)
            principal += monthly_contribution
    return rows
