from __future__ import annotations

from typing import Mapping, Sequence

from .types import Position


def target_weight_total(positions: Sequence[Position]) -> float:
    return sum(pos.target_weight or 0.0 for pos in positions)


def rebalance_plan(positions: Sequence[Position], values: Mapping[str, float]) -> list[dict]:
    """Current vs target weight per position and the amount to buy (+) or sell (-).

    ``values`` maps position id to current value. Positions without a target
    weight are treated as a 0 % target. Sorted by current weight, largest first.
    """
    total_value = sum(values.get(pos.id, 0.0) for pos in positions)
    if total_value <= 0:
        return []
    rows = []
    for pos in positions:
        current = values.get(pos.id, 0.0)
        current_weight = current / total_value * 100.0
        target_weight = pos.target_weight or 0.0
        rows.append(
            {
                "position_id": pos.id,
                "instrument_key": pos.instrument_key,
                "current_value": current,
                "current_weight_pct": current_weight,
                "target_weight_pct": target_weight,
                "diff_weight_pct": target_weight - current_weight,
                "diff_amount": total_value * target_weight / 100.0 - current,
            }
        )
    rows.sort(key=lambda row: row["current_weight_pct"], reverse=True)
    return rows
