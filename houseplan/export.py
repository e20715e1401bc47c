from __future__ import annotations

import pandas as pd

from .plan_generator import HousePlan


def fmt_kes(amount) -> str:
    try:
        return f"KES {amount:,.0f}"
    except (TypeError, ValueError):
        return "-"


def cost_breakdown_frame(plan: HousePlan) -> pd.DataFrame:
    """One row per cost category, in category order.

    share_pct is relative to the budget, so the column need not add up to
    100 when the breakdown over- or undershoots.
    """
    costs = plan.cost_breakdown.as_dict()
    df = pd.DataFrame({"category": list(costs), "amount_kes": list(costs.values())})
    df["share_pct"] = (df["amount_kes"] / plan.budget * 100).round(2)
    return df


def export_to_csv(plan: HousePlan) -> str:
    """Cost breakdown plus a TOTAL row as a CSV string."""
    df = cost_breakdown_frame(plan)
    total = pd.DataFrame(
        [{"category": "TOTAL", "amount_kes": plan.total_cost, "share_pct": round(plan.total_cost / plan.budget * 100, 2)}]
    )
    out = pd.concat([df, total], ignore_index=True)
    return out.to_csv(index=False)
