"""Read-only rollups over a finished allocation list.

The baseline cost (total x 1.15) and the demurrage savings (1.5 x idle
freight on rail allocations whose rake reached 85 % utilization) are fixed
heuristics kept for compatibility with existing dashboards; they are not
recomputed from an unoptimized plan.
"""
from __future__ import annotations

from collections import defaultdict
from typing import Dict, List, Sequence

from allocation_types import KPISummary, OrderOutcome, RakePlanItem, UndeliverableRow
from datatypes import CostRates
from domain_types import Order, PlanningConstraints, Rake

EPS = 1e-9


def order_outcomes(
    orders: Sequence[Order],
    allocations: Sequence[RakePlanItem],
    undeliverable: Sequence[UndeliverableRow],
) -> List[OrderOutcome]:
    """Classify every order into its terminal state, in input order."""
    rail: Dict[str, float] = defaultdict(float)
    road: Dict[str, float] = defaultdict(float)
    count: Dict[str, int] = defaultdict(int)
    lost: Dict[str, float] = defaultdict(float)
    for a in allocations:
        bucket = rail if a["assigned_mode"] == "rail" else road
        bucket[a["order_id"]] += a["allocated_quantity_tonnes"]
        count[a["order_id"]] += 1
    for u in undeliverable:
        lost[u["order_id"]] += u["undelivered_tonnes"]

    out: List[OrderOutcome] = []
    for o in orders:
        oid = o["order_id"]
        r, d, u = rail[oid], road[oid], lost[oid]
        if u > EPS:
            status = "undeliverable" if r + d <= EPS else "partially_undeliverable"
        elif r > EPS and d > EPS:
            status = "mixed"
        elif d > EPS:
            status = "road"
        else:
            status = "rail"
        qty = o["quantity_tonnes"]
        out.append({
            "order_id": oid,
            "status": status,
            "rail_tonnes": r,
            "road_tonnes": d,
            "undelivered_tonnes": u,
            "rail_percent": (r / qty) * 100.0 if qty > 0 else 0.0,
            "allocation_count": count[oid],
        })
    return out


def summarize_kpis(
    orders: Sequence[Order],
    allocations: Sequence[RakePlanItem],
    undeliverable: Sequence[UndeliverableRow],
    rakes: Sequence[Rake],
    constraints: PlanningConstraints,
    rates: CostRates,
) -> KPISummary:
    """Compute the KPI summary from unrounded allocation values."""
    outcomes = order_outcomes(orders, allocations, undeliverable)
    rail_items = [a for a in allocations if a["assigned_mode"] == "rail"]
    road_items = [a for a in allocations if a["assigned_mode"] == "road"]

    rake_load: Dict[str, float] = defaultdict(float)
    for a in rail_items:
        rake_load[a["rake_id"]] += a["allocated_quantity_tonnes"]

    avg_util = (
        sum(a["utilization_percent_for_rake"] for a in rail_items) / len(rail_items)
        if rail_items else 0.0
    )

    total_cost = sum(a["total_estimated_cost"] for a in allocations)
    baseline = total_cost * rates.baseline_multiplier
    demurrage = sum(
        a["idle_freight_cost"] for a in rail_items
        if a["utilization_percent_for_rake"] >= rates.high_utilization_percent
    ) * rates.demurrage_multiplier

    rail_tonnes = sum(a["allocated_quantity_tonnes"] for a in rail_items)
    demand = sum(o["quantity_tonnes"] for o in orders)

    below_min = [
        r["rake_id"] for r in rakes
        if r["rake_id"] in rake_load
        and (rake_load[r["rake_id"]] / r["total_capacity_tonnes"]) * 100.0 < constraints["min_rake_utilization_percent"]
    ]

    return {
        "total_orders": len(orders),
        "orders_served_by_rail": sum(1 for o in outcomes if o["rail_tonnes"] > EPS),
        "orders_served_by_road": sum(1 for o in outcomes if o["road_tonnes"] > EPS),
        "orders_undeliverable": sum(1 for o in outcomes if o["undelivered_tonnes"] > EPS),
        "rail_allocation_count": len(rail_items),
        "road_allocation_count": len(road_items),
        "rakes_used": len(rake_load),
        "average_rake_utilization_percent": avg_util,
        "rail_tonnage_percent": (rail_tonnes / demand) * 100.0 if demand > 0 else 0.0,
        "total_estimated_cost": total_cost,
        "baseline_estimated_cost": baseline,
        "estimated_cost_savings_vs_baseline": baseline - total_cost,
        "estimated_demurrage_savings": demurrage,
        "rakes_below_min_utilization": below_min,
    }
