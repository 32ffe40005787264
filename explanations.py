"""Natural-language justification of allocations.

Pure presentation: nothing here feeds back into allocation decisions.
"""
from __future__ import annotations

from typing import List

from allocation_types import PlanSentence, RakePlanItem
from datatypes import CostRates
from domain_types import Order, Platform, Rake, Wagon


def generate_reason(
    order: Order,
    rake: Rake,
    wagon: Wagon,
    platform: Platform,
    wagon_util: float,
    rake_util: float,
    late_days: int,
    rates: CostRates | None = None,
) -> str:
    """Explain one rail allocation.

    Rules, each appended when it holds: High priority; wagon utilization
    against the crane limit (always); rake utilization at or above the
    high-utilization threshold; SLA met when not late.
    """
    high_util = (rates or CostRates()).high_utilization_percent
    reasons: List[str] = []

    if order["priority"] == "High":
        reasons.append(f"{order['priority']}-priority order")

    reasons.append(
        f"wagon utilization of {wagon_util:.1f}% maximizes capacity without exceeding "
        f"crane limit of {platform['crane_capacity_tonnes']:g}T"
    )

    if rake_util >= high_util:
        reasons.append(f"rake reaches {rake_util:.1f}% utilization, meeting minimum efficiency target")

    if late_days == 0:
        reasons.append("meets SLA deadline")

    if not reasons:
        reasons.append("optimal capacity utilization")

    return (
        f"This assignment groups {order['destination']}-bound orders in {rake['rake_id']}. "
        f"{', '.join(reasons)}. This minimizes idle freight and avoids creating extra partial rakes."
    )


def road_reason(fallback: bool = False) -> str:
    if fallback:
        return "Fallback: road transport due to rail unavailability for the whole plan."
    return (
        "Order allocated to ROAD mode due to lack of available rail rake capacity or customer preference. "
        "Road transport provides flexibility at the cost of longer transit time."
    )


def plan_sentence(item: RakePlanItem) -> PlanSentence:
    if item["assigned_mode"] == "rail":
        target = f"WAGON {item['wagon_index']} of RAKE {item['rake_id']} at {item['platform_name']}"
    else:
        target = "ROAD in truck batches"
    return {
        "sentence": (
            f"ORDER #{item['order_id']} with cargo {item['material_name']} from customer "
            f"{item['customer_name']} is allocated to {target}, headed to {item['destination']}."
        ),
        "reason": item["reason"],
    }
