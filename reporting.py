# --------------------------- Plan reporting ---------------------------
import json
from collections import defaultdict
from typing import Any, Dict, List

from allocation_types import KPISummary, RakePlanItem, RakePlanOutput

MONEY_FIELDS = (
    "transport_cost",
    "loading_cost",
    "expected_penalty_cost",
    "idle_freight_cost",
    "total_estimated_cost",
)
PERCENT_FIELDS = ("utilization_percent_for_wagon", "utilization_percent_for_rake")


def round_plan_item(item: RakePlanItem) -> Dict[str, Any]:
    """Display copy of an allocation: money to units, percentages to one decimal."""
    out: Dict[str, Any] = dict(item)
    for k in MONEY_FIELDS:
        out[k] = int(round(item[k]))
    for k in PERCENT_FIELDS:
        out[k] = round(item[k], 1)
    out["allocated_quantity_tonnes"] = round(item["allocated_quantity_tonnes"], 3)
    return out


def round_kpis(kpis: KPISummary) -> Dict[str, Any]:
    out: Dict[str, Any] = dict(kpis)
    for k in (
        "total_estimated_cost",
        "baseline_estimated_cost",
        "estimated_cost_savings_vs_baseline",
        "estimated_demurrage_savings",
    ):
        out[k] = int(round(kpis[k]))
    for k in ("average_rake_utilization_percent", "rail_tonnage_percent"):
        out[k] = round(kpis[k], 1)
    return out


def plan_to_json(plan: RakePlanOutput, indent: int = 2) -> str:
    """Serialize a plan with display rounding applied."""
    payload: Dict[str, Any] = dict(plan)
    payload["rake_plan"] = [round_plan_item(a) for a in plan["rake_plan"]]
    payload["kpi_summary"] = round_kpis(plan["kpi_summary"])
    payload["order_outcomes"] = [
        {**o, "rail_percent": round(o["rail_percent"], 1)} for o in plan["order_outcomes"]
    ]
    return json.dumps(payload, indent=indent)


def plan_markdown(plan: RakePlanOutput) -> str:
    """Markdown tables: one per rake, then road, undeliverable and KPIs."""
    by_rake: Dict[str, List[RakePlanItem]] = defaultdict(list)
    road: List[RakePlanItem] = []
    for a in plan["rake_plan"]:
        if a["assigned_mode"] == "rail":
            by_rake[a["rake_id"]].append(a)
        else:
            road.append(a)

    sections: List[str] = []
    for rake_id in sorted(by_rake):
        rows = by_rake[rake_id]
        total_qty = sum(a["allocated_quantity_tonnes"] for a in rows)
        util = max(a["utilization_percent_for_rake"] for a in rows)
        dests = sorted({a["destination"] for a in rows})
        header = (
            f"### Rake {rake_id} — allocations: {len(rows)} | loaded tonnes: {total_qty:.1f} | "
            f"utilization: {util:.1f}% | destinations: {', '.join(dests)}\n\n"
            "| Order | Wagon | Platform | Tonnes | Wagon util % | SLA | Cost |\n|---|---|---|---|---|---|---|\n"
        )
        body = [
            f"| {a['order_id']} | {a['wagon_id']} | {a['platform_id']} | {a['allocated_quantity_tonnes']:.1f} | "
            f"{a['utilization_percent_for_wagon']:.1f} | {a['sla_status']} | {round(a['total_estimated_cost'])} |"
            for a in rows
        ]
        sections.append(header + "\n".join(body) + "\n")

    road_header = "### Road allocations\n\n| Order | Destination | Tonnes | SLA | Cost |\n|---|---|---|---|---|\n"
    road_rows = [
        f"| {a['order_id']} | {a['destination']} | {a['allocated_quantity_tonnes']:.1f} | {a['sla_status']} | "
        f"{round(a['total_estimated_cost'])} |"
        for a in road
    ] or ["| *(none)* | — | — | — | — |"]
    sections.append(road_header + "\n".join(road_rows) + "\n")

    und_header = "### Undeliverable freight\n\n| Order | Destination | Requested | Undelivered | Reason |\n|---|---|---|---|---|\n"
    und_rows = [
        f"| {u['order_id']} | {u['destination']} | {u['requested_tonnes']:.1f} | {u['undelivered_tonnes']:.1f} | {u['reason']} |"
        for u in plan["undeliverable"]
    ] or ["| *(none)* | — | — | — | — |"]
    sections.append(und_header + "\n".join(und_rows) + "\n")

    kpis = round_kpis(plan["kpi_summary"])
    kpi_rows = [f"| {k} | {v} |" for k, v in kpis.items()]
    bound = plan.get("capacity_bound")
    if bound is not None:
        kpi_rows.append(f"| rail_tonnage_bound ({bound['status']}) | {bound['rail_tonnage_bound']} |")
    if plan["fallback_applied"]:
        kpi_rows.append("| fallback_applied | True |")
    sections.append("### KPI summary\n\n| Metric | Value |\n|---|---|\n" + "\n".join(kpi_rows) + "\n")

    return "\n".join(sections)
