"""
Type definitions for rake plan results and related structures.
"""
from __future__ import annotations

from typing import Dict, List, Literal, NotRequired, TypedDict


SlaStatus = Literal["On-time", "At-Risk", "Late"]


class RiskAssessment(TypedDict):
    """Post-hoc annotation returned by an external risk scorer."""
    risk_flag: Literal["LOW", "MEDIUM", "HIGH"]
    cost_multiplier: float
    delay_probability: float


class CostBreakdown(TypedDict):
    """Unrounded cost components for one allocation."""
    transport_cost: float
    loading_cost: float
    expected_penalty_cost: float
    idle_freight_cost: float
    total_estimated_cost: float


class RakePlanItem(TypedDict):
    """One allocation of (part of) an order to a wagon, or to road.

    Monetary and percentage fields are kept unrounded; the reporting layer
    rounds them for display.
    """
    order_id: str
    customer_name: str
    customer_id: str
    material_id: str
    material_name: str
    product_type: str
    assigned_mode: Literal["rail", "road"]
    rake_id: str
    wagon_id: str
    wagon_index: int
    platform_id: str
    platform_name: str
    crane_id: str
    crane_capacity_tonnes: float
    allocated_quantity_tonnes: float
    origin: str
    destination: str
    priority: str
    due_date: str
    distance_km: float
    penalty_rate_per_day: float
    expected_departure_time: str
    expected_arrival_time: str
    transit_hours: float
    days_late: int
    utilization_percent_for_wagon: float
    utilization_percent_for_rake: float
    transport_cost: float
    loading_cost: float
    expected_penalty_cost: float
    idle_freight_cost: float
    total_estimated_cost: float
    sla_status: SlaStatus
    reason: str
    risk: NotRequired[RiskAssessment]


class UndeliverableRow(TypedDict):
    """Freight of a rail-only order that found no rail slot.

    Reason:
        - no_rail_capacity: every rake was full, closed to the destination or
          beyond the rake-count limit, and road was not permitted.
    """
    order_id: str
    destination: str
    preferred_mode: str
    requested_tonnes: float
    undelivered_tonnes: float
    reason: Literal["no_rail_capacity"]


class OrderOutcome(TypedDict):
    """Terminal state of one order after the planning pass."""
    order_id: str
    status: Literal["rail", "road", "mixed", "undeliverable", "partially_undeliverable"]
    rail_tonnes: float
    road_tonnes: float
    undelivered_tonnes: float
    rail_percent: float
    allocation_count: int


class KPISummary(TypedDict):
    """Aggregated plan metrics.

    baseline_estimated_cost and the two savings figures are heuristic
    estimates (fixed multipliers), not a recomputed unoptimized plan.
    """
    total_orders: int
    orders_served_by_rail: int
    orders_served_by_road: int
    orders_undeliverable: int
    rail_allocation_count: int
    road_allocation_count: int
    rakes_used: int
    average_rake_utilization_percent: float
    rail_tonnage_percent: float
    total_estimated_cost: float
    baseline_estimated_cost: float
    estimated_cost_savings_vs_baseline: float
    estimated_demurrage_savings: float
    rakes_below_min_utilization: List[str]


class PlanSentence(TypedDict):
    sentence: str
    reason: str


class CapacityBoundMetrics(TypedDict):
    """Solver-reported upper bound on rail tonnage for the same fleet."""
    status: str
    rail_tonnage_bound: float | None
    rail_tonnage_planned: float
    greedy_gap_tonnes: float | None
    objective_value: float | None
    best_objective_bound: float | None


class RakePlanOutput(TypedDict):
    """Result container for plan_rakes().

    Keys:
        rake_plan: Allocations (rail wagon slots and road diversions).
        kpi_summary: Plan metrics (see KPISummary).
        natural_language_plan: One sentence/reason pair per allocation.
        undeliverable: Rail-only freight left without a slot.
        order_outcomes: Per-order terminal state, for degraded-plan review.
        fallback_applied: True when the all-road fallback replaced an empty plan.
        capacity_bound: Optional CP-SAT rail tonnage bound diagnostic.
    """
    rake_plan: List[RakePlanItem]
    kpi_summary: KPISummary
    natural_language_plan: List[PlanSentence]
    undeliverable: List[UndeliverableRow]
    order_outcomes: List[OrderOutcome]
    fallback_applied: bool
    capacity_bound: NotRequired[CapacityBoundMetrics]


RiskFeatures = Dict[str, float]
