"""
Domain type definitions for rake allocation.
"""
from __future__ import annotations

from typing import Dict, List, TypedDict, NotRequired


class OrderRecord(TypedDict, total=False):
    """One raw order row as received from an upload or a JSON file."""
    order_id: str
    customer_name: str
    destination: str
    quantity_tonnes: float
    customer_id: str
    customer_location: str
    region: str
    product_type: str
    material_grade: str
    material_id: str
    material_name: str
    priority: str
    due_date: str  # yyyy-MM-dd or ISO datetime
    preferred_mode: str
    distance_km: float
    penalty_rate_per_day: float


class Order(TypedDict):
    order_id: str
    customer_id: str
    customer_name: str
    material_id: str
    material_name: str
    product_type: str
    destination: str
    quantity_tonnes: float
    priority: str
    due_date: str
    preferred_mode: str  # rail | road | either
    penalty_rate_per_day: float
    partial_allowed: bool
    distance_km: float


class Rake(TypedDict):
    rake_id: str
    rake_type: str
    total_wagons: int
    total_capacity_tonnes: float
    current_location: str
    available_from_time: str


class Wagon(TypedDict):
    wagon_id: str
    rake_id: str
    wagon_index: int
    wagon_type: str
    max_capacity_tonnes: float


class Platform(TypedDict):
    platform_id: str
    platform_name: str
    loading_point_id: str
    crane_id: str
    crane_capacity_tonnes: float
    max_rakes_at_once: int


class PlanningConstraints(TypedDict):
    min_rake_utilization_percent: float
    max_rakes_per_day_overall: int
    allow_multi_destination_rakes: bool
    cost_weight: float
    sla_weight: float
    rail_vs_road_bias: str
    road_fallback_for_rail_orders: NotRequired[bool]


class InternalModel(TypedDict):
    orders: List[Order]
    rakes: List[Rake]
    wagons: List[Wagon]
    platforms: List[Platform]
    constraints: PlanningConstraints
    product_loading_points: NotRequired[Dict[str, str]]
    default_loading_point: NotRequired[str]
    origin: NotRequired[str]
