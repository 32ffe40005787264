# --------------------------- Fleet and cost configuration ---------------------------


from dataclasses import dataclass, field
from typing import Dict, List


@dataclass
class RakeSpec:
    """
    One rake of the planning fleet.

    Attributes
    ----------
    rake_id               : label used in plans (e.g., "R1")
    total_wagons          : number of wagons; wagons are indexed 1..total_wagons
    wagon_capacity_tonnes : max load of every wagon in the rake
    rake_type             : wagon/rake class label (e.g., "BOXN")
    location              : home location reported as current_location
    """
    rake_id: str
    total_wagons: int = 45
    wagon_capacity_tonnes: float = 59.0
    rake_type: str = "BOXN"
    location: str = "BOKARO"


@dataclass
class PlatformSpec:
    """
    One loading platform; the crane capacity caps every single loading step.
    """
    platform_id: str
    platform_name: str
    loading_point_id: str
    crane_capacity_tonnes: float
    crane_id: str = ""
    max_rakes_at_once: int = 1


def _reference_rakes() -> List[RakeSpec]:
    return [RakeSpec(rake_id="R1"), RakeSpec(rake_id="R2"), RakeSpec(rake_id="R3")]


def _reference_platforms() -> List[PlatformSpec]:
    return [
        PlatformSpec("P1", "Platform 1 (Coils)", "LP1", 30.0, "CRANE-P1"),
        PlatformSpec("P2", "Platform 2 (Plates)", "LP2", 35.0, "CRANE-P2"),
        PlatformSpec("P3", "Platform 3 (Bars/Slabs)", "LP3", 40.0, "CRANE-P3"),
    ]


def _reference_loading_points() -> Dict[str, str]:
    return {"Coils": "LP1", "Plates": "LP2", "Bars": "LP3", "Slabs": "LP3"}


def _reference_distances() -> Dict[str, float]:
    # km from the Bokaro origin
    return {
        "DELHI": 1250,
        "KOLKATA": 380,
        "PATNA": 450,
        "RAIPUR": 870,
        "HYDERABAD": 1400,
        "CHENNAI": 1800,
        "BANGALORE": 1650,
        "MUMBAI": 1200,
        "PUNE": 1100,
        "AHMEDABAD": 1100,
    }


@dataclass
class FleetConfig:
    """
    Deployment data for one planning run: the resource pool, lookup tables,
    order defaults and planning constraints.

    The defaults describe the reference deployment (three 45-wagon BOXN
    rakes of 59 t wagons, three platforms with 30/35/40 t cranes).

    Attributes
    ----------
    rakes                          : rake specs, in tie-break order
    platforms                      : platform specs; loading points map 1:1 to platforms
    product_loading_points         : product type -> loading point id
    default_loading_point          : used for product types missing from the table
    destination_distances_km       : destination (upper case) -> distance
    default_distance_km            : used for destinations missing from the table
    default_penalty_rate_per_day   : penalty for orders that carry none
    default_priority               : priority for orders that carry none
    default_due_days               : due date offset (days from now) for orders that carry none
    default_preferred_mode         : preferred mode for orders that carry none
    origin                         : dispatch origin reported on every allocation
    min_rake_utilization_percent   : efficiency target reported by the KPIs
    max_rakes_per_day_overall      : max distinct rakes a single plan may open
    allow_multi_destination_rakes  : allow a rake to serve several destinations
    cost_weight, sla_weight        : informational weights carried with the constraints
    rail_vs_road_bias              : informational bias label
    road_fallback_for_rail_orders  : divert rail-only orders to road instead of
                                     reporting them undeliverable
    """
    rakes: List[RakeSpec] = field(default_factory=_reference_rakes)
    platforms: List[PlatformSpec] = field(default_factory=_reference_platforms)
    product_loading_points: Dict[str, str] = field(default_factory=_reference_loading_points)
    default_loading_point: str = "LP1"
    destination_distances_km: Dict[str, float] = field(default_factory=_reference_distances)
    default_distance_km: float = 1000.0
    default_penalty_rate_per_day: float = 600.0
    default_priority: str = "Medium"
    default_due_days: int = 3
    default_preferred_mode: str = "rail"
    origin: str = "BOKARO"
    min_rake_utilization_percent: float = 86.0
    max_rakes_per_day_overall: int = 3
    allow_multi_destination_rakes: bool = False
    cost_weight: float = 0.6
    sla_weight: float = 0.4
    rail_vs_road_bias: str = "rail_first"
    road_fallback_for_rail_orders: bool = False


@dataclass
class CostRates:
    """
    Tariffs and thresholds of the cost and SLA model.

    Rail transport is rail_rate_per_tonne_km x tonnes x km; road uses
    road_rate_per_tonne_km. Idle freight is charged on rail allocations whose
    rake utilization is below idle_freight_threshold_percent.
    """
    rail_rate_per_tonne_km: float = 1.4
    road_rate_per_tonne_km: float = 1.8
    loading_rate_per_tonne: float = 50.0
    idle_freight_threshold_percent: float = 70.0
    idle_freight_factor: float = 0.1
    rail_speed_kmph: float = 50.0
    rail_departure_hour: int = 10
    road_lead_hours: int = 2
    road_transit_days: int = 2
    high_utilization_percent: float = 85.0
    baseline_multiplier: float = 1.15
    demurrage_multiplier: float = 1.5
