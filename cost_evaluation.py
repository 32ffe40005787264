"""Cost and SLA arithmetic for single allocations.

Every function here is pure: results depend only on the arguments (the
allocation's own facts and the tariff set), so stored allocation fields can be
recomputed and audited at any time with :func:`recompute_costs`.

Timing model
------------
* Rail departs at ``rates.rail_departure_hour`` (10:00) on the planning day
  and travels ``ceil(distance_km / rail_speed_kmph)`` hours.
* Road departs ``road_lead_hours`` after the planning instant and arrives
  ``road_transit_days`` later.
* ``days_late = max(0, ceil((arrival - due) / 1 day))``; 0 is On-time, 1 is
  At-Risk and anything above is Late.

Cost model (rail)
-----------------
  transport    = qty * distance_km * rail_rate
  loading      = qty * loading_rate
  penalty      = days_late * penalty_rate * qty        (only when late)
  idle_freight = transport * idle_factor                (rake util < threshold)
  total        = transport + loading + penalty + idle_freight

Road carries transport (road rate) and loading only.
"""
from __future__ import annotations

import math
from datetime import datetime, timedelta
from typing import Tuple

from allocation_types import CostBreakdown, RakePlanItem, SlaStatus
from datatypes import CostRates

_DAY_SECONDS = 24 * 60 * 60


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO date or datetime into a naive local datetime.

    Date-only strings resolve to midnight. Offset-aware values are converted
    to local time so they compare with the naive planning clock.

    Raises:
        ValueError: If the string is not ISO formatted.
    """
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Expected an ISO date string, got {value!r}")
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


def rail_departure(now: datetime, rates: CostRates) -> datetime:
    return now.replace(hour=rates.rail_departure_hour, minute=0, second=0, microsecond=0)


def rail_transit_hours(distance_km: float, rates: CostRates) -> int:
    return math.ceil(distance_km / rates.rail_speed_kmph)


def road_departure(now: datetime, rates: CostRates) -> datetime:
    return now + timedelta(hours=rates.road_lead_hours)


def days_late(arrival: datetime, due: datetime) -> int:
    """Whole days (rounded up) by which arrival misses the due instant; never negative."""
    diff = (arrival - due).total_seconds() / _DAY_SECONDS
    return max(0, math.ceil(diff))


def sla_status(late_days: int) -> SlaStatus:
    if late_days == 0:
        return "On-time"
    if late_days <= 1:
        return "At-Risk"
    return "Late"


def rail_costs(
    qty: float,
    distance_km: float,
    late_days: int,
    penalty_rate_per_day: float,
    rake_util_pct: float,
    rates: CostRates,
) -> CostBreakdown:
    transport = qty * distance_km * rates.rail_rate_per_tonne_km
    loading = qty * rates.loading_rate_per_tonne
    penalty = late_days * penalty_rate_per_day * qty if late_days > 0 else 0.0
    idle = transport * rates.idle_freight_factor if rake_util_pct < rates.idle_freight_threshold_percent else 0.0
    return {
        "transport_cost": transport,
        "loading_cost": loading,
        "expected_penalty_cost": penalty,
        "idle_freight_cost": idle,
        "total_estimated_cost": transport + loading + penalty + idle,
    }


def road_costs(qty: float, distance_km: float, rates: CostRates) -> CostBreakdown:
    transport = qty * distance_km * rates.road_rate_per_tonne_km
    loading = qty * rates.loading_rate_per_tonne
    return {
        "transport_cost": transport,
        "loading_cost": loading,
        "expected_penalty_cost": 0.0,
        "idle_freight_cost": 0.0,
        "total_estimated_cost": transport + loading,
    }


def rail_schedule(now: datetime, distance_km: float, due: datetime, rates: CostRates) -> Tuple[datetime, datetime, int, int]:
    """Return (departure, arrival, transit_hours, days_late) for a rail movement."""
    departure = rail_departure(now, rates)
    transit = rail_transit_hours(distance_km, rates)
    arrival = departure + timedelta(hours=transit)
    return departure, arrival, transit, days_late(arrival, due)


def road_schedule(now: datetime, due: datetime, rates: CostRates) -> Tuple[datetime, datetime, int, int]:
    """Return (departure, arrival, transit_hours, days_late) for a road movement."""
    departure = road_departure(now, rates)
    arrival = departure + timedelta(days=rates.road_transit_days)
    return departure, arrival, rates.road_transit_days * 24, days_late(arrival, due)


def recompute_costs(item: RakePlanItem, rates: CostRates) -> CostBreakdown:
    """Recompute the cost fields of a committed allocation from its own facts."""
    if item["assigned_mode"] == "road":
        return road_costs(item["allocated_quantity_tonnes"], item["distance_km"], rates)
    return rail_costs(
        item["allocated_quantity_tonnes"],
        item["distance_km"],
        item["days_late"],
        item["penalty_rate_per_day"],
        item["utilization_percent_for_rake"],
        rates,
    )
