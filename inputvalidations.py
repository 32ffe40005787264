from typing import List

from datatypes import CostRates, FleetConfig
from domain_types import InternalModel


def validate_fleet_config(fleet: FleetConfig) -> None:
	"""Validate the structural consistency of a fleet configuration.

	Parameters
	----------
	fleet : FleetConfig
		Rakes, platforms, lookup tables and constraints for one planning run.

	Raises
	------
	TypeError
		If fleet is not a FleetConfig.
	AssertionError
		If core shape/range constraints fail (empty pools, nonpositive capacities).
	ValueError
		If identifiers are duplicated or lookup tables reference unknown loading points.
	"""
	if not isinstance(fleet, FleetConfig):
		raise TypeError("fleet must be a FleetConfig instance.")

	if not fleet.rakes:
		raise AssertionError("fleet must define at least one rake")
	if not fleet.platforms:
		raise AssertionError("fleet must define at least one platform")

	rake_ids = [r.rake_id for r in fleet.rakes]
	if len(set(rake_ids)) != len(rake_ids):
		raise ValueError(f"rake ids must be unique: {rake_ids}")
	for r in fleet.rakes:
		if not (isinstance(r.total_wagons, int) and r.total_wagons > 0):
			raise AssertionError(f"rake '{r.rake_id}' must have a positive integer wagon count")
		if not r.wagon_capacity_tonnes > 0:
			raise AssertionError(f"rake '{r.rake_id}' must have a positive wagon capacity")

	platform_ids = [p.platform_id for p in fleet.platforms]
	if len(set(platform_ids)) != len(platform_ids):
		raise ValueError(f"platform ids must be unique: {platform_ids}")
	loading_points = [p.loading_point_id for p in fleet.platforms]
	if len(set(loading_points)) != len(loading_points):
		raise ValueError(f"loading points must map 1:1 to platforms: {loading_points}")
	for p in fleet.platforms:
		if not p.crane_capacity_tonnes > 0:
			raise AssertionError(f"platform '{p.platform_id}' must have a positive crane capacity")

	known_lps = set(loading_points)
	for product, lp in fleet.product_loading_points.items():
		if lp not in known_lps:
			raise ValueError(f"product type '{product}' maps to unknown loading point '{lp}'")
	if fleet.default_loading_point not in known_lps:
		raise ValueError(f"default_loading_point '{fleet.default_loading_point}' is not a known loading point")

	if fleet.default_distance_km <= 0:
		raise AssertionError("default_distance_km must be positive")
	if fleet.default_penalty_rate_per_day < 0:
		raise AssertionError("default_penalty_rate_per_day must be non-negative")
	if fleet.default_preferred_mode not in ("rail", "road", "either"):
		raise ValueError(f"default_preferred_mode must be rail, road or either; got {fleet.default_preferred_mode!r}")
	if not (isinstance(fleet.max_rakes_per_day_overall, int) and fleet.max_rakes_per_day_overall > 0):
		raise AssertionError("max_rakes_per_day_overall must be a positive int")


def validate_cost_rates(rates: CostRates) -> None:
	"""Validate cost tariffs and thresholds.

	Raises
	------
	TypeError
		If rates is not a CostRates.
	ValueError
		If any rate is negative or the rail speed is not positive.
	"""
	if not isinstance(rates, CostRates):
		raise TypeError("rates must be a CostRates instance.")
	if rates.rail_speed_kmph <= 0:
		raise ValueError("rail_speed_kmph must be > 0")
	for name in (
		"rail_rate_per_tonne_km",
		"road_rate_per_tonne_km",
		"loading_rate_per_tonne",
		"idle_freight_factor",
		"road_transit_days",
		"road_lead_hours",
		"baseline_multiplier",
		"demurrage_multiplier",
	):
		if getattr(rates, name) < 0:
			raise ValueError(f"{name} must be non-negative")
	if not 0 <= rates.rail_departure_hour <= 23:
		raise ValueError("rail_departure_hour must be within 0..23")


def collect_model_errors(model: InternalModel) -> List[str]:
	"""Return the structural problems of a built model (empty list when sound).

	An empty order list is not a problem: it plans to an empty result.
	"""
	errors: List[str] = []
	if not model.get("rakes"):
		errors.append("No rakes available")
	if not model.get("wagons"):
		errors.append("No wagons configured")
	if not model.get("platforms"):
		errors.append("No platforms available")

	rake_ids = {r["rake_id"] for r in model.get("rakes", [])}
	seen_wagons: set[str] = set()
	for w in model.get("wagons", []):
		if w["rake_id"] not in rake_ids:
			errors.append(f"Wagon {w['wagon_id']} references unknown rake {w['rake_id']}")
		if w["wagon_id"] in seen_wagons:
			errors.append(f"Duplicate wagon id: {w['wagon_id']}")
		seen_wagons.add(w["wagon_id"])
		if w["max_capacity_tonnes"] <= 0:
			errors.append(f"Wagon {w['wagon_id']} has nonpositive capacity")

	seen_orders: set[str] = set()
	for o in model.get("orders", []):
		if o["order_id"] in seen_orders:
			errors.append(f"Duplicate order id: {o['order_id']}")
		seen_orders.add(o["order_id"])
	return errors


def validate_internal_model(model: InternalModel) -> None:
	"""Raise ValueError listing (up to five) structural problems of the model."""
	errors = collect_model_errors(model)
	if errors:
		raise ValueError(f"{len(errors)} validation issues found: " + "; ".join(errors[:5]))
