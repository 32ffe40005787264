from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta
from typing import Any, Iterable, List, Optional, Tuple

from cost_evaluation import parse_timestamp
from datatypes import FleetConfig
from domain_types import InternalModel, Order, OrderRecord, Platform, PlanningConstraints, Rake, Wagon
from inputvalidations import validate_fleet_config

logger = logging.getLogger(__name__)

MANDATORY_FIELDS: Tuple[str, ...] = ("order_id", "customer_name", "destination", "quantity_tonnes")
PREFERRED_MODES: Tuple[str, ...] = ("rail", "road", "either")


def _present(value: Any) -> bool:
	return value is not None and not (isinstance(value, str) and value.strip() == "")


def normalize_customer_id(name: str) -> str:
	slug = re.sub(r"[^A-Za-z0-9_]", "", re.sub(r"\s+", "_", name)).upper()
	return "CUST_" + slug[:20]


def normalize_material_id(product_type: str, grade: str) -> str:
	return f"MAT_{product_type[:4].upper()}_{grade[:6].upper()}"


def _positive_float(value: Any) -> Optional[float]:
	try:
		out = float(value)
	except (TypeError, ValueError):
		return None
	return out if out > 0 else None


def build_order(row: OrderRecord, index: int, fleet: FleetConfig, now: datetime) -> Optional[Order]:
	"""Build an enriched Order from one raw row, or None if the row is unusable.

	Parameters
	----------
	row : OrderRecord
		Raw row; needs order_id, customer_name, destination and quantity_tonnes.
	index : int
		Row position, used in warnings.
	fleet : FleetConfig
		Supplies the defaults (priority, due offset, mode, distance table, penalty rate).
	now : datetime
		Planning instant; the default due date is now + fleet.default_due_days.

	Returns
	-------
	Optional[Order]
		None (with a logged warning) when a mandatory field is missing or the
		quantity, due date or preferred mode is unusable.
	"""
	missing = [k for k in MANDATORY_FIELDS if not _present(row.get(k))]
	if missing:
		logger.warning(f"Row {index}: missing mandatory field(s) {missing}. Skipping.")
		return None

	quantity = _positive_float(row["quantity_tonnes"])
	if quantity is None:
		logger.warning(f"Row {index}: quantity_tonnes must be a positive number; got {row['quantity_tonnes']!r}. Skipping.")
		return None

	due_raw = row.get("due_date")
	if _present(due_raw):
		try:
			parse_timestamp(str(due_raw))
		except ValueError:
			logger.warning(f"Row {index}: invalid due_date {due_raw!r}. Skipping.")
			return None
		due_date = str(due_raw).strip()
	else:
		due_date = (now + timedelta(days=fleet.default_due_days)).date().isoformat()

	mode_raw = row.get("preferred_mode")
	preferred_mode = str(mode_raw).strip().lower() if _present(mode_raw) else fleet.default_preferred_mode
	if preferred_mode not in PREFERRED_MODES:
		logger.warning(f"Row {index}: unknown preferred_mode {mode_raw!r}. Skipping.")
		return None

	destination = str(row["destination"]).strip().upper()
	distance = _positive_float(row.get("distance_km")) if _present(row.get("distance_km")) else None
	if distance is None:
		distance = float(fleet.destination_distances_km.get(destination, fleet.default_distance_km))
	penalty = _positive_float(row.get("penalty_rate_per_day")) if _present(row.get("penalty_rate_per_day")) else None
	if penalty is None:
		penalty = float(fleet.default_penalty_rate_per_day)

	customer_name = str(row["customer_name"]).strip()
	product_type = str(row.get("product_type") or "").strip()
	grade = str(row.get("material_grade") or "").strip()
	priority = str(row["priority"]).strip() if _present(row.get("priority")) else fleet.default_priority

	return {
		"order_id": str(row["order_id"]).strip(),
		"customer_id": str(row["customer_id"]) if _present(row.get("customer_id")) else normalize_customer_id(customer_name),
		"customer_name": customer_name,
		"material_id": str(row["material_id"]) if _present(row.get("material_id")) else normalize_material_id(product_type, grade),
		"material_name": str(row["material_name"]) if _present(row.get("material_name")) else (
			f"{product_type} ({grade})" if grade else (product_type or "Unspecified")
		),
		"product_type": product_type,
		"destination": destination,
		"quantity_tonnes": quantity,
		"priority": priority,
		"due_date": due_date,
		"preferred_mode": preferred_mode,
		"penalty_rate_per_day": penalty,
		"partial_allowed": True,
		"distance_km": distance,
	}


def provision_fleet(fleet: FleetConfig, now: datetime) -> Tuple[List[Rake], List[Wagon], List[Platform]]:
	"""Materialize the configured rakes, wagons and platforms for one run."""
	available = now.isoformat(timespec="seconds")
	rakes: List[Rake] = []
	wagons: List[Wagon] = []
	for spec in fleet.rakes:
		rakes.append({
			"rake_id": spec.rake_id,
			"rake_type": spec.rake_type,
			"total_wagons": spec.total_wagons,
			"total_capacity_tonnes": spec.total_wagons * spec.wagon_capacity_tonnes,
			"current_location": spec.location,
			"available_from_time": available,
		})
		for i in range(1, spec.total_wagons + 1):
			wagons.append({
				"wagon_id": f"{spec.rake_id}-W{i}",
				"rake_id": spec.rake_id,
				"wagon_index": i,
				"wagon_type": spec.rake_type,
				"max_capacity_tonnes": spec.wagon_capacity_tonnes,
			})
	platforms: List[Platform] = [
		{
			"platform_id": p.platform_id,
			"platform_name": p.platform_name,
			"loading_point_id": p.loading_point_id,
			"crane_id": p.crane_id or f"CRANE-{p.platform_id}",
			"crane_capacity_tonnes": p.crane_capacity_tonnes,
			"max_rakes_at_once": p.max_rakes_at_once,
		}
		for p in fleet.platforms
	]
	return rakes, wagons, platforms


def planning_constraints(fleet: FleetConfig) -> PlanningConstraints:
	return {
		"min_rake_utilization_percent": fleet.min_rake_utilization_percent,
		"max_rakes_per_day_overall": fleet.max_rakes_per_day_overall,
		"allow_multi_destination_rakes": fleet.allow_multi_destination_rakes,
		"cost_weight": fleet.cost_weight,
		"sla_weight": fleet.sla_weight,
		"rail_vs_road_bias": fleet.rail_vs_road_bias,
		"road_fallback_for_rail_orders": fleet.road_fallback_for_rail_orders,
	}


def build_internal_model(
	rows: Iterable[OrderRecord],
	fleet: Optional[FleetConfig] = None,
	now: Optional[datetime] = None,
) -> InternalModel:
	"""Turn raw order rows into the internal planning model.

	Rows with defects are dropped with a warning; duplicate order ids keep the
	first row. The fleet comes from configuration, never from the rows.

	Raises
	------
	TypeError
		If rows is not a list of records (the whole run is aborted).
	"""
	if not isinstance(rows, list):
		raise TypeError(f"Orders input must be a list of records; got {type(rows).__name__}.")
	for idx, row in enumerate(rows):
		if not isinstance(row, dict):
			raise TypeError(f"Order row {idx} must be a record (dict); got {type(row).__name__}.")

	fleet = fleet if fleet is not None else FleetConfig()
	validate_fleet_config(fleet)
	now = now if now is not None else datetime.now()

	orders: List[Order] = []
	seen: set[str] = set()
	for idx, row in enumerate(rows):
		order = build_order(row, idx, fleet, now)
		if order is None:
			continue
		if order["order_id"] in seen:
			logger.warning(f"Row {idx}: duplicate order_id {order['order_id']!r}. Skipping.")
			continue
		seen.add(order["order_id"])
		orders.append(order)

	dropped = len(rows) - len(orders)
	if dropped:
		logger.warning(f"Dropped {dropped} of {len(rows)} order rows with defects")

	rakes, wagons, platforms = provision_fleet(fleet, now)
	return {
		"orders": orders,
		"rakes": rakes,
		"wagons": wagons,
		"platforms": platforms,
		"constraints": planning_constraints(fleet),
		"product_loading_points": dict(fleet.product_loading_points),
		"default_loading_point": fleet.default_loading_point,
		"origin": fleet.origin,
	}


def synthetic_order_records(now: Optional[datetime] = None) -> List[OrderRecord]:
	"""Six demo orders across five destinations and all four product types."""
	now = now if now is not None else datetime.now()

	def _due(days: int) -> str:
		return (now + timedelta(days=days)).date().isoformat()

	return [
		{"order_id": "ORD001", "customer_name": "ABC Pipes Ltd", "customer_location": "DELHI",
		 "product_type": "Coils", "material_grade": "IS513 CR1", "quantity_tonnes": 28.5,
		 "destination": "DELHI", "priority": "High", "due_date": _due(5), "preferred_mode": "rail"},
		{"order_id": "ORD002", "customer_name": "XYZ Industries", "customer_location": "KOLKATA",
		 "product_type": "Plates", "material_grade": "IS2062 E250", "quantity_tonnes": 35.2,
		 "destination": "KOLKATA", "priority": "Medium", "due_date": _due(4), "preferred_mode": "rail"},
		{"order_id": "ORD003", "customer_name": "Steel Solutions Inc", "customer_location": "PATNA",
		 "product_type": "Bars", "material_grade": "IS1786 Fe500", "quantity_tonnes": 42.0,
		 "destination": "PATNA", "priority": "High", "due_date": _due(3), "preferred_mode": "rail"},
		{"order_id": "ORD004", "customer_name": "Metro Construction", "customer_location": "RAIPUR",
		 "product_type": "Slabs", "material_grade": "IS2041", "quantity_tonnes": 50.0,
		 "destination": "RAIPUR", "priority": "Medium", "due_date": _due(6), "preferred_mode": "rail"},
		{"order_id": "ORD005", "customer_name": "ABC Pipes Ltd", "customer_location": "DELHI",
		 "product_type": "Coils", "material_grade": "IS513 CR1", "quantity_tonnes": 25.0,
		 "destination": "DELHI", "priority": "Medium", "due_date": _due(4), "preferred_mode": "rail"},
		{"order_id": "ORD006", "customer_name": "Industrial Supplies Ltd", "customer_location": "HYDERABAD",
		 "product_type": "Plates", "material_grade": "IS2062 E250", "quantity_tonnes": 30.5,
		 "destination": "HYDERABAD", "priority": "Low", "due_date": _due(7), "preferred_mode": "either"},
	]
