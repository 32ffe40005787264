"""Rake allocation (splittable orders) with a constraint-aware greedy pass.

Overview
========
Orders are sequenced once (priority, then due date) and then packed one by
one into wagons of a fixed rake fleet. An order may be split across as many
wagons as it needs; each (order, wagon) pairing becomes one allocation row.
Freight that finds no rail slot is diverted to road when the order permits
it, otherwise it is reported as undeliverable. Nothing is revisited once
committed: this is a single deterministic pass, not a global optimizer (see
``capacity_bound`` for a solver-proven upper bound to compare against).

Hard Constraints
----------------
1. Wagon capacity: a wagon's accumulated load never exceeds its max capacity.
2. Crane capacity: a single loading step never exceeds the crane capacity of
   the platform serving the order's product type.
3. Rake capacity: a rake at its total capacity takes no more freight.
4. Destination consolidation: with multi-destination rakes disabled, a rake
   carries the destination of its first allocation only.
5. Rake-count limit: at most ``max_rakes_per_day_overall`` distinct rakes
   are opened in one plan.

Candidate Selection
-------------------
Among every feasible (rake, wagon) pair the one with the *largest* spare wagon
capacity wins (spread load first, pack tightly later). Ties go to the rake
listed first in the fleet, then to the lowest wagon index; the scan visits
candidates in exactly that order and only replaces the incumbent on a
strictly larger spare capacity.

Result Classification Semantics
--------------------------------
* ``rake_plan``: rail allocations plus road diversions (one road row per
  order, for its whole remainder).
* ``undeliverable``: remainder of rail-only orders with no rail slot
  (reason ``no_rail_capacity``). Set ``road_fallback_for_rail_orders`` to
  divert those to road instead.
* ``fallback_applied``: when a non-empty order list produced no allocation at
  all, the plan is replaced by an all-road plan so every order is accounted
  for.

State
-----
All mutable planning state (wagon loads, rake loads, rake destinations,
opened rakes) lives in an :class:`AllocatorContext` created per call, so
concurrent plans in one process never share state.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from allocation_types import (
  CostBreakdown,
  RakePlanItem,
  RakePlanOutput,
  RiskAssessment,
  RiskFeatures,
  UndeliverableRow,
)
from capacity_bound import rail_tonnage_bound
from cost_evaluation import parse_timestamp, rail_costs, rail_schedule, road_costs, road_schedule, sla_status
from datatypes import CostRates, FleetConfig
from domain_types import InternalModel, Order, OrderRecord, Platform, Rake, Wagon
from explanations import generate_reason, plan_sentence, road_reason
from inputvalidations import validate_cost_rates, validate_internal_model
from kpi import order_outcomes, summarize_kpis
from model_builder import build_internal_model

logger = logging.getLogger(__name__)

EPS = 1e-9
PRIORITY_RANK: Dict[str, int] = {"High": 1, "Medium": 2, "Low": 3}
DEFAULT_RANK = PRIORITY_RANK["Medium"]
ROAD_MODES = ("road", "either")

Slot = Tuple[Rake, Wagon, Platform, float]
RiskAnnotator = Callable[[RiskFeatures], RiskAssessment]


def priority_rank(priority: str) -> int:
  return PRIORITY_RANK.get(priority, DEFAULT_RANK)


def sequence_orders(orders: Sequence[Order]) -> List[Order]:
  """Return orders by priority rank ascending, then due date ascending.

  The sort is stable, so orders equal on both keys keep their input order.
  Evaluated once per run; consuming capacity never re-sequences the queue.
  """
  return sorted(orders, key=lambda o: (priority_rank(o["priority"]), parse_timestamp(o["due_date"])))


class AllocatorContext:
  """Mutable state of one planning pass over a static resource snapshot."""

  def __init__(self, model: InternalModel) -> None:
    reference = FleetConfig()
    self.rakes: List[Rake] = list(model["rakes"])
    self.platforms: List[Platform] = list(model["platforms"])
    self.allow_multi_destination = bool(model["constraints"]["allow_multi_destination_rakes"])
    self.max_rakes = int(model["constraints"]["max_rakes_per_day_overall"])
    self.product_loading_points: Dict[str, str] = model.get(
      "product_loading_points", reference.product_loading_points
    )
    self.default_loading_point: str = model.get("default_loading_point", reference.default_loading_point)

    self.wagons_by_rake: Dict[str, List[Wagon]] = {r["rake_id"]: [] for r in self.rakes}
    for w in model["wagons"]:
      self.wagons_by_rake.setdefault(w["rake_id"], []).append(w)
    for ws in self.wagons_by_rake.values():
      ws.sort(key=lambda w: w["wagon_index"])

    self.wagon_load: Dict[str, float] = {w["wagon_id"]: 0.0 for w in model["wagons"]}
    self.rake_load: Dict[str, float] = {r["rake_id"]: 0.0 for r in self.rakes}
    self.rake_destinations: Dict[str, List[str]] = {}
    self.opened_rakes: List[str] = []

  def platform_for(self, product_type: str) -> Platform:
    """Platform serving a product type; unknown types use the default loading point."""
    lp = self.product_loading_points.get(product_type, self.default_loading_point)
    for p in self.platforms:
      if p["loading_point_id"] == lp:
        return p
    return self.platforms[0]

  def spare(self, wagon: Wagon) -> float:
    return wagon["max_capacity_tonnes"] - self.wagon_load[wagon["wagon_id"]]

  def rake_accepts(self, rake: Rake, destination: str) -> bool:
    rid = rake["rake_id"]
    if self.rake_load[rid] >= rake["total_capacity_tonnes"] - EPS:
      return False
    committed = self.rake_destinations.get(rid, [])
    if not self.allow_multi_destination and committed and destination not in committed:
      return False
    if rid not in self.opened_rakes and len(self.opened_rakes) >= self.max_rakes:
      return False
    return True

  def find_slot(self, order: Order, remaining: float) -> Optional[Slot]:
    """Best feasible (rake, wagon) for the order, or None when rail is exhausted."""
    platform = self.platform_for(order["product_type"])
    crane = platform["crane_capacity_tonnes"]
    best: Optional[Slot] = None
    best_spare = 0.0
    for rake in self.rakes:
      if not self.rake_accepts(rake, order["destination"]):
        continue
      rake_room = rake["total_capacity_tonnes"] - self.rake_load[rake["rake_id"]]
      for wagon in self.wagons_by_rake.get(rake["rake_id"], []):
        spare = self.spare(wagon)
        if spare <= EPS:
          continue
        qty = min(remaining, spare, crane, rake_room)
        if qty <= EPS:
          continue
        if best is None or spare > best_spare:
          best = (rake, wagon, platform, qty)
          best_spare = spare
    return best

  def commit(self, rake: Rake, wagon: Wagon, qty: float, destination: str) -> None:
    rid = rake["rake_id"]
    self.wagon_load[wagon["wagon_id"]] += qty
    self.rake_load[rid] += qty
    dests = self.rake_destinations.setdefault(rid, [])
    if destination not in dests:
      dests.append(destination)
    if rid not in self.opened_rakes:
      self.opened_rakes.append(rid)


def _base_item(order: Order, origin: str) -> Dict:
  return {
    "order_id": order["order_id"],
    "customer_name": order["customer_name"],
    "customer_id": order["customer_id"],
    "material_id": order["material_id"],
    "material_name": order["material_name"],
    "product_type": order["product_type"],
    "origin": origin,
    "destination": order["destination"],
    "priority": order["priority"],
    "due_date": order["due_date"],
    "distance_km": order["distance_km"],
    "penalty_rate_per_day": order["penalty_rate_per_day"],
  }


def _rail_item(
  order: Order,
  rake: Rake,
  wagon: Wagon,
  platform: Platform,
  qty: float,
  rake_load_after: float,
  now: datetime,
  rates: CostRates,
  origin: str,
) -> RakePlanItem:
  due = parse_timestamp(order["due_date"])
  departure, arrival, transit, late = rail_schedule(now, order["distance_km"], due, rates)
  wagon_util = (qty / wagon["max_capacity_tonnes"]) * 100.0
  rake_util = (rake_load_after / rake["total_capacity_tonnes"]) * 100.0
  costs: CostBreakdown = rail_costs(qty, order["distance_km"], late, order["penalty_rate_per_day"], rake_util, rates)
  item = _base_item(order, origin)
  item.update({
    "assigned_mode": "rail",
    "rake_id": rake["rake_id"],
    "wagon_id": wagon["wagon_id"],
    "wagon_index": wagon["wagon_index"],
    "platform_id": platform["platform_id"],
    "platform_name": platform["platform_name"],
    "crane_id": platform["crane_id"],
    "crane_capacity_tonnes": platform["crane_capacity_tonnes"],
    "allocated_quantity_tonnes": qty,
    "expected_departure_time": departure.isoformat(timespec="seconds"),
    "expected_arrival_time": arrival.isoformat(timespec="seconds"),
    "transit_hours": float(transit),
    "days_late": late,
    "utilization_percent_for_wagon": wagon_util,
    "utilization_percent_for_rake": rake_util,
    **costs,
    "sla_status": sla_status(late),
    "reason": generate_reason(order, rake, wagon, platform, wagon_util, rake_util, late, rates),
  })
  return item  # type: ignore[return-value]


def _road_item(
  order: Order,
  qty: float,
  platform: Platform,
  now: datetime,
  rates: CostRates,
  origin: str,
  fallback: bool = False,
) -> RakePlanItem:
  due = parse_timestamp(order["due_date"])
  departure, arrival, transit, late = road_schedule(now, due, rates)
  item = _base_item(order, origin)
  item.update({
    "assigned_mode": "road",
    "rake_id": "ROAD",
    "wagon_id": "N/A",
    "wagon_index": 0,
    "platform_id": platform["platform_id"],
    "platform_name": platform["platform_name"],
    "crane_id": "N/A",
    "crane_capacity_tonnes": 0.0,
    "allocated_quantity_tonnes": qty,
    "expected_departure_time": departure.isoformat(timespec="seconds"),
    "expected_arrival_time": arrival.isoformat(timespec="seconds"),
    "transit_hours": float(transit),
    "days_late": late,
    "utilization_percent_for_wagon": 0.0,
    "utilization_percent_for_rake": 0.0,
    **road_costs(qty, order["distance_km"], rates),
    "sla_status": sla_status(late),
    "reason": road_reason(fallback),
  })
  return item  # type: ignore[return-value]


def allocate_orders(
  model: InternalModel,
  now: datetime,
  rates: CostRates,
) -> Tuple[List[RakePlanItem], List[UndeliverableRow]]:
  """Run the greedy allocation pass.

  Returns:
    (allocations, undeliverable) where allocations are in commit order.
  """
  ctx = AllocatorContext(model)
  origin = model.get("origin", FleetConfig().origin)
  road_for_rail_orders = bool(model["constraints"].get("road_fallback_for_rail_orders", False))
  allocations: List[RakePlanItem] = []
  undeliverable: List[UndeliverableRow] = []

  for order in sequence_orders(model["orders"]):
    remaining = order["quantity_tonnes"]
    while remaining > EPS:
      slot = ctx.find_slot(order, remaining)
      if slot is None:
        platform = ctx.platform_for(order["product_type"])
        if order["preferred_mode"] in ROAD_MODES or road_for_rail_orders:
          allocations.append(_road_item(order, remaining, platform, now, rates, origin))
          logger.debug(f"{order['order_id']}: {remaining:.3f}t diverted to road")
        else:
          undeliverable.append({
            "order_id": order["order_id"],
            "destination": order["destination"],
            "preferred_mode": order["preferred_mode"],
            "requested_tonnes": order["quantity_tonnes"],
            "undelivered_tonnes": remaining,
            "reason": "no_rail_capacity",
          })
          logger.warning(
            f"{order['order_id']}: {remaining:.3f}t to {order['destination']} undeliverable "
            f"(no rail capacity, road not permitted)"
          )
        break

      rake, wagon, platform, qty = slot
      ctx.commit(rake, wagon, qty, order["destination"])
      allocations.append(
        _rail_item(order, rake, wagon, platform, qty, ctx.rake_load[rake["rake_id"]], now, rates, origin)
      )
      logger.debug(f"{order['order_id']}: {qty:.3f}t -> {wagon['wagon_id']} via {platform['platform_id']}")
      remaining -= qty

  return allocations, undeliverable


def build_road_fallback_plan(model: InternalModel, now: datetime, rates: CostRates) -> List[RakePlanItem]:
  """Every order fully by road; used when a plan would otherwise be empty."""
  ctx = AllocatorContext(model)
  origin = model.get("origin", FleetConfig().origin)
  return [
    _road_item(o, o["quantity_tonnes"], ctx.platform_for(o["product_type"]), now, rates, origin, fallback=True)
    for o in model["orders"]
  ]


def risk_features(order: Order, item: RakePlanItem, now: datetime) -> RiskFeatures:
  """Flat feature map consumed by an external risk scorer.

  Congestion, historical delay and season are not observed by the planner
  and are sent at their neutral values.
  """
  due = parse_timestamp(order["due_date"])
  return {
    "distance_km": float(order["distance_km"]),
    "transit_time_hours": float(item["transit_hours"]),
    "priority": float(priority_rank(order["priority"])),
    "material_weight": float(item["allocated_quantity_tonnes"]),
    "loading_point_congestion": 0.5,
    "route_historical_delays_pct": 0.12,
    "time_until_due_date_hours": (due - now).total_seconds() / 3600.0,
    "mode": 1.0 if item["assigned_mode"] == "rail" else 0.0,
    "season_factor": 1.0,
  }


def plan_rakes(
  model: InternalModel,
  now: Optional[datetime] = None,
  rates: Optional[CostRates] = None,
  *,
  risk_annotator: Optional[RiskAnnotator] = None,
  capacity_bound: bool = True,
  time_limit_s: float = 5.0,
) -> RakePlanOutput:
  """
  Produce a rake plan for a built model.

  Args:
    model: InternalModel from build_internal_model (or assembled by hand).
    now: Planning instant; rail departs at the configured hour of this day.
    rates: Cost tariffs; defaults to CostRates().
    risk_annotator: Optional external scorer; its result is attached to each
      allocation as ``risk`` and does not change costs.
    capacity_bound: Also solve the CP-SAT rail tonnage bound diagnostic.
    time_limit_s: Wall clock limit for that solve.

  Returns:
    RakePlanOutput (see allocation_types).

  Raises:
    ValueError: If the model fails structural validation.
  """
  validate_internal_model(model)
  now = now if now is not None else datetime.now()
  rates = rates if rates is not None else CostRates()
  validate_cost_rates(rates)

  orders = model["orders"]
  allocations, undeliverable = allocate_orders(model, now, rates)

  fallback_applied = False
  if orders and not allocations:
    logger.warning(f"No allocations produced for {len(orders)} orders; substituting all-road fallback plan")
    allocations = build_road_fallback_plan(model, now, rates)
    undeliverable = []
    fallback_applied = True

  if risk_annotator is not None:
    by_id = {o["order_id"]: o for o in orders}
    allocations = [
      {**a, "risk": risk_annotator(risk_features(by_id[a["order_id"]], a, now))}  # type: ignore[misc]
      for a in allocations
    ]

  result: RakePlanOutput = {
    "rake_plan": allocations,
    "kpi_summary": summarize_kpis(orders, allocations, undeliverable, model["rakes"], model["constraints"], rates),
    "natural_language_plan": [plan_sentence(a) for a in allocations],
    "undeliverable": undeliverable,
    "order_outcomes": order_outcomes(orders, allocations, undeliverable),
    "fallback_applied": fallback_applied,
  }
  if capacity_bound:
    result["capacity_bound"] = rail_tonnage_bound(
      orders, model["rakes"], model["constraints"], allocations, time_limit_s=time_limit_s
    )

  kpis = result["kpi_summary"]
  logger.info(
    f"Planned {kpis['total_orders']} orders: {kpis['rail_allocation_count']} rail / "
    f"{kpis['road_allocation_count']} road allocations, {kpis['orders_undeliverable']} undeliverable, "
    f"{kpis['rakes_used']} rakes, total cost {kpis['total_estimated_cost']:.0f}"
  )
  return result


def plan_from_records(
  rows: List[OrderRecord],
  fleet: Optional[FleetConfig] = None,
  now: Optional[datetime] = None,
  rates: Optional[CostRates] = None,
  **kwargs,
) -> RakePlanOutput:
  """Build the model from raw rows and plan it (see plan_rakes for kwargs)."""
  now = now if now is not None else datetime.now()
  model = build_internal_model(rows, fleet, now)
  return plan_rakes(model, now, rates, **kwargs)
