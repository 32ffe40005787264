"""
Unit tests for the greedy allocator in rake_allocation.py.

Covers:
- Splitting an order across wagons when the crane limit is below the order size.
- Conservation of order quantity across allocations.
- Wagon and crane capacity never exceeded.
- Destination consolidation with and without multi-destination rakes.
- Explicit tie-breaking (largest spare capacity, then rake order, then wagon index).
- Priority and due-date sequencing.
- Road diversion, undeliverable reporting and the all-road fallback plan.
"""
from __future__ import annotations

import unittest
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from cost_evaluation import recompute_costs
from datatypes import CostRates, FleetConfig, RakeSpec
from domain_types import OrderRecord
from model_builder import build_internal_model
from rake_allocation import (
    AllocatorContext,
    allocate_orders,
    plan_rakes,
    priority_rank,
    risk_features,
    sequence_orders,
)

NOW = datetime(2025, 8, 21, 8, 0, 0)


def _row(
    order_id: str,
    qty: float,
    destination: str = "DELHI",
    priority: str = "Medium",
    due_days: int = 3,
    mode: str = "rail",
    product: str = "Coils",
    distance: Optional[float] = None,
) -> OrderRecord:
    """Build a raw order row.

    Args:
        order_id: External order identifier.
        qty: Tonnes requested.
        destination: Destination city.
        priority: High, Medium or Low.
        due_days: Due date offset from NOW, in days.
        mode: Preferred mode (rail, road, either).
        product: Product type, which selects the loading platform.
        distance: Optional explicit distance; otherwise the destination table applies.

    Returns:
        An OrderRecord suitable for build_internal_model().
    """
    row: OrderRecord = {
        "order_id": order_id,
        "customer_name": f"Customer {order_id}",
        "destination": destination,
        "quantity_tonnes": qty,
        "priority": priority,
        "due_date": (NOW + timedelta(days=due_days)).date().isoformat(),
        "preferred_mode": mode,
        "product_type": product,
        "material_grade": "IS2062",
    }
    if distance is not None:
        row["distance_km"] = distance
    return row


def _fleet(
    rakes: List[RakeSpec],
    multi: bool = False,
    max_rakes: int = 3,
    road_for_rail: bool = False,
) -> FleetConfig:
    return FleetConfig(
        rakes=rakes,
        allow_multi_destination_rakes=multi,
        max_rakes_per_day_overall=max_rakes,
        road_fallback_for_rail_orders=road_for_rail,
    )


def _plan(rows: List[OrderRecord], fleet: Optional[FleetConfig] = None):
    model = build_internal_model(rows, fleet or FleetConfig(), NOW)
    return model, plan_rakes(model, NOW, capacity_bound=False)


class TestExampleScenarios(unittest.TestCase):
    def test_order_split_by_crane_capacity(self) -> None:
        """40 t of Coils with a 30 t crane is split across two wagons of one rake."""
        fleet = _fleet([RakeSpec("R1")])
        _, plan = _plan([_row("O1", 40, "DELHI", due_days=3)], fleet)
        items = plan["rake_plan"]

        self.assertGreaterEqual(len(items), 2)
        self.assertTrue(all(a["assigned_mode"] == "rail" for a in items))
        self.assertTrue(all(a["allocated_quantity_tonnes"] <= 30 for a in items))
        self.assertAlmostEqual(sum(a["allocated_quantity_tonnes"] for a in items), 40.0)
        self.assertEqual([a["wagon_id"] for a in items], ["R1-W1", "R1-W2"])
        self.assertTrue(all(a["sla_status"] == "On-time" for a in items))
        self.assertEqual(items[0]["transit_hours"], 25.0)
        self.assertAlmostEqual(sum(a["transport_cost"] for a in items), 70000.0)

    def test_road_preferred_order_when_rakes_full(self) -> None:
        """A road-preferring order finds every rake full and goes by road in one row."""
        fleet = _fleet([RakeSpec("R1", total_wagons=1, wagon_capacity_tonnes=20)])
        rows = [
            _row("FILL", 20, "DELHI", priority="High"),
            _row("O2", 15, "DELHI", priority="Low", mode="road", distance=500),
        ]
        _, plan = _plan(rows, fleet)

        road = [a for a in plan["rake_plan"] if a["order_id"] == "O2"]
        self.assertEqual(len(road), 1)
        self.assertEqual(road[0]["assigned_mode"], "road")
        self.assertEqual(road[0]["rake_id"], "ROAD")
        self.assertEqual(road[0]["allocated_quantity_tonnes"], 15)
        self.assertAlmostEqual(road[0]["transport_cost"], 15 * 500 * 1.8)
        self.assertEqual(road[0]["expected_penalty_cost"], 0)
        self.assertAlmostEqual(road[0]["total_estimated_cost"], 15 * 500 * 1.8 + 15 * 50)

        outcome = {o["order_id"]: o for o in plan["order_outcomes"]}["O2"]
        self.assertEqual(outcome["status"], "road")
        self.assertEqual(outcome["rail_percent"], 0.0)


class TestAllocationInvariants(unittest.TestCase):
    def setUp(self) -> None:
        self.rows = [
            _row("A1", 95.5, "DELHI", priority="High", product="Coils"),
            _row("A2", 120.0, "DELHI", priority="Medium", product="Plates"),
            _row("B1", 61.0, "PATNA", priority="High", product="Bars"),
            _row("B2", 33.3, "PATNA", priority="Low", product="Slabs"),
            _row("C1", 12.0, "KOLKATA", priority="Medium", product="Wire"),
            _row("C2", 240.0, "KOLKATA", priority="Low", product="Coils", mode="either"),
        ]
        self.fleet = _fleet([RakeSpec(f"R{i}", total_wagons=4) for i in range(1, 5)], max_rakes=4)
        self.model, self.plan = _plan(self.rows, self.fleet)

    def test_conservation_per_order(self) -> None:
        allocated: Dict[str, float] = defaultdict(float)
        for a in self.plan["rake_plan"]:
            allocated[a["order_id"]] += a["allocated_quantity_tonnes"]
        for u in self.plan["undeliverable"]:
            allocated[u["order_id"]] += u["undelivered_tonnes"]
        for o in self.model["orders"]:
            self.assertAlmostEqual(allocated[o["order_id"]], o["quantity_tonnes"], places=6)

    def test_wagon_and_crane_capacity(self) -> None:
        crane = {p["platform_id"]: p["crane_capacity_tonnes"] for p in self.model["platforms"]}
        wagon_cap = {w["wagon_id"]: w["max_capacity_tonnes"] for w in self.model["wagons"]}
        wagon_load: Dict[str, float] = defaultdict(float)
        for a in self.plan["rake_plan"]:
            if a["assigned_mode"] != "rail":
                continue
            self.assertGreater(a["allocated_quantity_tonnes"], 0)
            self.assertLessEqual(a["allocated_quantity_tonnes"], crane[a["platform_id"]] + 1e-9)
            wagon_load[a["wagon_id"]] += a["allocated_quantity_tonnes"]
        for wid, load in wagon_load.items():
            self.assertLessEqual(load, wagon_cap[wid] + 1e-9)

    def test_single_destination_per_rake(self) -> None:
        dests: Dict[str, set] = defaultdict(set)
        for a in self.plan["rake_plan"]:
            if a["assigned_mode"] == "rail":
                dests[a["rake_id"]].add(a["destination"])
        self.assertTrue(dests)
        for rake_id, ds in dests.items():
            self.assertEqual(len(ds), 1, f"{rake_id} serves {ds}")

    def test_cost_fields_recompute_exactly(self) -> None:
        rates = CostRates()
        for a in self.plan["rake_plan"]:
            for k, v in recompute_costs(a, rates).items():
                self.assertEqual(a[k], v)

    def test_unknown_product_uses_default_platform(self) -> None:
        wire = [a for a in self.plan["rake_plan"] if a["order_id"] == "C1"]
        self.assertTrue(wire)
        self.assertTrue(all(a["platform_id"] == "P1" for a in wire))


class TestCandidateSelection(unittest.TestCase):
    def test_largest_spare_wagon_then_rake_order(self) -> None:
        """Second order skips the partly loaded wagon and stays on the first rake."""
        fleet = _fleet([RakeSpec("R1", total_wagons=3), RakeSpec("R2", total_wagons=3)])
        rows = [
            _row("O1", 10, "DELHI", priority="High"),
            _row("O2", 5, "DELHI", priority="Medium"),
        ]
        _, plan = _plan(rows, fleet)
        wagons = [a["wagon_id"] for a in plan["rake_plan"]]
        self.assertEqual(wagons, ["R1-W1", "R1-W2"])

    def test_tie_break_is_deterministic(self) -> None:
        fleet = _fleet([RakeSpec("R1", total_wagons=2), RakeSpec("R2", total_wagons=2)], multi=True)
        rows = [_row(f"O{i}", 7, "DELHI") for i in range(4)]
        _, first = _plan(rows, fleet)
        _, second = _plan(rows, fleet)
        self.assertEqual(
            [a["wagon_id"] for a in first["rake_plan"]],
            [a["wagon_id"] for a in second["rake_plan"]],
        )
        # each order takes the first wagon that is still empty
        self.assertEqual([a["wagon_id"] for a in first["rake_plan"]], ["R1-W1", "R1-W2", "R2-W1", "R2-W2"])

    def test_context_starts_empty_per_run(self) -> None:
        model = build_internal_model([_row("O1", 10)], FleetConfig(), NOW)
        allocate_orders(model, NOW, CostRates())
        ctx = AllocatorContext(model)
        self.assertTrue(all(v == 0.0 for v in ctx.wagon_load.values()))
        self.assertEqual(ctx.rake_destinations, {})


class TestDestinationConsolidation(unittest.TestCase):
    def test_third_destination_undeliverable_without_multi(self) -> None:
        fleet = _fleet([RakeSpec("R1", total_wagons=2), RakeSpec("R2", total_wagons=2)])
        rows = [
            _row("D1", 10, "DELHI", priority="High"),
            _row("P1", 10, "PATNA", priority="High"),
            _row("K1", 10, "KOLKATA", priority="Low"),
        ]
        _, plan = _plan(rows, fleet)
        self.assertEqual([u["order_id"] for u in plan["undeliverable"]], ["K1"])
        self.assertEqual(plan["undeliverable"][0]["reason"], "no_rail_capacity")
        self.assertEqual(plan["undeliverable"][0]["undelivered_tonnes"], 10)
        status = {o["order_id"]: o["status"] for o in plan["order_outcomes"]}
        self.assertEqual(status["K1"], "undeliverable")
        self.assertEqual(plan["kpi_summary"]["orders_undeliverable"], 1)
        self.assertFalse(plan["fallback_applied"])

    def test_multi_destination_allows_sharing(self) -> None:
        fleet = _fleet([RakeSpec("R1", total_wagons=2), RakeSpec("R2", total_wagons=2)], multi=True)
        rows = [
            _row("D1", 10, "DELHI", priority="High"),
            _row("P1", 10, "PATNA", priority="High"),
            _row("K1", 10, "KOLKATA", priority="Low"),
        ]
        _, plan = _plan(rows, fleet)
        self.assertEqual(plan["undeliverable"], [])
        self.assertEqual(len(plan["rake_plan"]), 3)

    def test_road_fallback_flag_diverts_rail_orders(self) -> None:
        fleet = _fleet([RakeSpec("R1", total_wagons=2)], road_for_rail=True)
        rows = [_row("D1", 10, "DELHI", priority="High"), _row("P1", 10, "PATNA")]
        _, plan = _plan(rows, fleet)
        self.assertEqual(plan["undeliverable"], [])
        modes = {a["order_id"]: a["assigned_mode"] for a in plan["rake_plan"]}
        self.assertEqual(modes, {"D1": "rail", "P1": "road"})

    def test_rake_count_limit(self) -> None:
        fleet = _fleet([RakeSpec("R1", total_wagons=2), RakeSpec("R2", total_wagons=2)], max_rakes=1)
        rows = [_row("D1", 10, "DELHI", priority="High"), _row("P1", 10, "PATNA", mode="either")]
        _, plan = _plan(rows, fleet)
        self.assertEqual(plan["kpi_summary"]["rakes_used"], 1)
        modes = {a["order_id"]: a["assigned_mode"] for a in plan["rake_plan"]}
        self.assertEqual(modes["P1"], "road")


class TestPartialAndMixedOrders(unittest.TestCase):
    def test_rail_then_road_remainder(self) -> None:
        fleet = _fleet([RakeSpec("R1", total_wagons=2, wagon_capacity_tonnes=25)])
        _, plan = _plan([_row("O1", 80, "DELHI", mode="either")], fleet)
        rail = [a for a in plan["rake_plan"] if a["assigned_mode"] == "rail"]
        road = [a for a in plan["rake_plan"] if a["assigned_mode"] == "road"]
        self.assertAlmostEqual(sum(a["allocated_quantity_tonnes"] for a in rail), 50.0)
        self.assertEqual(len(road), 1)
        self.assertAlmostEqual(road[0]["allocated_quantity_tonnes"], 30.0)
        outcome = plan["order_outcomes"][0]
        self.assertEqual(outcome["status"], "mixed")
        self.assertAlmostEqual(outcome["rail_percent"], 62.5)

    def test_rail_then_undeliverable_remainder(self) -> None:
        fleet = _fleet([RakeSpec("R1", total_wagons=1, wagon_capacity_tonnes=25)])
        _, plan = _plan([_row("O1", 40, "DELHI")], fleet)
        self.assertEqual(plan["order_outcomes"][0]["status"], "partially_undeliverable")
        self.assertAlmostEqual(plan["undeliverable"][0]["undelivered_tonnes"], 15.0)
        self.assertEqual(plan["undeliverable"][0]["requested_tonnes"], 40)


class TestSequencing(unittest.TestCase):
    def test_priority_rank_defaults_to_medium(self) -> None:
        self.assertEqual(priority_rank("High"), 1)
        self.assertEqual(priority_rank("Low"), 3)
        self.assertEqual(priority_rank("Urgent"), 2)

    def test_priority_then_due_date(self) -> None:
        model = build_internal_model(
            [
                _row("L", 5, priority="Low", due_days=1),
                _row("M_late", 5, priority="Medium", due_days=6),
                _row("H", 5, priority="High", due_days=9),
                _row("M_soon", 5, priority="Medium", due_days=2),
                _row("X", 5, priority="Whatever", due_days=4),
            ],
            FleetConfig(),
            NOW,
        )
        self.assertEqual([o["order_id"] for o in sequence_orders(model["orders"])], ["H", "M_soon", "X", "M_late", "L"])

    def test_higher_priority_committed_first(self) -> None:
        rows = [_row("LOW", 20, priority="Low"), _row("HIGH", 20, priority="High")]
        _, plan = _plan(rows)
        ids = [a["order_id"] for a in plan["rake_plan"]]
        self.assertLess(ids.index("HIGH"), ids.index("LOW"))


class TestPlanLevelBehaviour(unittest.TestCase):
    def test_empty_plan_triggers_road_fallback(self) -> None:
        model = build_internal_model([_row("O1", 10), _row("O2", 5, "PATNA")], FleetConfig(), NOW)
        for p in model["platforms"]:
            p["crane_capacity_tonnes"] = 0.0
        plan = plan_rakes(model, NOW, capacity_bound=False)
        self.assertTrue(plan["fallback_applied"])
        self.assertEqual(plan["undeliverable"], [])
        self.assertEqual([a["assigned_mode"] for a in plan["rake_plan"]], ["road", "road"])
        self.assertTrue(plan["rake_plan"][0]["reason"].startswith("Fallback"))
        self.assertEqual(plan["kpi_summary"]["orders_served_by_road"], 2)

    def test_no_orders_yields_empty_plan(self) -> None:
        model = build_internal_model([], FleetConfig(), NOW)
        plan = plan_rakes(model, NOW, capacity_bound=False)
        self.assertEqual(plan["rake_plan"], [])
        self.assertFalse(plan["fallback_applied"])
        self.assertEqual(plan["kpi_summary"]["total_orders"], 0)

    def test_invalid_model_raises(self) -> None:
        model = build_internal_model([_row("O1", 10)], FleetConfig(), NOW)
        model["wagons"] = []
        with self.assertRaises(ValueError):
            plan_rakes(model, NOW, capacity_bound=False)

    def test_one_sentence_per_allocation(self) -> None:
        _, plan = _plan([_row("O1", 40), _row("O2", 10, "PATNA", mode="either")])
        self.assertEqual(len(plan["natural_language_plan"]), len(plan["rake_plan"]))
        self.assertTrue(plan["natural_language_plan"][0]["sentence"].startswith("ORDER #O1"))

    def test_risk_annotator_is_post_hoc(self) -> None:
        seen: List[Dict[str, float]] = []

        def scorer(features: Dict[str, float]):
            seen.append(features)
            return {"risk_flag": "LOW", "cost_multiplier": 1.0, "delay_probability": 0.1}

        model = build_internal_model([_row("O1", 40)], FleetConfig(), NOW)
        plain = plan_rakes(model, NOW, capacity_bound=False)
        annotated = plan_rakes(model, NOW, capacity_bound=False, risk_annotator=scorer)
        self.assertEqual(len(seen), len(annotated["rake_plan"]))
        self.assertEqual(annotated["rake_plan"][0]["risk"]["risk_flag"], "LOW")
        self.assertEqual(
            [a["total_estimated_cost"] for a in plain["rake_plan"]],
            [a["total_estimated_cost"] for a in annotated["rake_plan"]],
        )
        self.assertEqual(seen[0]["mode"], 1.0)
        self.assertEqual(seen[0]["priority"], 2.0)

    def test_risk_features_shape(self) -> None:
        model = build_internal_model([_row("O1", 10, due_days=2)], FleetConfig(), NOW)
        plan = plan_rakes(model, NOW, capacity_bound=False)
        feats = risk_features(model["orders"][0], plan["rake_plan"][0], NOW)
        self.assertEqual(
            set(feats),
            {
                "distance_km", "transit_time_hours", "priority", "material_weight",
                "loading_point_congestion", "route_historical_delays_pct",
                "time_until_due_date_hours", "mode", "season_factor",
            },
        )
        self.assertAlmostEqual(feats["time_until_due_date_hours"], 40.0)


if __name__ == "__main__":
    unittest.main()
