"""
Data loading utilities for rake allocation planning.

Provides loaders that return the raw order rows defined in `domain_types`
(OrderRecord) and the configuration dataclasses defined in `datatypes`
(FleetConfig, CostRates).
"""
import json
import os
from dataclasses import fields
from typing import Any, Dict, List, cast

from datatypes import CostRates, FleetConfig, PlatformSpec, RakeSpec
from domain_types import OrderRecord
from inputvalidations import validate_cost_rates, validate_fleet_config


def _read_json(path: str, label: str) -> Any:
    if not os.path.isfile(path):
        raise FileNotFoundError(f"{label} file not found: {path}")
    with open(path, 'r', encoding='utf-8') as f:
        try:
            return json.load(f)
        except json.JSONDecodeError as exc:
            raise ValueError(f"Invalid JSON in {label} file: {path}") from exc


def load_order_records(path: str) -> List[OrderRecord]:
    """Load raw order rows from a JSON file.

    Args:
        path: Path to a JSON file holding either a list of order objects or an
              object with an "orders" list. Row-level defects (missing
              mandatory fields) are not checked here; the model builder drops
              such rows with a warning.

    Returns:
        A list of OrderRecord-typed dictionaries.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the JSON is invalid or does not hold a list of objects.
    """
    data = _read_json(path, "Orders")
    if isinstance(data, dict):
        data = data.get("orders")
    if not isinstance(data, list):
        raise ValueError("Orders data must be a list, or an object with an 'orders' list.")
    for idx, row in enumerate(data):
        if not isinstance(row, dict):
            raise ValueError(f"Order entry at index {idx} must be an object.")
    return cast(List[OrderRecord], data)


def _known_keys(cls: type, obj: Dict[str, Any], label: str) -> Dict[str, Any]:
    allowed = {f.name for f in fields(cls)}
    unknown = sorted(set(obj) - allowed)
    if unknown:
        raise ValueError(f"Unknown {label} keys: {unknown}")
    return obj


def load_fleet_config(path: str) -> FleetConfig:
    """Load a fleet configuration from JSON.

    Every key is optional and falls back to the reference deployment. Example:
    {
      "rakes": [{"rake_id": "R1", "total_wagons": 40, "wagon_capacity_tonnes": 60}],
      "platforms": [{"platform_id": "P1", "platform_name": "Platform 1",
                     "loading_point_id": "LP1", "crane_capacity_tonnes": 30}],
      "product_loading_points": {"Coils": "LP1"},
      "allow_multi_destination_rakes": false
    }

    Args:
        path: Path to a JSON settings file.

    Returns:
        A validated FleetConfig.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If keys are unknown, values malformed or the fleet inconsistent.
    """
    data = _read_json(path, "Fleet")
    if not isinstance(data, dict):
        raise ValueError("Fleet file must contain a JSON object.")
    data = dict(_known_keys(FleetConfig, data, "fleet"))

    try:
        if "rakes" in data:
            data["rakes"] = [RakeSpec(**_known_keys(RakeSpec, r, "rake")) for r in data["rakes"]]
        if "platforms" in data:
            data["platforms"] = [
                PlatformSpec(**_known_keys(PlatformSpec, p, "platform")) for p in data["platforms"]
            ]
        fleet = FleetConfig(**data)
    except TypeError as exc:
        raise ValueError(f"Malformed fleet configuration: {exc}") from exc

    for p in fleet.platforms:
        if not p.crane_id:
            p.crane_id = f"CRANE-{p.platform_id}"
    fleet.destination_distances_km = {
        str(k).upper(): float(v) for k, v in fleet.destination_distances_km.items()
    }
    validate_fleet_config(fleet)
    return fleet


def load_cost_rates(path: str) -> CostRates:
    """Load cost tariffs from JSON; missing keys keep their defaults.

    Example JSON:
    {
      "rail_rate_per_tonne_km": 1.4,
      "road_rate_per_tonne_km": 1.8
    }

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If keys are unknown or values invalid.
    """
    data = _read_json(path, "Rates")
    if not isinstance(data, dict):
        raise ValueError("Rates file must contain a JSON object.")
    try:
        rates = CostRates(**_known_keys(CostRates, data, "rates"))
    except TypeError as exc:
        raise ValueError(f"Malformed cost rates: {exc}") from exc
    validate_cost_rates(rates)
    return rates
