# --------------------------- Command line entry point ---------------------------
import argparse
import logging
import sys
from datetime import datetime

from data_loader import load_cost_rates, load_fleet_config, load_order_records
from datatypes import FleetConfig
from model_builder import synthetic_order_records
from rake_allocation import plan_from_records
from reporting import plan_markdown, plan_to_json

logger = logging.getLogger(__name__)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Plan rake allocation for a batch of orders")
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--orders-file", help="Path to orders JSON file (list, or object with 'orders')")
    source.add_argument("--demo", action="store_true", help="Plan the built-in synthetic orders")
    parser.add_argument("--fleet-file", help="Path to fleet configuration JSON file")
    parser.add_argument("--rates-file", help="Path to cost rates JSON file")
    parser.add_argument("--format", choices=("markdown", "json"), default="markdown")
    parser.add_argument("--output", help="Write the plan here instead of stdout")
    parser.add_argument("--no-capacity-bound", action="store_true", help="Skip the CP-SAT rail tonnage bound")
    parser.add_argument("--time-limit", type=float, default=5.0, help="CP-SAT time limit in seconds")
    parser.add_argument("--log-level", default="INFO", choices=("DEBUG", "INFO", "WARNING", "ERROR"))
    args = parser.parse_args(argv)

    logging.basicConfig(level=args.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    now = datetime.now()
    try:
        fleet = load_fleet_config(args.fleet_file) if args.fleet_file else FleetConfig()
        rates = load_cost_rates(args.rates_file) if args.rates_file else None
        rows = synthetic_order_records(now) if args.demo else load_order_records(args.orders_file)
        plan = plan_from_records(
            rows,
            fleet,
            now,
            rates,
            capacity_bound=not args.no_capacity_bound,
            time_limit_s=args.time_limit,
        )
    except (FileNotFoundError, ValueError, TypeError, AssertionError) as exc:
        logger.error(f"Planning failed: {exc}")
        print(f"error: {exc}", file=sys.stderr)
        return 2

    text = plan_to_json(plan) if args.format == "json" else plan_markdown(plan)
    if args.output:
        with open(args.output, "w", encoding="utf-8") as f:
            f.write(text)
    else:
        print(text)
    return 0


if __name__ == "__main__":
    sys.exit(main())
