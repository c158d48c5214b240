from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import List, Optional

from .config import LOG_LEVELS, ConfigError, SimulationConfig, load_config
from .policies import SelectionPolicy, UnknownPolicyError
from .scenarios import SCENARIOS, ScenarioResult, run_scenario


def _print_result(result: ScenarioResult) -> None:
    print(f"\n=== Scenario: {result.scenario} ===")
    for note in result.notes:
        print(f"  {note}")
    print(result.report)


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    policies = [policy.value for policy in SelectionPolicy]
    parser = argparse.ArgumentParser(description="Availability zone fabric scenario runner")
    parser.add_argument(
        "--scenario",
        choices=["all", *SCENARIOS.keys()],
        default="multi_user",
        help="Name of the scenario to execute",
    )
    parser.add_argument("--list", action="store_true", help="List available scenarios and exit")
    parser.add_argument(
        "--json",
        action="store_true",
        help="Emit raw JSON summaries instead of formatted text",
    )
    parser.add_argument("--config", help="Path to a JSON file overriding the default configuration")
    parser.add_argument("--seed", type=int, help="Random seed for topology and workload generation")
    parser.add_argument("--zone-policy", choices=policies, help="Policy the region uses for writes")
    parser.add_argument("--user-policy", choices=policies, help="Policy users read with")
    parser.add_argument(
        "--log-level",
        type=str.upper,
        choices=LOG_LEVELS,
        help="Logging level (defaults to the configured one)",
    )
    return parser.parse_args(argv)


def _build_config(args: argparse.Namespace) -> SimulationConfig:
    config = load_config(args.config) if args.config else SimulationConfig.default()
    if args.seed is not None:
        config.seed = args.seed
    if args.zone_policy:
        config.workload.zone_policy = SelectionPolicy.parse(args.zone_policy)
    if args.user_policy:
        config.workload.user_policy = SelectionPolicy.parse(args.user_policy)
    if args.log_level:
        config.observability.log_level = args.log_level
    return config


def main(argv: Optional[List[str]] = None) -> int:
    args = _parse_args(argv)
    if args.list:
        print("Available scenarios:")
        for name in SCENARIOS:
            print(f"  - {name}")
        return 0

    try:
        config = _build_config(args)
    except (ConfigError, UnknownPolicyError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2

    logging.basicConfig(level=config.observability.log_level.upper(), format=config.observability.log_format)

    scenario_names = list(SCENARIOS.keys()) if args.scenario == "all" else [args.scenario]
    results = [run_scenario(name, config) for name in scenario_names]

    if args.json:
        print(json.dumps([result.summary() for result in results], indent=2))
        return 0

    for result in results:
        _print_result(result)
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
