"""Command line entry point: run a lock scenario and export the results."""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .config.loader import load_config, save_config
from .reporting.charts import create_locked_chart, create_rewards_chart
from .reporting.export import export_csv, export_json
from .simulation.runner import ScenarioRunner


def parse_overrides(items: List[str]) -> Dict[str, Any]:
    """Turn ``key.path=value`` strings into overrides; values are parsed as YAML scalars."""
    overrides = {}
    for item in items:
        key, sep, raw = item.partition("=")
        if not sep or not key:
            raise argparse.ArgumentTypeError(f"expected KEY=VALUE, got '{item}'")
        overrides[key.strip()] = yaml.safe_load(raw)
    return overrides


def write_charts(snapshots, directory: str) -> None:
    """Render the locked and rewards charts as standalone HTML files."""
    out = Path(directory)
    out.mkdir(parents=True, exist_ok=True)
    create_locked_chart(snapshots).write_html(str(out / "locked.html"), include_plotlyjs="cdn")
    create_rewards_chart(snapshots).write_html(str(out / "rewards.html"), include_plotlyjs="cdn")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="tierlock-ledger", description=__doc__)
    parser.add_argument("--log-level", default="WARNING", help="Logging level (default: WARNING)")
    sub = parser.add_subparsers(dest="command", required=True)

    simulate = sub.add_parser("simulate", help="Run a seeded scenario")
    simulate.add_argument("--config", help="YAML file layered over the bundled defaults")
    simulate.add_argument(
        "--set", dest="overrides", action="append", default=[], metavar="KEY=VALUE",
        help="Override a config value, e.g. --set simulation.steps=30 (repeatable)"
    )
    simulate.add_argument("--seed", type=int, help="Override simulation.random_seed")
    simulate.add_argument("--csv", help="Write per-step snapshots to this CSV file")
    simulate.add_argument("--json", help="Write the full result to this JSON file")
    simulate.add_argument("--save-config", help="Write the effective config to this YAML file")
    simulate.add_argument("--charts", help="Write locked.html and rewards.html to this directory")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = load_config(args.config, overrides=parse_overrides(args.overrides))
    except (argparse.ArgumentTypeError, KeyError, ValueError) as exc:
        parser.error(str(exc))

    if args.save_config:
        save_config(config, args.save_config)

    result = ScenarioRunner(config).run(random_seed=args.seed)

    if args.csv:
        export_csv(result, args.csv)
    if args.json:
        export_json(result, args.json)
    if args.charts:
        write_charts(result.snapshots, args.charts)

    print(json.dumps(result.final_metrics, indent=2, sort_keys=True))
    if result.invariant_errors:
        for error in result.invariant_errors:
            print(error, file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
