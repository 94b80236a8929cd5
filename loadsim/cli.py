"""Command-line entry point: run one bottleneck replicate.

Example:
    loadsim configs/default.yaml --seed 7 --output-dir results/rep7 --plot

Replicates are independent processes; vary ``--seed`` and ``--name``.
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Dict, List, Optional

import yaml

from loadsim.config import config_to_dict, default_config, load_config
from loadsim.engine import ExtinctionError
from loadsim.model import run_simulation
from loadsim.schedule import schedule_from_config


def _overrides(args: argparse.Namespace) -> Dict[str, Dict]:
    overrides: Dict[str, Dict] = {}
    if args.seed is not None:
        overrides.setdefault('simulation', {})['seed'] = args.seed
    if args.capacity is not None:
        overrides.setdefault('simulation', {})['capacity'] = args.capacity
    if args.output_dir is not None:
        overrides.setdefault('output', {})['directory'] = args.output_dir
    if args.name is not None:
        overrides.setdefault('output', {})['name'] = args.name
    if args.report_genotypes:
        overrides.setdefault('output', {})['report_genotypes'] = True
    return overrides


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='loadsim',
        description="Simulate genetic load through a bottleneck and recovery.",
        epilog="Example: loadsim configs/default.yaml --seed 7 --plot",
    )
    parser.add_argument(
        "config", nargs="?", default=None,
        help="YAML configuration file (defaults used if omitted)",
    )
    parser.add_argument(
        "--scenario", type=str, default=None,
        help="YAML scenario file merged over the base config",
    )
    parser.add_argument("--seed", type=int, default=None, help="Master RNG seed")
    parser.add_argument("--capacity", type=int, default=None,
                        help="Carrying capacity K")
    parser.add_argument("--output-dir", type=str, default=None,
                        help="Override output directory")
    parser.add_argument("--name", type=str, default=None,
                        help="Artifact file-name prefix")
    parser.add_argument("--report-genotypes", action="store_true",
                        help="Include per-mutation genotype proportions")
    parser.add_argument("--plot", action="store_true",
                        help="Save a load trajectory PNG after the run")
    parser.add_argument("--dry-run", action="store_true",
                        help="Print the merged config and schedule, then exit")
    parser.add_argument("--quiet", action="store_true",
                        help="Only log warnings and errors")
    parser.add_argument("--verbose", action="store_true",
                        help="Log per-generation regulator decisions")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    level = logging.INFO
    if args.quiet:
        level = logging.WARNING
    elif args.verbose:
        level = logging.DEBUG
    logging.basicConfig(level=level,
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    overrides = _overrides(args)
    if args.config is not None:
        config = load_config(args.config, args.scenario, overrides)
    else:
        config = default_config(overrides)

    if args.dry_run:
        schedule = schedule_from_config(config.demography, config.simulation.capacity)
        print(yaml.safe_dump(config_to_dict(config), sort_keys=False))
        print(f"burn-in end: {schedule.burn_in_end}")
        print(f"bottleneck ramp: [{schedule.ramp_start}, {schedule.ramp_end}]")
        print(f"plateau end: {schedule.plateau_end}")
        print(f"recovery end: {schedule.recovery_end}")
        print(f"end: {schedule.end}")
        return 0

    try:
        result = run_simulation(config)
    except ExtinctionError as e:
        logging.getLogger('loadsim').error("%s; partial output kept in %s",
                                           e, config.output.directory)
        return 2

    if args.plot:
        from loadsim.viz import plot_load_trajectory
        png = result.artifact_paths['population'].with_suffix('.png')
        plot_load_trajectory(result.artifact_paths['population'],
                             schedule=result.schedule, save_path=png)
        logging.getLogger('loadsim').info("Saved %s", png)
    return 0


if __name__ == "__main__":
    sys.exit(main())
