"""
Command-line interface for the staking ledger.

Replays scripted scenarios against a configured engine and runs randomised
invariant checks.
"""

import argparse
import json
import logging
import sys

from .config.loader import load_config
from .reporting.export import export_csv, export_events_csv, export_json
from .simulation.monte_carlo import MonteCarloRunner
from .simulation.runner import ScenarioRunner, load_scenario

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False):
    """Setup logging configuration."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler()]
    )


def cmd_run(args) -> int:
    """Handle run command."""
    config = load_config(args.config)
    steps = load_scenario(args.scenario)
    result = ScenarioRunner(config).run(steps)

    if args.csv:
        export_csv(result, args.csv)
        logger.info(f"Wrote {len(result.snapshots)} snapshots to {args.csv}")
    if args.events:
        export_events_csv(result, args.events)
        logger.info(f"Wrote {len(result.events)} events to {args.events}")
    if args.json:
        export_json(result, args.json)
        logger.info(f"Wrote scenario report to {args.json}")

    print(json.dumps(result.final_metrics, indent=2, default=str))
    for message in result.step_errors:
        print(f"STEP: {message}")
    for warning in result.warnings:
        print(f"{warning.severity.upper()} [{warning.category}] {warning.message}"
              + (f" ({warning.details})" if warning.details else ""))
    return 0 if result.ok else 1


def cmd_montecarlo(args) -> int:
    """Handle montecarlo command."""
    config = load_config(args.config)
    runner = MonteCarloRunner(config)
    results = runner.run(num_runs=args.runs, random_seed=args.seed)
    summary = runner.analyze_results(results)
    print(json.dumps(summary, indent=2))
    return 0 if summary.get('invariant_errors', 0) == 0 else 1


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        prog='poolfarm',
        description='Weighted staking ledger: scenario replay and invariant checks',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  poolfarm run scenario.yaml --csv steps.csv
  poolfarm run scenario.yaml --config my_pools.yaml --json report.json
  poolfarm montecarlo --runs 50 --seed 7
        """
    )
    parser.add_argument('-v', '--verbose', action='store_true', help='Verbose output')
    parser.add_argument('--config', type=str, default=None, help='Configuration YAML (defaults to packaged defaults)')

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    run_parser = subparsers.add_parser('run', help='Replay a scenario file')
    run_parser.add_argument('scenario', type=str, help='Scenario YAML file')
    run_parser.add_argument('--csv', type=str, help='Write per-step snapshots to CSV')
    run_parser.add_argument('--events', type=str, help='Write the event log to CSV')
    run_parser.add_argument('--json', type=str, help='Write the full report to JSON')

    mc_parser = subparsers.add_parser('montecarlo', help='Run randomised invariant checks')
    mc_parser.add_argument('--runs', type=int, default=None, help='Number of runs')
    mc_parser.add_argument('--seed', type=int, default=None, help='Base random seed')

    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 1

    setup_logging(args.verbose)
    if args.command == 'run':
        return cmd_run(args)
    return cmd_montecarlo(args)


if __name__ == '__main__':
    sys.exit(main())
