#!/usr/bin/env python3
"""Run the herbicide/adjuvant growth-rate comparison from a YAML config.

Loads and validates the configuration, simulates every (treatment,
effect mode) scenario, and prints the comparative table (mean, sd,
percentile intervals, RGR against the baseline).

Usage:
    python scripts/run_scenarios.py configs/default.yaml
    python scripts/run_scenarios.py configs/default.yaml --env-sd 0.1 --seed 7
    python scripts/run_scenarios.py configs/default.yaml --workers 4 \
        --stream-policy independent --output results/rgr_table.csv
"""

import argparse
import logging
import sys
import time
from pathlib import Path

import pandas as pd

# ── Project imports ──────────────────────────────────────────────────
PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT))

from herbicide_pva.config import load_config
from herbicide_pva.summary import run_analysis


def build_overrides(args: argparse.Namespace) -> dict:
    """Collect CLI flags into a config override dict."""
    analysis = {}
    for flag, key in [
        ('replicates', 'replicates'),
        ('years', 'years'),
        ('seed', 'seed'),
        ('env_sd', 'env_sd'),
        ('stream_policy', 'stream_policy'),
        ('workers', 'parallel_workers'),
        ('baseline', 'baseline'),
    ]:
        value = getattr(args, flag)
        if value is not None:
            analysis[key] = value
    overrides = {'analysis': analysis}
    if args.project:
        overrides['projection'] = {'enabled': True}
    return overrides


def main():
    parser = argparse.ArgumentParser(
        description="Compare management alternatives by simulated growth rate.",
        epilog="Example: python scripts/run_scenarios.py configs/default.yaml",
    )
    parser.add_argument("config", help="Base config YAML")
    parser.add_argument(
        "--scenario", type=str, default=None,
        help="Optional YAML layered over the base config",
    )
    parser.add_argument("--replicates", type=int, default=None)
    parser.add_argument("--years", type=int, default=None)
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--env-sd", type=float, default=None)
    parser.add_argument("--baseline", type=str, default=None)
    parser.add_argument(
        "--stream-policy", choices=["sequential", "independent", "common"],
        default=None, help="Random-stream splitting policy",
    )
    parser.add_argument(
        "--workers", type=int, default=None,
        help="Parallel scenario threads (needs a non-sequential stream policy)",
    )
    parser.add_argument(
        "--project", action="store_true",
        help="Also project abundance and report extinction probability",
    )
    parser.add_argument(
        "--output", type=str, default=None,
        help="Write the comparative table to this CSV path",
    )
    parser.add_argument("--verbose", "-v", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = load_config(args.config, args.scenario, build_overrides(args))
    except (FileNotFoundError, ValueError) as exc:
        print(f"Config error: {exc}", file=sys.stderr)
        sys.exit(2)

    t0 = time.perf_counter()
    analysis = run_analysis(config)
    elapsed = time.perf_counter() - t0

    with pd.option_context('display.width', 160, 'display.max_columns', None,
                           'display.float_format', '{:.4f}'.format):
        print(analysis.table.to_string(index=False))
        if analysis.projection is not None:
            print()
            print(analysis.projection.to_string(index=False))
    print(f"\n{len(analysis.results)} scenarios in {elapsed:.2f}s")

    if args.output:
        out = Path(args.output)
        out.parent.mkdir(parents=True, exist_ok=True)
        analysis.table.to_csv(out, index=False)
        print(f"Saved: {out}")


if __name__ == "__main__":
    main()
