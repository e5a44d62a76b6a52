import argparse
import logging
from typing import List, Optional

import pandas as pd

from terminalbn.config import default_config
from terminalbn.logging_config import configure_logging
from terminalbn.network import build_base_network, build_full_network
from terminalbn.sampling import make_rng
from terminalbn.scenarios import (
    AVAILABILITY_SCENARIOS,
    DELAY_METRICS,
    DELAY_SCENARIOS,
    PM_METRICS,
    STRIKE_METRICS,
    STRIKE_SCENARIOS,
    TERMINAL_SCENARIOS,
    TORNADO_SCENARIOS,
    WEATHER_METRICS,
    WEATHER_SCENARIOS,
    pm_scenarios,
    run_sensitivity,
)

logger = logging.getLogger(__name__)

# name -> (needs full network, scenarios, metrics, baseline label)
ANALYSES = {
    "weather": (False, WEATHER_SCENARIOS, WEATHER_METRICS, "Baseline"),
    "terminal": (False, TERMINAL_SCENARIOS, DELAY_METRICS, "Baseline"),
    "availability": (False, AVAILABILITY_SCENARIOS, DELAY_METRICS, "Baseline"),
    "delay": (False, DELAY_SCENARIOS, DELAY_METRICS, "Baseline"),
    "tornado": (False, TORNADO_SCENARIOS, DELAY_METRICS, "Baseline"),
    "strike": (True, STRIKE_SCENARIOS, STRIKE_METRICS, "Baseline"),
    "pm": (True, pm_scenarios(), PM_METRICS, "No PM"),
}


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run terminal delay sensitivity analyses by Monte Carlo sampling.")
    parser.add_argument(
        "--analysis",
        action="append",
        dest="analyses",
        choices=sorted(ANALYSES),
        help="Scenario set to evaluate; repeat for several (default: all).",
    )
    parser.add_argument("--samples", type=int, default=default_config.sampling.num_samples, help="Samples per scenario.")
    parser.add_argument("--seed", type=int, default=default_config.sampling.seed, help="Random seed.")
    parser.add_argument("--log-level", default="INFO", help="Logging level (DEBUG, INFO, WARNING).")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> None:
    args = parse_args(argv)
    configure_logging(getattr(logging, args.log_level.upper(), logging.INFO))

    names = args.analyses or list(ANALYSES)
    networks = {}
    rng = make_rng(args.seed)

    for name in names:
        full, scenarios, metrics, baseline = ANALYSES[name]
        if full not in networks:
            networks[full] = build_full_network(default_config) if full else build_base_network(default_config)
        logger.info("Running %s analysis: %d scenarios, %d samples each", name, len(scenarios), args.samples)
        values, deltas = run_sensitivity(
            networks[full], scenarios, metrics, n=args.samples, rng=rng, baseline=baseline
        )
        with pd.option_context("display.width", 200, "display.max_columns", None):
            print(f"\n=== {name}: expected values ===")
            print(values.round(4).to_string())
            print(f"\n=== {name}: % change vs {baseline} ===")
            print(deltas.round(2).to_string())


if __name__ == "__main__":
    main()
