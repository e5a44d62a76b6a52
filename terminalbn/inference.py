"""
Monte Carlo queries over a terminal network.

Queries draw unconditioned samples and keep the rows consistent with the
evidence, so a rare evidence set can leave few or no matches. That is
reported (empty distribution, match count 0), never raised.
"""
import logging
import math
from typing import Dict, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from terminalbn.config import SamplingConfig, default_sampling_config
from terminalbn.errors import NetworkConfigError
from terminalbn.sampling import draw, make_rng, matches, validate_evidence

logger = logging.getLogger(__name__)

DELAY_NODES = ("Crane_Delay", "HT_Delay_Loaded", "Yard_Crane_Delay", "Total_Delay")
DELAY_LEVELS = ("Low", "Medium", "High")


def _check_target(network, target: str) -> None:
    if target not in network.cpds:
        raise NetworkConfigError(f"Unknown query variable: {target}")
    if not network.cpds[target].is_discrete:
        raise NetworkConfigError(f"Query variable {target} is continuous")


def distribution_from_samples(samples: pd.DataFrame, target: str) -> Dict[int, float]:
    """Normalised state frequencies of ``target``; empty dict for no rows."""
    if samples.empty:
        return {}
    counts = samples[target].value_counts()
    total = counts.sum()
    return {int(state): float(c / total) for state, c in sorted(counts.items())}


def expected_value(distribution: Mapping[int, float]) -> float:
    """Sum of state * probability; NaN for an empty distribution."""
    if not distribution:
        return float("nan")
    return float(sum(k * v for k, v in distribution.items()))


def query_distribution(
    network,
    target: str,
    evidence: Optional[Mapping[str, int]] = None,
    n: int = 10_000,
    rng: Optional[np.random.Generator] = None,
) -> Tuple[Dict[int, float], int]:
    """
    P(target | evidence) estimated from ``n`` unconditioned samples.

    Returns (distribution, number of matching samples).
    """
    evidence = evidence or {}
    _check_target(network, target)
    validate_evidence(network, evidence)
    rng = rng if rng is not None else make_rng()

    samples = draw(network, n, rng)
    kept = samples[matches(samples, evidence)]
    if kept.empty:
        logger.warning("No samples out of %d matched evidence %s", n, dict(evidence))
        return {}, 0
    return distribution_from_samples(kept, target), len(kept)


def log_likelihood(
    network,
    evidence: Mapping[str, int],
    n: int = 10_000,
    rng: Optional[np.random.Generator] = None,
    config: SamplingConfig = default_sampling_config,
) -> float:
    """log P(evidence) from the matching fraction, floored to stay finite."""
    if n < 1:
        raise ValueError(f"log_likelihood needs at least one sample, got n={n}")
    validate_evidence(network, evidence)
    rng = rng if rng is not None else make_rng(config.seed)
    samples = draw(network, n, rng)
    fraction = matches(samples, evidence).sum() / n
    return math.log(max(fraction, config.likelihood_floor))


def trace_delays_given(
    network,
    evidence: Mapping[str, int],
    n: int = 100_000,
    rng: Optional[np.random.Generator] = None,
    nodes: Sequence[str] = DELAY_NODES,
) -> Tuple[pd.DataFrame, int]:
    """
    Conditional Low/Medium/High distributions of the delay nodes.

    Returns a frame indexed by node with one column per delay level, and the
    number of matching samples.
    """
    validate_evidence(network, evidence)
    for node in nodes:
        _check_target(network, node)
    rng = rng if rng is not None else make_rng()

    samples = draw(network, n, rng)
    kept = samples[matches(samples, evidence)]
    logger.info("%d of %d samples matched %s", len(kept), n, dict(evidence))
    if kept.empty:
        logger.warning("No samples out of %d matched evidence %s", n, dict(evidence))
        return pd.DataFrame(columns=list(DELAY_LEVELS), dtype=float), 0

    rows = {}
    for node in nodes:
        dist = distribution_from_samples(kept, node)
        rows[node] = [dist.get(state, 0.0) for state in range(1, len(DELAY_LEVELS) + 1)]
    table = pd.DataFrame.from_dict(rows, orient="index", columns=list(DELAY_LEVELS))
    table.index.name = "node"
    return table, len(kept)
