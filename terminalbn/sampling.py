"""
Ancestral and rejection sampling.

Nodes are drawn column by column in the network's stored (topological)
order, so one call to a CPD serves the whole batch. Samples come back as a
pandas DataFrame with one column per node.
"""
import logging
from typing import Any, Dict, Mapping, Optional

import numpy as np
import pandas as pd

from terminalbn.config import SamplingConfig, default_sampling_config
from terminalbn.errors import NetworkConfigError, QueryTimeoutError

logger = logging.getLogger(__name__)


def make_rng(seed: Optional[int] = None) -> np.random.Generator:
    return np.random.default_rng(default_sampling_config.seed if seed is None else seed)


def validate_evidence(network, evidence: Mapping[str, int]) -> None:
    """Evidence must name discrete nodes of ``network`` with states in 1..K."""
    for name, state in evidence.items():
        if name not in network.cpds:
            raise NetworkConfigError(f"Unknown evidence variable: {name}")
        cpd = network.cpds[name]
        if not cpd.is_discrete:
            raise NetworkConfigError(f"Evidence on continuous node {name} is not supported")
        if not 1 <= int(state) <= cpd.cardinality:
            raise NetworkConfigError(f"Evidence {name}={state} outside states 1..{cpd.cardinality}")


def sample(network, rng: np.random.Generator) -> Dict[str, Any]:
    """One joint sample as a dict, drawn node by node."""
    assignment: Dict[str, Any] = {}
    for name in network.nodes:
        assignment[name] = network.cpds[name].sample_given(assignment, rng)
    return assignment


def draw(network, n: int, rng: np.random.Generator) -> pd.DataFrame:
    """``n`` independent joint samples."""
    columns: Dict[str, np.ndarray] = {}
    for name in network.nodes:
        # parents were sampled earlier in the order
        columns[name] = network.cpds[name].sample_columns(columns, n, rng)
    return pd.DataFrame(columns, columns=list(network.nodes))


def matches(samples: pd.DataFrame, evidence: Mapping[str, int]) -> np.ndarray:
    """Boolean mask of rows equal to ``evidence`` on every key."""
    mask = np.ones(len(samples), dtype=bool)
    for name, state in evidence.items():
        if name not in samples:
            return np.zeros(len(samples), dtype=bool)
        mask &= samples[name].to_numpy() == state
    return mask


def sample_batch(
    network,
    n: int,
    evidence: Optional[Mapping[str, int]] = None,
    rng: Optional[np.random.Generator] = None,
    config: Optional[SamplingConfig] = None,
) -> pd.DataFrame:
    """
    ``n`` samples, all consistent with ``evidence`` when given.

    With evidence, a first pass draws max(oversample_factor * n,
    min_oversample) samples and filters them; if that leaves fewer than ``n``
    matches, further chunks are drawn until satisfied. More than
    ``config.max_draws`` total draws raises QueryTimeoutError; with
    ``max_draws=None`` the loop runs until enough matches turn up, which for
    near-impossible evidence may be never.
    """
    config = config or default_sampling_config
    rng = rng if rng is not None else make_rng(config.seed)
    if not evidence:
        return draw(network, n, rng)

    validate_evidence(network, evidence)
    first = max(config.oversample_factor * n, config.min_oversample)
    batch = draw(network, first, rng)
    mask = matches(batch, evidence)
    kept = [batch[mask]]
    matched = int(mask.sum())
    drawn = first

    if matched < n:
        logger.info("Only %d/%d samples matched %s after %d draws; drawing more", matched, n, dict(evidence), drawn)
    while matched < n:
        if config.max_draws is not None and drawn >= config.max_draws:
            raise QueryTimeoutError(matched, n, drawn)
        size = config.chunk_size
        if config.max_draws is not None:
            size = min(size, config.max_draws - drawn)
        batch = draw(network, size, rng)
        mask = matches(batch, evidence)
        kept.append(batch[mask])
        matched += int(mask.sum())
        drawn += size

    return pd.concat(kept, ignore_index=True).iloc[:n].reset_index(drop=True)
