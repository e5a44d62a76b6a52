"""
terminalbn: Bayesian network of container-terminal delays.

Weather, equipment reliability, preventive maintenance and operators feed
a discrete delay chain; queries run by Monte Carlo sampling.
"""
from terminalbn.config import (
    MaintenanceParams,
    ReliabilityParams,
    SamplingConfig,
    TerminalConfig,
    default_config,
)
from terminalbn.errors import (
    MalformedTableError,
    MissingNodeWarning,
    NetworkConfigError,
    QueryTimeoutError,
    TerminalBNError,
)
from terminalbn.logging_config import configure_logging
from terminalbn.network import (
    BASE_NODE_ORDER,
    FULL_NODE_ORDER,
    Network,
    assemble,
    build_base_network,
    build_full_network,
)
from terminalbn.sampling import draw, make_rng, sample, sample_batch
from terminalbn.inference import expected_value, log_likelihood, query_distribution
from terminalbn.scenarios import Scenario, evaluate_scenarios, percent_delta, run_sensitivity

__all__ = [
    "config",
    "cpd",
    "tables",
    "reliability",
    "maintenance",
    "network",
    "sampling",
    "inference",
    "scenarios",
    "schemas",
    "MaintenanceParams",
    "ReliabilityParams",
    "SamplingConfig",
    "TerminalConfig",
    "default_config",
    "MalformedTableError",
    "MissingNodeWarning",
    "NetworkConfigError",
    "QueryTimeoutError",
    "TerminalBNError",
    "configure_logging",
    "BASE_NODE_ORDER",
    "FULL_NODE_ORDER",
    "Network",
    "assemble",
    "build_base_network",
    "build_full_network",
    "draw",
    "make_rng",
    "sample",
    "sample_batch",
    "expected_value",
    "log_likelihood",
    "query_distribution",
    "Scenario",
    "evaluate_scenarios",
    "percent_delta",
    "run_sensitivity",
]
