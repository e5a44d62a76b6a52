"""
Scenario and sensitivity driver.

A scenario is a labelled evidence set. For each scenario one joint sample
batch is drawn and filtered, and every metric is read off the matching
rows: the expected state for discrete metrics, the mean for continuous
ones. Percent deltas are taken against a baseline scenario.
"""
import logging
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from pydantic import BaseModel, Field, conint

from terminalbn.errors import NetworkConfigError
from terminalbn.inference import distribution_from_samples, expected_value
from terminalbn.maintenance import PMPolicy
from terminalbn.sampling import draw, make_rng, matches, validate_evidence
from terminalbn.schemas import ScenarioSummary

logger = logging.getLogger(__name__)

DELAY_METRICS = ["Crane_Delay", "HT_Delay_Empty", "HT_Delay_Loaded", "Yard_Crane_Delay", "Total_Delay"]


class Scenario(BaseModel):
    label: str
    evidence: Dict[str, conint(ge=1)] = Field(default_factory=dict)


ScenarioLike = Union[Scenario, Tuple[str, Dict[str, int]]]


def as_scenarios(scenarios: Iterable[ScenarioLike]) -> List[Scenario]:
    out = []
    for s in scenarios:
        if isinstance(s, Scenario):
            out.append(s)
        else:
            label, evidence = s
            out.append(Scenario(label=label, evidence=evidence))
    return out


def _metric_value(network, kept: pd.DataFrame, metric: str) -> float:
    if kept.empty:
        return float("nan")
    if network.cpds[metric].is_discrete:
        return expected_value(distribution_from_samples(kept, metric))
    values = kept[metric].to_numpy(dtype=np.float64)
    return float(values.mean())


def evaluate_scenarios(
    network,
    scenarios: Iterable[ScenarioLike],
    metrics: Sequence[str],
    n: int = 100_000,
    rng: Optional[np.random.Generator] = None,
    return_summaries: bool = False,
):
    """
    Expected value of each metric under each scenario.

    Returns a frame indexed by scenario label with one column per metric
    (NaN where nothing matched), and with ``return_summaries`` also the
    per-scenario match counts.
    """
    scenarios = as_scenarios(scenarios)
    for metric in metrics:
        if metric not in network.cpds:
            raise NetworkConfigError(f"Unknown metric: {metric}")
    rng = rng if rng is not None else make_rng()

    rows: Dict[str, List[float]] = {}
    summaries: List[ScenarioSummary] = []
    for scenario in scenarios:
        validate_evidence(network, scenario.evidence)
        samples = draw(network, n, rng)
        kept = samples[matches(samples, scenario.evidence)]
        logger.debug("Scenario %r: %d of %d samples matched %s", scenario.label, len(kept), n, scenario.evidence)
        if kept.empty:
            logger.warning("Scenario %r matched no samples", scenario.label)
        rows[scenario.label] = [_metric_value(network, kept, m) for m in metrics]
        summaries.append(ScenarioSummary(label=scenario.label, evidence=scenario.evidence, matches=len(kept)))

    table = pd.DataFrame.from_dict(rows, orient="index", columns=list(metrics))
    table.index.name = "scenario"
    if return_summaries:
        return table, summaries
    return table


def percent_delta(table: pd.DataFrame, baseline: str = "Baseline") -> pd.DataFrame:
    """
    100 * (value / baseline - 1) per cell. A zero baseline gives 0 when the
    value is also zero and NaN otherwise.
    """
    if baseline not in table.index:
        raise KeyError(f"Missing baseline {baseline!r} in results")
    base = table.loc[baseline]
    out = pd.DataFrame(index=table.index, columns=table.columns, dtype=float)
    for col in table.columns:
        values = table[col].to_numpy(dtype=np.float64)
        b = float(base[col])
        if b == 0.0:
            out[col] = np.where(values == 0.0, 0.0, np.nan)
        else:
            out[col] = (values / b - 1.0) * 100.0
    return out


def sort_delta(
    deltas: pd.DataFrame,
    by: Optional[str] = None,
    descending: bool = True,
    include_baseline: bool = True,
    baseline: str = "Baseline",
) -> pd.DataFrame:
    """Baseline row first (optional), then the rest sorted by ``by``."""
    by = by or deltas.columns[0]
    rest = deltas.drop(index=baseline, errors="ignore")
    rest = rest.sort_values(by, ascending=not descending, kind="mergesort", na_position="last")
    if include_baseline and baseline in deltas.index:
        return pd.concat([deltas.loc[[baseline]], rest])
    return rest


def run_sensitivity(
    network,
    scenarios: Iterable[ScenarioLike],
    metrics: Sequence[str] = DELAY_METRICS,
    n: int = 100_000,
    rng: Optional[np.random.Generator] = None,
    baseline: str = "Baseline",
    sort_by: Optional[str] = None,
    descending: bool = True,
    include_baseline: bool = True,
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """Expected values and sorted percent deltas for one scenario set."""
    values = evaluate_scenarios(network, scenarios, metrics, n=n, rng=rng)
    if sort_by is None:
        sort_by = "Total_Delay" if "Total_Delay" in metrics else metrics[0]
    deltas = sort_delta(
        percent_delta(values, baseline),
        by=sort_by,
        descending=descending,
        include_baseline=include_baseline,
        baseline=baseline,
    )
    return values, deltas


# --- standard scenario sets ---

WEATHER_SCENARIOS = as_scenarios([
    ("Baseline", {"Wind": 1, "Rain": 1, "Visibility": 1}),
    ("Light Rain", {"Rain": 2}),
    ("Moderate Rain", {"Rain": 3}),
    ("Heavy Rain", {"Rain": 4}),
    ("Moderate Wind", {"Wind": 2}),
    ("Strong Wind", {"Wind": 3}),
    ("Moderate Visibility", {"Visibility": 2}),
    ("Low Visibility", {"Visibility": 3}),
    ("Severe Weather", {"Wind": 3, "Rain": 4}),
])
WEATHER_METRICS = ["Efficiency", "Crane_Delay", "Total_Delay"]

TERMINAL_SCENARIOS = as_scenarios([
    ("Baseline", {"Terminal_Busyness": 1, "Storage_Capacity_Level": 1}),
    ("Medium Busyness", {"Terminal_Busyness": 2, "Storage_Capacity_Level": 1}),
    ("High Busyness", {"Terminal_Busyness": 3, "Storage_Capacity_Level": 1}),
    ("Medium Storage Availability", {"Terminal_Busyness": 1, "Storage_Capacity_Level": 2}),
    ("Low Storage Availability", {"Terminal_Busyness": 1, "Storage_Capacity_Level": 3}),
    ("Worst Case", {"Terminal_Busyness": 3, "Storage_Capacity_Level": 3}),
])

AVAILABILITY_SCENARIOS = as_scenarios([
    ("Baseline", {"QC_Availability": 1, "YC_Availability": 1, "HT_Availability": 1}),
    ("Medium QC Availability", {"QC_Availability": 2, "YC_Availability": 1, "HT_Availability": 1}),
    ("Low QC Availability", {"QC_Availability": 3, "YC_Availability": 1, "HT_Availability": 1}),
    ("Medium YC Availability", {"QC_Availability": 1, "YC_Availability": 2, "HT_Availability": 1}),
    ("Low YC Availability", {"QC_Availability": 1, "YC_Availability": 3, "HT_Availability": 1}),
    ("Medium HT Availability", {"QC_Availability": 1, "YC_Availability": 1, "HT_Availability": 2}),
    ("Low HT Availability", {"QC_Availability": 1, "YC_Availability": 1, "HT_Availability": 3}),
])

DELAY_SCENARIOS = as_scenarios([
    ("Baseline", {"Yard_Crane_Delay": 1, "HT_Delay_Empty": 1, "HT_Delay_Loaded": 1, "Crane_Delay": 1}),
    ("High YC Delay", {"Yard_Crane_Delay": 3}),
    ("High HT Delay (Empty)", {"HT_Delay_Empty": 3}),
    ("High HT Delay (Loaded)", {"HT_Delay_Loaded": 3}),
    ("High QC Delay", {"Crane_Delay": 3}),
    ("Medium YC Delay", {"Yard_Crane_Delay": 2}),
    ("Medium HT Delay (Empty)", {"HT_Delay_Empty": 2}),
    ("Medium HT Delay (Loaded)", {"HT_Delay_Loaded": 2}),
    ("Medium QC Delay", {"Crane_Delay": 2}),
    ("All High Delay", {"Yard_Crane_Delay": 3, "HT_Delay_Empty": 3, "Crane_Delay": 3}),
])

# full network only
STRIKE_SCENARIOS = as_scenarios([
    ("Baseline", {"Strike": 1, "Shift": 1}),
    ("Night", {"Strike": 1, "Shift": 2}),
    ("Strike", {"Strike": 2, "Shift": 1}),
])
STRIKE_METRICS = ["Crane_Delay", "Yard_Crane_Delay", "HT_Delay_Loaded", "Total_Delay"]

# One shared baseline against single-factor changes, for a tornado chart of Total_Delay.
TORNADO_SCENARIOS = as_scenarios([
    ("Baseline", {
        "Wind": 1, "Rain": 1, "Visibility": 1,
        "Storage_Capacity_Level": 1, "Terminal_Busyness": 1,
        "QC_Availability": 1, "YC_Availability": 1, "HT_Availability": 1,
    }),
    ("High Wind", {"Wind": 3}),
    ("Medium Wind", {"Wind": 2}),
    ("Heavy Rain", {"Rain": 3}),
    ("Medium Rain", {"Rain": 2}),
    ("Low Visibility", {"Visibility": 3}),
    ("Medium Visibility", {"Visibility": 2}),
    ("Medium Busyness", {"Terminal_Busyness": 2}),
    ("High Busyness", {"Terminal_Busyness": 3}),
    ("Medium Storage", {"Storage_Capacity_Level": 2}),
    ("Low Storage", {"Storage_Capacity_Level": 3}),
    ("Medium QC Availability", {"QC_Availability": 2}),
    ("Low QC Availability", {"QC_Availability": 3}),
    ("Medium YC Availability", {"YC_Availability": 2}),
    ("Low YC Availability", {"YC_Availability": 3}),
    ("Medium HT Availability", {"HT_Availability": 2}),
    ("Low HT Availability", {"HT_Availability": 3}),
])

PM_SCENARIO_POLICIES = [
    ("No PM", PMPolicy()),
    ("Minor PM Weekly", PMPolicy(minor="Weekly")),
    ("Minor PM Monthly", PMPolicy(minor="Monthly")),
    ("Medium PM Monthly", PMPolicy(medium="Monthly")),
    ("Major PM Yearly", PMPolicy(major="Yearly")),
    ("Major PM Weekly", PMPolicy(major="Weekly")),
    ("Comprehensive PM", PMPolicy(minor="Weekly", medium="Monthly", major="Yearly")),
]
PM_METRICS = DELAY_METRICS + ["QC_Availability_Value", "YC_Availability_Value", "HT_Availability_Value"]


def pm_scenarios() -> List[Scenario]:
    """PM policy scenarios for the full network; "No PM" is the baseline."""
    return [Scenario(label=label, evidence=policy.as_evidence()) for label, policy in PM_SCENARIO_POLICIES]
