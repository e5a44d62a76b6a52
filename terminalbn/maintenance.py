"""
Preventive maintenance and maintenance-aware availability.

A PM policy sets a frequency for each of the Minor/Medium/Major classes.
Counts are annual events; the virtual-age model works on normalised counts
(count / freq_norm):

    phi    = prod (1 - rho_c) ** n_c                 Kijima rejuvenation
    eta'   = eta / max(phi, eps)
    e_beta = clamp(1 - prod (1 - E_beta_c) ** n_c)
    beta'  = beta * (1 - min(B * e_beta, MAX_DROP))

Availability under minimal repair (NHPP) solves the expected failures per
year f = ((T - PM - f * MTTR) / eta') ** beta' by damped fixed-point
iteration, then A = 1 - PM/T - f * MTTR / T.
"""
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple, Union

import numpy as np

from terminalbn.config import (
    EQUIPMENT,
    PM_CLASSES,
    PM_FREQUENCIES,
    MaintenanceParams,
    ReliabilityParams,
    SamplingConfig,
    default_maintenance_params,
    default_reliability_params,
)
from terminalbn.cpd import CPD, FunctionalCPD, StaticCPD
from terminalbn.reliability import mean_life, repair_time_cpd, weibull_cpds
from terminalbn.sampling import sample_batch
from terminalbn.schemas import PortfolioResult

logger = logging.getLogger(__name__)

COUNT_NODES = tuple(f"{cls}_Count" for cls in PM_CLASSES)


@dataclass(frozen=True)
class PMPolicy:
    """Frequency name per PM class."""

    minor: str = "None"
    medium: str = "None"
    major: str = "None"

    def __post_init__(self):
        for freq in self.frequencies:
            if freq not in PM_FREQUENCIES:
                raise ValueError(f"Unknown PM frequency {freq!r}; expected one of {PM_FREQUENCIES}")

    @property
    def frequencies(self) -> Tuple[str, str, str]:
        return (self.minor, self.medium, self.major)

    def annual_counts(self, params: MaintenanceParams = default_maintenance_params) -> np.ndarray:
        return np.array([params.annual_events[f] for f in self.frequencies], dtype=np.float64)

    def normalized_counts(self, params: MaintenanceParams = default_maintenance_params) -> np.ndarray:
        return self.annual_counts(params) / params.freq_norm

    def as_evidence(self) -> Dict[str, int]:
        """Evidence on the *_Policy nodes (1-based index into PM_FREQUENCIES)."""
        return {
            f"{cls}_Policy": PM_FREQUENCIES.index(freq) + 1
            for cls, freq in zip(PM_CLASSES, self.frequencies)
        }

    @property
    def name(self) -> str:
        parts = [f"{cls}_{freq}" for cls, freq in zip(PM_CLASSES, self.frequencies) if freq != "None"]
        return "+".join(parts) if parts else "No_PM"


PORTFOLIOS: List[Tuple[str, PMPolicy]] = [
    (p.name, p)
    for p in [
        PMPolicy(),
        PMPolicy(minor="Weekly"),
        PMPolicy(minor="Monthly"),
        PMPolicy(minor="Yearly"),
        PMPolicy(medium="Weekly"),
        PMPolicy(medium="Monthly"),
        PMPolicy(medium="Yearly"),
        PMPolicy(major="Weekly"),
        PMPolicy(major="Monthly"),
        PMPolicy(major="Yearly"),
        # two-class combinations
        PMPolicy(minor="Weekly", major="Yearly"),
        PMPolicy(minor="Monthly", major="Yearly"),
        PMPolicy(medium="Monthly", major="Yearly"),
        PMPolicy(minor="Weekly", medium="Monthly"),
        # comprehensive
        PMPolicy(minor="Weekly", medium="Monthly", major="Yearly"),
    ]
]


# --- virtual-age adjustment ---

def _normalized(counts: Sequence, params: MaintenanceParams) -> List[np.ndarray]:
    if len(counts) != len(PM_CLASSES):
        raise ValueError(f"Expected {len(PM_CLASSES)} PM counts (Minor, Medium, Major), got {len(counts)}")
    return [np.asarray(c, dtype=np.float64) / params.freq_norm for c in counts]


def _survival_product(counts: Sequence, scalars: Dict[str, float], params: MaintenanceParams):
    out = 1.0
    for cls, n in zip(PM_CLASSES, _normalized(counts, params)):
        out = out * (1.0 - scalars[cls]) ** n
    return out


def rejuvenation_factor(counts: Sequence, params: MaintenanceParams = default_maintenance_params):
    """phi for annual ``counts`` (Minor, Medium, Major); 1 means no rejuvenation."""
    return _survival_product(counts, params.rho, params)


def effectiveness(
    counts: Sequence,
    scalars: Dict[str, float],
    params: MaintenanceParams = default_maintenance_params,
):
    return np.clip(1.0 - _survival_product(counts, scalars, params), 0.0, 1.0)


def adjusted_eta(eta, counts: Sequence, params: MaintenanceParams = default_maintenance_params):
    phi = rejuvenation_factor(counts, params)
    return np.asarray(eta, dtype=np.float64) / np.maximum(phi, params.eta_floor)


def adjusted_beta(beta, e_beta, params: MaintenanceParams = default_maintenance_params):
    drop = np.minimum(params.beta_sensitivity * np.clip(e_beta, 0.0, 1.0), params.max_beta_drop)
    return np.asarray(beta, dtype=np.float64) * (1.0 - drop)


def adjust_parameters(beta, eta, counts: Sequence, params: MaintenanceParams = default_maintenance_params):
    """(beta', eta') after PM at annual ``counts``."""
    e_beta = effectiveness(counts, params.effectiveness_beta, params)
    return adjusted_beta(beta, e_beta, params), adjusted_eta(eta, counts, params)


def pm_hours(equipment: str, counts: Sequence, params: MaintenanceParams = default_maintenance_params):
    """
    Planned PM hours per year in normalised-count units: sum of
    (annual count / freq_norm) times event duration. Fifty-two one-hour
    events therefore give 52/12 hours, the same scale the solver uses.
    """
    durations = params.durations[equipment]
    total = 0.0
    for cls, n in zip(PM_CLASSES, _normalized(counts, params)):
        total = total + n * durations[cls]
    return total


# --- availability solver ---

@dataclass(frozen=True)
class Converged:
    """The iteration settled: relative change fell below tolerance within the cap."""

    availability: float
    failures: float
    iterations: int


@dataclass(frozen=True)
class Degenerate:
    """
    Best-effort availability the caller should not trust: either the fallback
    for a non-finite result, or the last iterate when the cap was reached.
    """

    reason: str
    availability: float = 0.5


SolverResult = Union[Converged, Degenerate]


def _clamp_inputs(beta, eta, mttr, pm, params: MaintenanceParams):
    t = params.hours_per_year
    arrays = np.broadcast_arrays(*(np.asarray(x, dtype=np.float64) for x in (beta, eta, mttr, pm)))
    beta, eta, mttr, pm = (np.array(x) for x in arrays)
    return (
        np.clip(beta, *params.beta_range),
        np.clip(eta, *params.eta_range),
        np.clip(mttr, *params.mttr_range),
        np.clip(pm, 0.0, params.max_pm_fraction * t),
    )


def _fixed_point(beta, eta, mttr, pm, params: MaintenanceParams):
    """
    Vectorised damped iteration. Each element stops updating once its own
    relative change falls below tolerance.

    Returns (availability, failures, iterations, settled, clamped inputs).
    """
    beta, eta, mttr, pm = _clamp_inputs(beta, eta, mttr, pm, params)
    t = params.hours_per_year
    floor = params.failure_floor
    damping = params.damping

    with np.errstate(over="ignore", invalid="ignore", divide="ignore"):
        uptime = np.maximum(t - pm, 0.1 * t)
        f = np.maximum((uptime / eta) ** beta, floor)
        active = np.ones(f.shape, dtype=bool)
        iterations = np.zeros(f.shape, dtype=np.int64)

        for _ in range(params.max_iterations):
            if not active.any():
                break
            uptime = np.maximum(t - pm - f * mttr, 0.01 * t)
            f_new = (uptime / eta) ** beta
            f_new = np.where(np.isfinite(f_new) & (f_new > 0), f_new, floor)
            f = np.where(active, damping * f + (1.0 - damping) * f_new, f)
            iterations += active
            done = active & (np.abs(f_new - f) / np.maximum(f, floor) < params.rel_tolerance)
            active &= ~done

        a = np.clip(1.0 - pm / t - f * mttr / t, 0.0, 1.0)
    return a, f, iterations, ~active, (beta, eta, mttr, pm)


def solve_availability(
    beta: float,
    eta: float,
    mttr: float,
    pm: float,
    params: MaintenanceParams = default_maintenance_params,
) -> SolverResult:
    """Yearly availability for one equipment under minimal repair."""
    a, f, iterations, settled, clamped = _fixed_point(beta, eta, mttr, pm, params)
    a, f = float(a), float(f)
    b, e, r, p = (float(x) for x in clamped)
    if not np.isfinite(a):
        logger.warning(
            "Non-finite availability (beta'=%s eta'=%s f=%s mttr=%s pm=%s); using %s",
            b, e, f, r, p, params.fallback_availability,
        )
        return Degenerate(reason=f"non-finite availability (failures={f})", availability=params.fallback_availability)
    if not settled:
        logger.warning(
            "Availability iteration did not settle in %d iterations (beta'=%s eta'=%s mttr=%s pm=%s); "
            "returning last iterate A=%.4f",
            int(iterations), b, e, r, p, a,
        )
        return Degenerate(reason=f"iteration cap reached after {int(iterations)} iterations", availability=a)
    return Converged(availability=a, failures=f, iterations=int(iterations))


def availability_values(
    beta,
    eta,
    mttr,
    pm,
    params: MaintenanceParams = default_maintenance_params,
) -> np.ndarray:
    """
    Array form of ``solve_availability``. Non-finite results take the
    fallback; elements that hit the iteration cap keep their last iterate.
    Both cases are logged with the number of elements affected.
    """
    a, _, _, settled, clamped = _fixed_point(beta, eta, mttr, pm, params)
    bad = ~np.isfinite(a)
    unsettled = ~settled & ~bad
    if bad.any():
        b, e, r, p = (x[bad].flat[0] for x in clamped)
        logger.warning(
            "Non-finite availability for %d sample(s) (e.g. beta'=%s eta'=%s mttr=%s pm=%s); using %s",
            int(bad.sum()), b, e, r, p, params.fallback_availability,
        )
        a = np.where(bad, params.fallback_availability, a)
    if unsettled.any():
        b, e, r, p = (x[unsettled].flat[0] for x in clamped)
        logger.warning(
            "Availability iteration did not settle in %d iterations for %d sample(s) "
            "(e.g. beta'=%s eta'=%s mttr=%s pm=%s); keeping last iterate",
            params.max_iterations, int(unsettled.sum()), b, e, r, p,
        )
    return a


def availability_state(a, params: MaintenanceParams = default_maintenance_params):
    """Hard bins: A >= high -> 1, A >= medium -> 2, else 3."""
    high, medium = params.state_cutoffs
    values = np.asarray(a, dtype=np.float64)
    states = np.where(values >= high, 1, np.where(values >= medium, 2, 3))
    return states if states.ndim else int(states)


# --- CPDs ---

def policy_cpds(params: MaintenanceParams = default_maintenance_params) -> Dict[str, CPD]:
    """Uniform policy roots, annual counts and the two effectiveness scalars."""
    d: Dict[str, CPD] = {}
    events = np.array([params.annual_events[f] for f in PM_FREQUENCIES], dtype=np.float64)
    uniform = np.full(len(PM_FREQUENCIES), 1.0 / len(PM_FREQUENCIES))

    for cls in PM_CLASSES:
        policy, count = f"{cls}_Policy", f"{cls}_Count"
        d[policy] = StaticCPD(policy, uniform)
        d[count] = FunctionalCPD(
            count, (policy,), lambda c, policy=policy: events[np.asarray(c[policy], dtype=np.int64) - 1]
        )

    d["E_eta"] = FunctionalCPD(
        "E_eta", COUNT_NODES, lambda c: effectiveness([c[k] for k in COUNT_NODES], params.effectiveness_eta, params)
    )
    d["E_beta"] = FunctionalCPD(
        "E_beta", COUNT_NODES, lambda c: effectiveness([c[k] for k in COUNT_NODES], params.effectiveness_beta, params)
    )
    return d


def maintenance_cpds(
    reliability: ReliabilityParams = default_reliability_params,
    maintenance: MaintenanceParams = default_maintenance_params,
) -> Dict[str, CPD]:
    d = policy_cpds(maintenance)

    for eq in EQUIPMENT:
        d.update(weibull_cpds(eq, reliability))
        beta, eta = f"{eq}_Beta", f"{eq}_Eta"
        beta_adj, eta_adj = f"{eq}_Beta_Adjusted", f"{eq}_Eta_Adjusted"
        repair, value = f"{eq}_RepairTime", f"{eq}_Availability_Value"

        d[beta_adj] = FunctionalCPD(
            beta_adj, (beta, "E_beta"), lambda c, beta=beta: adjusted_beta(c[beta], c["E_beta"], maintenance)
        )
        d[eta_adj] = FunctionalCPD(
            eta_adj,
            (eta, *COUNT_NODES),
            lambda c, eta=eta: adjusted_eta(c[eta], [c[k] for k in COUNT_NODES], maintenance),
        )
        d[repair] = repair_time_cpd(eq, reliability)
        d[f"{eq}_MTBF"] = FunctionalCPD(
            f"{eq}_MTBF",
            (beta_adj, eta_adj),
            lambda c, b=beta_adj, e=eta_adj: mean_life(c[b], c[e]),
        )
        d[value] = FunctionalCPD(
            value,
            (beta_adj, eta_adj, repair, *COUNT_NODES),
            lambda c, eq=eq, b=beta_adj, e=eta_adj, r=repair: availability_values(
                c[b],
                c[e],
                c[r],
                pm_hours(eq, [c[k] for k in COUNT_NODES], maintenance),
                maintenance,
            ),
        )
        d[f"{eq}_Availability"] = FunctionalCPD(
            f"{eq}_Availability",
            (value,),
            lambda c, v=value: np.eye(3)[np.atleast_1d(availability_state(c[v], maintenance)) - 1],
            kind="categorical",
            cardinality=3,
        )
    return d


# --- portfolios ---

def _finite_mean(samples, column: str) -> float:
    if column not in samples:
        return float("nan")
    values = np.asarray(samples[column], dtype=np.float64)
    values = values[np.isfinite(values)]
    return float(values.mean()) if values.size else float("nan")


def evaluate_portfolio(
    network,
    name: str,
    policy: PMPolicy,
    equipment: str = "HT",
    n: int = 5000,
    rng: Optional[np.random.Generator] = None,
    params: MaintenanceParams = default_maintenance_params,
    config: Optional[SamplingConfig] = None,
) -> PortfolioResult:
    """
    Sample the maintenance network under ``policy`` and break one equipment's
    yearly downtime into planned PM hours and corrective failure hours.
    """
    samples = sample_batch(network, n, evidence=policy.as_evidence(), rng=rng, config=config)
    mttr = _finite_mean(samples, f"{equipment}_RepairTime")
    avail = _finite_mean(samples, f"{equipment}_Availability_Value")

    if not (np.isfinite(avail) and np.isfinite(mttr)):
        logger.warning("Skipping downtime for %s: availability=%s, mttr=%s", name, avail, mttr)
        planned = fail_hours = total = failures = float("nan")
    else:
        t = params.hours_per_year
        planned = float(pm_hours(equipment, policy.annual_counts(params), params))
        fail_hours = max(t * (1.0 - avail) - planned, 0.0)
        failures = fail_hours / mttr
        total = planned + fail_hours

    return PortfolioResult(
        name=name,
        equipment=equipment,
        e_eta=_finite_mean(samples, "E_eta"),
        e_beta=_finite_mean(samples, "E_beta"),
        mtbf=_finite_mean(samples, f"{equipment}_MTBF"),
        mttr=mttr,
        availability=avail,
        pm_hours=planned,
        failure_hours=fail_hours,
        total_downtime=total,
        failures_per_year=failures,
    )
