"""
Equipment reliability without maintenance.

Weibull life (shape beta, scale eta) per equipment and age class, a
truncated-normal corrective repair time, steady-state availability
MTBF / (MTBF + MTTR), and a soft three-state discretisation of availability
(1=High, 2=Medium, 3=Low).
"""
import logging
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
from scipy import stats
from scipy.special import gamma

from terminalbn.config import AGES, EQUIPMENT, ReliabilityParams, default_reliability_params
from terminalbn.cpd import CPD, FunctionalCPD, StaticCPD
from terminalbn.schemas import ReliabilityRow

logger = logging.getLogger(__name__)


def reliability(equipment: str, age: str, params: ReliabilityParams = default_reliability_params) -> Tuple[float, float]:
    """(beta, eta) for an equipment type and age class."""
    if equipment not in params.beta:
        raise KeyError(f"Unknown equipment type: {equipment}")
    return params.beta[equipment][age], params.eta[equipment][age]


def repair_distribution(equipment: str, params: ReliabilityParams = default_reliability_params):
    """Normal(mu, sd) repair time truncated to [0, inf) as a frozen scipy distribution."""
    mu = params.repair_mean[equipment]
    sd = params.repair_std[equipment]
    return stats.truncnorm(a=-mu / sd, b=np.inf, loc=mu, scale=sd)


def mean_life(beta, eta):
    """Weibull mean eta * Gamma(1 + 1/beta). Works on scalars and arrays."""
    return np.asarray(eta, dtype=np.float64) * gamma(1.0 + 1.0 / np.asarray(beta, dtype=np.float64))


def availability(mtbf, mttr):
    mtbf = np.asarray(mtbf, dtype=np.float64)
    return mtbf / (mtbf + np.asarray(mttr, dtype=np.float64))


def availability_state_probs(
    a,
    low: float,
    high: float,
    margin: float = 0.05,
    fallback: Sequence[float] = (0.33, 0.34, 0.33),
) -> np.ndarray:
    """
    Soft ramp from a continuous availability to [p_high, p_medium, p_low].

    p_low ramps up below ``low + margin``, p_high ramps up above
    ``high - margin``; Medium takes the rest. Scalar input gives a length-3
    vector, array input an (n, 3) matrix. Rows that come out non-finite or
    with no mass are replaced by ``fallback``.
    """
    values = np.atleast_1d(np.asarray(a, dtype=np.float64))
    with np.errstate(invalid="ignore"):
        p_low = np.clip((low + margin - values) / (2 * margin), 0.0, 1.0)
        p_high = np.clip((values - high + margin) / (2 * margin), 0.0, 1.0)
        p_med = np.clip(1.0 - p_low - p_high, 0.0, 1.0)
    probs = np.column_stack([p_high, p_med, p_low])
    total = probs.sum(axis=1)

    bad = ~np.isfinite(total) | np.isclose(total, 0.0)
    if bad.any():
        logger.warning(
            "Degenerate availability state masses for %d value(s) (e.g. A=%s); using fallback %s",
            int(bad.sum()), values[bad][0], list(fallback),
        )
        probs[bad] = np.asarray(fallback, dtype=np.float64)
        total = np.where(bad, probs.sum(axis=1), total)
    probs = probs / total[:, np.newaxis]
    return probs if np.ndim(a) else probs[0]


def _age_lookup(table: Dict[str, float]) -> np.ndarray:
    return np.array([table[age] for age in AGES], dtype=np.float64)


def age_cpd(equipment: str, params: ReliabilityParams) -> StaticCPD:
    return StaticCPD(f"{equipment}_Age", [params.age_probs[age] for age in AGES])


def weibull_cpds(equipment: str, params: ReliabilityParams) -> Dict[str, CPD]:
    """Age class and the point-valued beta/eta it selects."""
    age = f"{equipment}_Age"
    betas = _age_lookup(params.beta[equipment])
    etas = _age_lookup(params.eta[equipment])
    return {
        age: age_cpd(equipment, params),
        f"{equipment}_Beta": FunctionalCPD(
            f"{equipment}_Beta", (age,), lambda c: betas[np.asarray(c[age], dtype=np.int64) - 1]
        ),
        f"{equipment}_Eta": FunctionalCPD(
            f"{equipment}_Eta", (age,), lambda c: etas[np.asarray(c[age], dtype=np.int64) - 1]
        ),
    }


def repair_time_cpd(equipment: str, params: ReliabilityParams) -> FunctionalCPD:
    dist = repair_distribution(equipment, params)
    return FunctionalCPD(f"{equipment}_RepairTime", (), lambda c: dist, kind="random")


def equipment_cpds(params: ReliabilityParams = default_reliability_params) -> Dict[str, CPD]:
    """Per-equipment reliability chain: Age -> Beta/Eta -> MTBF, RepairTime -> Availability."""
    d: Dict[str, CPD] = {}
    for eq in EQUIPMENT:
        d.update(weibull_cpds(eq, params))
        d[f"{eq}_RepairTime"] = repair_time_cpd(eq, params)

        beta, eta = f"{eq}_Beta", f"{eq}_Eta"
        mtbf, repair = f"{eq}_MTBF", f"{eq}_RepairTime"
        d[mtbf] = FunctionalCPD(mtbf, (beta, eta), lambda c, beta=beta, eta=eta: mean_life(c[beta], c[eta]))

        thresholds = params.availability_thresholds[eq]
        d[f"{eq}_Availability"] = FunctionalCPD(
            f"{eq}_Availability",
            (mtbf, repair),
            lambda c, mtbf=mtbf, repair=repair, lo=thresholds[1], hi=thresholds[2]: availability_state_probs(
                availability(c[mtbf], c[repair]),
                lo,
                hi,
                params.margin,
                params.fallback_state_probs,
            ),
            kind="categorical",
            cardinality=3,
        )
    return d


def reliability_summary(
    params: ReliabilityParams = default_reliability_params,
    equipment: Optional[Sequence[str]] = None,
) -> List[ReliabilityRow]:
    """MTBF, mean MTTR, availability and state probabilities per equipment and age."""
    rows: List[ReliabilityRow] = []
    for eq in equipment or EQUIPMENT:
        mttr = float(repair_distribution(eq, params).mean())
        _, lo, hi, _ = params.availability_thresholds[eq]
        for age in AGES:
            beta, eta = reliability(eq, age, params)
            mtbf = float(mean_life(beta, eta))
            a = float(availability(mtbf, mttr))
            p_high, p_med, p_low = availability_state_probs(
                a, lo, hi, params.margin, params.fallback_state_probs
            )
            rows.append(
                ReliabilityRow(
                    equipment=eq,
                    age=age,
                    beta=beta,
                    eta=eta,
                    mtbf=mtbf,
                    mttr=mttr,
                    availability=a,
                    p_high=float(p_high),
                    p_medium=float(p_med),
                    p_low=float(p_low),
                )
            )
    return rows
