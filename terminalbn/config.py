"""
Central configuration for the terminal delay network.

All physical constants live here as injected parameters so an alternate
equipment catalog can be swapped in without touching the model code.
"""
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

EQUIPMENT: Tuple[str, ...] = ("QC", "YC", "HT")
AGES: Tuple[str, ...] = ("New", "Mid", "Old")
PM_CLASSES: Tuple[str, ...] = ("Minor", "Medium", "Major")
PM_FREQUENCIES: Tuple[str, ...] = ("None", "Weekly", "Monthly", "Yearly")


@dataclass
class SamplingConfig:
    """Global knobs for Monte Carlo sampling and rejection queries."""

    seed: int = 1234
    num_samples: int = 10_000
    # First rejection pass draws max(oversample_factor * n, min_oversample).
    oversample_factor: int = 2
    min_oversample: int = 1000
    # Draws per round once the first pass under-fills.
    chunk_size: int = 10_000
    # Cap on total draws in one rejection loop. None blocks until satisfied.
    max_draws: Optional[int] = 5_000_000
    row_tolerance: float = 1e-6
    likelihood_floor: float = 1e-10


@dataclass
class ReliabilityParams:
    """Weibull life, repair time and availability thresholds per equipment."""

    beta: Dict[str, Dict[str, float]] = field(
        default_factory=lambda: {
            "QC": {"New": 1.2, "Mid": 1.5, "Old": 2.0},
            "YC": {"New": 1.2, "Mid": 1.5, "Old": 2.0},
            "HT": {"New": 1.2, "Mid": 1.5, "Old": 2.0},
        }
    )
    eta: Dict[str, Dict[str, float]] = field(
        default_factory=lambda: {
            "QC": {"New": 600.0, "Mid": 500.0, "Old": 400.0},
            "YC": {"New": 300.0, "Mid": 250.0, "Old": 220.0},
            "HT": {"New": 400.0, "Mid": 350.0, "Old": 300.0},
        }
    )
    # Corrective repair time, hours: Normal(mu, sd) truncated at 0.
    repair_mean: Dict[str, float] = field(default_factory=lambda: {"QC": 24.0, "YC": 14.0, "HT": 8.0})
    repair_std: Dict[str, float] = field(default_factory=lambda: {"QC": 12.0, "YC": 7.0, "HT": 4.0})
    age_probs: Dict[str, float] = field(default_factory=lambda: {"New": 0.2, "Mid": 0.6, "Old": 0.2})
    # [min, low, high, max]; only low and high drive the state ramp.
    availability_thresholds: Dict[str, List[float]] = field(
        default_factory=lambda: {
            "QC": [0.0, 0.92, 0.97, 1.0],
            "YC": [0.0, 0.92, 0.97, 1.0],
            "HT": [0.0, 0.95, 0.98, 1.0],
        }
    )
    margin: float = 0.05
    fallback_state_probs: Tuple[float, float, float] = (0.33, 0.34, 0.33)


@dataclass
class MaintenanceParams:
    """Preventive-maintenance policy model and availability solver settings."""

    annual_events: Dict[str, int] = field(
        default_factory=lambda: {"None": 0, "Weekly": 52, "Monthly": 12, "Yearly": 1}
    )
    # Hours per PM event.
    durations: Dict[str, Dict[str, float]] = field(
        default_factory=lambda: {
            "QC": {"Minor": 2.0, "Medium": 6.0, "Major": 24.0},
            "HT": {"Minor": 1.0, "Medium": 2.0, "Major": 4.0},
            "YC": {"Minor": 3.0, "Medium": 6.0, "Major": 20.0},
        }
    )
    # Kijima virtual-age rollback fraction per event.
    rho: Dict[str, float] = field(default_factory=lambda: {"Minor": 0.10, "Medium": 0.30, "Major": 0.60})
    effectiveness_eta: Dict[str, float] = field(
        default_factory=lambda: {"Minor": 0.10, "Medium": 0.25, "Major": 0.60}
    )
    effectiveness_beta: Dict[str, float] = field(
        default_factory=lambda: {"Minor": 0.05, "Medium": 0.15, "Major": 0.30}
    )
    freq_norm: float = 12.0
    beta_sensitivity: float = 0.50
    max_beta_drop: float = 0.30
    eta_floor: float = 1e-6
    hours_per_year: float = 8760.0

    # Fixed-point solver.
    max_iterations: int = 10
    damping: float = 0.3
    rel_tolerance: float = 1e-6
    failure_floor: float = 1e-6
    fallback_availability: float = 0.5
    beta_range: Tuple[float, float] = (0.5, 10.0)
    eta_range: Tuple[float, float] = (1e-3, 1e6)
    mttr_range: Tuple[float, float] = (0.01, 1e3)
    max_pm_fraction: float = 0.9

    # A >= high -> High (1), A >= medium -> Medium (2), else Low (3).
    state_cutoffs: Tuple[float, float] = (0.90, 0.85)


@dataclass
class TerminalConfig:
    """Configuration struct assembled once at startup and passed by reference."""

    reliability: ReliabilityParams = field(default_factory=ReliabilityParams)
    maintenance: MaintenanceParams = field(default_factory=MaintenanceParams)
    sampling: SamplingConfig = field(default_factory=SamplingConfig)


default_sampling_config = SamplingConfig()
default_reliability_params = ReliabilityParams()
default_maintenance_params = MaintenanceParams()
default_config = TerminalConfig()
