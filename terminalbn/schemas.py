"""
Result records for terminalbn.
Consumed by external writers (console tables, CSV, LaTeX).
"""
from typing import Dict

from pydantic import BaseModel, Field

# --- reliability ---

class ReliabilityRow(BaseModel):
    equipment: str
    age: str
    beta: float
    eta: float
    mtbf: float = Field(..., description="Weibull mean life, hours")
    mttr: float = Field(..., description="Mean of the truncated-normal repair time, hours")
    availability: float
    p_high: float
    p_medium: float
    p_low: float

# --- maintenance ---

class PortfolioResult(BaseModel):
    name: str
    equipment: str
    e_eta: float = Field(..., description="Mean scale-parameter effectiveness")
    e_beta: float = Field(..., description="Mean shape-parameter effectiveness")
    mtbf: float
    mttr: float
    availability: float
    pm_hours: float = Field(..., description="Planned PM hours per year from normalised counts (annual count / 12 times duration)")
    failure_hours: float = Field(..., description="Corrective downtime per year")
    total_downtime: float
    failures_per_year: float

# --- scenarios ---

class ScenarioSummary(BaseModel):
    label: str
    evidence: Dict[str, int] = Field(default_factory=dict)
    matches: int = 0
