"""
Conditional probability distributions and the CPT builder.

Three CPD variants share one interface (``row_for``, ``sample_given``,
``sample_columns``):

    StaticCPD      root categorical, no parents
    TabularCPD     explicit rows, one per parent-state combination
    FunctionalCPD  distribution computed from parent values (point masses,
                   scipy distributions, or categorical matrices)

Rows of a TabularCPD follow mixed-radix order over the parent states with the
first declared parent varying slowest and the last varying fastest. pgmpy's
TabularCPD columns use the same convention, which ``to_pgmpy`` relies on.
"""
import importlib
from dataclasses import dataclass
from itertools import product
from typing import Any, Callable, Dict, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

from terminalbn.errors import MalformedTableError

Columns = Mapping[str, np.ndarray]

# Lazy pgmpy import, only needed for export.
PgmpyTabularCPD = None


def _ensure_pgmpy():
    global PgmpyTabularCPD
    if PgmpyTabularCPD is not None:
        return PgmpyTabularCPD
    PgmpyTabularCPD = importlib.import_module("pgmpy.factors.discrete").TabularCPD
    return PgmpyTabularCPD


def one_hot(state: int, cardinality: int) -> np.ndarray:
    """Deterministic row putting all mass on ``state`` (1-based)."""
    row = np.zeros(cardinality)
    row[state - 1] = 1.0
    return row


def draw_categorical(probs: np.ndarray, rng: np.random.Generator) -> np.ndarray:
    """
    Inverse-CDF draw, one state per row of ``probs`` (shape (n, K)).
    Returns 1-based states.
    """
    probs = np.atleast_2d(probs)
    cum = np.cumsum(probs, axis=1)
    u = rng.random(probs.shape[0])[:, np.newaxis] * cum[:, -1:]
    states = (cum <= u).sum(axis=1) + 1
    return np.minimum(states, probs.shape[1]).astype(np.int64)


def validate_table(
    variable: str,
    table: np.ndarray,
    expected_rows: int,
    tolerance: float = 1e-6,
) -> None:
    """Raise MalformedTableError unless ``table`` is a valid (expected_rows, K) CPT."""
    if table.ndim != 2 or table.shape[1] == 0:
        raise MalformedTableError(f"{variable}: table must be 2-D with at least one state, got shape {table.shape}")
    if table.shape[0] != expected_rows:
        raise MalformedTableError(
            f"{variable}: expected {expected_rows} rows (product of parent cardinalities), got {table.shape[0]}"
        )
    if not np.all(np.isfinite(table)):
        raise MalformedTableError(f"{variable}: table contains non-finite probabilities")
    if np.any(table < 0):
        bad = int(np.argwhere(table < 0)[0][0])
        raise MalformedTableError(f"{variable}: row {bad} has a negative probability")
    sums = table.sum(axis=1)
    off = np.flatnonzero(np.abs(sums - 1.0) > tolerance)
    if off.size:
        raise MalformedTableError(f"{variable}: row {int(off[0])} sums to {sums[off[0]]:.8f}, not 1")


def _readonly(values: Any) -> np.ndarray:
    arr = np.array(values, dtype=np.float64)
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True, eq=False)
class StaticCPD:
    """Root node with a fixed categorical distribution over states 1..K."""

    variable: str
    probs: np.ndarray
    tolerance: float = 1e-6

    kind = "static"
    parents = ()

    def __post_init__(self):
        probs = _readonly(self.probs)
        validate_table(self.variable, probs.reshape(1, -1), 1, self.tolerance)
        object.__setattr__(self, "probs", probs)

    @property
    def cardinality(self) -> int:
        return int(self.probs.shape[0])

    @property
    def is_discrete(self) -> bool:
        return True

    def row_for(self, assignment: Optional[Mapping[str, Any]] = None) -> np.ndarray:
        return self.probs

    def sample_given(self, assignment: Optional[Mapping[str, Any]], rng: np.random.Generator) -> int:
        return int(draw_categorical(self.probs, rng)[0])

    def sample_columns(self, columns: Columns, n: int, rng: np.random.Generator) -> np.ndarray:
        return draw_categorical(np.broadcast_to(self.probs, (n, self.cardinality)), rng)

    def to_pgmpy(self):
        cls = _ensure_pgmpy()
        return cls(
            variable=self.variable,
            variable_card=self.cardinality,
            values=[[float(p)] for p in self.probs],
            state_names={self.variable: list(range(1, self.cardinality + 1))},
        )


@dataclass(frozen=True, eq=False)
class TabularCPD:
    """Categorical CPT with one explicit row per parent-state combination."""

    variable: str
    parents: Tuple[str, ...]
    cardinalities: Tuple[int, ...]
    table: np.ndarray
    tolerance: float = 1e-6

    kind = "tabular"

    def __post_init__(self):
        parents = tuple(self.parents)
        cards = tuple(int(c) for c in self.cardinalities)
        if len(parents) != len(cards):
            raise MalformedTableError(
                f"{self.variable}: {len(parents)} parents declared with {len(cards)} cardinalities"
            )
        if any(c < 1 for c in cards):
            raise MalformedTableError(f"{self.variable}: parent cardinalities must be positive, got {cards}")
        table = _readonly(self.table)
        validate_table(self.variable, table, int(np.prod(cards)) if cards else 1, self.tolerance)
        object.__setattr__(self, "parents", parents)
        object.__setattr__(self, "cardinalities", cards)
        object.__setattr__(self, "table", table)

    @property
    def cardinality(self) -> int:
        return int(self.table.shape[1])

    @property
    def is_discrete(self) -> bool:
        return True

    def row_index(self, states: Sequence[int]) -> int:
        return row_index(states, self.cardinalities)

    def row_for(self, assignment: Mapping[str, Any]) -> np.ndarray:
        states = [int(assignment[p]) for p in self.parents]
        return self.table[self.row_index(states)]

    def sample_given(self, assignment: Mapping[str, Any], rng: np.random.Generator) -> int:
        return int(draw_categorical(self.row_for(assignment), rng)[0])

    def sample_columns(self, columns: Columns, n: int, rng: np.random.Generator) -> np.ndarray:
        if not self.parents:
            return draw_categorical(np.broadcast_to(self.table[0], (n, self.cardinality)), rng)
        idx = np.ravel_multi_index(
            tuple(np.asarray(columns[p], dtype=np.int64) - 1 for p in self.parents),
            self.cardinalities,
        )
        return draw_categorical(self.table[idx], rng)

    def to_pgmpy(self):
        cls = _ensure_pgmpy()
        state_names = {p: list(range(1, c + 1)) for p, c in zip(self.parents, self.cardinalities)}
        state_names[self.variable] = list(range(1, self.cardinality + 1))
        return cls(
            variable=self.variable,
            variable_card=self.cardinality,
            # pgmpy wants (child states, parent combinations)
            values=self.table.T.tolist(),
            evidence=list(self.parents),
            evidence_card=list(self.cardinalities),
            state_names=state_names,
        )


FUNCTIONAL_KINDS = ("point", "random", "categorical")


@dataclass(frozen=True, eq=False)
class FunctionalCPD:
    """
    Distribution computed from parent values.

    ``fn`` receives a mapping of parent name -> numpy column and returns, by kind:
        point        values (Dirac masses), broadcastable to the batch
        random       a frozen scipy distribution to draw from
        categorical  an (n, K) probability matrix over states 1..K
    """

    variable: str
    parents: Tuple[str, ...]
    fn: Callable[[Columns], Any]
    kind: str = "point"
    cardinality: Optional[int] = None

    def __post_init__(self):
        object.__setattr__(self, "parents", tuple(self.parents))
        if self.kind not in FUNCTIONAL_KINDS:
            raise ValueError(f"{self.variable}: unknown functional kind {self.kind!r}")
        if self.kind == "categorical" and not self.cardinality:
            raise ValueError(f"{self.variable}: categorical functional CPD needs a cardinality")

    @property
    def is_discrete(self) -> bool:
        return self.kind == "categorical"

    def _evaluate(self, assignment: Mapping[str, Any]):
        columns = {p: np.atleast_1d(np.asarray(assignment[p])) for p in self.parents}
        return self.fn(columns)

    def row_for(self, assignment: Mapping[str, Any]):
        out = self._evaluate(assignment)
        if self.kind == "point":
            return float(np.atleast_1d(out)[0])
        if self.kind == "categorical":
            return np.atleast_2d(out)[0]
        return out

    def sample_given(self, assignment: Mapping[str, Any], rng: np.random.Generator):
        columns = {p: np.atleast_1d(np.asarray(assignment[p])) for p in self.parents}
        value = self.sample_columns(columns, 1, rng)[0]
        return int(value) if self.kind == "categorical" else float(value)

    def sample_columns(self, columns: Columns, n: int, rng: np.random.Generator) -> np.ndarray:
        out = self.fn({p: columns[p] for p in self.parents})
        if self.kind == "point":
            return np.broadcast_to(np.asarray(out, dtype=np.float64), (n,)).copy()
        if self.kind == "random":
            return np.asarray(out.rvs(size=n, random_state=rng), dtype=np.float64)
        probs = np.broadcast_to(np.atleast_2d(out), (n, self.cardinality))
        return draw_categorical(probs, rng)


CPD = Union[StaticCPD, TabularCPD, FunctionalCPD]


def row_index(states: Sequence[int], cardinalities: Sequence[int]) -> int:
    """Linear row of 1-based parent ``states``; first parent varies slowest."""
    if not cardinalities:
        return 0
    return int(np.ravel_multi_index(tuple(int(s) - 1 for s in states), tuple(cardinalities)))


def parent_states(index: int, cardinalities: Sequence[int]) -> Tuple[int, ...]:
    """Inverse of ``row_index``."""
    return tuple(int(i) + 1 for i in np.unravel_index(index, tuple(cardinalities)))


def categorical_cpd(
    variable: str,
    parents: Sequence[str],
    cardinalities: Sequence[int],
    rows: Sequence[Sequence[float]],
    tolerance: float = 1e-6,
) -> TabularCPD:
    """TabularCPD from rows already listed in mixed-radix order."""
    lengths = {len(r) for r in rows}
    if len(lengths) > 1:
        raise MalformedTableError(f"{variable}: rows have differing lengths {sorted(lengths)}")
    return TabularCPD(variable, tuple(parents), tuple(cardinalities), np.asarray(rows, dtype=np.float64), tolerance)


def build_cpt(
    variable: str,
    parents: Sequence[str],
    cardinalities: Sequence[int],
    row_generator: Callable[..., Sequence[float]],
    tolerance: float = 1e-6,
) -> TabularCPD:
    """
    Enumerate parent states (first parent slowest) and attach
    ``row_generator(*states)`` to each combination.
    """
    if len(parents) != len(cardinalities):
        raise MalformedTableError(
            f"{variable}: {len(parents)} parents declared with {len(cardinalities)} cardinalities"
        )
    combos = product(*(range(1, int(c) + 1) for c in cardinalities))
    rows = [list(row_generator(*combo)) for combo in combos]
    return categorical_cpd(variable, parents, cardinalities, rows, tolerance)


def cpd_summary(cpd: CPD) -> Dict[str, Any]:
    """Small description used in diagnostics and warnings."""
    return {
        "variable": cpd.variable,
        "kind": cpd.kind,
        "parents": list(cpd.parents),
        "cardinality": getattr(cpd, "cardinality", None),
    }
