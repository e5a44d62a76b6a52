"""
Network assembly for the terminal delay model.

A network is an ordered list of nodes whose parents always come earlier,
plus the CPD owned by each node. The base network drives delays directly
from equipment availability; the full network adds PM policy, operators
and strikes.
"""
import importlib
import json
import logging
import warnings
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Sequence, Set, Tuple

import networkx as nx

from terminalbn.config import TerminalConfig, default_config
from terminalbn.cpd import CPD, cpd_summary
from terminalbn.errors import MissingNodeWarning, NetworkConfigError
from terminalbn.maintenance import maintenance_cpds
from terminalbn.reliability import equipment_cpds
from terminalbn.tables import base_cpds, full_cpds

logger = logging.getLogger(__name__)

BASE_NODE_ORDER: Tuple[str, ...] = (
    # weather
    "Wind", "Rain", "Visibility", "Crane_Operable",
    # terminal state
    "Terminal_Busyness", "Storage_Capacity_Level",
    # equipment reliability
    "QC_Age", "QC_Beta", "QC_Eta", "QC_MTBF", "QC_RepairTime", "QC_Availability",
    "YC_Age", "YC_Beta", "YC_Eta", "YC_MTBF", "YC_RepairTime", "YC_Availability",
    "HT_Age", "HT_Beta", "HT_Eta", "HT_MTBF", "HT_RepairTime", "HT_Availability",
    "Efficiency",
    # delays
    "HT_Delay_Empty", "Crane_Delay", "Yard_Crane_Delay", "HT_Delay_Loaded", "Total_Delay",
)

FULL_NODE_ORDER: Tuple[str, ...] = (
    "Wind", "Rain", "Visibility", "Crane_Operable",
    # operators
    "Shift", "Strike", "Strike_Impact",
    "Operator_Availability_QC", "Operator_Availability_HT", "Operator_Availability_YC",
    "Terminal_Busyness", "Storage_Capacity_Level",
    # PM policy
    "Minor_Policy", "Medium_Policy", "Major_Policy",
    "Minor_Count", "Medium_Count", "Major_Count",
    "E_eta", "E_beta",
    # equipment reliability under PM
    "QC_Age", "QC_Beta", "QC_Eta", "QC_Beta_Adjusted", "QC_Eta_Adjusted", "QC_MTBF", "QC_RepairTime",
    "YC_Age", "YC_Beta", "YC_Eta", "YC_Beta_Adjusted", "YC_Eta_Adjusted", "YC_MTBF", "YC_RepairTime",
    "HT_Age", "HT_Beta", "HT_Eta", "HT_Beta_Adjusted", "HT_Eta_Adjusted", "HT_MTBF", "HT_RepairTime",
    "QC_Availability_Value", "YC_Availability_Value", "HT_Availability_Value",
    "QC_Availability", "YC_Availability", "HT_Availability",
    "QC_Availability_Effective", "HT_Availability_Effective", "YC_Availability_Effective",
    "Efficiency",
    "HT_Delay_Empty", "Crane_Delay", "Yard_Crane_Delay", "HT_Delay_Loaded", "Total_Delay",
)

# Lazy pgmpy import, only needed for export.
BayesianModel = None


def _ensure_pgmpy():
    global BayesianModel
    if BayesianModel is not None:
        return BayesianModel
    models_mod = importlib.import_module("pgmpy.models")
    BayesianModel = (
        getattr(models_mod, "DiscreteBayesianNetwork", None)
        or getattr(models_mod, "BayesianNetwork", None)
    )
    if BayesianModel is None:
        raise ImportError("No Bayesian model class found in pgmpy.models")
    return BayesianModel


@dataclass(frozen=True, eq=False)
class Network:
    nodes: Tuple[str, ...]
    cpds: Mapping[str, CPD]

    def __post_init__(self):
        object.__setattr__(self, "nodes", tuple(self.nodes))
        object.__setattr__(self, "cpds", MappingProxyType(dict(self.cpds)))

    def __contains__(self, name: str) -> bool:
        return name in self.cpds

    def __len__(self) -> int:
        return len(self.nodes)

    def _cpd(self, name: str) -> CPD:
        if name not in self.cpds:
            raise NetworkConfigError(f"Unknown node: {name}")
        return self.cpds[name]

    def cardinality(self, name: str) -> Optional[int]:
        """Number of states, or None for a continuous node."""
        cpd = self._cpd(name)
        return cpd.cardinality if cpd.is_discrete else None

    def parents(self, name: str) -> Tuple[str, ...]:
        return tuple(self._cpd(name).parents)

    @property
    def discrete_nodes(self) -> List[str]:
        return [n for n in self.nodes if self.cpds[n].is_discrete]

    @property
    def edges(self) -> List[Tuple[str, str]]:
        return [(p, n) for n in self.nodes for p in self.cpds[n].parents]

    def to_networkx(self) -> nx.DiGraph:
        graph = nx.DiGraph()
        for name in self.nodes:
            cpd = self.cpds[name]
            graph.add_node(name, kind=cpd.kind, cardinality=self.cardinality(name))
        graph.add_edges_from(self.edges)
        return graph

    def ancestors(self, name: str) -> Set[str]:
        self._cpd(name)
        return nx.ancestors(self.to_networkx(), name)

    def to_dict(self) -> Dict[str, Any]:
        return {"nodes": [cpd_summary(self.cpds[n]) for n in self.nodes]}

    def to_pgmpy(self):
        """Discrete-only export to a pgmpy model with TabularCPDs attached."""
        continuous = [n for n in self.nodes if not hasattr(self.cpds[n], "to_pgmpy")]
        if continuous:
            raise NetworkConfigError(
                f"Cannot export functional nodes to pgmpy: {', '.join(continuous)}"
            )
        model_cls = _ensure_pgmpy()
        model = model_cls()
        model.add_nodes_from(self.nodes)
        model.add_edges_from(self.edges)
        model.add_cpds(*(self.cpds[n].to_pgmpy() for n in self.nodes))
        return model


def assemble(cpts_by_name: Mapping[str, CPD], declared_order: Sequence[str]) -> Network:
    """
    Append nodes in ``declared_order``. A node with no CPD is skipped with a
    MissingNodeWarning; a node whose parent has not been appended yet aborts
    assembly.
    """
    nodes: List[str] = []
    present: Set[str] = set()
    for name in declared_order:
        if name in present:
            raise NetworkConfigError(f"Node {name} declared twice")
        cpd = cpts_by_name.get(name)
        if cpd is None:
            logger.warning("Missing node in CPDs: %s", name)
            warnings.warn(f"Missing node in CPDs: {name}", MissingNodeWarning, stacklevel=2)
            continue
        missing = [p for p in cpd.parents if p not in present]
        if missing:
            raise NetworkConfigError(
                f"Node {name} needs parent(s) {', '.join(missing)} appended before it"
            )
        nodes.append(name)
        present.add(name)

    return Network(tuple(nodes), {name: cpts_by_name[name] for name in nodes})


def build_base_network(config: TerminalConfig = default_config) -> Network:
    cpds: Dict[str, CPD] = {}
    cpds.update(base_cpds(config.sampling.row_tolerance))
    cpds.update(equipment_cpds(config.reliability))
    return assemble(cpds, BASE_NODE_ORDER)


def build_full_network(config: TerminalConfig = default_config) -> Network:
    cpds: Dict[str, CPD] = {}
    cpds.update(full_cpds(config.sampling.row_tolerance))
    cpds.update(maintenance_cpds(config.reliability, config.maintenance))
    return assemble(cpds, FULL_NODE_ORDER)


def save_network_json(network: Network, path: Path) -> None:
    """Write the node/parent structure (no tables) as JSON."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(network.to_dict(), indent=2))
