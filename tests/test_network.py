"""
Tests for network assembly, graph views and pgmpy export.
"""

import json
import warnings

import networkx as nx
import pytest

from terminalbn.cpd import StaticCPD, build_cpt, one_hot
from terminalbn.errors import MissingNodeWarning, NetworkConfigError
from terminalbn.network import (
    BASE_NODE_ORDER,
    FULL_NODE_ORDER,
    Network,
    assemble,
    save_network_json,
)


def _chain():
    return {
        "A": StaticCPD("A", [0.5, 0.5]),
        "B": build_cpt("B", ["A"], [2], lambda a: one_hot(a, 2)),
    }


class TestAssemble:

    def test_keeps_declared_order(self):
        net = assemble(_chain(), ["A", "B"])
        assert net.nodes == ("A", "B")
        assert len(net) == 2
        assert "B" in net

    def test_missing_node_warns_and_is_omitted(self):
        with pytest.warns(MissingNodeWarning, match="PM_Type"):
            net = assemble(_chain(), ["A", "PM_Type", "B"])
        assert net.nodes == ("A", "B")

    def test_parent_after_child_is_fatal(self):
        with pytest.raises(NetworkConfigError, match="needs parent"):
            assemble(_chain(), ["B", "A"])

    def test_missing_parent_is_fatal(self):
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", MissingNodeWarning)
            with pytest.raises(NetworkConfigError):
                assemble({"B": _chain()["B"]}, ["A", "B"])

    def test_duplicate_node_rejected(self):
        with pytest.raises(NetworkConfigError, match="declared twice"):
            assemble(_chain(), ["A", "A", "B"])

    def test_network_is_immutable(self):
        net = assemble(_chain(), ["A", "B"])
        with pytest.raises(TypeError):
            net.cpds["C"] = StaticCPD("C", [1.0])


class TestBuiltNetworks:

    def test_base_network_has_every_declared_node(self, base_network):
        assert base_network.nodes == BASE_NODE_ORDER

    def test_full_network_has_every_declared_node(self, full_network):
        assert full_network.nodes == FULL_NODE_ORDER

    @pytest.mark.parametrize("fixture", ["base_network", "full_network"])
    def test_parents_precede_children(self, fixture, request):
        net = request.getfixturevalue(fixture)
        position = {name: i for i, name in enumerate(net.nodes)}
        for name in net.nodes:
            for parent in net.parents(name):
                assert position[parent] < position[name]

    def test_graph_is_dag(self, full_network):
        graph = full_network.to_networkx()
        assert nx.is_directed_acyclic_graph(graph)
        assert graph.number_of_nodes() == len(full_network)

    def test_ancestors(self, base_network):
        ancestors = base_network.ancestors("Total_Delay")
        assert {"Wind", "QC_Age", "HT_RepairTime", "Terminal_Busyness"} <= ancestors
        assert base_network.ancestors("Wind") == set()

    def test_strike_reaches_total_delay(self, full_network):
        assert "Strike" in full_network.ancestors("Total_Delay")
        assert "Minor_Policy" in full_network.ancestors("QC_Availability_Effective")

    def test_cardinality(self, base_network):
        assert base_network.cardinality("Efficiency") == 10
        assert base_network.cardinality("QC_Availability") == 3
        assert base_network.cardinality("QC_MTBF") is None

    def test_unknown_node(self, base_network):
        with pytest.raises(NetworkConfigError):
            base_network.parents("Tide")

    def test_discrete_nodes(self, base_network):
        discrete = base_network.discrete_nodes
        assert "Total_Delay" in discrete
        assert "HT_Eta" not in discrete

    def test_save_structure(self, base_network, tmp_path):
        path = tmp_path / "out" / "base.json"
        save_network_json(base_network, path)
        payload = json.loads(path.read_text())
        assert [n["variable"] for n in payload["nodes"]] == list(BASE_NODE_ORDER)


class TestPgmpyExport:

    def test_functional_nodes_block_export(self, base_network):
        with pytest.raises(NetworkConfigError, match="functional"):
            base_network.to_pgmpy()

    def test_discrete_subnetwork_exports(self, weather_network):
        pytest.importorskip("pgmpy")
        model = weather_network.to_pgmpy()
        assert model.check_model()
        assert set(model.nodes()) == set(weather_network.nodes)
        assert set(model.get_parents("Efficiency")) == {"Crane_Operable", "Wind", "Rain", "Visibility"}

    def test_direct_network_construction(self):
        net = Network(("A", "B"), _chain())
        assert net.edges == [("A", "B")]
