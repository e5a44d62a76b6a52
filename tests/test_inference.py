"""
Tests for Monte Carlo queries.
"""

import logging
import math

import pandas as pd
import pytest

from terminalbn.errors import NetworkConfigError
from terminalbn.inference import (
    DELAY_LEVELS,
    DELAY_NODES,
    distribution_from_samples,
    expected_value,
    log_likelihood,
    query_distribution,
    trace_delays_given,
)
from terminalbn.sampling import make_rng


class TestQueryDistribution:

    def test_strong_wind_stops_cranes(self, base_network):
        dist, n_match = query_distribution(base_network, "Crane_Operable", {"Wind": 3}, n=10_000, rng=make_rng(1234))
        assert n_match > 0
        assert dist == {2: 1.0}

    def test_weather_drives_efficiency(self, base_network):
        rng = make_rng(1234)
        best, n_best = query_distribution(
            base_network, "Efficiency", {"Wind": 1, "Rain": 1, "Visibility": 1}, n=100_000, rng=rng
        )
        worst, n_worst = query_distribution(base_network, "Efficiency", {"Wind": 3, "Rain": 4}, n=100_000, rng=rng)
        assert n_best > 0 and n_worst > 0
        assert expected_value(best) < expected_value(worst)
        assert expected_value(best) == pytest.approx(1.0)
        assert expected_value(worst) == pytest.approx(10.0)

    def test_pinned_parents_reproduce_cpt_row(self, base_network):
        evidence = {"YC_Availability": 2, "Storage_Capacity_Level": 3}
        dist, n_match = query_distribution(base_network, "Yard_Crane_Delay", evidence, n=50_000, rng=make_rng(11))
        assert n_match > 1000
        row = base_network.cpds["Yard_Crane_Delay"].row_for(evidence)
        for state in (1, 2, 3):
            assert dist.get(state, 0.0) == pytest.approx(row[state - 1], abs=0.03)

    def test_no_evidence_uses_all_samples(self, weather_network, rng):
        dist, n_match = query_distribution(weather_network, "Wind", n=5000, rng=rng)
        assert n_match == 5000
        assert sum(dist.values()) == pytest.approx(1.0)

    def test_no_match_returns_empty(self, weather_network, rng, caplog):
        with caplog.at_level(logging.WARNING, logger="terminalbn.inference"):
            dist, n_match = query_distribution(
                weather_network, "Efficiency", {"Wind": 1, "Crane_Operable": 2}, n=2000, rng=rng
            )
        assert dist == {}
        assert n_match == 0
        assert "No samples" in caplog.text

    def test_unknown_target(self, base_network, rng):
        with pytest.raises(NetworkConfigError):
            query_distribution(base_network, "Tide", n=10, rng=rng)

    def test_continuous_target(self, base_network, rng):
        with pytest.raises(NetworkConfigError, match="continuous"):
            query_distribution(base_network, "HT_MTBF", n=10, rng=rng)


class TestHelpers:

    def test_distribution_from_samples(self):
        frame = pd.DataFrame({"X": [1, 1, 3, 3, 3, 2]})
        assert distribution_from_samples(frame, "X") == {1: 2 / 6, 2: 1 / 6, 3: 3 / 6}

    def test_distribution_from_empty(self):
        assert distribution_from_samples(pd.DataFrame({"X": []}), "X") == {}

    def test_expected_value(self):
        assert expected_value({1: 0.5, 3: 0.5}) == pytest.approx(2.0)
        assert math.isnan(expected_value({}))


class TestLikelihood:

    def test_certain_evidence(self, weather_network, rng):
        assert log_likelihood(weather_network, {}, n=500, rng=rng) == pytest.approx(0.0)

    def test_impossible_evidence_is_floored(self, weather_network, rng):
        value = log_likelihood(weather_network, {"Wind": 1, "Crane_Operable": 2}, n=500, rng=rng)
        assert value == pytest.approx(math.log(1e-10))

    @pytest.mark.parametrize("n", [0, -5])
    def test_requires_samples(self, weather_network, rng, n):
        with pytest.raises(ValueError, match="at least one sample"):
            log_likelihood(weather_network, {"Wind": 1}, n=n, rng=rng)

    def test_common_evidence(self, weather_network, rng):
        value = log_likelihood(weather_network, {"Wind": 1}, n=20_000, rng=rng)
        assert value == pytest.approx(math.log(0.917), abs=0.02)


class TestTraceDelays:

    def test_rows_are_distributions(self, base_network, rng):
        table, n_match = trace_delays_given(base_network, {"Terminal_Busyness": 3}, n=5000, rng=rng)
        assert n_match > 0
        assert list(table.index) == list(DELAY_NODES)
        assert list(table.columns) == list(DELAY_LEVELS)
        for node in DELAY_NODES:
            assert table.loc[node].sum() == pytest.approx(1.0)

    def test_not_operable_crane_delay_is_high(self, base_network, rng):
        table, n_match = trace_delays_given(base_network, {"Crane_Operable": 2}, n=20_000, rng=rng)
        assert n_match > 0
        assert table.loc["Crane_Delay", "High"] == pytest.approx(1.0)

    def test_no_match(self, base_network, rng):
        table, n_match = trace_delays_given(base_network, {"Wind": 1, "Crane_Operable": 2}, n=1000, rng=rng)
        assert n_match == 0
        assert table.empty
