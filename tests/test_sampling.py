"""
Tests for ancestral sampling and the capped rejection loop.
"""

import numpy as np
import pandas as pd
import pytest

from terminalbn.config import SamplingConfig
from terminalbn.errors import NetworkConfigError, QueryTimeoutError
from terminalbn.network import Network
from terminalbn.sampling import draw, make_rng, matches, sample, sample_batch, validate_evidence


class TestDraw:

    def test_one_column_per_node(self, base_network, rng):
        samples = draw(base_network, 200, rng)
        assert list(samples.columns) == list(base_network.nodes)
        assert len(samples) == 200

    def test_discrete_states_in_range(self, base_network, rng):
        samples = draw(base_network, 500, rng)
        for name in base_network.discrete_nodes:
            col = samples[name]
            assert col.min() >= 1
            assert col.max() <= base_network.cardinality(name)

    def test_continuous_values(self, base_network, rng):
        samples = draw(base_network, 500, rng)
        assert (samples["QC_RepairTime"] >= 0).all()
        assert set(samples["QC_Beta"].unique()) <= {1.2, 1.5, 2.0}

    def test_same_seed_same_samples(self, base_network):
        a = draw(base_network, 300, make_rng(42))
        b = draw(base_network, 300, make_rng(42))
        pd.testing.assert_frame_equal(a, b)

    def test_different_seed_differs(self, base_network):
        a = draw(base_network, 300, make_rng(1))
        b = draw(base_network, 300, make_rng(2))
        assert not a.equals(b)

    def test_crane_follows_wind(self, weather_network, rng):
        samples = draw(weather_network, 20_000, rng)
        windy = samples[samples["Wind"] == 3]
        assert (windy["Crane_Operable"] == 2).all()
        assert (samples.loc[samples["Wind"] < 3, "Crane_Operable"] == 1).all()

    def test_root_marginal(self, weather_network, rng):
        samples = draw(weather_network, 50_000, rng)
        assert (samples["Wind"] == 1).mean() == pytest.approx(0.917, abs=0.01)

    def test_order_violation_is_key_error(self, weather_network, rng):
        net = Network(("Crane_Operable", "Wind"), {k: weather_network.cpds[k] for k in ("Crane_Operable", "Wind")})
        with pytest.raises(KeyError):
            draw(net, 10, rng)


class TestSingleSample:

    def test_sample_covers_all_nodes(self, full_network, rng):
        s = sample(full_network, rng)
        assert set(s) == set(full_network.nodes)
        assert 0.0 <= s["QC_Availability_Value"] <= 1.0
        assert s["QC_Availability_Effective"] >= s["QC_Availability"]


class TestMatches:

    def test_mask(self):
        frame = pd.DataFrame({"A": [1, 2, 1], "B": [3, 3, 1]})
        np.testing.assert_array_equal(matches(frame, {"A": 1}), [True, False, True])
        np.testing.assert_array_equal(matches(frame, {"A": 1, "B": 3}), [True, False, False])
        np.testing.assert_array_equal(matches(frame, {}), [True, True, True])

    def test_missing_column_matches_nothing(self):
        frame = pd.DataFrame({"A": [1, 2]})
        assert not matches(frame, {"C": 1}).any()


class TestEvidenceValidation:

    def test_unknown_variable(self, base_network):
        with pytest.raises(NetworkConfigError, match="Unknown evidence"):
            validate_evidence(base_network, {"Tide": 1})

    def test_out_of_range_state(self, base_network):
        with pytest.raises(NetworkConfigError, match="outside"):
            validate_evidence(base_network, {"Wind": 4})
        with pytest.raises(NetworkConfigError):
            validate_evidence(base_network, {"Wind": 0})

    def test_continuous_node(self, base_network):
        with pytest.raises(NetworkConfigError, match="continuous"):
            validate_evidence(base_network, {"QC_MTBF": 1})


class TestSampleBatch:

    def test_without_evidence(self, weather_network, rng):
        assert len(sample_batch(weather_network, 123, rng=rng)) == 123

    def test_all_rows_match_evidence(self, weather_network, rng):
        samples = sample_batch(weather_network, 400, {"Rain": 4}, rng=rng)
        assert len(samples) == 400
        assert (samples["Rain"] == 4).all()

    def test_draws_more_chunks_when_needed(self, weather_network, rng):
        # P(Wind=2) = 0.08, so the first 1000 draws leave ~80 matches
        config = SamplingConfig(min_oversample=1000, chunk_size=2000)
        samples = sample_batch(weather_network, 300, {"Wind": 2}, rng=rng, config=config)
        assert len(samples) == 300
        assert (samples["Wind"] == 2).all()
        assert samples.index.tolist() == list(range(300))

    def test_impossible_evidence_times_out(self, weather_network, rng):
        config = SamplingConfig(min_oversample=1000, chunk_size=1000, max_draws=3000)
        with pytest.raises(QueryTimeoutError) as info:
            sample_batch(weather_network, 10, {"Wind": 1, "Crane_Operable": 2}, rng=rng, config=config)
        assert info.value.matched == 0
        assert info.value.requested == 10
        assert info.value.draws == 3000

    def test_strike_forces_high_total_delay(self, full_network, rng):
        samples = sample_batch(full_network, 50, {"Strike": 2}, rng=rng)
        assert (samples["Strike_Impact"] == 3).all()
        assert (samples["Operator_Availability_QC"] == 3).all()
        assert (samples["Total_Delay"] == 3).all()

    def test_maintenance_states_follow_bins(self, full_network, rng):
        samples = sample_batch(full_network, 1000, rng=rng)
        values = samples["YC_Availability_Value"]
        assert values.between(0.0, 1.0).all()
        expected = np.where(values >= 0.90, 1, np.where(values >= 0.85, 2, 3))
        np.testing.assert_array_equal(samples["YC_Availability"].to_numpy(), expected)

    def test_seed_reproducibility(self, weather_network):
        a = sample_batch(weather_network, 100, {"Visibility": 4}, rng=make_rng(9))
        b = sample_batch(weather_network, 100, {"Visibility": 4}, rng=make_rng(9))
        pd.testing.assert_frame_equal(a, b)
