import numpy as np
import pytest

from terminalbn.network import assemble, build_base_network, build_full_network
from terminalbn.tables import weather_cpds

WEATHER_ORDER = ["Wind", "Rain", "Visibility", "Crane_Operable", "Efficiency"]


@pytest.fixture(scope="session")
def base_network():
    return build_base_network()


@pytest.fixture(scope="session")
def full_network():
    return build_full_network()


@pytest.fixture(scope="session")
def weather_network():
    """Small all-discrete network: weather roots, operability, efficiency."""
    return assemble(weather_cpds(), WEATHER_ORDER)


@pytest.fixture
def rng():
    return np.random.default_rng(1234)
