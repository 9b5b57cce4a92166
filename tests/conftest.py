import pytest

from bme280hub.bus import SimulatedBus
from bme280hub.config import DeviceConfig
from bme280hub.device import BME280


@pytest.fixture
def bus():
    return SimulatedBus()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def make_device(sleeps):
    """Factory for handles on a given bus that record their sleeps instead of sleeping."""
    def _make(bus, **config):
        return BME280(DeviceConfig(**config), bus=bus, sleep=sleeps.append)
    return _make


@pytest.fixture
def device(bus, make_device):
    dev = make_device(bus)
    dev.initialize()
    return dev
