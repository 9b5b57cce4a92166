"""
BME280 driver
Provides the BME280 device handle, its configuration and error types
"""

from .bus import I2CBus, SimulatedBus, open_bus
from .calibration import Calibration, decode_calibration
from .config import DeviceConfig
from .device import BME280, DeviceState, SensorReading
from .errors import (
    BME280Error,
    ComputationError,
    ConfigurationWriteError,
    DeviceMismatchError,
    DeviceNotReadyError,
    DeviceTimeoutError,
    InitializationError,
    MeasurementError,
    TransportError,
)
from .registers import Filter, Sampling, Standby

__version__ = '0.1.0'

__all__ = [
    'BME280', 'DeviceState', 'SensorReading', 'DeviceConfig',
    'Calibration', 'decode_calibration',
    'I2CBus', 'SimulatedBus', 'open_bus',
    'Sampling', 'Filter', 'Standby',
    'BME280Error', 'TransportError', 'InitializationError', 'DeviceMismatchError',
    'ConfigurationWriteError', 'MeasurementError', 'ComputationError',
    'DeviceNotReadyError', 'DeviceTimeoutError',
]
