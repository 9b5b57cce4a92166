"""
Exception classes for the BME280 driver.

Callers can catch at either level:

    # Precise:
    except DeviceMismatchError: ...

    # Any driver failure:
    except BME280Error: ...
"""

from typing import Optional


class BME280Error(Exception):
    """Base class for every error raised by the driver."""


class TransportError(BME280Error):
    """Raised when the bus cannot be opened, read or written.

    Attributes:
        register: The register involved, or None when opening the bus failed.
    """

    def __init__(self, message: str, register: Optional[int] = None):
        super().__init__(message)
        self.register = register


class InitializationError(BME280Error):
    """Raised when `BME280.initialize()` fails."""


def _with_device(message: str, bus, address: Optional[int]) -> str:
    if address is None:
        return message
    return f"Could not initialize i2c device on bus {bus} with address 0x{address:02X}: {message}"


class DeviceMismatchError(InitializationError):
    """Raised when the chip ID register does not hold the BME280 ID.

    Attributes:
        chip_id: The ID read from the chip.
        bus: The bus number, when known.
        address: The device address, when known.
    """

    def __init__(self, chip_id: int, bus=None, address: Optional[int] = None):
        super().__init__(_with_device(f"unexpected chip ID 0x{chip_id:02X}, expected 0x60", bus, address))
        self.chip_id = chip_id
        self.bus = bus
        self.address = address


class ConfigurationWriteError(InitializationError):
    """Raised when one of the sampling configuration writes fails."""

    def __init__(self, register: int, register_name: str, bus=None, address: Optional[int] = None):
        super().__init__(_with_device(
            f"sampling configuration write to {register_name} (0x{register:02X}) failed", bus, address
        ))
        self.register = register
        self.register_name = register_name
        self.bus = bus
        self.address = address


class MeasurementError(BME280Error):
    """Raised when a measurement accessor fails."""


class ComputationError(MeasurementError):
    """Raised when a compensation polynomial cannot be evaluated."""


class DeviceNotReadyError(MeasurementError):
    """Raised when a measurement is requested from a handle that is not ready."""


class DeviceTimeoutError(MeasurementError):
    """Raised when a status polling loop gives up."""

    def __init__(self, message: str, attempts: int):
        super().__init__(message)
        self.attempts = attempts
