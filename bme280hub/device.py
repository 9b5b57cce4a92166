"""
BME280 device handle.

A `BME280` owns its bus connection, configuration and calibration record.
`initialize()` verifies the chip, resets it, loads the calibration and
applies the sampling configuration. Every measurement accessor then runs a
full forced-mode cycle: trigger a conversion, wait for the measuring flag to
clear and burst-read the data registers in one transaction.
"""

import logging
import threading
import time
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Any, Callable, Dict, Optional

from . import registers as reg
from .bus import open_bus
from .calibration import Calibration, load_calibration
from .compensation import (
    compensate_humidity,
    compensate_pressure,
    compensate_temperature,
    compute_t_fine,
    decode_sample,
    uint16,
    uint20,
)
from .config import DeviceConfig
from .errors import (
    ConfigurationWriteError,
    DeviceMismatchError,
    DeviceNotReadyError,
    DeviceTimeoutError,
    InitializationError,
    MeasurementError,
    TransportError,
)


class DeviceState(Enum):
    UNINITIALIZED = 'uninitialized'
    INITIALIZING = 'initializing'
    READY = 'ready'
    MEASURING = 'measuring'
    CLOSED = 'closed'


@dataclass
class SensorReading:
    """A combined reading taken from a single conversion.

    Attributes:
        temperature_c: The temperature in degrees Celsius.
        pressure_hpa: The pressure in hPa, sea-level corrected when an
            elevation is configured.
        humidity_percent: The relative humidity in percent.
        sensor_id: The identifier of the sensor that produced the reading.
        timestamp: The Unix timestamp when the reading was taken.
    """
    temperature_c: float
    pressure_hpa: float
    humidity_percent: float
    sensor_id: str
    timestamp: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class BME280:
    """Driver handle for one BME280 on one bus.

    All bus traffic on a handle is serialized with a lock, so a handle may be
    shared between threads. Handles share nothing with each other.

    Attributes:
        config: The immutable device configuration.
        calibration: The calibration record, set once by initialize().
        state: The current DeviceState.
    """

    def __init__(
        self,
        config: Optional[DeviceConfig] = None,
        bus=None,
        bus_factory: Callable[[int], Any] = open_bus,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Creates an uninitialized handle.

        Args:
            config: The device configuration. Defaults to DeviceConfig().
            bus: An already open bus exposing read_block/write_byte. When
                omitted, initialize() opens one with `bus_factory`.
            bus_factory: Callable opening a bus from its number.
            sleep: Callable used for all waits (replaceable in tests).
        """
        self.logger = logging.getLogger(__name__)
        self.config = config or DeviceConfig()
        self.calibration: Optional[Calibration] = None
        self.state = DeviceState.UNINITIALIZED
        self._bus = bus
        self._owns_bus = bus is None
        self._bus_factory = bus_factory
        self._sleep = sleep
        self._lock = threading.RLock()

    @property
    def sensor_id(self) -> str:
        return f"bme280-{self.config.bus}-0x{self.config.address:02x}"

    def initialize(self) -> None:
        """Brings the device from UNINITIALIZED to READY.

        Raises:
            DeviceMismatchError: If the chip ID is not 0x60.
            ConfigurationWriteError: If a sampling configuration write fails.
            InitializationError: For any other bus failure or timeout, and
                when called on a handle that failed or was closed.
        """
        with self._lock:
            if self.state is DeviceState.READY:
                return
            if self.state is not DeviceState.UNINITIALIZED:
                raise InitializationError(
                    f"Cannot initialize BME280 handle in state '{self.state.value}'; create a new handle"
                )

            self.state = DeviceState.INITIALIZING
            try:
                if self._bus is None:
                    self._bus = self._bus_factory(self.config.bus)
                self._check_chip_id()
                self._write_register(reg.RESET_REGISTER, reg.RESET_VALUE)
                # As per data sheet, startup time is 2 ms
                self._sleep(self.config.startup_delay)
                self.calibration = load_calibration(self._read_registers)
                self._set_sampling()
                self._wait_for_status_clear(
                    reg.STATUS_IM_UPDATE_BIT, self.config.calibration_poll_interval, 'calibration copy'
                )
            except (TransportError, DeviceTimeoutError) as e:
                raise InitializationError(
                    f"Could not initialize i2c device on bus {self.config.bus} "
                    f"with address 0x{self.config.address:02X}: {e}"
                ) from e

            self.state = DeviceState.READY
            self.logger.info(f"BME280 ready on bus {self.config.bus} at 0x{self.config.address:02X}")

    def get_temperature(self) -> float:
        """Runs a conversion and returns the temperature in °C (one decimal)."""
        data = self._measure(reg.TEMPERATURE_DATA, 3)
        t_fine = compute_t_fine(uint20(data[0], data[1], data[2]), self.calibration)
        return compensate_temperature(t_fine)

    def get_pressure(self) -> float:
        """Runs a conversion and returns the pressure in hPa (two decimals).

        Raises:
            ComputationError: If the pressure polynomial divides by zero.
        """
        data = self._measure(reg.PRESSURE_DATA, 6)
        t_fine = compute_t_fine(uint20(data[3], data[4], data[5]), self.calibration)
        temperature = compensate_temperature(t_fine)
        return compensate_pressure(
            uint20(data[0], data[1], data[2]), t_fine, self.calibration,
            elevation=self.config.elevation, temperature=temperature,
        )

    def get_humidity(self) -> float:
        """Runs a conversion and returns the relative humidity in % (one decimal)."""
        data = self._measure(reg.TEMPERATURE_DATA, 5)
        t_fine = compute_t_fine(uint20(data[0], data[1], data[2]), self.calibration)
        return compensate_humidity(uint16(data[3], data[4]), t_fine, self.calibration)

    def read_all(self) -> SensorReading:
        """Runs a single conversion and derives all three quantities from it."""
        sample = decode_sample(self._measure(reg.PRESSURE_DATA, reg.DATA_BURST_LENGTH))
        t_fine = compute_t_fine(sample.temperature, self.calibration)
        temperature = compensate_temperature(t_fine)
        return SensorReading(
            temperature_c=temperature,
            pressure_hpa=compensate_pressure(
                sample.pressure, t_fine, self.calibration,
                elevation=self.config.elevation, temperature=temperature,
            ),
            humidity_percent=compensate_humidity(sample.humidity, t_fine, self.calibration),
            sensor_id=self.sensor_id,
            timestamp=time.time(),
        )

    def close(self) -> None:
        """Releases the bus connection if this handle opened it."""
        with self._lock:
            if self._bus is not None and self._owns_bus:
                self._bus.close()
            self._bus = None
            self.state = DeviceState.CLOSED

    def get_sensor_info(self) -> Dict[str, Any]:
        """Retrieves information about this sensor handle.

        Returns:
            A dictionary with the state, addressing, configuration and the
            calibration coefficients once loaded.
        """
        return {
            "sensor_type": "bme280",
            "sensor_id": self.sensor_id,
            "state": self.state.value,
            "initialized": self.state in (DeviceState.READY, DeviceState.MEASURING),
            "calibration_loaded": self.calibration is not None,
            "calibration": self.calibration.to_dict() if self.calibration else None,
            "config": self.config.to_dict(),
        }

    def __enter__(self) -> 'BME280':
        try:
            self.initialize()
        except BaseException:
            # __exit__ does not run when __enter__ raises
            self.close()
            raise
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _measure(self, register: int, length: int) -> bytes:
        """Triggers a forced conversion and reads `length` bytes from `register`."""
        with self._lock:
            if self.state is not DeviceState.READY:
                raise DeviceNotReadyError(
                    f"BME280 {self.sensor_id} is {self.state.value}; call initialize() first"
                )
            self.state = DeviceState.MEASURING
            try:
                self._write_register(reg.CTRL_MEAS_REGISTER, self._ctrl_meas())
                # wait until the conversion has completed, otherwise we would
                # read the values from the last measurement
                self._wait_for_status_clear(
                    reg.STATUS_MEASURING_BIT, self.config.measurement_poll_interval, 'measurement'
                )
                return self._read_registers(register, length)
            except TransportError as e:
                raise MeasurementError(f"Could not wake device up: {e}") from e
            finally:
                self.state = DeviceState.READY

    def _check_chip_id(self) -> None:
        chip_id = self._read_register(reg.CHIP_ID_REGISTER)
        if chip_id != reg.CHIP_ID:
            raise DeviceMismatchError(chip_id, self.config.bus, self.config.address)
        self.logger.info(f"BME280 detected at 0x{self.config.address:02X} (chip ID 0x{chip_id:02X})")

    def _ctrl_meas(self) -> int:
        return reg.ctrl_meas(
            self.config.temperature_oversampling, self.config.pressure_oversampling, reg.Mode.FORCED
        )

    def _set_sampling(self) -> None:
        # ctrl_hum only takes effect after a following write to ctrl_meas
        writes = (
            (reg.CTRL_HUM_REGISTER, 'ctrl_hum', int(self.config.humidity_oversampling) & 0x07),
            (reg.CONFIG_REGISTER, 'config', reg.config_register(self.config.standby, self.config.filter)),
            (reg.CTRL_MEAS_REGISTER, 'ctrl_meas', self._ctrl_meas()),
        )
        for register, name, value in writes:
            try:
                self._write_register(register, value)
            except TransportError as e:
                raise ConfigurationWriteError(register, name, self.config.bus, self.config.address) from e
        self.logger.debug(
            f"Sampling configured: osrs_t={self.config.temperature_oversampling.name} "
            f"osrs_p={self.config.pressure_oversampling.name} osrs_h={self.config.humidity_oversampling.name} "
            f"filter={self.config.filter.name} standby={self.config.standby.name}"
        )

    def _wait_for_status_clear(self, bit: int, interval: float, what: str) -> None:
        """Polls the status register until `bit` is clear.

        A bus error while polling is not retried.

        Raises:
            DeviceTimeoutError: After config.max_poll_attempts reads.
        """
        attempts = self.config.max_poll_attempts
        for attempt in range(1, attempts + 1):
            status = self._read_register(reg.STATUS_REGISTER)
            if not reg.status_bit(status, bit):
                self.logger.debug(f"{what} done after {attempt} status read(s)")
                return
            self.logger.debug(f"Waiting for {what} (status=0x{status:02X}, attempt {attempt})")
            self._sleep(interval)
        raise DeviceTimeoutError(f"Timed out waiting for {what} after {attempts} status reads", attempts)

    def _read_registers(self, register: int, length: int) -> bytes:
        return self._bus.read_block(self.config.address, register | reg.READ_FLAG, length)

    def _read_register(self, register: int) -> int:
        return self._read_registers(register, 1)[0]

    def _write_register(self, register: int, value: int) -> None:
        self.logger.debug(f"Write 0x{value:02X} -> 0x{register:02X}")
        self._bus.write_byte(self.config.address, register, value)
