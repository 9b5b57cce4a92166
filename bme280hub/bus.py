"""
Bus adapters for the BME280 driver.

`I2CBus` wraps an `smbus2.SMBus` connection and maps transport failures to
`TransportError`. `SimulatedBus` emulates a BME280 register file in memory
and is used for development without hardware (the `--mock` CLI flag) and by
the test-suite.
"""

import logging
from typing import Iterable, List, Optional, Tuple

from smbus2 import SMBus

from . import registers as reg
from .calibration import Calibration, REFERENCE_CALIBRATION, encode_calibration
from .errors import TransportError

logger = logging.getLogger(__name__)


class I2CBus:
    """An open I2C bus connection.

    Attributes:
        bus_id: The bus number this connection was opened on.
    """

    def __init__(self, bus_id: int, smbus: SMBus):
        self.bus_id = bus_id
        self._smbus = smbus

    def read_block(self, address: int, register: int, length: int) -> bytes:
        """Reads `length` consecutive registers starting at `register`.

        Raises:
            TransportError: If the transaction fails.
        """
        try:
            data = self._smbus.read_i2c_block_data(address, register, length)
        except OSError as e:
            raise TransportError(
                f"Read of {length} byte(s) from register 0x{register:02X} at 0x{address:02X} failed: {e}",
                register=register,
            ) from e
        return bytes(data)

    def write_byte(self, address: int, register: int, value: int) -> None:
        """Writes a single byte to `register`.

        Raises:
            TransportError: If the transaction fails.
        """
        try:
            self._smbus.write_byte_data(address, register, value & 0xFF)
        except OSError as e:
            raise TransportError(
                f"Write of 0x{value:02X} to register 0x{register:02X} at 0x{address:02X} failed: {e}",
                register=register,
            ) from e

    def close(self) -> None:
        self._smbus.close()

    def __enter__(self) -> 'I2CBus':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def open_bus(bus_id: int) -> I2CBus:
    """Opens /dev/i2c-<bus_id>.

    Raises:
        TransportError: If the bus cannot be opened.
    """
    try:
        smbus = SMBus(bus_id)
    except OSError as e:
        raise TransportError(f"Could not open i2c bus {bus_id}: {e}") from e
    logger.debug(f"Opened i2c bus {bus_id}")
    return I2CBus(bus_id, smbus)


class SimulatedBus:
    """An in-memory BME280 behind a fake I2C bus.

    The simulated chip answers the chip ID, honours a soft reset by raising the
    calibration-copy flag for a few status reads, and runs a forced conversion
    (measuring flag set for a few status reads, then back to sleep) whenever
    ctrl_meas is written with the forced mode bits.

    Attributes:
        address: The device address the simulated chip answers on.
        writes: Every (register, value) pair written, in order.
        reads: Every (register, length) pair read, in order.
        fail_reads: Registers whose reads raise TransportError.
        fail_writes: Registers whose writes raise TransportError.
        closed: True once close() has been called.
    """

    def __init__(
        self,
        address: int = 0x76,
        chip_id: int = reg.CHIP_ID,
        calibration: Calibration = REFERENCE_CALIBRATION,
        raw_pressure: int = 415148,
        raw_temperature: int = 519888,
        raw_humidity: int = 30000,
        calibration_polls: int = 2,
        conversion_polls: int = 2,
        fail_reads: Optional[Iterable[int]] = None,
        fail_writes: Optional[Iterable[int]] = None,
    ):
        self.bus_id = 'simulated'
        self.address = address
        self.calibration_polls = calibration_polls
        self.conversion_polls = conversion_polls
        self.fail_reads = set(fail_reads or ())
        self.fail_writes = set(fail_writes or ())
        self.writes: List[Tuple[int, int]] = []
        self.reads: List[Tuple[int, int]] = []
        self.closed = False
        self.conversions = 0
        self._calibration_busy = 0
        self._measuring = 0

        self._registers = bytearray(256)
        self._registers[reg.CHIP_ID_REGISTER] = chip_id
        tp_block, h1, h_block = encode_calibration(calibration)
        self._registers[reg.DIG_T1:reg.DIG_T1 + len(tp_block)] = tp_block
        self._registers[reg.DIG_H1] = h1
        self._registers[reg.DIG_H2:reg.DIG_H2 + len(h_block)] = h_block
        self.set_raw_sample(raw_pressure, raw_temperature, raw_humidity)

    def set_raw_sample(self, pressure: int, temperature: int, humidity: int) -> None:
        """Loads raw ADC values into the data registers 0xF7-0xFE."""
        self._registers[reg.PRESSURE_DATA:reg.PRESSURE_DATA + 3] = ((pressure & 0xFFFFF) << 4).to_bytes(3, 'big')
        self._registers[reg.TEMPERATURE_DATA:reg.TEMPERATURE_DATA + 3] = ((temperature & 0xFFFFF) << 4).to_bytes(3, 'big')
        self._registers[reg.HUMIDITY_DATA:reg.HUMIDITY_DATA + 2] = (humidity & 0xFFFF).to_bytes(2, 'big')

    def register(self, register: int) -> int:
        """Returns the stored value of a register without side effects."""
        return self._registers[register]

    def _status(self) -> int:
        status = 0
        if self._calibration_busy > 0:
            status |= 1 << reg.STATUS_IM_UPDATE_BIT
            self._calibration_busy -= 1
        if self._measuring > 0:
            status |= 1 << reg.STATUS_MEASURING_BIT
            self._measuring -= 1
            if self._measuring == 0:
                # Conversion done, chip drops back to sleep mode
                self._registers[reg.CTRL_MEAS_REGISTER] &= ~0x03 & 0xFF
        return status

    def _check_address(self, address: int, register: int) -> None:
        if self.closed:
            raise TransportError("Bus is closed", register=register)
        if address != self.address:
            raise TransportError(f"No device acknowledged at 0x{address:02X}", register=register)

    def read_block(self, address: int, register: int, length: int) -> bytes:
        self._check_address(address, register)
        self.reads.append((register, length))
        if register in self.fail_reads:
            raise TransportError(f"Simulated read failure at register 0x{register:02X}", register=register)
        data = bytearray(self._registers[register:register + length])
        if register <= reg.STATUS_REGISTER < register + length:
            data[reg.STATUS_REGISTER - register] = self._status()
        return bytes(data)

    def write_byte(self, address: int, register: int, value: int) -> None:
        self._check_address(address, register)
        self.writes.append((register, value))
        if register in self.fail_writes:
            raise TransportError(f"Simulated write failure at register 0x{register:02X}", register=register)

        if register == reg.RESET_REGISTER:
            if value == reg.RESET_VALUE:
                for control in (reg.CTRL_HUM_REGISTER, reg.CTRL_MEAS_REGISTER, reg.CONFIG_REGISTER):
                    self._registers[control] = 0
                self._measuring = 0
                self._calibration_busy = self.calibration_polls
            return

        self._registers[register] = value & 0xFF
        if register == reg.CTRL_MEAS_REGISTER and (value & 0x03) == reg.Mode.FORCED:
            self.conversions += 1
            self._measuring = self.conversion_polls

    def close(self) -> None:
        self.closed = True
