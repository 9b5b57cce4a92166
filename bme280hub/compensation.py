"""
Compensation formulas turning raw BME280 ADC values into physical units.

Temperature uses the 32-bit fixed point formula from the Bosch datasheet;
Python's `>>` on int is an arithmetic shift, which the formula requires for
negative intermediates. Pressure and humidity use the floating point
variants. Everything here is pure: no bus access, no state.
"""

import math
from collections import namedtuple
from typing import Optional

from .calibration import Calibration
from .errors import ComputationError

RawSample = namedtuple('RawSample', ['pressure', 'temperature', 'humidity'])


def uint20(msb: int, lsb: int, xlsb: int) -> int:
    """Assembles a 20-bit ADC value from msb, lsb and the xlsb high nibble."""
    return ((msb << 16) | (lsb << 8) | xlsb) >> 4


def uint16(msb: int, lsb: int) -> int:
    return (msb << 8) | lsb


def decode_sample(data: bytes) -> RawSample:
    """Splits the 8 byte burst read from 0xF7 into raw ADC values."""
    if len(data) < 8:
        raise ValueError(f"Expected 8 measurement bytes, got {len(data)}")
    return RawSample(
        pressure=uint20(data[0], data[1], data[2]),
        temperature=uint20(data[3], data[4], data[5]),
        humidity=uint16(data[6], data[7]),
    )


def _round_half_up(value: float, digits: int) -> float:
    scale = 10 ** digits
    return math.floor(value * scale + 0.5) / scale


def compute_t_fine(adc_t: int, cal: Calibration) -> int:
    """Fine resolution temperature shared by all three compensations."""
    var1 = (((adc_t >> 3) - (cal.dig_t1 << 1)) * cal.dig_t2) >> 11
    delta = (adc_t >> 4) - cal.dig_t1
    var2 = (((delta * delta) >> 12) * cal.dig_t3) >> 14
    return var1 + var2


def compensate_temperature(t_fine: int) -> float:
    """Temperature in °C, rounded half up to one decimal."""
    centi_celsius = (t_fine * 5 + 128) >> 8
    return ((centi_celsius + 5) // 10) / 10


def sea_level_pressure(pressure: float, temperature: float, elevation: float) -> float:
    """Reduces station pressure (hPa) to sea level with the barometric formula."""
    return pressure * math.pow(
        1 - (0.0065 * elevation) / (temperature + 0.0065 * elevation + 273.15),
        -5.257,
    )


def compensate_pressure(
    adc_p: int,
    t_fine: int,
    cal: Calibration,
    elevation: float = 0.0,
    temperature: Optional[float] = None,
) -> float:
    """Pressure in hPa, rounded half up to two decimals.

    Args:
        adc_p: Raw 20-bit pressure value.
        t_fine: Result of compute_t_fine for the same conversion.
        cal: Calibration of the device.
        elevation: Sensor elevation in metres; sea level correction applies
            when positive.
        temperature: Compensated temperature used by the sea level
            correction. Derived from t_fine when omitted.

    Raises:
        ComputationError: If the first polynomial stage evaluates to zero.
    """
    var1 = t_fine / 2.0 - 64000.0
    var2 = var1 * var1 * cal.dig_p6 / 32768.0
    var2 = var2 + var1 * cal.dig_p5 * 2.0
    var2 = var2 / 4.0 + cal.dig_p4 * 65536.0
    var1 = (cal.dig_p3 * var1 * var1 / 524288.0 + cal.dig_p2 * var1) / 524288.0
    var1 = (1.0 + var1 / 32768.0) * cal.dig_p1

    # need to avoid division by zero
    if var1 == 0:
        raise ComputationError(f"Could not calculate pressure (adc_p={adc_p}, t_fine={t_fine})")

    pressure = 1048576.0 - adc_p
    pressure = (pressure - var2 / 4096.0) * 6250.0 / var1
    var1 = cal.dig_p9 * pressure * pressure / 2147483648.0
    var2 = pressure * cal.dig_p8 / 32768.0
    pressure = (pressure + (var1 + var2 + cal.dig_p7) / 16.0) / 100.0

    if elevation > 0:
        if temperature is None:
            temperature = compensate_temperature(t_fine)
        pressure = sea_level_pressure(pressure, temperature, elevation)

    return _round_half_up(pressure, 2)


def compensate_humidity(adc_h: int, t_fine: int, cal: Calibration) -> float:
    """Relative humidity in %, clamped to [0, 100] and rounded to one decimal."""
    var1 = t_fine - 76800.0
    var2 = (adc_h - (cal.dig_h4 * 64.0 + cal.dig_h5 / 16384.0 * var1)) * (
        cal.dig_h2 / 65536.0 * (1.0 + cal.dig_h6 / 67108864.0 * var1 * (1.0 + cal.dig_h3 / 67108864.0 * var1))
    )
    humidity = var2 * (1.0 - cal.dig_h1 * var2 / 524288.0)

    if humidity > 100:
        humidity = 100.0
    elif humidity < 0:
        humidity = 0.0

    return _round_half_up(humidity, 1)
