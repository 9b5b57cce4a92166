from dataclasses import replace

import pytest

from bme280hub.calibration import REFERENCE_CALIBRATION
from bme280hub.compensation import (
    compensate_humidity,
    compensate_pressure,
    compensate_temperature,
    compute_t_fine,
    decode_sample,
    sea_level_pressure,
    uint20,
)
from bme280hub.errors import ComputationError

# Raw values from the Bosch datasheet worked example
ADC_T = 519888
ADC_P = 415148
ADC_H = 30000
T_FINE = 128422


def test_t_fine_matches_datasheet_example():
    assert compute_t_fine(ADC_T, REFERENCE_CALIBRATION) == T_FINE


def test_reference_temperature():
    # 2508 centi-degrees, rounded to one decimal
    assert compensate_temperature(T_FINE) == 25.1


def test_reference_pressure():
    assert compensate_pressure(ADC_P, T_FINE, REFERENCE_CALIBRATION) == 1006.53


def test_reference_humidity():
    assert compensate_humidity(ADC_H, T_FINE, REFERENCE_CALIBRATION) == 55.0


def test_temperature_rounds_half_up():
    # (128231 * 5 + 128) >> 8 == 2505
    assert compensate_temperature(128231) == 25.1
    # (-780 * 5 + 128) >> 8 == -15, half rounds towards +inf
    assert compensate_temperature(-780) == -0.1


def test_t_fine_uses_arithmetic_shift_for_negative_values():
    # Below dig_T1 the intermediates go negative and shifts must floor
    t_fine = compute_t_fine(400000, REFERENCE_CALIBRATION)
    assert t_fine < 0
    assert compensate_temperature(t_fine) < 0


def test_temperature_is_monotonic_in_raw_value():
    temperatures = [
        compensate_temperature(compute_t_fine(adc_t, REFERENCE_CALIBRATION))
        for adc_t in range(420000, 620000, 97)
    ]

    assert temperatures == sorted(temperatures)
    assert temperatures[0] < temperatures[-1]


def test_humidity_clamped_to_zero():
    assert compensate_humidity(0, T_FINE, REFERENCE_CALIBRATION) == 0.0


def test_humidity_clamped_to_hundred():
    assert compensate_humidity(0xFFFF, T_FINE, REFERENCE_CALIBRATION) == 100.0


def test_pressure_division_by_zero_raises():
    cal = replace(REFERENCE_CALIBRATION, dig_p1=0)

    with pytest.raises(ComputationError):
        compensate_pressure(ADC_P, T_FINE, cal)


def test_pressure_corrected_to_sea_level_when_elevation_positive():
    station = compensate_pressure(ADC_P, T_FINE, REFERENCE_CALIBRATION)
    corrected = compensate_pressure(ADC_P, T_FINE, REFERENCE_CALIBRATION, elevation=100.0, temperature=25.1)

    assert corrected > station
    assert corrected == pytest.approx(sea_level_pressure(station, 25.1, 100.0), abs=0.01)


def test_zero_elevation_leaves_pressure_unchanged():
    assert compensate_pressure(ADC_P, T_FINE, REFERENCE_CALIBRATION, elevation=0.0) == 1006.53


def test_sea_level_temperature_derived_from_t_fine_when_omitted():
    explicit = compensate_pressure(ADC_P, T_FINE, REFERENCE_CALIBRATION, elevation=250.0, temperature=25.1)
    derived = compensate_pressure(ADC_P, T_FINE, REFERENCE_CALIBRATION, elevation=250.0)

    assert derived == explicit


def test_sea_level_pressure_formula():
    assert sea_level_pressure(1000.0, 15.0, 0.0) == 1000.0
    assert sea_level_pressure(1000.0, 15.0, 500.0) == pytest.approx(1060.7, abs=0.1)


def test_uint20_drops_low_nibble():
    assert uint20(0x7E, 0xED, 0x0F) == 0x7EED0


def test_decode_sample_splits_burst():
    data = bytes([0x65, 0x5A, 0xC0, 0x7E, 0xED, 0x00, 0x75, 0x30])

    sample = decode_sample(data)

    assert sample.pressure == ADC_P
    assert sample.temperature == ADC_T
    assert sample.humidity == ADC_H
