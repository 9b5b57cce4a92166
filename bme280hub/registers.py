"""
BME280 register map
Register addresses, command values and bit layouts for the BME280 sensor
"""

from enum import IntEnum

# Calibration registers (temperature / pressure block 0x88-0x9F)
DIG_T1 = 0x88
DIG_T2 = 0x8A
DIG_T3 = 0x8C
DIG_P1 = 0x8E
DIG_P2 = 0x90
DIG_P3 = 0x92
DIG_P4 = 0x94
DIG_P5 = 0x96
DIG_P6 = 0x98
DIG_P7 = 0x9A
DIG_P8 = 0x9C
DIG_P9 = 0x9E
TEMP_PRESS_CALIB_LENGTH = 24  # 0x88-0x9F

# Humidity calibration registers (non-contiguous)
DIG_H1 = 0xA1
DIG_H2 = 0xE1
DIG_H3 = 0xE3
DIG_H4 = 0xE4
DIG_H5 = 0xE5  # low nibble belongs to H4, high nibble to H5
DIG_H6 = 0xE7
HUMIDITY_CALIB_LENGTH = 7  # 0xE1-0xE7

# Identification and reset
CHIP_ID_REGISTER = 0xD0
CHIP_ID = 0x60
RESET_REGISTER = 0xE0
RESET_VALUE = 0xB6

# Control and status
CTRL_HUM_REGISTER = 0xF2
STATUS_REGISTER = 0xF3
CTRL_MEAS_REGISTER = 0xF4
CONFIG_REGISTER = 0xF5

STATUS_IM_UPDATE_BIT = 0  # NVM data being copied to image registers
STATUS_MEASURING_BIT = 3  # Conversion running

# Measurement data (0xF7-0xFE is one burst: press, temp, hum)
PRESSURE_DATA = 0xF7
TEMPERATURE_DATA = 0xFA
HUMIDITY_DATA = 0xFD
DATA_BURST_LENGTH = 8

# High bit marks a read in the register addressing convention
READ_FLAG = 0x80

VALID_ADDRESSES = (0x76, 0x77)


class Sampling(IntEnum):
    """Oversampling setting for osrs_t / osrs_p / osrs_h."""
    NONE = 0b000
    X1 = 0b001
    X2 = 0b010
    X4 = 0b011
    X8 = 0b100
    X16 = 0b101


class Filter(IntEnum):
    """IIR filter coefficient."""
    OFF = 0b000
    X1 = 0b001
    X2 = 0b010
    X4 = 0b011
    X8 = 0b100
    X16 = 0b101


class Standby(IntEnum):
    """Inactive duration between conversions in normal mode."""
    MS_0_5 = 0b000
    MS_62_5 = 0b001
    MS_125 = 0b010
    MS_250 = 0b011
    MS_500 = 0b100
    MS_1000 = 0b101
    MS_10 = 0b110
    MS_20 = 0b111


class Mode(IntEnum):
    """Power mode bits of ctrl_meas."""
    SLEEP = 0b00
    FORCED = 0b01
    NORMAL = 0b11


def ctrl_meas(temperature: Sampling, pressure: Sampling, mode: Mode = Mode.FORCED) -> int:
    """Builds the ctrl_meas byte: osrs_t[7:5], osrs_p[4:2], mode[1:0]."""
    return ((int(temperature) & 0x07) << 5) | ((int(pressure) & 0x07) << 2) | (int(mode) & 0x03)


def config_register(standby: Standby, iir_filter: Filter) -> int:
    """Builds the config byte: t_sb[7:5], filter[4:2], spi3w_en[0]=0."""
    return ((int(standby) & 0x07) << 5) | ((int(iir_filter) & 0x07) << 2)


def status_bit(status: int, bit: int) -> bool:
    return bool((status >> bit) & 0x01)
