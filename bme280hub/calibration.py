"""
Factory calibration coefficients of the BME280.

The coefficients live in two non-contiguous regions: a 24 byte block at
0x88 holding the temperature and pressure words, and the humidity values at
0xA1 and 0xE1-0xE7. All 16-bit words are little-endian. H4 and H5 are 12-bit
values packed around the shared register 0xE5.
"""

import logging
import struct
from dataclasses import dataclass, asdict
from typing import Callable, Dict, Tuple

from . import registers as reg

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Calibration:
    """The 18 compensation coefficients read from the chip.

    Attributes:
        dig_t1: Temperature coefficient, unsigned 16-bit.
        dig_t2, dig_t3: Temperature coefficients, signed 16-bit.
        dig_p1: Pressure coefficient, unsigned 16-bit.
        dig_p2 .. dig_p9: Pressure coefficients, signed 16-bit.
        dig_h1, dig_h3: Humidity coefficients, unsigned 8-bit.
        dig_h2: Humidity coefficient, signed 16-bit.
        dig_h4, dig_h5: Humidity coefficients, signed 12-bit.
        dig_h6: Humidity coefficient, signed 8-bit.
    """
    dig_t1: int
    dig_t2: int
    dig_t3: int

    dig_p1: int
    dig_p2: int
    dig_p3: int
    dig_p4: int
    dig_p5: int
    dig_p6: int
    dig_p7: int
    dig_p8: int
    dig_p9: int

    dig_h1: int
    dig_h2: int
    dig_h3: int
    dig_h4: int
    dig_h5: int
    dig_h6: int

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


# Temperature/pressure values from the Bosch datasheet worked example,
# humidity values typical of production parts.
REFERENCE_CALIBRATION = Calibration(
    dig_t1=27504, dig_t2=26435, dig_t3=-1000,
    dig_p1=36477, dig_p2=-10685, dig_p3=3024, dig_p4=2855, dig_p5=140,
    dig_p6=-7, dig_p7=15500, dig_p8=-14600, dig_p9=6000,
    dig_h1=75, dig_h2=362, dig_h3=0, dig_h4=313, dig_h5=50, dig_h6=30,
)


def _to_signed(value: int, bits: int) -> int:
    """Convert unsigned to signed integer"""
    if value & (1 << (bits - 1)):
        return value - (1 << bits)
    return value


def _uint16(data: bytes, offset: int) -> int:
    return data[offset + 1] << 8 | data[offset]


def _int16(data: bytes, offset: int) -> int:
    return _to_signed(_uint16(data, offset), 16)


def decode_calibration(tp_block: bytes, h1: int, h_block: bytes) -> Calibration:
    """Decodes the raw calibration registers.

    Args:
        tp_block: The 24 bytes read from 0x88-0x9F.
        h1: The byte read from 0xA1.
        h_block: The 7 bytes read from 0xE1-0xE7.

    Returns:
        The decoded Calibration record.

    Raises:
        ValueError: If a block has the wrong length.
    """
    if len(tp_block) != reg.TEMP_PRESS_CALIB_LENGTH:
        raise ValueError(f"Expected {reg.TEMP_PRESS_CALIB_LENGTH} calibration bytes at 0x88, got {len(tp_block)}")
    if len(h_block) != reg.HUMIDITY_CALIB_LENGTH:
        raise ValueError(f"Expected {reg.HUMIDITY_CALIB_LENGTH} calibration bytes at 0xE1, got {len(h_block)}")

    # 0xE4 and 0xE6 hold the high bits, 0xE5 is split between H4 (low
    # nibble) and H5 (high nibble)
    e4, e5, e6 = h_block[3], h_block[4], h_block[5]

    return Calibration(
        dig_t1=_uint16(tp_block, 0),
        dig_t2=_int16(tp_block, 2),
        dig_t3=_int16(tp_block, 4),

        dig_p1=_uint16(tp_block, 6),
        dig_p2=_int16(tp_block, 8),
        dig_p3=_int16(tp_block, 10),
        dig_p4=_int16(tp_block, 12),
        dig_p5=_int16(tp_block, 14),
        dig_p6=_int16(tp_block, 16),
        dig_p7=_int16(tp_block, 18),
        dig_p8=_int16(tp_block, 20),
        dig_p9=_int16(tp_block, 22),

        dig_h1=h1 & 0xFF,
        dig_h2=_int16(h_block, 0),
        dig_h3=h_block[2],
        dig_h4=_to_signed((e4 << 4) | (e5 & 0x0F), 12),
        dig_h5=_to_signed((e6 << 4) | (e5 >> 4), 12),
        dig_h6=_to_signed(h_block[6], 8),
    )


def encode_calibration(cal: Calibration) -> Tuple[bytes, int, bytes]:
    """Packs a Calibration back into its register image.

    Returns:
        A (tp_block, h1, h_block) tuple laid out as on the chip.
    """
    tp_block = struct.pack(
        '<Hhh' + 'H' + 'h' * 8,
        cal.dig_t1, cal.dig_t2, cal.dig_t3,
        cal.dig_p1, cal.dig_p2, cal.dig_p3, cal.dig_p4, cal.dig_p5,
        cal.dig_p6, cal.dig_p7, cal.dig_p8, cal.dig_p9,
    )
    h4 = cal.dig_h4 & 0xFFF
    h5 = cal.dig_h5 & 0xFFF
    h_block = struct.pack('<h', cal.dig_h2) + bytes([
        cal.dig_h3 & 0xFF,
        h4 >> 4,
        ((h5 & 0x0F) << 4) | (h4 & 0x0F),
        h5 >> 4,
        cal.dig_h6 & 0xFF,
    ])
    return tp_block, cal.dig_h1 & 0xFF, h_block


def load_calibration(read_block: Callable[[int, int], bytes]) -> Calibration:
    """Reads and decodes the calibration registers.

    Args:
        read_block: A callable taking (register, length) and returning the
            bytes read from the device.
    """
    tp_block = read_block(reg.DIG_T1, reg.TEMP_PRESS_CALIB_LENGTH)
    h1 = read_block(reg.DIG_H1, 1)[0]
    h_block = read_block(reg.DIG_H2, reg.HUMIDITY_CALIB_LENGTH)
    calibration = decode_calibration(tp_block, h1, h_block)
    logger.debug(f"Calibration loaded: {calibration}")
    return calibration
