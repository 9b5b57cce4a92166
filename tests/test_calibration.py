import pytest

from bme280hub import registers as reg
from bme280hub.bus import SimulatedBus
from bme280hub.calibration import (
    REFERENCE_CALIBRATION,
    decode_calibration,
    encode_calibration,
    load_calibration,
)


def _tp_block(words):
    """Lays out twelve 16-bit words little-endian as on the chip."""
    block = bytearray()
    for word in words:
        block += bytes([word & 0xFF, (word >> 8) & 0xFF])
    return bytes(block)


def test_decodes_reference_register_image():
    tp_block, h1, h_block = encode_calibration(REFERENCE_CALIBRATION)

    assert decode_calibration(tp_block, h1, h_block) == REFERENCE_CALIBRATION


def test_little_endian_words_and_signed_wraparound():
    words = [0xFFFF, 0xFFFF, 0x8000, 0x8000, 0x7FFF, 0x0001, 0, 0, 0, 0, 0, 0xFF9C]
    h_block = bytes([0x00, 0x80, 0, 0, 0, 0, 0])

    cal = decode_calibration(_tp_block(words), 0, h_block)

    # T1 and P1 are unsigned, everything else two's complement
    assert cal.dig_t1 == 65535
    assert cal.dig_t2 == -1
    assert cal.dig_t3 == -32768
    assert cal.dig_p1 == 32768
    assert cal.dig_p2 == 32767
    assert cal.dig_p3 == 1
    assert cal.dig_p9 == -100
    assert cal.dig_h2 == -32768


def test_datasheet_words_in_little_endian_order():
    # dig_T1 = 27504 = 0x6B70 is stored as 0x70, 0x6B at 0x88/0x89
    tp_block = bytes([0x70, 0x6B]) + bytes(22)

    cal = decode_calibration(tp_block, 0, bytes(7))

    assert cal.dig_t1 == 27504


def test_humidity_fields_share_nibbles_of_0xe5():
    h_block = bytes([0x6A, 0x01, 0x00, 0x12, 0x34, 0x56, 0x1E])

    cal = decode_calibration(bytes(24), 75, h_block)

    assert cal.dig_h1 == 75
    assert cal.dig_h2 == 362
    assert cal.dig_h3 == 0
    assert cal.dig_h4 == (0x12 << 4) | (0x34 & 0x0F) == 0x124
    assert cal.dig_h5 == (0x56 << 4) | (0x34 >> 4) == 0x563
    assert cal.dig_h6 == 30


def test_negative_humidity_coefficients():
    h_block = bytes([0x00, 0x00, 0x00, 0xFF, 0xFF, 0xFF, 0xF6])

    cal = decode_calibration(bytes(24), 0, h_block)

    assert cal.dig_h4 == -1
    assert cal.dig_h5 == -1
    assert cal.dig_h6 == -10


@pytest.mark.parametrize('tp_length,h_length', [(23, 7), (24, 6)])
def test_rejects_short_blocks(tp_length, h_length):
    with pytest.raises(ValueError):
        decode_calibration(bytes(tp_length), 0, bytes(h_length))


def test_load_calibration_reads_the_three_regions():
    bus = SimulatedBus()

    cal = load_calibration(lambda register, length: bus.read_block(0x76, register, length))

    assert cal == REFERENCE_CALIBRATION
    assert bus.reads == [
        (reg.DIG_T1, 24),
        (reg.DIG_H1, 1),
        (reg.DIG_H2, 7),
    ]
    assert bus.writes == []
