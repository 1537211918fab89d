"""Bit-packed command payload codec.

Control commands carry a 16-bit event word: the device instance in the high
byte and a brightness or level in the low bits, rendered as ``0xHHHH``.

Nothing here clamps or validates. Callers clamp brightness to its range
before encoding; out-of-range fields are masked, and a field wider than 16
bits produces a token longer than four digits.
"""

import math
import re
from typing import Callable

from utils.errors import DeviceParseError

TOKEN_PREFIX = "0x"

_PERCENT_PATTERN = re.compile(r"^\s*(-?\d+)")


def round_half_up(value: float) -> int:
    """Round like the controller does (0.5 always rounds up)."""
    return math.floor(value + 0.5)


def encode_instance(instance: float) -> int:
    return (round_half_up(instance) & 0xFF) << 8


def encode_index(index: float) -> int:
    """High-byte field for one-based indexes."""
    return ((round_half_up(index) - 1) & 0xFF) << 8


def encode_brightness(brightness: float) -> int:
    return round_half_up(brightness) & 0xFF


def encode_level(level: float) -> int:
    """On/off level nibble (1 = on, 0 = off)."""
    return round_half_up(level) & 0xF


def encode_boolean(true_value: int, false_value: int) -> Callable[[bool], int]:
    """Build an encoder mapping a flag to one of two field values."""
    return lambda flag: true_value if flag else false_value


encode_turn_on_off = encode_boolean(1, 2)
encode_enable_disable = encode_boolean(1, 2)
encode_lock_unlock = encode_boolean(1, 0)


def pack(*fields: int) -> str:
    """OR fields together into a ``0xHHHH`` token."""
    value = 0
    for field_value in fields:
        value |= field_value
    return f"{TOKEN_PREFIX}{value:04X}"


def u16_to_hex(value: int) -> str:
    """Little-endian hex rendering of a 16-bit value ("low byte, high byte")."""
    return f"{value % 256:02X}{value // 256:02X}"


def hex_to_u16(text: str) -> int:
    """Inverse of u16_to_hex."""
    return int(text[0:2], 16) + 256 * int(text[2:4], 16)


def parse_percentage(text: str) -> int:
    """Parse a controller percentage such as "75%".

    Raises:
        DeviceParseError: If the value holds no integer
    """
    match = _PERCENT_PATTERN.match(str(text))
    if not match:
        raise DeviceParseError(str(text), "not a percentage")
    return int(match.group(1))
