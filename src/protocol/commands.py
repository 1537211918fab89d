"""Controller command grammar.

Outbound frames are plain text tokens. Inbound frames are either bare
session tokens, JSON documents, or ``KEY=VALUE`` pairs whose key is the
correlation tag of the request being answered.
"""

import json
from dataclasses import dataclass
from enum import Enum

from protocol.codec import (
    encode_brightness,
    encode_instance,
    encode_level,
    pack,
    round_half_up,
)

LIGHT_COUNT_TAG = "GET_LIGHT_COUNT"

SET_BRIGHTNESS_ACTION = "ENEWMARDIMMERPARSER_SET_BRIGHTNESS_NONSCALED"
TURN_ON_OFF_ACTION = "ENEWMARDIMMERPARSER_TURN_ON_OFF"
EVENT_PREFIX = "HMSEVENT="

# Dimmers take brightness on a 0-200 scale
DIMMER_SCALE = 200

KEEPALIVE = "ping"

SESSION_TOKENS = frozenset(
    {"SHOWPIN", "SHOWPINPAIR", "CORRECTPIN", "INCORRECTPIN", "LOCKEDPIN"}
)


def light_object_tag(index: int) -> str:
    return f"GET_LIGHT_OBJECT[{index}]"


def brightness_tag(device_id: int) -> str:
    return f"NEWMAR_DIMMER_BRIGHTNESS[{device_id}]"


def pin_command(pin: str) -> str:
    return f"PIN={pin}"


def dimmer_command(instance: int, level: int) -> str:
    """Set a dimmer to ``level`` percent (0-100, already clamped)."""
    scaled = round_half_up(level / 100 * DIMMER_SCALE)
    payload = pack(encode_instance(instance), encode_brightness(scaled))
    return f"{EVENT_PREFIX}{SET_BRIGHTNESS_ACTION}|{payload}"


def switch_command(instance: int, on: bool) -> str:
    payload = pack(encode_instance(instance), encode_level(0x01 if on else 0x00))
    return f"{EVENT_PREFIX}{TURN_ON_OFF_ACTION}|{payload}"


class MessageKind(Enum):
    """Kinds of inbound frames."""

    SESSION = "session"
    JSON = "json"
    TAGGED = "tagged"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class InboundMessage:
    """A parsed inbound frame."""

    kind: MessageKind
    raw: str
    tag: str | None = None
    value: str | None = None


def parse_message(raw: str) -> InboundMessage:
    """Classify an inbound frame.

    ``KEY=VALUE`` splits on the first ``=`` only, so JSON values that
    contain ``=`` survive intact.
    """
    text = raw.strip()
    if text in SESSION_TOKENS:
        return InboundMessage(MessageKind.SESSION, raw, tag=text)

    if text[:1] in ("{", "["):
        try:
            json.loads(text)
            return InboundMessage(MessageKind.JSON, raw)
        except ValueError:
            pass

    tag, sep, value = text.partition("=")
    if sep and tag:
        return InboundMessage(MessageKind.TAGGED, raw, tag=tag, value=value)

    return InboundMessage(MessageKind.UNKNOWN, raw)
