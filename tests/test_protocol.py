"""Tests for the controller wire protocol."""

import asyncio

import pytest

from protocol.codec import (
    encode_brightness,
    encode_index,
    encode_instance,
    encode_level,
    encode_lock_unlock,
    encode_turn_on_off,
    hex_to_u16,
    pack,
    parse_percentage,
    round_half_up,
    u16_to_hex,
)
from protocol.commands import (
    LIGHT_COUNT_TAG,
    MessageKind,
    brightness_tag,
    dimmer_command,
    light_object_tag,
    parse_message,
    pin_command,
    switch_command,
)
from protocol.correlation import CorrelationEngine
from utils.errors import CorrelationTimeout, DeviceParseError, NotConnectedError


class TestCodec:
    """Tests for the bit-packed payload codec."""

    def test_pack_instance_and_brightness(self):
        """Instance 3 and brightness 200 pack to 0x03C8."""
        assert pack(encode_instance(3), encode_brightness(200)) == "0x03C8"

    def test_pack_is_commutative_and_idempotent(self):
        a, b = encode_instance(7), encode_brightness(42)
        assert pack(a, b) == pack(b, a)
        assert pack(a, a, b, b) == pack(a, b)

    def test_pack_pads_to_four_digits(self):
        assert pack(0) == "0x0000"
        assert pack(encode_brightness(5)) == "0x0005"

    def test_brightness_in_range(self):
        for value in (0, 1, 50, 99, 100):
            assert encode_brightness(value) == value

    def test_brightness_rounds_half_up(self):
        assert encode_brightness(50.5) == 51
        assert encode_brightness(2.5) == 3
        assert round_half_up(0.5) == 1

    def test_brightness_out_of_range_is_masked_not_clamped(self):
        """The codec documents that it never clamps."""
        assert encode_brightness(256) == 0
        assert encode_brightness(300) == 300 & 0xFF
        assert encode_brightness(-1) == 0xFF

    def test_instance_goes_to_high_byte(self):
        assert encode_instance(1) == 0x0100
        assert encode_instance(0x1FF) == 0xFF00

    def test_index_is_one_based(self):
        assert encode_index(1) == 0x0000
        assert encode_index(4) == 0x0300

    def test_level_nibble(self):
        assert encode_level(1) == 1
        assert encode_level(0x1F) == 0xF

    def test_boolean_encoders(self):
        assert encode_turn_on_off(True) == 1
        assert encode_turn_on_off(False) == 2
        assert encode_lock_unlock(True) == 1
        assert encode_lock_unlock(False) == 0

    def test_u16_hex_is_little_endian(self):
        assert u16_to_hex(0x1234) == "3412"
        assert hex_to_u16("3412") == 0x1234

    def test_parse_percentage(self):
        assert parse_percentage("75%") == 75
        assert parse_percentage(" 0%") == 0
        assert parse_percentage("75.5%") == 75

    def test_parse_percentage_rejects_garbage(self):
        with pytest.raises(DeviceParseError):
            parse_percentage("bright")


class TestCommands:
    """Tests for the command grammar."""

    def test_request_tags(self):
        assert LIGHT_COUNT_TAG == "GET_LIGHT_COUNT"
        assert light_object_tag(4) == "GET_LIGHT_OBJECT[4]"
        assert brightness_tag(12) == "NEWMAR_DIMMER_BRIGHTNESS[12]"
        assert pin_command("1234") == "PIN=1234"

    def test_dimmer_command_scales_to_200(self):
        assert dimmer_command(3, 100) == (
            "HMSEVENT=ENEWMARDIMMERPARSER_SET_BRIGHTNESS_NONSCALED|0x03C8"
        )
        assert dimmer_command(3, 50).endswith("|0x0364")
        assert dimmer_command(3, 0).endswith("|0x0300")

    def test_switch_command(self):
        assert switch_command(3, True) == "HMSEVENT=ENEWMARDIMMERPARSER_TURN_ON_OFF|0x0301"
        assert switch_command(3, False) == "HMSEVENT=ENEWMARDIMMERPARSER_TURN_ON_OFF|0x0300"

    def test_parse_session_token(self):
        message = parse_message("SHOWPIN")
        assert message.kind is MessageKind.SESSION
        assert message.tag == "SHOWPIN"

    def test_parse_json(self):
        assert parse_message('{"status": "ok"}').kind is MessageKind.JSON

    def test_parse_tagged(self):
        message = parse_message("GET_LIGHT_COUNT=5")
        assert message.kind is MessageKind.TAGGED
        assert message.tag == "GET_LIGHT_COUNT"
        assert message.value == "5"

    def test_parse_tagged_splits_on_first_equals(self):
        message = parse_message('GET_LIGHT_OBJECT[0]={"name": "a=b"}')
        assert message.tag == "GET_LIGHT_OBJECT[0]"
        assert message.value == '{"name": "a=b"}'

    def test_parse_unknown(self):
        assert parse_message("hello").kind is MessageKind.UNKNOWN
        assert parse_message("=5").kind is MessageKind.UNKNOWN


class TestCorrelationEngine:
    """Tests for request/response correlation."""

    @pytest.mark.asyncio
    async def test_request_resolves_on_matching_tag(self):
        engine = CorrelationEngine()
        loop = asyncio.get_running_loop()

        async def send(token):
            loop.call_soon(engine.deliver, "GET_LIGHT_COUNT", "3")
            return True

        value = await engine.request("GET_LIGHT_COUNT", "GET_LIGHT_COUNT", send, 1.0)

        assert value == "3"
        assert engine.pending() == []

    @pytest.mark.asyncio
    async def test_send_error_drops_waiter(self):
        engine = CorrelationEngine()

        async def send(token):
            raise ConnectionResetError("socket reset")

        with pytest.raises(ConnectionResetError):
            await engine.request("GET_LIGHT_COUNT", "GET_LIGHT_COUNT", send, 1.0)

        assert engine.pending() == []
        assert engine.deliver("GET_LIGHT_COUNT", "3") is False

    @pytest.mark.asyncio
    async def test_discard_keeps_newer_waiter(self):
        engine = CorrelationEngine()
        old = engine.expect("TAG")
        engine.expect("TAG")

        engine.discard("TAG", old)

        assert engine.pending() == ["TAG"]

    @pytest.mark.asyncio
    async def test_unsolicited_delivery_is_dropped(self):
        engine = CorrelationEngine()
        assert engine.deliver("GET_LIGHT_COUNT", "3") is False

    @pytest.mark.asyncio
    async def test_timeout_raises_and_clears_waiter(self):
        engine = CorrelationEngine()

        with pytest.raises(CorrelationTimeout) as exc_info:
            await engine.await_once("NEWMAR_DIMMER_BRIGHTNESS[1]", 0.01)

        assert exc_info.value.tag == "NEWMAR_DIMMER_BRIGHTNESS[1]"
        assert engine.pending() == []

    @pytest.mark.asyncio
    async def test_waiter_is_one_shot(self):
        engine = CorrelationEngine()
        future = engine.expect("TAG")

        assert engine.deliver("TAG", "first") is True
        assert engine.deliver("TAG", "second") is False
        assert await engine.wait("TAG", future, 1.0) == "first"

    @pytest.mark.asyncio
    async def test_second_registration_replaces_first(self):
        engine = CorrelationEngine()
        first = engine.expect("TAG")
        second = engine.expect("TAG")

        engine.deliver("TAG", "value")

        assert await engine.wait("TAG", second, 1.0) == "value"
        with pytest.raises(CorrelationTimeout):
            await engine.wait("TAG", first, 0.01)

    @pytest.mark.asyncio
    async def test_failed_send_waits_out_timeout(self):
        engine = CorrelationEngine()

        async def send(token):
            return False

        with pytest.raises(CorrelationTimeout):
            await engine.request("TAG", "TAG", send, 0.01)

    @pytest.mark.asyncio
    async def test_fail_all_raises_not_connected(self):
        engine = CorrelationEngine()
        waiting = asyncio.create_task(engine.await_once("TAG", 5.0))
        await asyncio.sleep(0)

        engine.fail_all("connection lost")

        with pytest.raises(NotConnectedError):
            await waiting
        assert engine.pending() == []
