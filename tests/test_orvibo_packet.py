"""Tests for packet encoding and decoding."""

import pytest

from orvibo_protocol import (
    DeviceType,
    MessageKind,
    OrviboPacket,
    ProtocolError,
    build_discover,
    build_emit_ir,
    build_emit_rf,
    build_ir_learning_mode,
    build_query,
    build_rf_learning_mode,
    build_set_state,
    build_subscribe,
    decode_message,
    reverse_mac,
)

from helpers import (
    ALLONE_MAC,
    PAD6,
    SOCKET_MAC,
    discovery_response,
    learned_ir,
    query_response,
    state_changed,
    state_report,
    subscribe_confirmation,
)


def test_set_state_on_literal():
    """Test the exact bytes of a state-set command."""
    packet = build_set_state("accfdeadbeef", True)

    assert packet.raw_data == bytes.fromhex("6864170064" "63" "accfdeadbeef" "202020202020" "00000000" "01")


def test_set_state_off_differs_only_in_last_byte():
    """Test that on and off commands differ only in the trailing state byte."""
    on = build_set_state("accfdeadbeef", True).raw_data
    off = build_set_state("accfdeadbeef", False).raw_data

    assert on[:-1] == off[:-1]
    assert on[-1] == 0x01
    assert off[-1] == 0x00


def test_length_field_is_little_endian():
    """Test that the length field holds the total length with its bytes swapped."""
    packet = build_subscribe("accfdeadbeef")

    assert len(packet) == 30
    assert packet.raw_data[2:4] == b"\x1e\x00"
    assert packet.declared_length == 30


def test_reverse_mac():
    """Test byte reversal of a MAC address."""
    assert reverse_mac("aabbccddeeff") == "ffeeddccbbaa"


def test_discover_is_bare_header():
    """Test that the discovery request carries no payload."""
    assert build_discover().raw_data == b"hd\x06\x00qa"


def test_subscribe_layout():
    """Test that subscribe sends the MAC, then the reversed MAC, each padded."""
    packet = build_subscribe("aabbccddeeff")

    assert packet.command_code == b"cl"
    assert packet.payload == bytes.fromhex("aabbccddeeff") + PAD6 + bytes.fromhex("ffeeddccbbaa") + PAD6


def test_query_layout():
    """Test the query command layout."""
    packet = build_query(SOCKET_MAC)

    assert packet.command == "rt"
    assert len(packet) == 29
    assert packet.payload == SOCKET_MAC + PAD6 + bytes.fromhex("0000000004000000000000")


def test_emit_ir_layout():
    """Test the IR emission layout with a fixed nonce."""
    code = bytes(range(300))
    packet = build_emit_ir(ALLONE_MAC, code, nonce=b"\x12\x34")

    assert packet.command_code == b"ic"
    assert packet.payload[:12] == ALLONE_MAC + PAD6
    assert packet.payload[12:16] == b"\x65\x00\x00\x00"
    assert packet.payload[16:18] == b"\x12\x34"
    assert packet.payload[18:20] == (300).to_bytes(2, "little")
    assert packet.payload[20:] == code
    assert packet.declared_length == len(packet)


def test_emit_ir_uses_fresh_nonce():
    """Test that the nonce is two bytes long and not fixed."""
    nonces = {build_emit_ir(ALLONE_MAC, b"\x01").payload[16:18] for _ in range(32)}

    assert all(len(n) == 2 for n in nonces)
    assert len(nonces) > 1


def test_emit_rf_layout():
    """Test the RF emission layout."""
    packet = build_emit_rf(ALLONE_MAC, b"\xaa\xbb\xcc", nonce=b"\x00\x01")

    assert packet.command_code == b"dc"
    assert packet.payload == ALLONE_MAC + PAD6 + b"\x3e\xf5\xee\x0b" + b"\x00\x01" + b"\xaa\xbb\xcc"


def test_learning_mode_layouts():
    """Test IR and RF learning mode commands."""
    ir = build_ir_learning_mode(ALLONE_MAC)
    rf = build_rf_learning_mode(ALLONE_MAC)

    assert ir.command_code == b"ls"
    assert len(ir) == 24
    assert ir.payload == ALLONE_MAC + PAD6 + bytes.fromhex("010000000000")
    assert len(rf) == 24
    assert rf.payload[:12] == ALLONE_MAC + PAD6


def test_packet_requires_command_or_raw_data():
    """Test constructor argument validation."""
    with pytest.raises(ValueError):
        OrviboPacket()
    with pytest.raises(ValueError):
        OrviboPacket(command=b"qa", raw_data=b"hd\x06\x00qa")


def test_decode_socket_discovery():
    """Test decoding a discovery response from a socket."""
    message = decode_message(discovery_response(SOCKET_MAC, b"SOC002"))

    assert message.kind == MessageKind.DISCOVERY_RESPONSE
    assert message.mac_address == "accfdeadbeef"
    assert message.device_type == DeviceType.SOCKET


@pytest.mark.parametrize(
    "marker,expected",
    [
        (b"SOC00", DeviceType.SOCKET),
        (b"SOC0", DeviceType.SOCKET),
        (b"IRD00", DeviceType.ALLONE),
        (b"IRD0", DeviceType.ALLONE),
        (b"XYZ9", DeviceType.UNKNOWN),
    ],
)
def test_decode_discovery_markers(marker, expected):
    """Test that both marker variants are recognized."""
    message = decode_message(discovery_response(ALLONE_MAC, marker))

    assert message.device_type == expected


def test_decode_discovery_mac_found_by_vendor_prefix():
    """Test that a MAC away from its usual offset is located by its vendor prefix."""
    data = OrviboPacket.encode(b"qa", b"SOC002" + SOCKET_MAC + b"\x00\x00")

    message = decode_message(data)

    assert message.mac_address == "accfdeadbeef"
    assert message.device_type == DeviceType.SOCKET


def test_decode_discovery_request_is_noop():
    """Test that another controller's discovery request is recognized."""
    message = decode_message(b"hd\x00\x06qa")

    assert message.kind == MessageKind.DISCOVERY_REQUEST
    assert message.mac_address is None


@pytest.mark.parametrize("data", [b"", b"hd", b"hd\x06\x00q"])
def test_decode_undersized(data):
    """Test that empty and truncated datagrams are rejected."""
    with pytest.raises(ProtocolError):
        decode_message(data)


def test_decode_bad_magic():
    """Test that datagrams without the magic are rejected."""
    with pytest.raises(ProtocolError):
        decode_message(b"xx\x06\x00qa")


def test_decode_unknown_command():
    """Test that unrecognized commands decode as a no-op."""
    message = decode_message(OrviboPacket.encode(b"zz", b"\x01\x02\x03"))

    assert message.kind == MessageKind.UNKNOWN
    assert message.command == "zz"


def test_decode_missing_mac():
    """Test that a command that should carry a MAC but doesn't is rejected."""
    with pytest.raises(ProtocolError):
        decode_message(OrviboPacket.encode(b"di", b"\x00" * 12))


def test_decode_subscribe_confirmation():
    """Test the state bit of a subscription confirmation."""
    on = decode_message(subscribe_confirmation(SOCKET_MAC, True))
    off = decode_message(subscribe_confirmation(SOCKET_MAC, False))

    assert on.kind == MessageKind.SUBSCRIBE_CONFIRMATION
    assert on.mac_address == "accfdeadbeef"
    assert on.state is True
    assert off.state is False


def test_decode_query_name():
    """Test decoding a device name from a query response."""
    message = decode_message(query_response(SOCKET_MAC, b"Kitchen".ljust(16, b" ")))

    assert message.kind == MessageKind.QUERY_RESPONSE
    assert message.name == "Kitchen"


@pytest.mark.parametrize("blank", [b"\x20" * 16, b"\xff" * 16])
def test_decode_query_blank_name(blank):
    """Test that both blank name patterns decode to no name."""
    message = decode_message(query_response(SOCKET_MAC, blank))

    assert message.name is None


def test_decode_query_too_short():
    """Test that a query response without the name field is rejected."""
    data = query_response(SOCKET_MAC, b"Kitchen".ljust(16, b" "))[:80]

    with pytest.raises(ProtocolError):
        decode_message(data)


def test_decode_state_changed():
    """Test decoding an unsolicited state change."""
    message = decode_message(state_changed(SOCKET_MAC, True))

    assert message.kind == MessageKind.STATE_CHANGED
    assert message.state is True


def test_decode_state_report_switch_id():
    """Test that a state report carries the bytes between padding and state as a switch id."""
    message = decode_message(state_report(ALLONE_MAC, True, extra=b"\x01\x02\x03"))

    assert message.kind == MessageKind.STATE_REPORT
    assert message.rf_switch_id == "010203"
    assert message.state is True


def test_decode_learned_ir():
    """Test that the IR code runs from its offset to the end of the datagram."""
    message = decode_message(learned_ir(ALLONE_MAC, b"\xde\xad\xbe\xef"))

    assert message.kind == MessageKind.LEARNING_RESPONSE
    assert message.ir_code == b"\xde\xad\xbe\xef"


def test_decode_learning_ack_without_code():
    """Test that a learning response shorter than the code offset carries no code."""
    message = decode_message(OrviboPacket.encode(b"ls", ALLONE_MAC + PAD6 + b"\x01"))

    assert message.kind == MessageKind.LEARNING_RESPONSE
    assert message.ir_code is None


def test_decode_rf_emission_echo():
    """Test that a "dc" packet carrying the RF emission subcommand is not read as a switch report."""
    message = decode_message(build_emit_rf(ALLONE_MAC, b"\xaa\xbb", nonce=b"\x01\x02").raw_data)

    assert message.kind == MessageKind.RF_EMIT_ECHO
    assert message.mac_address == "accf23112233"
    assert message.rf_switch_id is None
    assert message.state is None
