#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Encoding and decoding of the binary packets used by the Orvibo protocol.

All packets sent to or received from a device are of the raw form:

    68 64 <length: 2 bytes> <command code: 2 ASCII bytes> <payload>

The length field holds the total packet length, including the header, as a little-endian
16-bit value. Most payloads begin with the 6-byte MAC address of the device followed by six
0x20 padding bytes.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum

from orvibo_protocol.internal_types import *
from .pkg_logging import logger
from .exceptions import ProtocolError
from .device import DeviceType
from .util import mac_to_bytes
from .constants import (
    PACKET_MAGIC,
    HEADER_LENGTH,
    LENGTH_BYTE_ORDER,
    PAD6,
    MAC_LENGTH,
    ORVIBO_OUI,
    VENDOR_PREFIX,
    NONCE_LENGTH,
    CMD_DISCOVER,
    CMD_SUBSCRIBE,
    CMD_QUERY,
    CMD_STATE,
    CMD_STATE_CHANGED,
    CMD_EMIT_IR,
    CMD_LEARN,
    CMD_BUTTON_PRESS,
    QUERY_SUFFIX,
    SET_STATE_PREFIX,
    EMIT_IR_SUBCOMMAND,
    EMIT_RF_SUBCOMMAND,
    IR_LEARNING_SUFFIX,
    RF_LEARNING_SUFFIX,
    SOCKET_MARKERS,
    ALLONE_MARKERS,
    DISCOVERY_MAC_OFFSET,
    MAC_OFFSET,
    PADDED_MAC_END,
    NAME_OFFSET,
    NAME_LENGTH,
    IR_CODE_OFFSET,
    BLANK_NAME_PATTERNS,
  )

MAX_PACKET_LENGTH = 0xffff

class OrviboPacket:
    """Wrapper for a raw Orvibo packet.

    Provides construction of outgoing packets from a command code and payload, and
    named, length-checked access to the fields of received packets.
    """

    _raw_data: bytes
    """The raw UDP datagram contents"""

    def __init__(
            self,
            command: Optional[bytes]=None,
            payload: bytes=b'',
            raw_data: Optional[bytes]=None,
          ):
        if raw_data is None:
            if command is None:
                raise ValueError("Either command or raw_data must be provided")
            self._raw_data = self.encode(command, payload)
        else:
            if command is not None or len(payload) != 0:
                raise ValueError("If raw_data is provided, command and payload must be omitted")
            self._raw_data = bytes(raw_data)

    @classmethod
    def encode(cls, command: bytes, payload: bytes=b'') -> bytes:
        """Frames a payload: magic + total length + command code + payload."""
        if len(command) != 2:
            raise ValueError(f"Command code must be 2 bytes: {command!r}")
        total_length = HEADER_LENGTH + len(payload)
        if total_length > MAX_PACKET_LENGTH:
            raise ValueError(f"Packet too long: {total_length} bytes")
        return PACKET_MAGIC + total_length.to_bytes(2, LENGTH_BYTE_ORDER) + command + payload

    def __str__(self) -> str:
        return f"OrviboPacket({self._raw_data.hex(' ')})"

    def __repr__(self) -> str:
        return str(self)

    def __len__(self) -> int:
        return len(self._raw_data)

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, OrviboPacket):
            return False
        return self._raw_data == other._raw_data

    def __hash__(self) -> int:
        return hash(self._raw_data)

    @property
    def raw_data(self) -> bytes:
        """The raw UDP datagram contents"""
        return self._raw_data

    @property
    def magic(self) -> bytes:
        """The first two bytes of the packet. Should always be b'hd'."""
        return self._raw_data[0:2]

    @property
    def declared_length(self) -> int:
        """The value of the length field. Not checked against the actual length when decoding."""
        return int.from_bytes(self._raw_data[2:4], LENGTH_BYTE_ORDER)

    @property
    def command_code(self) -> bytes:
        """The 2-byte ASCII command code"""
        return self._raw_data[4:6]

    @property
    def command(self) -> str:
        """The command code as a str; e.g., "qa", "cl"."""
        return self.command_code.decode('ascii', errors='replace')

    @property
    def payload(self) -> bytes:
        """Everything after the 6-byte header"""
        return self._raw_data[HEADER_LENGTH:]

    @property
    def final_bit(self) -> bool:
        """The low bit of the last byte, which carries on/off state in state-bearing responses."""
        return (self._raw_data[-1] & 0x01) != 0

    def validate(self) -> None:
        """Raises ProtocolError unless the packet has a complete header with the correct magic."""
        if len(self._raw_data) == 0:
            raise ProtocolError("Blank message")
        if len(self._raw_data) < HEADER_LENGTH:
            raise ProtocolError(f"Packet too short: {self}")
        if self.magic != PACKET_MAGIC:
            raise ProtocolError(f"Bad packet magic: {self}")

    def field(self, offset: int, length: int, name: str) -> bytes:
        """Returns a fixed-position field, or raises ProtocolError if the packet is too short to contain it."""
        end = offset + length
        if len(self._raw_data) < end:
            raise ProtocolError(f"Packet too short for {name} (need {end} bytes, have {len(self._raw_data)}): {self}")
        return self._raw_data[offset:end]

    def locate_mac(self, declared_offset: int=MAC_OFFSET) -> str:
        """Returns the device MAC address carried in the packet.

        The MAC is taken from its declared offset when the bytes there carry the Orvibo OUI.
        Otherwise the payload is searched for the vendor prefix.
        """
        data = self._raw_data
        candidate = data[declared_offset:declared_offset + MAC_LENGTH]
        if len(candidate) == MAC_LENGTH and candidate.startswith(ORVIBO_OUI):
            return candidate.hex()
        i = data.find(VENDOR_PREFIX, HEADER_LENGTH)
        if i < 0 or i + MAC_LENGTH > len(data):
            raise ProtocolError(f"No MAC address found in packet: {self}")
        return data[i:i + MAC_LENGTH].hex()

# =============================================================================
# Outgoing packets
# =============================================================================

def _padded_mac(mac: Union[str, bytes]) -> bytes:
    return mac_to_bytes(mac) + PAD6

def _nonce(nonce: Optional[bytes]) -> bytes:
    if nonce is None:
        return os.urandom(NONCE_LENGTH)
    if len(nonce) != NONCE_LENGTH:
        raise ValueError(f"Nonce must be {NONCE_LENGTH} bytes: {nonce!r}")
    return nonce

def build_discover() -> OrviboPacket:
    """Broadcast search for all devices"""
    return OrviboPacket(CMD_DISCOVER)

def build_subscribe(mac: Union[str, bytes]) -> OrviboPacket:
    """Asks a device for control. The MAC is sent once as-is and once byte-reversed."""
    mac_bytes = mac_to_bytes(mac)
    return OrviboPacket(CMD_SUBSCRIBE, mac_bytes + PAD6 + mac_bytes[::-1] + PAD6)

def build_query(mac: Union[str, bytes]) -> OrviboPacket:
    """Asks a subscribed device for its name"""
    return OrviboPacket(CMD_QUERY, _padded_mac(mac) + QUERY_SUFFIX)

def build_set_state(mac: Union[str, bytes], state: bool) -> OrviboPacket:
    return OrviboPacket(CMD_STATE, _padded_mac(mac) + SET_STATE_PREFIX + (b'\x01' if state else b'\x00'))

def build_emit_ir(mac: Union[str, bytes], code: bytes, nonce: Optional[bytes]=None) -> OrviboPacket:
    """Makes an AllOne emit an IR code. The nonce is random unless provided."""
    payload = (
        _padded_mac(mac) + EMIT_IR_SUBCOMMAND + _nonce(nonce) +
        len(code).to_bytes(2, 'little') + code
      )
    return OrviboPacket(CMD_EMIT_IR, payload)

def build_emit_rf(mac: Union[str, bytes], code: bytes, nonce: Optional[bytes]=None) -> OrviboPacket:
    """Makes an AllOne emit a 433MHz code. The nonce is random unless provided."""
    return OrviboPacket(CMD_STATE, _padded_mac(mac) + EMIT_RF_SUBCOMMAND + _nonce(nonce) + code)

def build_ir_learning_mode(mac: Union[str, bytes]) -> OrviboPacket:
    return OrviboPacket(CMD_LEARN, _padded_mac(mac) + IR_LEARNING_SUFFIX)

def build_rf_learning_mode(mac: Union[str, bytes]) -> OrviboPacket:
    return OrviboPacket(CMD_LEARN, _padded_mac(mac) + RF_LEARNING_SUFFIX)

# =============================================================================
# Incoming packets
# =============================================================================

class MessageKind(Enum):
    """What a received packet means to the device registry"""
    UNKNOWN = "unknown"
    DISCOVERY_REQUEST = "discovery_request"
    DISCOVERY_RESPONSE = "discovery_response"
    SUBSCRIBE_CONFIRMATION = "subscribe_confirmation"
    QUERY_RESPONSE = "query_response"
    STATE_CHANGED = "state_changed"
    STATE_REPORT = "state_report"
    """A "dc" packet: a state-set confirmation from a socket, or an RF switch press relayed by an AllOne."""
    BUTTON_PRESS = "button_press"
    LEARNING_RESPONSE = "learning_response"
    RF_EMIT_ECHO = "rf_emit_echo"
    """A "dc" packet repeating an RF emission command back to us. Refreshes the device but is not a switch press."""

@dataclass
class OrviboMessage:
    """The decoded fields of a received packet. Fields not carried by a command are None."""
    kind: MessageKind
    command: str
    raw_data: bytes
    mac_address: Optional[str] = None
    device_type: DeviceType = DeviceType.UNKNOWN
    name: Optional[str] = None
    """None if the device reported a blank/factory default name"""
    state: Optional[bool] = None
    ir_code: Optional[bytes] = None
    rf_switch_id: Optional[str] = None

def _device_type_from_markers(data: bytes) -> DeviceType:
    if any(marker in data for marker in ALLONE_MARKERS):
        return DeviceType.ALLONE
    if any(marker in data for marker in SOCKET_MARKERS):
        return DeviceType.SOCKET
    return DeviceType.UNKNOWN

def _decode_name(raw_name: bytes) -> Optional[str]:
    if raw_name in BLANK_NAME_PATTERNS:
        return None
    name = raw_name.rstrip(b'\x20\x00\xff').decode('utf-8', errors='replace')
    return name if name != '' else None

def _decode_discover(packet: OrviboPacket) -> OrviboMessage:
    if len(packet) == HEADER_LENGTH:
        return OrviboMessage(MessageKind.DISCOVERY_REQUEST, packet.command, packet.raw_data)
    return OrviboMessage(
        MessageKind.DISCOVERY_RESPONSE,
        packet.command,
        packet.raw_data,
        mac_address=packet.locate_mac(DISCOVERY_MAC_OFFSET),
        device_type=_device_type_from_markers(packet.payload),
      )

def _decode_subscribe(packet: OrviboPacket) -> OrviboMessage:
    packet.field(MAC_OFFSET, MAC_LENGTH + 1, "subscription state")
    return OrviboMessage(
        MessageKind.SUBSCRIBE_CONFIRMATION,
        packet.command,
        packet.raw_data,
        mac_address=packet.locate_mac(),
        state=packet.final_bit,
      )

def _decode_query(packet: OrviboPacket) -> OrviboMessage:
    raw_name = packet.field(NAME_OFFSET, NAME_LENGTH, "device name")
    return OrviboMessage(
        MessageKind.QUERY_RESPONSE,
        packet.command,
        packet.raw_data,
        mac_address=packet.locate_mac(),
        name=_decode_name(raw_name),
      )

def _decode_state_changed(packet: OrviboPacket) -> OrviboMessage:
    packet.field(MAC_OFFSET, MAC_LENGTH + 1, "state")
    return OrviboMessage(
        MessageKind.STATE_CHANGED,
        packet.command,
        packet.raw_data,
        mac_address=packet.locate_mac(),
        state=packet.final_bit,
      )

def _decode_state_report(packet: OrviboPacket) -> OrviboMessage:
    packet.field(MAC_OFFSET, MAC_LENGTH + 1, "state")
    if packet.raw_data[PADDED_MAC_END:PADDED_MAC_END + len(EMIT_RF_SUBCOMMAND)] == EMIT_RF_SUBCOMMAND:
        return OrviboMessage(
            MessageKind.RF_EMIT_ECHO,
            packet.command,
            packet.raw_data,
            mac_address=packet.locate_mac(),
          )
    # Only meaningful when an AllOne relays an RF switch press; the layout is provisional.
    switch_id = packet.raw_data[PADDED_MAC_END:-1]
    return OrviboMessage(
        MessageKind.STATE_REPORT,
        packet.command,
        packet.raw_data,
        mac_address=packet.locate_mac(),
        state=packet.final_bit,
        rf_switch_id=switch_id.hex() if len(switch_id) > 0 else None,
      )

def _decode_button_press(packet: OrviboPacket) -> OrviboMessage:
    return OrviboMessage(
        MessageKind.BUTTON_PRESS,
        packet.command,
        packet.raw_data,
        mac_address=packet.locate_mac(),
      )

def _decode_learning(packet: OrviboPacket) -> OrviboMessage:
    ir_code: Optional[bytes] = None
    if len(packet) > IR_CODE_OFFSET:
        ir_code = packet.raw_data[IR_CODE_OFFSET:]
    return OrviboMessage(
        MessageKind.LEARNING_RESPONSE,
        packet.command,
        packet.raw_data,
        mac_address=packet.locate_mac(),
        ir_code=ir_code,
      )

_decoders: Dict[bytes, Callable[[OrviboPacket], OrviboMessage]] = {
    CMD_DISCOVER: _decode_discover,
    CMD_SUBSCRIBE: _decode_subscribe,
    CMD_QUERY: _decode_query,
    CMD_STATE_CHANGED: _decode_state_changed,
    CMD_STATE: _decode_state_report,
    CMD_BUTTON_PRESS: _decode_button_press,
    CMD_LEARN: _decode_learning,
}

def decode_message(data: bytes) -> OrviboMessage:
    """Decodes a received datagram.

    Raises ProtocolError if the datagram is empty, undersized for its command, or does
    not carry a locatable MAC address. Unrecognized command codes decode to MessageKind.UNKNOWN.
    """
    packet = OrviboPacket(raw_data=data)
    packet.validate()
    decoder = _decoders.get(packet.command_code)
    if decoder is None:
        logger.debug(f"Ignoring unrecognized command {packet.command_code!r}: {packet}")
        return OrviboMessage(MessageKind.UNKNOWN, packet.command, packet.raw_data)
    return decoder(packet)
