# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Constants used by this package"""

ORVIBO_PORT = 10000
"""The UDP port used by Orvibo devices, both as source and listen port."""

ORVIBO_BROADCAST_ADDRESS = "255.255.255.255"
"""The IPv4 limited-broadcast address that discovery requests are sent to."""

RECV_BUFFER_SIZE = 1024
"""The maximum number of bytes kept from a single received datagram."""

PACKET_MAGIC = b'hd'
"""Every packet begins with these two bytes (0x68 0x64)."""

HEADER_LENGTH = 6
"""Magic (2) + length (2) + command code (2)."""

LENGTH_BYTE_ORDER = 'little'
"""Byte order of the 2-byte total-length field in the packet header."""

PAD6 = b'\x20' * 6
"""Six spaces, used to pad MAC address fields."""

MAC_LENGTH = 6

ORVIBO_OUI = b'\xac\xcf'
"""Leading bytes of every Orvibo hardware address."""

VENDOR_PREFIX = b'\xac\xcf\xde'
"""Vendor prefix searched for when a MAC address is not at its declared offset."""

ALL_DEVICES = "ALL"
"""Target sentinel meaning every AllOne in the registry."""

# Command codes
CMD_DISCOVER = b'qa'
CMD_SUBSCRIBE = b'cl'
CMD_QUERY = b'rt'
CMD_STATE = b'dc'
CMD_STATE_CHANGED = b'sf'
CMD_EMIT_IR = b'ic'
CMD_LEARN = b'ls'
CMD_BUTTON_PRESS = b'di'

# Fixed payload fragments
QUERY_SUFFIX = bytes.fromhex('0000000004000000000000')
SET_STATE_PREFIX = b'\x00\x00\x00\x00'
EMIT_IR_SUBCOMMAND = b'\x65\x00\x00\x00'
EMIT_RF_SUBCOMMAND = b'\x3e\xf5\xee\x0b'
IR_LEARNING_SUFFIX = bytes.fromhex('010000000000')
RF_LEARNING_SUFFIX = bytes.fromhex('020000000000')
NONCE_LENGTH = 2

# Discovery class markers. Both the 5-byte and the 4-byte forms are accepted.
SOCKET_MARKERS = (b'SOC00', b'SOC0')
ALLONE_MARKERS = (b'IRD00', b'IRD0')

# Declared field offsets, measured from the start of the datagram
DISCOVERY_MAC_OFFSET = 7
MAC_OFFSET = HEADER_LENGTH
PADDED_MAC_END = MAC_OFFSET + MAC_LENGTH + len(PAD6)
NAME_OFFSET = 70
NAME_LENGTH = 16
IR_CODE_OFFSET = 26

BLANK_NAME_PATTERNS = (b'\x20' * NAME_LENGTH, b'\xff' * NAME_LENGTH)
"""Name field values meaning "no name has been set"."""

# Event names
EVENT_READY = "ready"
EVENT_DISCOVER = "discover"
EVENT_SUBSCRIBE = "subscribe"
EVENT_QUERY = "query"
EVENT_STATE_SET = "stateset"
EVENT_IR_LEARN_MODE = "irlearnmode"
EVENT_RF_LEARN_MODE = "rflearnmode"
EVENT_SEND_MESSAGE = "sendmessage"
EVENT_BROADCAST = "broadcast"
EVENT_UNKNOWN_HARDWARE_FOUND = "unknownhardwarefound"
EVENT_BUTTON_PRESS = "buttonpress"
EVENT_IR_CODE = "ircode"
EVENT_SOCKET_FOUND = "socketfound"
EVENT_EXISTING_SOCKET_FOUND = "existingsocketfound"
EVENT_ALLONE_FOUND = "allonefound"
EVENT_EXISTING_ALLONE_FOUND = "existingallonefound"
EVENT_SUBSCRIBED = "subscribed"
EVENT_QUERIED = "queried"
EVENT_RF_SWITCH = "rfswitch"
EVENT_STATE_CHANGED = "statechanged"

EVENT_NAMES = frozenset([
    EVENT_READY, EVENT_DISCOVER, EVENT_SUBSCRIBE, EVENT_QUERY, EVENT_STATE_SET,
    EVENT_IR_LEARN_MODE, EVENT_RF_LEARN_MODE, EVENT_SEND_MESSAGE, EVENT_BROADCAST,
    EVENT_UNKNOWN_HARDWARE_FOUND, EVENT_BUTTON_PRESS, EVENT_IR_CODE,
    EVENT_SOCKET_FOUND, EVENT_EXISTING_SOCKET_FOUND, EVENT_ALLONE_FOUND,
    EVENT_EXISTING_ALLONE_FOUND, EVENT_SUBSCRIBED, EVENT_QUERIED, EVENT_RF_SWITCH,
    EVENT_STATE_CHANGED,
  ])
"""The complete event name vocabulary."""
