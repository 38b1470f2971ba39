# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Package orvibo_protocol implements the client side of Orvibo's UDP control protocol.

Orvibo makes a family of Wi-Fi home automation devices: the S10 / S20 power sockets, the
AllOne IR / 433MHz blaster, battery powered RF switches that pair with an AllOne, and the
Kepler gas / timer sensor. All of them speak a proprietary binary protocol over UDP port 10000.

The protocol is not publicly documented by Orvibo, but has been reverse-engineered well enough
to discover devices, subscribe to them, read and set socket state, and emit and learn IR codes.
RF switch and Kepler support is provisional.
"""

from .version import __version__

from .internal_types import Jsonable, JsonableDict, HostAndPort

from .exceptions import (
    OrviboError,
    NetworkError,
    ProtocolError,
    InvalidOperationError,
    UnknownDeviceError,
  )

from .constants import *
from .device import DeviceType, OrviboDevice, RFSwitchState, OrviboEvent
from .orvibo_packet import (
    OrviboPacket,
    OrviboMessage,
    MessageKind,
    decode_message,
    build_discover,
    build_subscribe,
    build_query,
    build_set_state,
    build_emit_ir,
    build_emit_rf,
    build_ir_learning_mode,
    build_rf_learning_mode,
  )
from .registry import OrviboDeviceRegistry
from .notifier import OrviboNotifier, DEFAULT_EVENT_CAPACITY
from .orvibo_socket import OrviboSocket
from .client import OrviboClient
from .util import normalize_mac, mac_to_bytes, reverse_mac, get_local_ipv4_address

__all__ = [
    '__version__',
    'Jsonable', 'JsonableDict', 'HostAndPort',
    'OrviboError', 'NetworkError', 'ProtocolError', 'InvalidOperationError', 'UnknownDeviceError',
    'DeviceType', 'OrviboDevice', 'RFSwitchState', 'OrviboEvent',
    'OrviboPacket', 'OrviboMessage', 'MessageKind', 'decode_message',
    'build_discover', 'build_subscribe', 'build_query', 'build_set_state',
    'build_emit_ir', 'build_emit_rf', 'build_ir_learning_mode', 'build_rf_learning_mode',
    'OrviboDeviceRegistry',
    'OrviboNotifier', 'DEFAULT_EVENT_CAPACITY',
    'OrviboSocket',
    'OrviboClient',
    'normalize_mac', 'mac_to_bytes', 'reverse_mac', 'get_local_ipv4_address',
]
