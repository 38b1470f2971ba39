#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Device and event records kept by the device registry and handed to event consumers.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import IntEnum

from orvibo_protocol.internal_types import *

class DeviceType(IntEnum):
    """The kind of Orvibo product. Assigned once, when a device is first discovered."""
    UNKNOWN = -1
    SOCKET = 0
    """An S10 / S20 Wi-Fi power socket"""
    ALLONE = 1
    """The AllOne IR / 433MHz blaster"""
    RF_SWITCH = 2
    """A battery powered 433MHz switch paired with an AllOne"""
    KEPLER = 3
    """The Kepler gas / CO2 detector with timer. Provisional support only."""

    @property
    def label(self) -> str:
        """The display name used when synthesizing a device name; e.g., "Socket", "AllOne"."""
        return _DEVICE_TYPE_LABELS[self]

_DEVICE_TYPE_LABELS: Dict[DeviceType, str] = {
    DeviceType.UNKNOWN: "Unknown",
    DeviceType.SOCKET: "Socket",
    DeviceType.ALLONE: "AllOne",
    DeviceType.RF_SWITCH: "RFSwitch",
    DeviceType.KEPLER: "Kepler",
}

@dataclass
class RFSwitchState:
    """Last reported state of an RF switch paired with an AllOne"""
    state: bool = False

@dataclass
class OrviboDevice:
    """One physical Orvibo unit, keyed by its MAC address."""

    mac_address: str = ""
    """Canonical MAC address: 12 lowercase hex characters"""

    device_type: DeviceType = DeviceType.UNKNOWN

    address: Optional[HostAndPort] = None
    """IP address and UDP port the device last sent from"""

    subscribed: bool = False
    queried: bool = False

    name: str = ""
    """Set from the query response. Empty until the device has been queried."""

    state: bool = False
    """On/off. Only meaningful for sockets."""

    last_message: bytes = b''
    """The most recent raw datagram received from the device"""

    last_ir_message: bytes = b''
    """The most recent learned IR code. AllOne only."""

    rf_switches: Dict[str, RFSwitchState] = field(default_factory=dict)

    def copy(self) -> OrviboDevice:
        """Returns a deep copy that is unaffected by later registry updates."""
        return copy.deepcopy(self)

    def to_jsonable(self) -> JsonableDict:
        result: JsonableDict = {
            "mac_address": self.mac_address,
            "device_type": self.device_type.label,
            "address": None if self.address is None else f"{self.address[0]}:{self.address[1]}",
            "subscribed": self.subscribed,
            "queried": self.queried,
            "name": self.name,
            "last_message": self.last_message.hex(),
          }
        if self.device_type == DeviceType.SOCKET:
            result["state"] = self.state
        if self.device_type == DeviceType.ALLONE:
            result["last_ir_message"] = self.last_ir_message.hex()
            result["rf_switches"] = { k: v.state for k, v in self.rf_switches.items() }
        return result

@dataclass(frozen=True)
class OrviboEvent:
    """A named event together with a snapshot of the device it concerns.
       Events that are not about a specific device carry an empty OrviboDevice."""
    name: str
    device: OrviboDevice = field(default_factory=OrviboDevice)

    def __str__(self) -> str:
        return f"OrviboEvent({self.name!r}, mac={self.device.mac_address!r})"
