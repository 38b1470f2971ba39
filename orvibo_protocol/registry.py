#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
OrviboDeviceRegistry -- The in-memory table of known devices, keyed by MAC address.

Each device advances through Unknown -> Discovered -> Subscribed -> Queried as decoded
messages are applied. Sockets additionally carry an on/off state that is only taken from
device responses, apart from the optimistic write made just before a state-set command is sent.

Entries are never removed. Callers only ever receive copies of registry entries.
"""

from __future__ import annotations

import threading

from orvibo_protocol.internal_types import *
from .pkg_logging import logger
from .exceptions import ProtocolError, UnknownDeviceError
from .device import DeviceType, OrviboDevice, RFSwitchState
from .orvibo_packet import MessageKind, OrviboMessage
from .util import normalize_mac
from .constants import (
    EVENT_SOCKET_FOUND,
    EVENT_EXISTING_SOCKET_FOUND,
    EVENT_ALLONE_FOUND,
    EVENT_EXISTING_ALLONE_FOUND,
    EVENT_UNKNOWN_HARDWARE_FOUND,
    EVENT_SUBSCRIBED,
    EVENT_QUERIED,
    EVENT_STATE_CHANGED,
    EVENT_RF_SWITCH,
    EVENT_BUTTON_PRESS,
    EVENT_IR_CODE,
  )

AppliedEvent = Tuple[str, OrviboDevice]
"""(event_name, device_snapshot) produced by applying a message"""

_found_events: Dict[DeviceType, Tuple[str, str]] = {
    DeviceType.SOCKET: (EVENT_SOCKET_FOUND, EVENT_EXISTING_SOCKET_FOUND),
    DeviceType.ALLONE: (EVENT_ALLONE_FOUND, EVENT_EXISTING_ALLONE_FOUND),
}

class OrviboDeviceRegistry:
    _devices: Dict[str, OrviboDevice]
    """The live device records, indexed by canonical MAC address"""

    _lock: threading.RLock

    def __init__(self) -> None:
        self._devices = {}
        self._lock = threading.RLock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._devices)

    def __contains__(self, mac: Any) -> bool:
        try:
            key = normalize_mac(mac)
        except (ValueError, AttributeError):
            return False
        with self._lock:
            return key in self._devices

    def __iter__(self) -> Iterator[OrviboDevice]:
        return iter(self.devices())

    def get(self, mac: Union[str, bytes]) -> Optional[OrviboDevice]:
        """Returns a copy of the device with the given MAC, or None if it is unknown."""
        with self._lock:
            device = self._devices.get(normalize_mac(mac))
            return None if device is None else device.copy()

    def __getitem__(self, mac: Union[str, bytes]) -> OrviboDevice:
        result = self.get(mac)
        if result is None:
            raise UnknownDeviceError(f"Unknown device: {mac!r}")
        return result

    def devices(self, predicate: Optional[Callable[[OrviboDevice], bool]]=None) -> List[OrviboDevice]:
        """Returns copies of all devices, or of those for which predicate(device) is True."""
        with self._lock:
            return [ d.copy() for d in self._devices.values() if predicate is None or predicate(d) ]

    def add(self, device: OrviboDevice) -> OrviboDevice:
        """Adds a device record directly. An existing record with the same MAC is kept as is.
           Returns a copy of the registered device."""
        mac = normalize_mac(device.mac_address)
        with self._lock:
            existing = self._devices.get(mac)
            if existing is None:
                existing = device.copy()
                existing.mac_address = mac
                self._devices[mac] = existing
            return existing.copy()

    def set_local_state(self, mac: Union[str, bytes], state: bool) -> OrviboDevice:
        """Optimistically records a socket state before the state-set command is sent.
           The device's confirmation overwrites it."""
        with self._lock:
            device = self._require(mac)
            device.state = state
            return device.copy()

    def apply(self, message: OrviboMessage, addr: HostAndPort) -> Optional[AppliedEvent]:
        """Applies a decoded message received from addr.

        Returns (event_name, device_snapshot), or None if the message produces no event:
        unrecognized commands, discovery requests, learning acknowledgements without a code,
        echoes of our own RF emissions,
        and any message about a MAC that is not in the registry.
        """
        kind = message.kind
        if kind in (MessageKind.UNKNOWN, MessageKind.DISCOVERY_REQUEST) or message.mac_address is None:
            return None
        mac = message.mac_address
        with self._lock:
            if kind == MessageKind.DISCOVERY_RESPONSE:
                return self._apply_discovery(message, mac, addr)

            device = self._devices.get(mac)
            if device is None:
                logger.debug(f"Ignoring {message.command!r} message for unknown device {mac}")
                return None
            device.address = addr
            device.last_message = message.raw_data

            event_name: Optional[str] = None
            if kind == MessageKind.SUBSCRIBE_CONFIRMATION:
                device.subscribed = True
                if message.state is not None:
                    device.state = message.state
                event_name = EVENT_SUBSCRIBED
            elif kind == MessageKind.QUERY_RESPONSE:
                device.name = message.name if message.name is not None else f"{device.device_type.label} {mac}"
                device.queried = True
                event_name = EVENT_QUERIED
            elif kind == MessageKind.STATE_CHANGED:
                if message.state is None:
                    raise ProtocolError(f"State change from {mac} carries no state")
                device.state = message.state
                event_name = EVENT_STATE_CHANGED
            elif kind == MessageKind.STATE_REPORT:
                if message.state is None:
                    raise ProtocolError(f"State report from {mac} carries no state")
                if device.device_type == DeviceType.ALLONE:
                    switch_id = message.rf_switch_id or mac
                    device.rf_switches.setdefault(switch_id, RFSwitchState()).state = message.state
                    event_name = EVENT_RF_SWITCH
                else:
                    device.state = message.state
                    event_name = EVENT_STATE_CHANGED
            elif kind == MessageKind.BUTTON_PRESS:
                event_name = EVENT_BUTTON_PRESS
            elif kind == MessageKind.LEARNING_RESPONSE:
                if message.ir_code is not None:
                    device.last_ir_message = message.ir_code
                    event_name = EVENT_IR_CODE

            if event_name is None:
                return None
            return (event_name, device.copy())

    def _apply_discovery(self, message: OrviboMessage, mac: str, addr: HostAndPort) -> AppliedEvent:
        device = self._devices.get(mac)
        if device is not None:
            device.address = addr
            device.last_message = message.raw_data
            _, existing_event = _found_events.get(device.device_type, (EVENT_UNKNOWN_HARDWARE_FOUND, EVENT_UNKNOWN_HARDWARE_FOUND))
            return (existing_event, device.copy())

        device = OrviboDevice(
            mac_address=mac,
            device_type=message.device_type,
            address=addr,
            last_message=message.raw_data,
          )
        if message.device_type not in _found_events:
            logger.debug(f"Unrecognized hardware {mac} at {addr}")
            return (EVENT_UNKNOWN_HARDWARE_FOUND, device)
        self._devices[mac] = device
        logger.debug(f"Discovered {device.device_type.label} {mac} at {addr}")
        new_event, _ = _found_events[message.device_type]
        return (new_event, device.copy())

    def _require(self, mac: Union[str, bytes]) -> OrviboDevice:
        device = self._devices.get(normalize_mac(mac))
        if device is None:
            raise UnknownDeviceError(f"Unknown device: {mac!r}")
        return device

    def to_jsonable(self) -> List[JsonableDict]:
        with self._lock:
            return [ d.to_jsonable() for d in self._devices.values() ]
