# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
OrviboClient -- An Orvibo controller that can:

  1. Broadcast a discovery request and register the sockets and AllOnes that answer
  2. Subscribe to and query the registered devices
  3. Set or toggle the on/off state of sockets
  4. Make AllOnes emit IR / 433MHz codes, or enter IR / RF learning mode
  5. Receive one datagram per poll() call, apply it to the device registry, and publish
     the resulting event to the consumer

There is no background receive task. The caller drives the client by calling poll()
repeatedly, and is responsible for re-running discover()/subscribe()/query() on whatever
schedule suits it.
"""

from __future__ import annotations

from orvibo_protocol.internal_types import *
from .pkg_logging import logger, packet_logger
from .constants import (
    ORVIBO_PORT,
    ORVIBO_BROADCAST_ADDRESS,
    ALL_DEVICES,
    EVENT_READY,
    EVENT_DISCOVER,
    EVENT_SUBSCRIBE,
    EVENT_QUERY,
    EVENT_STATE_SET,
    EVENT_IR_LEARN_MODE,
    EVENT_RF_LEARN_MODE,
    EVENT_SEND_MESSAGE,
    EVENT_BROADCAST,
  )
from .exceptions import NetworkError, InvalidOperationError, UnknownDeviceError
from .device import DeviceType, OrviboDevice, OrviboEvent
from .registry import OrviboDeviceRegistry
from .notifier import OrviboNotifier, DEFAULT_EVENT_CAPACITY
from .orvibo_socket import OrviboSocket
from .orvibo_packet import (
    OrviboPacket,
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
from .util import get_local_ipv4_address, hex_or_bytes

class OrviboClient(AsyncContextManager['OrviboClient']):
    """
    An Orvibo controller bound to UDP port 10000.

    Usage:
        async with OrviboClient() as client:
            client.discover()
            while True:
                await client.poll()
                event = client.get_event()
                if event is not None:
                    ...
    """

    registry: OrviboDeviceRegistry
    """The devices known to this client"""

    notifier: OrviboNotifier
    """Where events are published for the consumer"""

    sock: Optional[OrviboSocket] = None
    """The transport. Created by prepare() unless one was provided."""

    local_ip: Optional[str] = None
    """Our own IPv4 address. Datagrams from this address are ignored."""

    port: int = ORVIBO_PORT
    bind_address: str = ''
    broadcast_address: str = ORVIBO_BROADCAST_ADDRESS

    def __init__(
            self,
            registry: Optional[OrviboDeviceRegistry]=None,
            notifier: Optional[OrviboNotifier]=None,
            sock: Optional[OrviboSocket]=None,
            local_ip: Optional[str]=None,
            port: int=ORVIBO_PORT,
            bind_address: str='',
            broadcast_address: str=ORVIBO_BROADCAST_ADDRESS,
            event_capacity: int=DEFAULT_EVENT_CAPACITY,
          ) -> None:
        self.registry = OrviboDeviceRegistry() if registry is None else registry
        self.notifier = OrviboNotifier(event_capacity) if notifier is None else notifier
        self.sock = sock
        self.local_ip = local_ip
        self.port = port
        self.bind_address = bind_address
        self.broadcast_address = broadcast_address

    async def prepare(self) -> bool:
        """Resolves our local IP address and starts listening. Publishes "ready".

        Raises NetworkError if there is no usable local IPv4 address or the port cannot be bound.
        """
        if self.local_ip is None:
            self.local_ip = get_local_ipv4_address()
        if self.sock is None:
            self.sock = OrviboSocket(port=self.port, bind_address=self.bind_address, broadcast_address=self.broadcast_address)
        await self.sock.listen()
        logger.debug(f"Prepared {self.sock}, local IP {self.local_ip}")
        self.notifier.publish(EVENT_READY)
        return True

    def close(self) -> None:
        """Closes the socket. The registry is left intact."""
        if self.sock is not None:
            self.sock.close()

    # ===============
    # Events
    # ===============

    def get_event(self) -> Optional[OrviboEvent]:
        """Returns the pending event, if any, without waiting."""
        return self.notifier.get_nowait()

    async def wait_event(self) -> OrviboEvent:
        """Waits for the next event. Something else must be calling poll() for events to arrive."""
        return await self.notifier.get()

    # ===============
    # Commands
    # ===============

    def discover(self) -> None:
        """Broadcasts a discovery request. Responses arrive through poll()."""
        self._broadcast(build_discover(), EVENT_DISCOVER)

    def subscribe(self) -> int:
        """Sends a subscribe request to every device that is not yet subscribed.
           Returns the number of requests sent."""
        n = 0
        for device in self.registry.devices(lambda d: not d.subscribed):
            self._send(build_subscribe(device.mac_address), device, EVENT_SUBSCRIBE)
            n += 1
        return n

    def query(self) -> bool:
        """Asks every subscribed but not yet queried device for its name.
           Returns True if at least one query was sent."""
        success = False
        for device in self.registry.devices(lambda d: d.subscribed and not d.queried):
            self._send(build_query(device.mac_address), device, EVENT_QUERY)
            success = True
        return success

    def set_state(self, mac: str, state: bool) -> bool:
        """Turns a socket on or off.

        Raises InvalidOperationError if the device is not a socket, and UnknownDeviceError if
        the MAC address is not registered. The local state is updated before the command is sent;
        the device's confirmation, when it arrives through poll(), has the final say. If the
        command cannot be sent, the previous state is restored and NetworkError is raised.
        """
        device = self._require_device(mac)
        if device.device_type != DeviceType.SOCKET:
            raise InvalidOperationError(f"cannot set state on a non-socket: {device.mac_address} is {device.device_type.label}")
        previous_state = device.state
        device = self.registry.set_local_state(device.mac_address, state)
        try:
            self._send(build_set_state(device.mac_address, state), device, EVENT_STATE_SET)
        except NetworkError:
            self.registry.set_local_state(device.mac_address, previous_state)
            raise
        return True

    def toggle_state(self, mac: str) -> bool:
        """Inverts the last known state of a socket"""
        device = self._require_device(mac)
        return self.set_state(device.mac_address, not device.state)

    def emit_ir(self, code: Union[str, bytes], target: str=ALL_DEVICES) -> int:
        """Makes one AllOne, or all of them if target is "ALL", emit an IR code.

        code may be raw bytes or a hex string. Returns the number of devices addressed.
        """
        code_bytes = hex_or_bytes(code)
        devices = self._allone_targets(target)
        for device in devices:
            self._send(build_emit_ir(device.mac_address, code_bytes), device)
        return len(devices)

    def emit_rf(self, code: Union[str, bytes], target: str=ALL_DEVICES) -> int:
        """Makes one AllOne, or all of them if target is "ALL", emit a 433MHz code.

        code may be raw bytes or a hex string. Returns the number of devices addressed.
        """
        code_bytes = hex_or_bytes(code)
        devices = self._allone_targets(target)
        for device in devices:
            self._send(build_emit_rf(device.mac_address, code_bytes), device)
        return len(devices)

    def enter_learning_mode(self, target: str=ALL_DEVICES) -> int:
        """Puts one AllOne, or all of them, into IR learning mode. The learned code
           arrives later as an "ircode" event. Returns the number of devices addressed."""
        devices = self._allone_targets(target)
        for device in devices:
            self._send(build_ir_learning_mode(device.mac_address), device, EVENT_IR_LEARN_MODE)
        return len(devices)

    def enter_rf_learning_mode(self, mac: str) -> bool:
        """Puts a single AllOne into 433MHz learning mode. "ALL" is not accepted."""
        device = self._require_allone(mac)
        self._send(build_rf_learning_mode(device.mac_address), device, EVENT_RF_LEARN_MODE)
        return True

    def list_devices(self) -> List[JsonableDict]:
        """A JSON-compatible dump of the registry, for debugging"""
        return self.registry.to_jsonable()

    # ===============
    # Receiving
    # ===============

    async def poll(self) -> bool:
        """Waits for one datagram and processes it.

        Returns False if the datagram came from our own address and was discarded, True otherwise.
        Raises ProtocolError if the datagram cannot be decoded, and NetworkError if the socket
        is closed or was never opened.
        """
        if self.sock is None:
            raise NetworkError("Client has not been prepared")
        data, addr = await self.sock.receive_one()
        return self.handle_datagram(data, addr)

    check_for_messages = poll

    def handle_datagram(self, data: bytes, addr: HostAndPort) -> bool:
        """Decodes one received datagram, applies it to the registry, and publishes any resulting event.
           See poll()."""
        if addr[0] == self.local_ip:
            packet_logger.debug(f"Ignoring datagram from ourselves: {data.hex()}")
            return False
        packet_logger.debug(f"Message from {addr}: {data.hex()}")
        message = decode_message(data)
        applied = self.registry.apply(message, addr)
        if applied is not None:
            event_name, device = applied
            self.notifier.publish(event_name, device)
        return True

    # ==================
    # Internal functions
    # ==================

    def _require_sock(self) -> OrviboSocket:
        if self.sock is None:
            raise NetworkError("Client has not been prepared")
        return self.sock

    def _send(self, packet: OrviboPacket, device: OrviboDevice, event_name: str=EVENT_SEND_MESSAGE) -> None:
        """Sends one packet and publishes exactly one event for it: the calling operation's own, or "sendmessage"."""
        if device.address is None:
            raise NetworkError(f"No known address for device {device.mac_address}")
        self._require_sock().sendto(packet.raw_data, device.address)
        self.notifier.publish(event_name, device)

    def _broadcast(self, packet: OrviboPacket, event_name: str=EVENT_BROADCAST) -> None:
        self._require_sock().broadcast(packet.raw_data)
        self.notifier.publish(event_name)

    def _require_device(self, mac: str) -> OrviboDevice:
        device = self.registry.get(mac)
        if device is None:
            raise UnknownDeviceError(f"Unknown device: {mac}")
        return device

    def _allone_targets(self, target: str) -> List[OrviboDevice]:
        if target.upper() == ALL_DEVICES:
            return self.registry.devices(lambda d: d.device_type == DeviceType.ALLONE)
        return [self._require_allone(target)]

    def _require_allone(self, mac: str) -> OrviboDevice:
        if mac.upper() == ALL_DEVICES:
            raise InvalidOperationError(f"A single AllOne MAC address is required, not {ALL_DEVICES}")
        device = self._require_device(mac)
        if device.device_type != DeviceType.ALLONE:
            raise InvalidOperationError(f"{device.mac_address} is not an AllOne")
        return device

    async def __aenter__(self) -> OrviboClient:
        await self.prepare()
        return self

    async def __aexit__(
            self,
            exc_type: Optional[type[BaseException]],
            exc: Optional[BaseException],
            tb: Optional[TracebackType]
      ) -> bool:
        self.close()
        return False
