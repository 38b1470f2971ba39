#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
OrviboSocket -- The UDP transport used to talk to Orvibo devices. It:

  1. Binds one UDP socket on the Orvibo port (10000) with broadcast enabled
  2. Sends datagrams to a single device, or broadcasts them to the whole network
  3. Hands received datagrams to the caller one at a time via receive_one()

  Received datagrams are buffered between the asyncio transport and receive_one(). Datagrams
  that we sent ourselves are returned like any other; filtering them is up to the caller.
"""

from __future__ import annotations

import asyncio
import socket

from orvibo_protocol.internal_types import *
from .pkg_logging import logger, packet_logger
from .exceptions import NetworkError
from .constants import ORVIBO_PORT, ORVIBO_BROADCAST_ADDRESS, RECV_BUFFER_SIZE

MAX_QUEUE_SIZE = 1000

ReceivedDatagram = Tuple[bytes, HostAndPort]

class _OrviboSocketProtocol(asyncio.DatagramProtocol):
    """An adapter between the asyncio transport and OrviboSocket."""
    orvibo_socket: OrviboSocket

    def __init__(self, orvibo_socket: OrviboSocket):
        self.orvibo_socket = orvibo_socket

    def connection_made(self, transport: asyncio.BaseTransport):
        """Called when a connection is made."""
        logger.debug(f"Connection made: {self.orvibo_socket}")

    def datagram_received(self, data: bytes, addr: Tuple[str, int]):
        """Called when some datagram is received."""
        self.orvibo_socket.datagram_received(data, addr)

    def error_received(self, exc: Exception):
        """Called when a send or receive operation raises an OSError.

        (Other than BlockingIOError or InterruptedError.)
        """
        self.orvibo_socket.error_received(exc)

    def connection_lost(self, exc: Optional[Exception]) -> None:
        """Called when the connection is lost or closed."""
        # A socket that was closed and reopened has moved on to a new protocol instance
        if self.orvibo_socket.protocol is self:
            self.orvibo_socket.connection_lost(exc)

class OrviboSocket(AsyncContextManager['OrviboSocket']):
    port: int
    """The local port to bind to, which is also the destination port for broadcasts."""

    bind_address: str
    """The local IP address to bind to. '' binds to all interfaces."""

    broadcast_address: str

    sock: Optional[socket.socket] = None

    transport: Optional[asyncio.DatagramTransport] = None

    protocol: Optional[_OrviboSocketProtocol] = None

    queue: asyncio.Queue[Optional[ReceivedDatagram]]
    """Datagrams received but not yet returned by receive_one(). None marks end of stream."""

    eos: bool = False
    eos_exc: Optional[Exception] = None

    def __init__(
            self,
            port: int=ORVIBO_PORT,
            bind_address: str='',
            broadcast_address: str=ORVIBO_BROADCAST_ADDRESS,
            max_queue_size: int=MAX_QUEUE_SIZE
          ):
        self.port = port
        self.bind_address = bind_address
        self.broadcast_address = broadcast_address
        self.queue = asyncio.Queue(max_queue_size)

    def __str__(self) -> str:
        return f"OrviboSocket({self.bind_address or '*'}:{self.port})"

    def __repr__(self) -> str:
        return str(self)

    @property
    def is_open(self) -> bool:
        return self.transport is not None and not self.eos

    def create_socket(self) -> socket.socket:
        """Creates and binds the low-level socket. Raises NetworkError if the port cannot be bound."""
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
            sock.bind((self.bind_address, self.port))
        except OSError as e:
            sock.close()
            raise NetworkError(f"Unable to bind UDP port {self.port}: {e}") from e
        return sock

    async def listen(self) -> None:
        """Binds the socket and starts receiving datagrams."""
        if self.transport is not None:
            raise NetworkError(f"{self} is already listening")
        loop = asyncio.get_running_loop()
        sock = self.create_socket()
        self.queue = asyncio.Queue(self.queue.maxsize)
        try:
            untyped_transport, protocol = await loop.create_datagram_endpoint(
                lambda: _OrviboSocketProtocol(self),
                sock=sock
              )
        except OSError as e:
            sock.close()
            raise NetworkError(f"Unable to listen on UDP port {self.port}: {e}") from e
        # asyncio datagram transports do not inherit from asyncio.DatagramTransport
        self.transport = untyped_transport # type: ignore[assignment]
        assert isinstance(protocol, _OrviboSocketProtocol)
        self.protocol = protocol
        self.sock = sock
        self.eos = False
        self.eos_exc = None
        logger.debug(f"{self} listening")

    def sendto(self, data: bytes, addr: HostAndPort) -> None:
        """Sends one datagram. Raises NetworkError if the socket is not open or the send fails."""
        if self.transport is None:
            raise NetworkError(f"{self} is not listening")
        packet_logger.debug(f"Sending to {addr}: {data.hex()}")
        try:
            self.transport.sendto(data, addr)
        except OSError as e:
            raise NetworkError(f"Unable to send to {addr}: {e}") from e

    def broadcast(self, data: bytes) -> None:
        """Sends one datagram to the broadcast address on our port."""
        self.sendto(data, (self.broadcast_address, self.port))

    async def receive_one(self) -> ReceivedDatagram:
        """Waits for the next received datagram and returns (data, (ip, port)).

        Raises NetworkError if the socket has been closed or failed.
        """
        if self.eos and self.queue.empty():
            raise self._end_of_stream_error()
        result = await self.queue.get()
        if result is None:
            raise self._end_of_stream_error()
        return result

    def datagram_received(self, data: bytes, addr: HostAndPort) -> None:
        if len(data) > RECV_BUFFER_SIZE:
            logger.debug(f"Truncating {len(data)}-byte datagram from {addr} to {RECV_BUFFER_SIZE} bytes")
            data = data[:RECV_BUFFER_SIZE]
        try:
            self.queue.put_nowait((data, addr))
        except asyncio.QueueFull:
            logger.warning(f"Queue full, dropping datagram from {addr}: {data.hex()}")

    def error_received(self, exc: Exception) -> None:
        # ICMP errors (e.g. port unreachable after a send) are reported here; they do not end the socket.
        logger.info(f"Error received from transport {self}: {exc}")

    def connection_lost(self, exc: Optional[Exception]) -> None:
        logger.debug(f"Connection to transport lost on {self}, exc={exc}")
        self.transport = None
        self.protocol = None
        self._set_end_of_stream(exc)

    def _set_end_of_stream(self, exc: Optional[Exception]=None) -> None:
        if not self.eos:
            self.eos = True
            self.eos_exc = exc
            try:
                # wake up any waiting tasks
                self.queue.put_nowait(None)
            except asyncio.QueueFull:
                # queue is full so waiters will wake up soon
                pass

    def _end_of_stream_error(self) -> NetworkError:
        if self.eos_exc is not None:
            return NetworkError(f"{self} failed: {self.eos_exc}")
        return NetworkError(f"{self} is closed")

    def close(self) -> None:
        """Closes the socket. Pending and future receive_one() calls raise NetworkError."""
        transport = self.transport
        self.transport = None
        if transport is not None:
            try:
                transport.close()
            except Exception as e:
                logger.error(f"Error closing transport on {self}: {e}")
        self.protocol = None
        self.sock = None
        self._set_end_of_stream()

    async def __aenter__(self) -> Self:
        await self.listen()
        return self

    async def __aexit__(
            self,
            exc_type: Optional[type[BaseException]],
            exc: Optional[BaseException],
            tb: Optional[TracebackType]
      ) -> bool:
        self.close()
        return False
