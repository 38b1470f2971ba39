"""Datagrams as sent by devices, and an in-memory stand-in for OrviboSocket."""

from __future__ import annotations

from collections import deque
from typing import Deque, List, Optional, Tuple

from orvibo_protocol import NetworkError, OrviboPacket

PAD6 = b"\x20" * 6

SOCKET_MAC = bytes.fromhex("accfdeadbeef")
ALLONE_MAC = bytes.fromhex("accf23112233")
ALLONE2_MAC = bytes.fromhex("accf23445566")
SOCKET_ADDR = ("192.168.1.50", 10000)
ALLONE_ADDR = ("192.168.1.51", 10000)
ALLONE2_ADDR = ("192.168.1.52", 10000)
LOCAL_IP = "192.168.1.10"


def discovery_response(mac: bytes, marker: bytes = b"SOC002") -> bytes:
    payload = b"\x00" + mac + PAD6 + mac[::-1] + PAD6 + marker + b"\x00" * 8
    return OrviboPacket.encode(b"qa", payload)


def subscribe_confirmation(mac: bytes, state: bool) -> bytes:
    return OrviboPacket.encode(b"cl", mac + PAD6 + b"\x00" * 5 + (b"\x01" if state else b"\x00"))


def query_response(mac: bytes, raw_name: bytes) -> bytes:
    assert len(raw_name) == 16
    payload = mac + PAD6 + b"\x00" * 52 + raw_name + b"\x00" * 10
    return OrviboPacket.encode(b"rt", payload)


def state_changed(mac: bytes, state: bool) -> bytes:
    return OrviboPacket.encode(b"sf", mac + PAD6 + b"\x00" * 4 + (b"\x01" if state else b"\x00"))


def state_report(mac: bytes, state: bool, extra: bytes = b"\x00" * 4) -> bytes:
    return OrviboPacket.encode(b"dc", mac + PAD6 + extra + (b"\x01" if state else b"\x00"))


def learned_ir(mac: bytes, code: bytes) -> bytes:
    return OrviboPacket.encode(b"ls", mac + PAD6 + b"\x00" * 8 + code)


class FakeOrviboSocket:
    """Records what would have been sent and replays queued datagrams."""

    def __init__(self) -> None:
        self.sent: List[Tuple[bytes, Tuple[str, int]]] = []
        self.broadcasts: List[bytes] = []
        self.incoming: Deque[Tuple[bytes, Tuple[str, int]]] = deque()
        self.listening = False
        self.closed = False

    async def listen(self) -> None:
        self.listening = True

    def sendto(self, data: bytes, addr: Tuple[str, int]) -> None:
        self.sent.append((data, addr))

    def broadcast(self, data: bytes) -> None:
        self.broadcasts.append(data)

    def feed(self, data: bytes, addr: Tuple[str, int]) -> None:
        self.incoming.append((data, addr))

    async def receive_one(self) -> Tuple[bytes, Tuple[str, int]]:
        if not self.incoming:
            raise NetworkError("no more datagrams")
        return self.incoming.popleft()

    def close(self) -> None:
        self.closed = True

    def commands(self, command: bytes) -> List[Tuple[bytes, Tuple[str, int]]]:
        return [(data, addr) for data, addr in self.sent if data[4:6] == command]
