from __future__ import annotations

import asyncio

import pytest

from orvibo_protocol import OrviboClient

from helpers import (
    ALLONE2_ADDR,
    ALLONE2_MAC,
    ALLONE_ADDR,
    ALLONE_MAC,
    LOCAL_IP,
    SOCKET_ADDR,
    SOCKET_MAC,
    FakeOrviboSocket,
    discovery_response,
)


@pytest.fixture
def fake_socket() -> FakeOrviboSocket:
    return FakeOrviboSocket()


@pytest.fixture
def client(fake_socket: FakeOrviboSocket) -> OrviboClient:
    """A prepared client with a fake transport and room for many events."""
    result = OrviboClient(sock=fake_socket, local_ip=LOCAL_IP, event_capacity=100)  # type: ignore[arg-type]
    asyncio.run(result.prepare())
    result.notifier.clear()
    return result


@pytest.fixture
def populated_client(client: OrviboClient) -> OrviboClient:
    """A client that has discovered one socket and two AllOnes."""
    client.handle_datagram(discovery_response(SOCKET_MAC, b"SOC002"), SOCKET_ADDR)
    client.handle_datagram(discovery_response(ALLONE_MAC, b"IRD005"), ALLONE_ADDR)
    client.handle_datagram(discovery_response(ALLONE2_MAC, b"IRD005"), ALLONE2_ADDR)
    client.notifier.clear()
    return client
