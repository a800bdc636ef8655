#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Shared fixtures for the ssdp_discovery_protocol tests. No network access is needed:
   sockets are replaced with fake transports that record what is sent."""

from __future__ import annotations

import asyncio

import pytest

from ssdp_discovery_protocol.internal_types import *
from ssdp_discovery_protocol import SsdpMessage, SsdpSocket, SsdpSocketBinding, InterfaceAddress


class FakeTransport:
    """Stands in for an asyncio.DatagramTransport."""

    sent: List[Tuple[bytes, Any]]
    closed: bool = False

    def __init__(self) -> None:
        self.sent = []

    def sendto(self, data: bytes, addr: Any) -> None:
        if self.closed:
            raise OSError("transport is closed")
        self.sent.append((data, addr))

    def close(self) -> None:
        self.closed = True

    def messages(self) -> List[Tuple[SsdpMessage, Any]]:
        return [ (SsdpMessage.parse(data), addr) for data, addr in self.sent ]


def add_fake_binding(ssdp_socket: SsdpSocket, address: str) -> Tuple[SsdpSocketBinding, FakeTransport]:
    """Adds a binding with a fake transport to the socket pool, as if it had been started."""
    binding = SsdpSocketBinding(ssdp_socket, InterfaceAddress(address), sock=None) # type: ignore[arg-type]
    transport = FakeTransport()
    binding.transport = transport # type: ignore[assignment]
    ssdp_socket.socket_bindings[binding.iface.address] = binding
    return binding, transport


@pytest.fixture
def run() -> Callable[[Awaitable[Any]], Any]:
    """Runs a coroutine to completion on a private event loop."""
    def _run(coro: Awaitable[Any]) -> Any:
        loop = asyncio.new_event_loop()
        try:
            asyncio.set_event_loop(loop)
            return loop.run_until_complete(coro)
        finally:
            asyncio.set_event_loop(None)
            loop.close()
    return _run


@pytest.fixture
def fake_binding() -> Callable[[SsdpSocket, str], Tuple[SsdpSocketBinding, FakeTransport]]:
    return add_fake_binding
