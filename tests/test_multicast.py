#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

from __future__ import annotations

import asyncio
import errno
import socket
import struct

import pytest

from ssdp_discovery_protocol.internal_types import *
from ssdp_discovery_protocol.util import InterfaceAddress
from ssdp_discovery_protocol.multicast import (
    SsdpMulticastMembership,
    is_transient_join_error,
    select_membership_group,
    select_send_group,
  )


class FakeSocket:
    """Records setsockopt calls; fails multicast joins with queued errnos."""

    options: List[Tuple[int, int, Any]]
    join_errors: List[int]

    def __init__(self, join_errors: Optional[List[int]]=None) -> None:
        self.options = []
        self.join_errors = [] if join_errors is None else list(join_errors)

    def setsockopt(self, level: int, option: int, value: Any) -> None:
        if option in (socket.IP_ADD_MEMBERSHIP, socket.IPV6_JOIN_GROUP) and len(self.join_errors) > 0:
            code = self.join_errors.pop(0)
            raise OSError(code, 'join failed')
        self.options.append((level, option, value))

    def option_names(self) -> List[int]:
        return [ option for _, option, _ in self.options ]


@pytest.mark.parametrize('address, group', [
    ('192.168.1.10', '239.255.255.250'),
    ('::1', 'FF02::C'),
    ('fe80::1', 'FF02::C'),
    ('fec0::1', 'FF05::C'),
    ('fd00::1', 'FF08::C'),
    ('2600:1f18::1', 'FF0E::C'),
  ])
def test_select_membership_group(address: str, group: str) -> None:
    assert select_membership_group(InterfaceAddress(address)) == group


def test_explicit_group_is_used_for_every_interface() -> None:
    assert select_membership_group(InterfaceAddress('192.168.1.10'), '239.1.2.3') == '239.1.2.3'
    assert select_membership_group(InterfaceAddress('fe80::1'), '239.1.2.3') == '239.1.2.3'
    assert select_send_group(InterfaceAddress('fe80::1'), 'FF05::C') == 'FF05::C'


def test_select_send_group_by_family() -> None:
    assert select_send_group(InterfaceAddress('192.168.1.10')) == '239.255.255.250'
    assert select_send_group(InterfaceAddress('2600:1f18::1')) == 'FF02::C'


def test_transient_join_errors() -> None:
    assert is_transient_join_error(OSError(errno.ENODEV, 'no device'))
    assert is_transient_join_error(OSError(errno.EADDRNOTAVAIL, 'not available'))
    assert not is_transient_join_error(OSError(errno.EPERM, 'not permitted'))
    assert not is_transient_join_error(ValueError('nope'))


def test_ipv4_join_sets_membership_and_ttl() -> None:
    sock = FakeSocket()
    iface = InterfaceAddress('192.168.1.10')
    membership = SsdpMulticastMembership(sock, iface, None, 4) # type: ignore[arg-type]
    membership.on_listening()
    assert membership.joined
    assert membership.group == '239.255.255.250'
    assert sock.options[0] == (
        socket.IPPROTO_IP,
        socket.IP_ADD_MEMBERSHIP,
        socket.inet_aton('239.255.255.250') + socket.inet_aton('192.168.1.10'),
      )
    assert (socket.IPPROTO_IP, socket.IP_MULTICAST_TTL, 4) in sock.options
    assert (socket.IPPROTO_IP, socket.IP_MULTICAST_IF, socket.inet_aton('192.168.1.10')) in sock.options


def test_ipv6_join_uses_interface_index() -> None:
    sock = FakeSocket()
    iface = InterfaceAddress('fe80::1%no-such-if0')
    membership = SsdpMulticastMembership(sock, iface, None, 2) # type: ignore[arg-type]
    membership.on_listening()
    assert sock.options[0] == (
        socket.IPPROTO_IPV6,
        socket.IPV6_JOIN_GROUP,
        socket.inet_pton(socket.AF_INET6, 'FF02::C') + struct.pack('@I', 0),
      )
    assert (socket.IPPROTO_IPV6, socket.IPV6_MULTICAST_HOPS, 2) in sock.options


def test_fatal_join_error_is_raised() -> None:
    sock = FakeSocket(join_errors=[errno.EPERM])
    membership = SsdpMulticastMembership(sock, InterfaceAddress('192.168.1.10'), None, 4) # type: ignore[arg-type]
    with pytest.raises(OSError):
        membership.on_listening()
    assert not membership.joined
    assert membership.retry_task is None


def test_transient_join_error_is_retried(run) -> None:
    async def scenario() -> SsdpMulticastMembership:
        sock = FakeSocket(join_errors=[errno.ENODEV, errno.EADDRNOTAVAIL])
        membership = SsdpMulticastMembership(
            sock, InterfaceAddress('192.168.1.10'), None, 4, retry_delay=0.01) # type: ignore[arg-type]
        membership.on_listening()
        assert not membership.joined
        assert membership.retry_task is not None
        for _ in range(100):
            if membership.joined:
                break
            await asyncio.sleep(0.01)
        assert socket.IP_MULTICAST_TTL in sock.option_names()
        return membership

    membership = run(scenario())
    assert membership.joined
    assert membership.retry_task is None


def test_fatal_error_on_retry_is_reported(run) -> None:
    errors: List[BaseException] = []

    async def scenario() -> None:
        sock = FakeSocket(join_errors=[errno.ENODEV, errno.EPERM])
        membership = SsdpMulticastMembership(
            sock, InterfaceAddress('192.168.1.10'), None, 4,    # type: ignore[arg-type]
            on_fatal_error=errors.append, retry_delay=0.01)
        membership.on_listening()
        for _ in range(100):
            if len(errors) > 0:
                break
            await asyncio.sleep(0.01)
        assert not membership.joined

    run(scenario())
    assert len(errors) == 1
    assert isinstance(errors[0], OSError)
    assert errors[0].errno == errno.EPERM


def test_cancel_stops_pending_retry(run) -> None:
    async def scenario() -> None:
        sock = FakeSocket(join_errors=[errno.ENODEV])
        membership = SsdpMulticastMembership(
            sock, InterfaceAddress('192.168.1.10'), None, 4, retry_delay=0.01) # type: ignore[arg-type]
        membership.on_listening()
        membership.cancel()
        await asyncio.sleep(0.05)
        assert not membership.joined
        assert sock.options == []

    run(scenario())
