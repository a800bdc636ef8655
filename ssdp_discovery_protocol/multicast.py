#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Multicast group membership for SSDP sockets.

Each socket joins one SSDP multicast group on its interface once it is listening:

  - An explicitly configured group is always used as-is.
  - IPv4 interfaces join 239.255.255.250.
  - IPv6 interfaces join the FF0x::C group whose scope matches the interface address.

An interface that is not ready yet (ENODEV / EADDRNOTAVAIL) is retried every
MULTICAST_JOIN_RETRY_DELAY seconds until it comes up. Any other failure is fatal.
"""

from __future__ import annotations

import asyncio
import errno
import socket
import struct

from ssdp_discovery_protocol.internal_types import *
from .pkg_logging import logger
from .constants import (
    SSDP_MULTICAST_ADDRESS,
    SSDP_MULTICAST_ADDRESS_IPV6_NODE,
    SSDP_MULTICAST_ADDRESS_IPV6_LINK,
    SSDP_MULTICAST_ADDRESS_IPV6_SITE,
    SSDP_MULTICAST_ADDRESS_IPV6_ORG,
    SSDP_MULTICAST_ADDRESS_IPV6_GLOBAL,
    MULTICAST_JOIN_RETRY_DELAY,
  )
from .util import (
    InterfaceAddress,
    IPV6_SCOPE_INTERFACE_LOCAL,
    IPV6_SCOPE_LINK_LOCAL,
    IPV6_SCOPE_REALM_LOCAL,
    IPV6_SCOPE_ADMIN_LOCAL,
    IPV6_SCOPE_SITE_LOCAL,
    IPV6_SCOPE_ORGANIZATION_LOCAL,
    IPV6_SCOPE_GLOBAL,
  )

DEFAULT_MULTICAST_GROUPS: Dict[int, str] = {
    int(socket.AF_INET): SSDP_MULTICAST_ADDRESS,
    int(socket.AF_INET6): SSDP_MULTICAST_ADDRESS_IPV6_LINK,
  }
"""The group that multicast sends go to when none is configured, by address family."""

IPV6_SCOPE_MULTICAST_GROUPS: Dict[int, str] = {
    IPV6_SCOPE_INTERFACE_LOCAL: SSDP_MULTICAST_ADDRESS_IPV6_LINK,
    IPV6_SCOPE_LINK_LOCAL: SSDP_MULTICAST_ADDRESS_IPV6_LINK,
    IPV6_SCOPE_REALM_LOCAL: SSDP_MULTICAST_ADDRESS_IPV6_NODE,
    IPV6_SCOPE_ADMIN_LOCAL: SSDP_MULTICAST_ADDRESS_IPV6_NODE,
    IPV6_SCOPE_SITE_LOCAL: SSDP_MULTICAST_ADDRESS_IPV6_SITE,
    IPV6_SCOPE_ORGANIZATION_LOCAL: SSDP_MULTICAST_ADDRESS_IPV6_ORG,
    IPV6_SCOPE_GLOBAL: SSDP_MULTICAST_ADDRESS_IPV6_GLOBAL,
  }
"""The group an IPv6 interface joins, by multicast scope."""

TRANSIENT_JOIN_ERRNOS = (errno.ENODEV, errno.EADDRNOTAVAIL)

def is_transient_join_error(e: BaseException) -> bool:
    """True if a failed multicast join means the interface is not ready yet."""
    return isinstance(e, OSError) and e.errno in TRANSIENT_JOIN_ERRNOS

def select_membership_group(iface: InterfaceAddress, multicast_address: Optional[str]=None) -> Optional[str]:
    """Returns the multicast group that a socket on iface should join, or None if
       no group applies (an IPv6 address with an unrecognized scope)."""
    if multicast_address is not None:
        return multicast_address
    if not iface.is_ipv6:
        return SSDP_MULTICAST_ADDRESS
    return IPV6_SCOPE_MULTICAST_GROUPS.get(iface.multicast_scope)

def select_send_group(iface: InterfaceAddress, multicast_address: Optional[str]=None) -> str:
    """Returns the multicast group that outgoing multicast messages on iface are sent to."""
    if multicast_address is not None:
        return multicast_address
    return DEFAULT_MULTICAST_GROUPS[int(iface.family)]

def join_multicast_group(sock: socket.socket, iface: InterfaceAddress, group: str) -> None:
    """Adds membership in group on the interface that owns iface. Raises OSError on failure."""
    if iface.is_ipv6:
        mreq = socket.inet_pton(socket.AF_INET6, group) + struct.pack('@I', iface.ifindex)
        sock.setsockopt(socket.IPPROTO_IPV6, socket.IPV6_JOIN_GROUP, mreq)
    else:
        mreq = socket.inet_pton(socket.AF_INET, group) + socket.inet_pton(socket.AF_INET, iface.address)
        sock.setsockopt(socket.IPPROTO_IP, socket.IP_ADD_MEMBERSHIP, mreq)

def set_multicast_ttl(sock: socket.socket, iface: InterfaceAddress, ttl: int) -> None:
    """Sets the TTL (hop limit for IPv6) of outgoing multicast packets, and routes them
       out of iface's interface."""
    if iface.is_ipv6:
        sock.setsockopt(socket.IPPROTO_IPV6, socket.IPV6_MULTICAST_HOPS, ttl)
        if iface.ifindex != 0:
            sock.setsockopt(socket.IPPROTO_IPV6, socket.IPV6_MULTICAST_IF, iface.ifindex)
    else:
        sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_TTL, ttl)
        sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_IF, socket.inet_aton(iface.address))

FatalErrorHandler = Callable[[BaseException], None]

class SsdpMulticastMembership:
    """
    Manages the multicast group membership of one listening socket, including retries
    while the interface is not ready.
    """

    sock: socket.socket
    iface: InterfaceAddress
    multicast_address: Optional[str]
    multicast_ttl: int
    retry_delay: float

    on_fatal_error: Optional[FatalErrorHandler]
    """Called with the exception if a retried join fails with a non-transient error."""

    group: Optional[str] = None
    """The group that was joined, once joined."""

    joined: bool = False

    retry_task: Optional[asyncio.Task[None]] = None

    def __init__(
            self,
            sock: socket.socket,
            iface: InterfaceAddress,
            multicast_address: Optional[str],
            multicast_ttl: int,
            on_fatal_error: Optional[FatalErrorHandler]=None,
            retry_delay: float=MULTICAST_JOIN_RETRY_DELAY,
          ):
        self.sock = sock
        self.iface = iface
        self.multicast_address = multicast_address
        self.multicast_ttl = multicast_ttl
        self.on_fatal_error = on_fatal_error
        self.retry_delay = retry_delay

    def on_listening(self) -> None:
        """Joins the multicast group and sets the multicast TTL.

        If the interface is not ready, a retry is scheduled and this returns normally.
        Any other failure is raised.
        """
        group = select_membership_group(self.iface, self.multicast_address)
        if group is None:
            logger.info(f"No SSDP multicast group for {self.iface} with scope {self.iface.multicast_scope:#x}; not joining")
            return
        try:
            logger.debug(f"Joining multicast group {group} on {self.iface}")
            join_multicast_group(self.sock, self.iface, group)
            set_multicast_ttl(self.sock, self.iface, self.multicast_ttl)
        except OSError as e:
            if not is_transient_join_error(e):
                raise
            logger.info(f"Interface {self.iface} is not present to add multicast group membership. "
                        f"Retrying in {self.retry_delay} seconds. Error: {e}")
            self.retry_task = asyncio.create_task(self._retry_after_delay())
            return
        self.group = group
        self.joined = True

    async def _retry_after_delay(self) -> None:
        await asyncio.sleep(self.retry_delay)
        self.retry_task = None
        try:
            self.on_listening()
        except Exception as e:
            logger.error(f"Fatal error joining multicast group on {self.iface}: {e}")
            if self.on_fatal_error is None:
                raise
            self.on_fatal_error(e)

    def cancel(self) -> None:
        """Cancels any pending retry."""
        if self.retry_task is not None:
            self.retry_task.cancel()
            self.retry_task = None
