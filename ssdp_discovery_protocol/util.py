#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Simple utility functions used by this package
"""

from __future__ import annotations

import netifaces
import socket
from ipaddress import IPv4Address, IPv6Address, IPv6Network, ip_address

from ssdp_discovery_protocol.internal_types import *

from requests.structures import CaseInsensitiveDict

IPV6_SCOPE_INTERFACE_LOCAL = 0x1
IPV6_SCOPE_LINK_LOCAL = 0x2
IPV6_SCOPE_REALM_LOCAL = 0x3
IPV6_SCOPE_ADMIN_LOCAL = 0x4
IPV6_SCOPE_SITE_LOCAL = 0x5
IPV6_SCOPE_ORGANIZATION_LOCAL = 0x8
IPV6_SCOPE_GLOBAL = 0xE

_IPV6_UNIQUE_LOCAL_NETWORK = IPv6Network('fc00::/7')

def split_bytes_at_lf_or_crlf(data: bytes, maxsplit: SupportsIndex = -1) -> List[bytes]:
    """Split a byte string at LF or CRLF.

    If maxsplit is given, at most maxsplit splits are done.

    Returns a List[bytes] representing the delimiteds lines with the delimiters removed.
    """
    parts = data.split(b'\n', maxsplit)
    if len(parts) > 1:
        for i, part in enumerate(parts[:-1]):
            if part.endswith(b'\r'):
                parts[i] = part[:-1]
    return parts

def ipv6_multicast_scope(addr: IPv6Address) -> int:
    """Returns the multicast scope (RFC 7346 scop value) that corresponds to the reach of
       a unicast IPv6 address:

           loopback            -> interface-local (0x1)
           link-local          -> link-local (0x2)
           site-local          -> site-local (0x5)
           unique local fc00/7 -> organization-local (0x8)
           anything else       -> global (0xE)
    """
    if addr.is_loopback:
        return IPV6_SCOPE_INTERFACE_LOCAL
    if addr.is_link_local:
        return IPV6_SCOPE_LINK_LOCAL
    if addr.is_site_local:
        return IPV6_SCOPE_SITE_LOCAL
    if addr in _IPV6_UNIQUE_LOCAL_NETWORK:
        return IPV6_SCOPE_ORGANIZATION_LOCAL
    return IPV6_SCOPE_GLOBAL

class InterfaceAddress:
    """A local unicast IP address together with the network interface that owns it.

    The address family and (for IPv6) the multicast scope are resolved once, when the
    instance is created, so that later code can select multicast groups and socket options
    from tables rather than re-inspecting the address.
    """

    address: str
    """The unicast IP address, without any '%<interface>' zone suffix"""

    family: socket.AddressFamily
    """socket.AF_INET or socket.AF_INET6"""

    ifname: Optional[str]
    """The name of the network interface, if known"""

    ifindex: int
    """The OS index of the network interface, or 0 if unknown"""

    multicast_scope: int
    """For IPv6, the multicast scope matching this address's reach. 0 for IPv4."""

    def __init__(self, address: str, ifname: Optional[str]=None):
        if '%' in address:
            address, zone = address.split('%', 1)
            if ifname is None:
                ifname = zone
        ip = ip_address(address)
        self.address = str(ip)
        self.ifname = ifname
        self.ifindex = 0
        if ifname is not None:
            try:
                self.ifindex = socket.if_nametoindex(ifname)
            except OSError:
                pass
        if isinstance(ip, IPv6Address):
            self.family = socket.AF_INET6
            self.multicast_scope = ipv6_multicast_scope(ip)
        else:
            self.family = socket.AF_INET
            self.multicast_scope = 0

    @property
    def is_ipv6(self) -> bool:
        return self.family == socket.AF_INET6

    @property
    def is_loopback(self) -> bool:
        return ip_address(self.address).is_loopback

    def __str__(self) -> str:
        if self.ifname is None:
            return self.address
        return f"{self.address}%{self.ifname}"

    def __repr__(self) -> str:
        return f"InterfaceAddress({str(self)!r})"

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, InterfaceAddress):
            return False
        return self.address == other.address and self.ifname == other.ifname

    def __hash__(self) -> int:
        return hash((self.address, self.ifname))

def get_local_interface_addresses(
        include_ipv6: bool=False,
        include_loopback: bool=False,
    ) -> List[InterfaceAddress]:
    """Returns a list of InterfaceAddress for the IP addresses of the local host.
       IPv4 addresses are always included; IPv6 addresses only if include_ipv6 is True.
       The result is sorted in a way that attempts to place the "preferred"
       canonical IP address first in the list, according to the following scheme:
           1. Addresses on the default gateway interface precede all other addresses.
           2. Non-loopback addresses precede loopback addresses.
           3. IPV4 addresses that begin with 172. follow other IPV4 addresses. This is a hack to
              deprioritize local docker network addresses.
    """
    result_with_priority: List[Tuple[int, int, str, InterfaceAddress]] = []
    families: List[Tuple[int, socket.AddressFamily]] = [(netifaces.AF_INET, socket.AF_INET)]
    if include_ipv6:
        families.append((netifaces.AF_INET6, socket.AF_INET6))
    for netiface_family, address_family in families:
        _, default_gateway_ifname = get_default_ip_gateway(address_family)
        for ifname in netifaces.interfaces():
            ifinfo = netifaces.ifaddresses(ifname)
            for addrinfo in ifinfo.get(netiface_family, []):
                ip_str = addrinfo.get('addr')
                if not isinstance(ip_str, str):
                    continue
                try:
                    iface_addr = InterfaceAddress(ip_str, ifname)
                except ValueError:
                    continue
                if iface_addr.is_loopback:
                    if not include_loopback:
                        continue
                    priority = 3
                elif ifname == default_gateway_ifname:
                    priority = 0
                elif not iface_addr.is_ipv6 and iface_addr.address.startswith('172.'):
                    priority = 2
                else:
                    priority = 1
                result_with_priority.append((priority, int(address_family), iface_addr.address, iface_addr))
    return [ iface_addr for _, _, _, iface_addr in sorted(result_with_priority, key=lambda x: x[:3]) ]

def get_default_ip_gateway(address_family: socket.AddressFamily | int=socket.AF_INET) -> Tuple[Optional[str], Optional[str]]:
    """Returns the (gateway_ip_address: str, gateway_interface_name: str) for the default IP gateway in the
       requested family, if any.
       returns (None, None) if there is no default gateway in the requested family."""
    assert int(address_family) in (int(socket.AF_INET), int(socket.AF_INET6))
    netiface_family = netifaces.AF_INET if int(address_family) == int(socket.AF_INET) else netifaces.AF_INET6
    gws = netifaces.gateways()
    if "default" in gws:
        default_gateway_infos = gws["default"]
        if netiface_family in default_gateway_infos:
            gw_ip, gw_interface_name = default_gateway_infos[netiface_family][:2]
            return (gw_ip, gw_interface_name)
    return (None, None)
