# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Package ssdp_discovery_protocol implements the Simple Service Discovery Protocol (SSDP).

SSDP is the UDP multicast announce/discover mechanism that underlies UPnP device
discovery. Devices periodically multicast NOTIFY advertisements to 239.255.255.250:1900
(or FF0x::C on IPv6) announcing the services they provide, and answer M-SEARCH requests
with unicast HTTP-like responses.

An SsdpServer advertises a set of services and answers searches for them. An SsdpClient
searches for services and reports the responses. Both report advertisements received from
other devices as events.
"""

from .version import __version__

from .internal_types import Jsonable, JsonableDict, HostAndPort, SockAddr

from .exceptions import SsdpError, SsdpConfigError, SsdpUsageError

from .config import SsdpConfig, get_ssdp_signature
from .ssdp_message import SsdpMessage, SsdpHeaders
from .registry import SsdpServiceRegistry, SsdpSearchMatch
from .ssdp_socket import SsdpSocket, SsdpSocketBinding
from .node import SsdpNode, SsdpMessageInfo, SsdpAdvertisementInfo, SsdpResponseInfo
from .server import SsdpServer
from .client import SsdpClient, DEFAULT_RESPONSE_WAIT_TIME
from .util import CaseInsensitiveDict, InterfaceAddress
from .constants import (
    SSDP_MULTICAST_ADDRESS,
    SSDP_PORT,
    SSDP_ALL,
    SSDP_ALIVE,
    SSDP_BYEBYE,
    EVENT_ADVERTISE_ALIVE,
    EVENT_ADVERTISE_BYE,
    EVENT_RESPONSE,
  )

__all__ = [
    '__version__',
    'Jsonable', 'JsonableDict', 'HostAndPort', 'SockAddr',
    'SsdpError', 'SsdpConfigError', 'SsdpUsageError',
    'SsdpConfig', 'get_ssdp_signature',
    'SsdpMessage', 'SsdpHeaders',
    'SsdpServiceRegistry', 'SsdpSearchMatch',
    'SsdpSocket', 'SsdpSocketBinding',
    'SsdpNode', 'SsdpMessageInfo', 'SsdpAdvertisementInfo', 'SsdpResponseInfo',
    'SsdpServer',
    'SsdpClient', 'DEFAULT_RESPONSE_WAIT_TIME',
    'CaseInsensitiveDict', 'InterfaceAddress',
    'SSDP_MULTICAST_ADDRESS', 'SSDP_PORT', 'SSDP_ALL', 'SSDP_ALIVE', 'SSDP_BYEBYE',
    'EVENT_ADVERTISE_ALIVE', 'EVENT_ADVERTISE_BYE', 'EVENT_RESPONSE',
]
