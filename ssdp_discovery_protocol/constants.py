# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Constants used by this package"""

SSDP_PORT = 1900
"""The well-known UDP port used by SSDP."""

SSDP_MULTICAST_ADDRESS = "239.255.255.250"
"""The IPv4 multicast group used by SSDP."""

SSDP_MULTICAST_ADDRESS_IPV6_NODE = "FF01::C"
SSDP_MULTICAST_ADDRESS_IPV6_LINK = "FF02::C"
SSDP_MULTICAST_ADDRESS_IPV6_SITE = "FF05::C"
SSDP_MULTICAST_ADDRESS_IPV6_ORG = "FF08::C"
SSDP_MULTICAST_ADDRESS_IPV6_GLOBAL = "FF0E::C"

SSDP_ALIVE = "ssdp:alive"
SSDP_BYEBYE = "ssdp:byebye"
SSDP_ALL = "ssdp:all"
SSDP_DISCOVER = '"ssdp:discover"'

METHOD_NOTIFY = "notify"
METHOD_M_SEARCH = "m-search"

EVENT_ADVERTISE_ALIVE = "advertise-alive"
"""Event raised when a NOTIFY with NTS ssdp:alive is received."""

EVENT_ADVERTISE_BYE = "advertise-bye"
"""Event raised when a NOTIFY with NTS ssdp:byebye is received."""

EVENT_RESPONSE = "response"
"""Event raised when a response (typically to an M-SEARCH) is received."""

DEFAULT_UDN = "uuid:f40c2981-7329-40b7-8b04-27f187aecfb5"
DEFAULT_MULTICAST_TTL = 4
DEFAULT_ADVERTISE_INTERVAL = 10.0
DEFAULT_MAX_AGE = 1800
DEFAULT_SEARCH_MX = 3

MULTICAST_JOIN_RETRY_DELAY = 5.0
"""Seconds to wait before retrying a multicast join on an interface that is not ready."""

ADVERTISE_WARMUP_DELAY = 3.0
"""Seconds to wait after start before the first advertisement, so group membership can settle."""
