#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
SsdpNode -- The part of SSDP shared by clients and servers. An SsdpNode:

  1. Owns a pool of per-interface multicast sockets (see SsdpSocket)
  2. Classifies each inbound message as a NOTIFY, an M-SEARCH, or a response
  3. Raises "advertise-alive", "advertise-bye" and "response" events to registered handlers
  4. Answers M-SEARCH requests from its registry of local services
"""

from __future__ import annotations

import time
import datetime
from email.utils import formatdate

from ssdp_discovery_protocol.internal_types import *
from .pkg_logging import logger
from .exceptions import SsdpUsageError
from .constants import (
    SSDP_MULTICAST_ADDRESS,
    SSDP_ALIVE,
    SSDP_BYEBYE,
    METHOD_NOTIFY,
    METHOD_M_SEARCH,
    EVENT_ADVERTISE_ALIVE,
    EVENT_ADVERTISE_BYE,
    EVENT_RESPONSE,
  )
from .config import SsdpConfig
from .ssdp_message import SsdpMessage, HeaderValue, SsdpHeaders
from .ssdp_socket import SsdpSocket, SsdpSocketBinding, SendResult
from .registry import SsdpServiceRegistry
from .util import InterfaceAddress

EVENTS = (EVENT_ADVERTISE_ALIVE, EVENT_ADVERTISE_BYE, EVENT_RESPONSE)

class SsdpMessageInfo:
    socket_binding: SsdpSocketBinding
    """The socket binding on which the message was received"""

    src_addr: SockAddr
    """The source address of the message"""

    message: SsdpMessage
    """The received message"""

    monotonic_time: float
    """The local time (in seconds) since an arbitrary point in the past at which
       the message was received, as returned by time.monotonic(). This
       value is useful for calculating the age of an advertisement and expiring
       it after max-age seconds."""

    utc_time: datetime.datetime
    """The UTC time at which the message was received."""

    def __init__(
            self,
            socket_binding: SsdpSocketBinding,
            src_addr: SockAddr,
            message: SsdpMessage,
          ) -> None:
        self.socket_binding = socket_binding
        self.src_addr = src_addr
        self.message = message
        self.monotonic_time = time.monotonic()
        self.utc_time = datetime.datetime.now(datetime.timezone.utc)

    @property
    def headers(self) -> SsdpHeaders:
        return self.message.headers

    def __str__(self) -> str:
        return f"{self.__class__.__name__}(src_addr={self.src_addr}, message={self.message})"

    def __repr__(self) -> str:
        return str(self)

class SsdpAdvertisementInfo(SsdpMessageInfo):
    """A received NOTIFY (ssdp:alive or ssdp:byebye)."""

    @property
    def alive(self) -> bool:
        nts = self.message.hdr_nts
        return nts is not None and nts.lower() == SSDP_ALIVE

class SsdpResponseInfo(SsdpMessageInfo):
    """A received response, typically to an M-SEARCH."""

    status_code: Optional[int]
    """The status code in the statement line (e.g. 200)"""

    def __init__(
            self,
            socket_binding: SsdpSocketBinding,
            src_addr: SockAddr,
            message: SsdpMessage,
          ) -> None:
        super().__init__(socket_binding, src_addr, message)
        self.status_code = message.status_code

SsdpEventHandler = Callable[[Any], None]
"""A callback for a received SSDP event. Called with an SsdpAdvertisementInfo for
   "advertise-alive" and "advertise-bye", or an SsdpResponseInfo for "response"."""

class SsdpNode(SsdpSocket):
    """
    An SSDP node that listens on every local interface, reports received advertisements
    and responses to handlers, and answers search requests for its registered services.
    """

    registry: SsdpServiceRegistry
    """The services this node answers M-SEARCH requests for (and, as a server, advertises)."""

    handlers: Dict[int, Tuple[str, SsdpEventHandler]]
    """Event handlers, indexed by ID number."""

    i_next_handler: int = 0
    """The next handler ID to assign."""

    def __init__(
            self,
            config: Optional[SsdpConfig]=None,
            bind_addresses: Optional[Iterable[Union[str, InterfaceAddress]]]=None,
          ) -> None:
        super().__init__(config=config, bind_addresses=bind_addresses)
        self.registry = SsdpServiceRegistry(self.config.udn)
        self.handlers = {}

    @property
    def ssdp_server_host(self) -> str:
        """The HOST header value for multicast messages; e.g., "239.255.255.250:1900"."""
        group = SSDP_MULTICAST_ADDRESS if self.config.multicast_address is None else self.config.multicast_address
        return f"{group}:{self.config.port}"

    def add_service(self, service: str) -> str:
        """Registers a service identifier (e.g., "urn:schemas-upnp-org:service:ContentDirectory:1")
           to be advertised and to answer searches. Returns the USN that will be used for it."""
        return self.registry.add(service)

    def add_handler(self, event: str, handler: SsdpEventHandler) -> int:
        """Adds a handler for "advertise-alive", "advertise-bye" or "response". Returns its ID."""
        if event not in EVENTS:
            raise SsdpUsageError(f"Unknown SSDP event {event!r}; expected one of {EVENTS}")
        i = self.i_next_handler
        self.i_next_handler += 1
        self.handlers[i] = (event, handler)
        return i

    def remove_handler(self, i: int) -> None:
        """Removes a previously added handler."""
        del self.handlers[i]

    def emit(self, event: str, info: SsdpMessageInfo) -> None:
        for handler_event, handler in list(self.handlers.values()):
            if handler_event != event:
                continue
            try:
                handler(info)
            except Exception as e:
                logger.warning(f"Handler for {event} raised exception processing {info}: {e}")

    #@override
    def message_received(self, socket_binding: SsdpSocketBinding, addr: SockAddr, message: SsdpMessage) -> None:
        """Routes a parsed inbound message to the appropriate handler."""
        if message.is_response:
            self._handle_response(socket_binding, addr, message)
            return
        method = message.method
        if method == METHOD_NOTIFY:
            self._handle_notify(socket_binding, addr, message)
        elif method == METHOD_M_SEARCH:
            self._handle_msearch(socket_binding, addr, message)
        else:
            logger.debug(f"Unhandled command from {addr}: {message}")

    def _handle_response(self, socket_binding: SsdpSocketBinding, addr: SockAddr, message: SsdpMessage) -> None:
        logger.debug(f"SSDP response from {addr}: {message}")
        self.emit(EVENT_RESPONSE, SsdpResponseInfo(socket_binding, addr, message))

    def _handle_notify(self, socket_binding: SsdpSocketBinding, addr: SockAddr, message: SsdpMessage) -> None:
        nts = message.hdr_nts
        if nts is None:
            logger.debug(f"Missing NTS header from {addr}: {message}")
            return
        nts = nts.lower()
        if nts == SSDP_ALIVE:
            self.emit(EVENT_ADVERTISE_ALIVE, SsdpAdvertisementInfo(socket_binding, addr, message))
        elif nts == SSDP_BYEBYE:
            self.emit(EVENT_ADVERTISE_BYE, SsdpAdvertisementInfo(socket_binding, addr, message))
        else:
            logger.debug(f"Unhandled NOTIFY event from {addr}: {message}")

    def _handle_msearch(self, socket_binding: SsdpSocketBinding, addr: SockAddr, message: SsdpMessage) -> None:
        st = message.hdr_st
        logger.debug(f"SSDP M-SEARCH event: ST={st}, address={addr}")
        if not message.get_str('MAN') or not message.get_str('MX') or not st:
            return
        self.respond_to_search(st, addr)

    def build_search_response(self, st: str, usn: str) -> SsdpMessage:
        headers: Dict[str, Optional[HeaderValue]] = {
            'ST': st,
            'USN': usn,
            'LOCATION': self.config.location,
            'CACHE-CONTROL': f"max-age={self.config.max_age}",
            'DATE': formatdate(usegmt=True),
            'SERVER': self.config.signature,
            'EXT': '',
          }
        headers.update(self.config.headers)
        return SsdpMessage.response('200 OK', headers)

    def respond_to_search(self, search_target: str, addr: SockAddr) -> List[SendResult]:
        """Sends one 200 OK to addr for every registry entry that matches search_target."""
        results: List[SendResult] = []
        for match in self.registry.match(search_target, allow_wildcards=self.config.allow_wildcards):
            response = self.build_search_response(match.st, match.usn)
            logger.debug(f"Sending a 200 OK for an M-SEARCH to {addr}: {response}")
            results.extend(self.send(response, addr))
        return results
