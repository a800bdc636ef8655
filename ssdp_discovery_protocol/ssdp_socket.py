#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
SsdpSocket -- A pool of multicast-capable UDP sockets, one per local network interface, that can:

  1. Enumerate the local interface addresses and create one socket for each
  2. Bind every socket in parallel, join the SSDP multicast group on each, and report
     the first failure once all interfaces have settled
  3. Receive and decode SsdpMessages from remote nodes and hand them to message_received()
  4. Send an SsdpMessage out of every socket, to the multicast group of each socket's
     address family or to an explicit unicast address

  Subclasses override message_received() to act on inbound messages.
"""

from __future__ import annotations


import asyncio
from asyncio import Future
import socket
import sys
from ipaddress import ip_address

from ssdp_discovery_protocol.internal_types import *
from .pkg_logging import logger
from .exceptions import SsdpError
from .config import SsdpConfig
from .ssdp_message import SsdpMessage
from .multicast import SsdpMulticastMembership, select_send_group
from .util import InterfaceAddress, get_local_interface_addresses

IP_MULTICAST_ALL = 49
IPV6_MULTICAST_ALL = 29

SendResult = Tuple['SsdpSocketBinding', Optional[Exception]]
"""The outcome of sending on one socket: the binding, and the exception if the send failed."""

class SsdpSocketBinding:
    """
    An encapsulation of the binding of an SsdpSocket to a single low-level
    datagram socket. There is one instance of this class created for each
    local interface address in use.

    Instances of this class are created prior to loop.create_datagram_endpoint,
    and are later bound to the _SsdpSocketProtocol instance that is created by
    loop.create_datagram_endpoint.
    """

    ssdp_socket: SsdpSocket
    """The SsdpSocket that owns this binding."""

    iface: InterfaceAddress
    """The local interface address this socket serves."""

    sock: Optional[socket.socket] = None
    """The low-level socket. None once closed."""

    membership: Optional[SsdpMulticastMembership] = None
    """The multicast membership manager, created when the socket starts listening."""

    _protocol: Optional[_SsdpSocketProtocol] = None
    """The adapter between the asyncio transport and this binding."""

    _transport: Optional[asyncio.DatagramTransport] = None
    """The asyncio transport for this socket, once the datagram endpoint is created."""

    def __init__(self, ssdp_socket: SsdpSocket, iface: InterfaceAddress, sock: socket.socket):
        self.ssdp_socket = ssdp_socket
        self.iface = iface
        self.sock = sock

    @property
    def family(self) -> socket.AddressFamily:
        return self.iface.family

    @property
    def transport(self) -> Optional[asyncio.DatagramTransport]:
        return self._transport

    @transport.setter
    def transport(self, transport: Optional[asyncio.DatagramTransport]) -> None:
        if transport != self._transport:
            assert self._transport is None or transport is None
        self._transport = transport

    @property
    def protocol(self) -> Optional[_SsdpSocketProtocol]:
        return self._protocol

    @protocol.setter
    def protocol(self, protocol: _SsdpSocketProtocol) -> None:
        if protocol != self._protocol:
            assert self._protocol is None
        self._protocol = protocol

    @property
    def local_addr(self) -> Optional[SockAddr]:
        """The address the socket is bound to, or None if it is not bound."""
        if self.sock is None:
            return None
        try:
            return self.sock.getsockname()
        except OSError:
            return None

    def sendto(self, message: SsdpMessage, addr: SockAddr) -> None:
        logger.debug(f"Sending SsdpMessage via {self} to {addr}: {message}")
        if self.transport is None:
            raise SsdpError(f"{self} is not bound")
        self.transport.sendto(message.raw_data, addr)

    def close(self) -> None:
        """Closes the transport and socket. Errors are logged, not raised."""
        if self.membership is not None:
            self.membership.cancel()
        if self.transport is not None:
            try:
                self.transport.close()
            except Exception as e:
                logger.error(f"Error closing transport on {self}: {e}")
            self.transport = None
        if self.sock is not None:
            try:
                self.sock.close()
            except Exception as e:
                logger.error(f"Error closing socket on {self}: {e}")
            self.sock = None

    def __str__(self) -> str:
        return f"SsdpSocketBinding({self.iface})"

    def __repr__(self) -> str:
        return str(self)

class _SsdpSocketProtocol(asyncio.DatagramProtocol):
    """An adapter between the asyncio transport and SsdpSocket. There is one instance of this class
       created for each low-level socket.
       """
    socket_binding: SsdpSocketBinding

    def __init__(self, socket_binding: SsdpSocketBinding):
        self.socket_binding = socket_binding
        socket_binding.protocol = self

    @property
    def ssdp_socket(self) -> SsdpSocket:
        return self.socket_binding.ssdp_socket

    def connection_made(self, transport: asyncio.BaseTransport):
        """Called when a connection is made."""

        # Note: asyncio datagram transports do not inherit from asyncio.DatagramTransport even
        # though they implement the same interface, so the mypy warning is suppressed.
        try:
            self.socket_binding.transport = transport # type: ignore[assignment]
            self.ssdp_socket.connection_made(self.socket_binding)
        except BaseException as e:
            self.ssdp_socket.set_final_exception(e)
            raise

    def datagram_received(self, data: bytes, addr: Tuple[str, int]):
        """Called when some datagram is received."""
        try:
            self.ssdp_socket.datagram_received(self.socket_binding, addr, data)
        except BaseException as e:
            self.ssdp_socket.set_final_exception(e)
            raise

    def error_received(self, exc: Exception):
        """Called when a send or receive operation raises an OSError.

        (Other than BlockingIOError or InterruptedError.)
        """
        try:
            self.ssdp_socket.error_received(self.socket_binding, exc)
        except BaseException as e:
            self.ssdp_socket.set_final_exception(e)
            raise

    def connection_lost(self, exc: Optional[Exception]) -> None:
        """Called when the connection is lost or closed."""
        try:
            self.ssdp_socket.connection_lost(self.socket_binding, exc)
        except BaseException as e:
            self.ssdp_socket.set_final_exception(e)
            raise

def _address_family_of(host: str) -> Optional[socket.AddressFamily]:
    try:
        ip = ip_address(host.split('%', 1)[0])
    except ValueError:
        return None
    return socket.AF_INET6 if ip.version == 6 else socket.AF_INET

class SsdpSocket(AsyncContextManager['SsdpSocket']):
    """
    A pool of SSDP sockets, one per local interface address, keyed by that address.

    The pool is created when the SsdpSocket is constructed, and again by start() if a previous
    stop() emptied it. start() binds every socket in parallel and completes once all of them
    have either succeeded or failed; a socket that fails to bind is dropped from the pool and
    the first failure is raised, but the sockets that did bind keep operating until stop().
    """

    config: SsdpConfig

    socket_bindings: Dict[str, SsdpSocketBinding]
    """The socket pool, keyed by local interface address."""

    bind_addresses: Optional[List[InterfaceAddress]]
    """Explicit interface addresses to use. If None, local interfaces are enumerated on each pool creation."""

    started: bool = False
    """True between start() and stop()."""

    bound: bool = False
    """True once start() has finished binding the pool, until stop()."""

    final_result: Optional[Future[None]] = None
    """A future that is set when the SsdpSocket is stopped, or fails fatally. Created by start()."""

    def __init__(
            self,
            config: Optional[SsdpConfig]=None,
            bind_addresses: Optional[Iterable[Union[str, InterfaceAddress]]]=None,
          ):
        self.config = SsdpConfig() if config is None else config
        if bind_addresses is None:
            self.bind_addresses = None
        else:
            self.bind_addresses = [
                x if isinstance(x, InterfaceAddress) else InterfaceAddress(x) for x in bind_addresses
              ]
        self.socket_bindings = {}
        self._create_socket_bindings()
        logger.debug(f"Sockets created: {list(self.socket_bindings.keys())}")

    def get_interface_addresses(self) -> List[InterfaceAddress]:
        """Returns the interface addresses that the pool should serve."""
        if self.bind_addresses is not None:
            return list(self.bind_addresses)
        return get_local_interface_addresses(
            include_ipv6=self.config.enable_ipv6,
            include_loopback=self.config.include_loopback,
          )

    def create_socket(self, iface: InterfaceAddress) -> socket.socket:
        """Creates an unbound UDP socket for iface, with address reuse configured."""
        sock = socket.socket(iface.family, socket.SOCK_DGRAM)
        try:
            if self.config.reuse_addr:
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
                if sys.platform not in ( 'win32', 'cygwin' ) and hasattr(socket, 'SO_REUSEPORT'):
                    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEPORT, 1)
            if iface.is_ipv6:
                sock.setsockopt(socket.IPPROTO_IPV6, socket.IPV6_V6ONLY, 1)
        except BaseException:
            sock.close()
            raise
        return sock

    def _create_socket_bindings(self) -> None:
        for iface in self.get_interface_addresses():
            if iface.is_ipv6 and not self.config.enable_ipv6:
                logger.debug(f"Skipping IPv6 interface address {iface}")
                continue
            if iface.address in self.socket_bindings:
                continue
            logger.debug(f"Will use interface address {iface}")
            try:
                sock = self.create_socket(iface)
            except OSError as e:
                logger.warning(f"Cannot create a socket for {iface}; skipping it: {e}")
                continue
            self.socket_bindings[iface.address] = SsdpSocketBinding(self, iface, sock)

    def bind_socket(self, socket_binding: SsdpSocketBinding) -> None:
        """Binds a socket to the configured source port; either on its own interface address
           (explicit_socket_bind) or on the wildcard address."""
        sock = socket_binding.sock
        assert sock is not None
        iface = socket_binding.iface
        port = self.config.source_port
        if self.config.explicit_socket_bind:
            if iface.is_ipv6:
                sock.bind((iface.address, port, 0, iface.ifindex))
            else:
                sock.bind((iface.address, port))
        else:
            # On Linux, disabling IP_MULTICAST_ALL ensures that each socket only receives
            # multicast packets for the groups it has joined on its own interface. Without doing this,
            # every multicast is received by all sockets bound to the wildcard address, which
            # would result in duplicate packets being dispatched with the wrong binding.
            if sys.platform in ('linux', 'linux2'):
                if iface.is_ipv6:
                    sock.setsockopt(socket.IPPROTO_IPV6, IPV6_MULTICAST_ALL, 0)
                else:
                    sock.setsockopt(socket.IPPROTO_IP, IP_MULTICAST_ALL, 0)
            sock.bind(('::' if iface.is_ipv6 else '', port))
        logger.debug(f"Bound socket {socket_binding} to {socket_binding.local_addr}")

    async def _start_socket_binding(self, socket_binding: SsdpSocketBinding) -> None:
        """Binds one socket, creates its datagram endpoint, and joins its multicast group.
           On failure the binding is closed and removed from the pool, and the error is raised."""
        try:
            loop = asyncio.get_running_loop()
            self.bind_socket(socket_binding)
            untyped_transport, protocol = await loop.create_datagram_endpoint(
                lambda: _SsdpSocketProtocol(socket_binding),
                sock=socket_binding.sock
              )
            # Note: asyncio datagram transports do not inherit from asyncio.DatagramTransport.
            transport: asyncio.DatagramTransport = untyped_transport # type: ignore[assignment]
            assert isinstance(protocol, _SsdpSocketProtocol)
            logger.debug(f"Created datagram endpoint for {socket_binding}. transport={transport}, protocol={protocol}")
            socket_binding.transport = transport
            self.on_listening(socket_binding)
        except BaseException as e:
            logger.info(f"Failed to start socket {socket_binding}: {e}")
            socket_binding.close()
            if self.socket_bindings.get(socket_binding.iface.address) is socket_binding:
                del self.socket_bindings[socket_binding.iface.address]
            raise

    def on_listening(self, socket_binding: SsdpSocketBinding) -> None:
        """Called once a socket's datagram endpoint exists. Joins the SSDP multicast group."""
        assert socket_binding.sock is not None
        membership = SsdpMulticastMembership(
            socket_binding.sock,
            socket_binding.iface,
            self.config.multicast_address,
            self.config.multicast_ttl,
            on_fatal_error=self.set_final_exception,
          )
        socket_binding.membership = membership
        membership.on_listening()

    async def start(self) -> None:
        """Binds every socket in the pool in parallel. Returns once all have settled.

        Raises the first error encountered, if any. Sockets that bound successfully remain in
        the pool and keep operating; call stop() to release them.
        """
        if self.started:
            logger.debug("Already started.")
            return
        logger.debug("Starting")
        if len(self.socket_bindings) == 0:
            self._create_socket_bindings()
            logger.debug(f"Sockets created: {list(self.socket_bindings.keys())}")
        self.final_result = asyncio.get_running_loop().create_future()
        self.started = True

        socket_bindings = list(self.socket_bindings.values())
        results = await asyncio.gather(
            *(self._start_socket_binding(socket_binding) for socket_binding in socket_bindings),
            return_exceptions=True,
          )
        first_error: Optional[BaseException] = None
        for socket_binding, result in zip(socket_bindings, results):
            if isinstance(result, BaseException):
                logger.debug(f"Socket {socket_binding} failed to start: {result}")
                if first_error is None:
                    first_error = result
        self.bound = True
        if len(self.socket_bindings) == 0 and len(socket_bindings) == 0:
            logger.warning("No network interfaces available; SSDP messages will not be sent or received")
        await self.finish_start()
        if first_error is not None:
            raise first_error

    async def finish_start(self) -> None:
        """Called after all sockets have settled at start. Subclasses can override to do additional
           initialization."""
        pass

    def stop(self) -> None:
        """Closes every socket in the pool and empties it. Calling stop() on a stopped SsdpSocket does nothing."""
        socket_bindings = list(self.socket_bindings.values())
        self.socket_bindings = {}
        for socket_binding in socket_bindings:
            socket_binding.close()
            logger.debug(f"Stopped socket on {socket_binding.iface}")
        self.bound = False
        self.started = False
        if self.final_result is not None and not self.final_result.done():
            self.final_result.set_result(None)

    async def wait_for_done(self) -> None:
        """Waits until the SsdpSocket is stopped. Raises the fatal error, if it failed."""
        if self.final_result is None:
            return
        await self.final_result

    def send(self, message: SsdpMessage, addr: Optional[SockAddr]=None) -> List[SendResult]:
        """Sends a message out of every socket in the pool.

        If addr is None, each socket sends to the multicast group for its address family at the
        configured port. Otherwise each socket of the same address family as addr sends to addr.

        A failure on one socket does not prevent sending on the others. Returns one
        (binding, exception-or-None) result per socket that attempted to send.
        """
        results: List[SendResult] = []
        dest_family = None if addr is None else _address_family_of(addr[0])
        for socket_binding in list(self.socket_bindings.values()):
            dest: SockAddr
            if addr is None:
                group = select_send_group(socket_binding.iface, self.config.multicast_address)
                if socket_binding.iface.is_ipv6:
                    dest = (group, self.config.port, 0, socket_binding.iface.ifindex)
                else:
                    dest = (group, self.config.port)
            else:
                if dest_family is not None and dest_family != socket_binding.family:
                    logger.debug(f"Not sending to {addr} via {socket_binding}: address family mismatch")
                    continue
                dest = addr
            try:
                socket_binding.sendto(message, dest)
                results.append((socket_binding, None))
            except Exception as e:
                logger.info(f"Error sending to {dest} via {socket_binding}: {e}")
                results.append((socket_binding, e))
        return results

    def connection_made(self, socket_binding: SsdpSocketBinding) -> None:
        """Called when a connection is made."""
        logger.debug(f"Connection made: {socket_binding}")

    def datagram_received(self, socket_binding: SsdpSocketBinding, addr: SockAddr, data: bytes) -> None:
        """Called when some datagram is received. Parses it and passes it to message_received()."""
        logger.debug(f"Message from {addr} on {socket_binding}: {data!r}")
        try:
            message = SsdpMessage.parse(data)
        except (UnicodeDecodeError, ValueError) as e:
            logger.debug(f"Error parsing datagram from {addr}, raw=[{data!r}]: {e}")
            return
        self.message_received(socket_binding, addr, message)

    def message_received(self, socket_binding: SsdpSocketBinding, addr: SockAddr, message: SsdpMessage) -> None:
        """Called for each successfully parsed inbound message. Subclasses override this."""
        pass

    def error_received(self, socket_binding: SsdpSocketBinding, exc: Exception) -> None:
        """Called when a send or receive operation raises an OSError.

        (Other than BlockingIOError or InterruptedError.)
        """
        logger.info(f"Socket error on {socket_binding}: {exc}")

    def connection_lost(self, socket_binding: SsdpSocketBinding, exc: Optional[Exception]) -> None:
        """Called when the connection is lost or closed."""
        logger.debug(f"Connection to transport lost on {socket_binding}, exc={exc}")
        if exc is not None and self.socket_bindings.get(socket_binding.iface.address) is socket_binding:
            self.set_final_exception(exc)

    def set_final_exception(self, exc: BaseException) -> None:
        """Fails the SsdpSocket: closes every socket, and causes wait_for_done() to raise exc."""
        assert not exc is None
        if self.final_result is not None and not self.final_result.done():
            logger.debug(f"SsdpSocket: Setting final exception: {exc}")
            self.final_result.set_exception(exc)
        for socket_binding in list(self.socket_bindings.values()):
            socket_binding.close()

    async def __aenter__(self) -> Self:
        try:
            await self.start()
        except BaseException:
            # A call to __aenter__ that raises an exception will not be paired with a call to __aexit__
            self.stop()
            raise
        return self

    async def __aexit__(
            self,
            exc_type: Optional[type[BaseException]],
            exc: Optional[BaseException],
            tb: Optional[TracebackType]
      ) -> bool:
        self.stop()
        return False
