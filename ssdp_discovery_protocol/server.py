#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
SsdpServer -- An SSDP server that can:

  1. Listen on the SSDP multicast group (typically 239.255.255.250:1900) on every local interface
  2. Respond to M-SEARCH requests for its registered services
  3. Send out periodic ssdp:alive NOTIFY advertisements for its registered services, and
     ssdp:byebye when it stops
  4. Report advertisements broadcast by other devices on the network as events
"""

from __future__ import annotations


import asyncio
import math

from ssdp_discovery_protocol.internal_types import *
from .pkg_logging import logger
from .exceptions import SsdpUsageError
from .constants import SSDP_ALIVE, SSDP_BYEBYE, METHOD_NOTIFY, ADVERTISE_WARMUP_DELAY
from .config import SsdpConfig
from .ssdp_message import SsdpMessage, HeaderValue
from .ssdp_socket import SendResult
from .node import SsdpNode
from .util import InterfaceAddress

class SsdpServer(SsdpNode):
    """
    An SSDP server that can:

      1. Listen for messages received on the SSDP multicast group
      2. Respond to M-SEARCH requests for its registered services
      3. Send out periodic multicast advertisements for its registered services
    """

    advertiser_task: Optional[asyncio.Task[None]] = None
    """The task that broadcasts periodic advertisements to the multicast group.
       None if the advertisement loop is not running."""

    warmup_delay: float
    """Seconds between start and the first advertisement."""

    def __init__(
            self,
            config: Optional[SsdpConfig]=None,
            bind_addresses: Optional[Iterable[Union[str, InterfaceAddress]]]=None,
            warmup_delay: float=ADVERTISE_WARMUP_DELAY,
          ) -> None:
        super().__init__(config=config, bind_addresses=bind_addresses)
        self.warmup_delay = warmup_delay

    @property
    def advertise_interval(self) -> float:
        """The interval (in seconds) at which to send out advertisements."""
        return self.config.advertise_interval

    async def start(self) -> None:
        """Binds the sockets and starts the advertisement loop.

        The advertisement loop is started even if some interfaces failed; the first such
        failure is raised after the loop is running.
        """
        if self.started:
            logger.debug("Server already running.")
            return
        if not self.config.suppress_root_device_advertisements:
            self.registry.add_root_device()
        try:
            await super().start()
        finally:
            if self.started:
                self._start_ad_loop()

    def stop(self) -> None:
        """Advertises ssdp:byebye for every registered service, stops the advertisement loop,
           and closes the sockets. The sockets are closed even if the server was never started."""
        if self.started:
            self.advertise(False)
        else:
            logger.debug("Server not running; closing sockets only.")
        if self.advertiser_task is not None:
            self._stop_ad_loop()
        super().stop()

    def _start_ad_loop(self) -> None:
        if self.advertiser_task is not None:
            raise SsdpUsageError("Attempting to start a parallel advertisement loop")
        self.advertiser_task = asyncio.create_task(self._run_advertiser_task())

    def _stop_ad_loop(self) -> None:
        if self.advertiser_task is None:
            raise SsdpUsageError("Attempting to stop a non-existing advertisement loop")
        self.advertiser_task.cancel()
        self.advertiser_task = None

    async def _run_advertiser_task(self) -> None:
        logger.debug(f"Ssdp advertiser task starting, advertising every {self.advertise_interval} seconds")
        try:
            # Wake up.
            await asyncio.sleep(self.warmup_delay)
            while True:
                self.advertise()
                await asyncio.sleep(self.advertise_interval)
        except asyncio.CancelledError:
            logger.debug("Ssdp advertiser task cancelled; exiting")
            raise
        except BaseException as e:
            logger.info(f"Ssdp advertiser task exiting with exception: {e}")
            raise

    def build_advertisement(self, service: str, usn: str, alive: bool=True) -> SsdpMessage:
        headers: Dict[str, Optional[HeaderValue]] = {
            'HOST': self.ssdp_server_host,
            'NT': service,
            'NTS': SSDP_ALIVE if alive else SSDP_BYEBYE,
            'USN': usn,
          }
        if alive:
            headers['LOCATION'] = self.config.location
            headers['CACHE-CONTROL'] = f"max-age={int(math.floor(self.advertise_interval + 0.5)) + 2}"
            headers['SERVER'] = self.config.signature
        headers.update(self.config.headers)
        return SsdpMessage.command(METHOD_NOTIFY, headers)

    def advertise(self, alive: bool=True) -> List[SendResult]:
        """Multicasts one NOTIFY per registered service; ssdp:alive, or ssdp:byebye if alive is False.
           Does nothing if the server is not started."""
        results: List[SendResult] = []
        if not self.started:
            return results
        for service, usn in self.registry.items():
            message = self.build_advertisement(service, usn, alive=alive)
            logger.debug(f"Sending an advertisement event: {message}")
            results.extend(self.send(message))
        return results
