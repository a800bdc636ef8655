# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
SsdpClient -- An SSDP client that can:

  1. Send an M-SEARCH request to the SSDP multicast group on every local interface
  2. Receive and decode the responses, and report them as "response" events
  3. Collect and return responses received within a configurable timeout period
"""

from __future__ import annotations


import asyncio

from .internal_types import *
from .pkg_logging import logger
from .constants import SSDP_ALL, SSDP_DISCOVER, DEFAULT_SEARCH_MX, METHOD_M_SEARCH, EVENT_RESPONSE
from .config import SsdpConfig
from .ssdp_message import SsdpMessage, HeaderValue
from .ssdp_socket import SendResult
from .node import SsdpNode, SsdpResponseInfo
from .util import InterfaceAddress

DEFAULT_RESPONSE_WAIT_TIME = 4.0
"""The default amount of time (in seconds) to wait for responses to come in."""

class SsdpClient(SsdpNode):
    """
    An SSDP client that can:

      1. Send an M-SEARCH request to the SSDP multicast group on every local interface
      2. Receive and decode responses from remote nodes, as "response" events
      3. Collect and return responses received within a configurable timeout period
    """

    response_wait_time: float
    """The amount of time (in seconds) collect_responses() waits for responses by default."""

    def __init__(
            self,
            config: Optional[SsdpConfig]=None,
            bind_addresses: Optional[Iterable[Union[str, InterfaceAddress]]]=None,
            response_wait_time: float=DEFAULT_RESPONSE_WAIT_TIME,
          ) -> None:
        super().__init__(config=config, bind_addresses=bind_addresses)
        self.response_wait_time = response_wait_time

    def build_search_request(self, search_target: str, mx: int=DEFAULT_SEARCH_MX) -> SsdpMessage:
        headers: Dict[str, HeaderValue] = {
            'HOST': self.ssdp_server_host,
            'ST': search_target,
            'MAN': SSDP_DISCOVER,
            'MX': mx,
          }
        headers.update(self.config.headers)
        return SsdpMessage.command(METHOD_M_SEARCH, headers)

    async def search(self, search_target: str=SSDP_ALL, mx: int=DEFAULT_SEARCH_MX) -> List[SendResult]:
        """Multicasts an M-SEARCH for search_target, starting the client first if necessary.

        Responses are delivered to "response" handlers as they arrive.
        """
        if not self.started:
            try:
                await self.start()
            except Exception as e:
                if len(self.socket_bindings) == 0:
                    raise
                logger.warning(f"Searching on the interfaces that started; another failed: {e}")
        request = self.build_search_request(search_target, mx=mx)
        logger.debug(f"Sending an M-SEARCH request: {request}")
        return self.send(request)

    async def collect_responses(
            self,
            search_target: str=SSDP_ALL,
            response_wait_time: Optional[float]=None,
            max_responses: int=0,
          ) -> List[SsdpResponseInfo]:
        """A simple search that sends an M-SEARCH, waits for responses to come in, and returns them.

        Parameters:
            search_target:           The ST to search for. Defaults to "ssdp:all".
            response_wait_time:      The amount of time (in seconds) to wait for responses to come in. Defaults to
                                        self.response_wait_time.
            max_responses:           The maximum number of responses to return. If 0 (the default), all responses received
                                        within response_wait_time will be returned.
        """
        if response_wait_time is None:
            response_wait_time = self.response_wait_time
        results: List[SsdpResponseInfo] = []
        enough = asyncio.Event()

        def on_response(info: SsdpResponseInfo) -> None:
            if max_responses > 0 and len(results) >= max_responses:
                return
            results.append(info)
            if max_responses > 0 and len(results) >= max_responses:
                enough.set()

        # The handler must be in place before the request goes out so that no responses are missed.
        i = self.add_handler(EVENT_RESPONSE, on_response)
        try:
            await self.search(search_target)
            try:
                await asyncio.wait_for(enough.wait(), timeout=response_wait_time)
            except asyncio.TimeoutError:
                pass
        finally:
            self.remove_handler(i)
        return results
