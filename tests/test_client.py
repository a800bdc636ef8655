#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

from __future__ import annotations

import asyncio

from ssdp_discovery_protocol.internal_types import *
from ssdp_discovery_protocol import SsdpClient, SsdpConfig, SsdpResponseInfo, EVENT_RESPONSE

RESPONSE = (b'HTTP/1.1 200 OK\r\n'
            b'ST: upnp:rootdevice\r\n'
            b'USN: uuid:XYZ::upnp:rootdevice\r\n'
            b'LOCATION: http://192.168.1.30/desc.xml\r\n'
            b'\r\n')


def test_build_search_request() -> None:
    client = SsdpClient(config=SsdpConfig(headers={'USER-AGENT': 'test/1.0'}), bind_addresses=[])
    message = client.build_search_request('upnp:rootdevice')
    assert message.statement_line == 'M-SEARCH * HTTP/1.1'
    assert dict(message.headers) == {
        'HOST': '239.255.255.250:1900',
        'ST': 'upnp:rootdevice',
        'MAN': '"ssdp:discover"',
        'MX': 3,
        'USER-AGENT': 'test/1.0',
      }


def test_search_starts_client_and_multicasts(run, fake_binding) -> None:
    async def scenario() -> Any:
        client = SsdpClient(bind_addresses=[])
        # with no interfaces, the search still starts the client
        assert await client.search() == []
        assert client.started
        _, transport = fake_binding(client, '192.168.1.10')
        results = await client.search('urn:schemas-upnp-org:device:Basic:1', mx=1)
        assert [ e for _, e in results ] == [None]
        client.stop()
        return transport

    transport = run(scenario())
    assert len(transport.sent) == 1
    message, addr = transport.messages()[0]
    assert addr == ('239.255.255.250', 1900)
    assert message.method == 'm-search'
    assert message.hdr_st == 'urn:schemas-upnp-org:device:Basic:1'
    assert message['MX'] == '1'
    assert message['MAN'] == '"ssdp:discover"'


def test_collect_responses(run, fake_binding) -> None:
    async def scenario() -> Tuple[List[SsdpResponseInfo], SsdpClient]:
        async with SsdpClient(bind_addresses=[]) as client:
            binding, _ = fake_binding(client, '192.168.1.10')
            loop = asyncio.get_running_loop()
            loop.call_later(0.01, client.datagram_received, binding, ('192.168.1.30', 1900), RESPONSE)
            responses = await client.collect_responses(response_wait_time=0.1)
        return responses, client

    responses, client = run(scenario())
    assert len(responses) == 1
    assert responses[0].status_code == 200
    assert responses[0].src_addr == ('192.168.1.30', 1900)
    assert responses[0].message.hdr_location == 'http://192.168.1.30/desc.xml'
    # the collector's handler is removed afterwards
    assert client.handlers == {}


def test_collect_responses_returns_early_at_max(run, fake_binding) -> None:
    async def scenario() -> Tuple[List[SsdpResponseInfo], float]:
        async with SsdpClient(bind_addresses=[]) as client:
            binding, _ = fake_binding(client, '192.168.1.10')
            loop = asyncio.get_running_loop()
            for i in range(3):
                loop.call_later(0.01, client.datagram_received, binding, ('192.168.1.30', 1900 + i), RESPONSE)
            start = loop.time()
            responses = await client.collect_responses(response_wait_time=5.0, max_responses=2)
            elapsed = loop.time() - start
        return responses, elapsed

    responses, elapsed = run(scenario())
    assert len(responses) == 2
    assert elapsed < 4.0


def test_other_response_handlers_see_every_response(run, fake_binding) -> None:
    async def scenario() -> List[SsdpResponseInfo]:
        seen: List[SsdpResponseInfo] = []
        async with SsdpClient(bind_addresses=[]) as client:
            client.add_handler(EVENT_RESPONSE, seen.append)
            binding, _ = fake_binding(client, '192.168.1.10')
            client.datagram_received(binding, ('192.168.1.30', 1900), RESPONSE)
            await client.collect_responses(response_wait_time=0.01)
        return seen

    assert len(run(scenario())) == 1
