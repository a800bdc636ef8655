#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

from __future__ import annotations

import json

import pytest

from ssdp_discovery_protocol import SsdpConfig, SsdpConfigError, SSDP_PORT, __version__


def test_defaults() -> None:
    config = SsdpConfig()
    assert config.port == SSDP_PORT
    assert config.multicast_address is None
    assert config.multicast_ttl == 4
    assert config.advertise_interval == 10.0
    assert config.max_age == 1800
    assert config.udn.startswith('uuid:')
    assert config.headers == {}
    assert config.location is None
    assert not config.allow_wildcards
    assert not config.enable_ipv6
    assert config.source_port == 0
    assert config.reuse_addr
    assert config.signature.startswith('python/')
    assert f'UPnP/1.1 ssdp-discovery-protocol/{__version__}' in config.signature


def test_config_is_immutable() -> None:
    config = SsdpConfig()
    with pytest.raises(SsdpConfigError):
        config.port = 1901


def test_location_function_is_evaluated_on_each_access() -> None:
    counter = iter(range(100))
    config = SsdpConfig(location=lambda: f'http://192.168.1.2/{next(counter)}.xml')
    assert config.location == 'http://192.168.1.2/0.xml'
    assert config.location == 'http://192.168.1.2/1.xml'


def test_static_location() -> None:
    assert SsdpConfig(location='http://192.168.1.2/desc.xml').location == 'http://192.168.1.2/desc.xml'


@pytest.mark.parametrize('options', [
    dict(port=-1),
    dict(advertise_interval=0),
    dict(udn=''),
    dict(location=42),
    dict(headers={'X-FOO': 1.5}),
  ])
def test_invalid_options_raise(options) -> None:
    with pytest.raises(SsdpConfigError):
        SsdpConfig(**options)


def test_copy_with_replaces_options() -> None:
    config = SsdpConfig(udn='uuid:ABC', location='http://a/')
    copy = config.copy_with(port=1901)
    assert copy.port == 1901
    assert copy.udn == 'uuid:ABC'
    assert copy.location == 'http://a/'
    assert config.port == SSDP_PORT


def test_loads_json_with_overrides() -> None:
    config = SsdpConfig.loads(
        json.dumps(dict(udn='uuid:ABC', advertise_interval=5, headers={'X-FOO': 'bar'}, multicast_address=None)),
        port=1901,
      )
    assert config.udn == 'uuid:ABC'
    assert config.advertise_interval == 5.0
    assert config.headers == {'X-FOO': 'bar'}
    assert config.port == 1901


def test_load_from_file(tmp_path) -> None:
    pathname = tmp_path / 'ssdp.json'
    pathname.write_text(json.dumps(dict(allow_wildcards=True, enable_ipv6=True)), encoding='utf-8')
    config = SsdpConfig.load(str(pathname))
    assert config.allow_wildcards
    assert config.enable_ipv6


@pytest.mark.parametrize('config_text', [
    '{"no_such_option": 1}',
    '{"port": "1900"}',
    '[1, 2]',
    'not json',
  ])
def test_loads_rejects_bad_documents(config_text: str) -> None:
    with pytest.raises(SsdpConfigError):
        SsdpConfig.loads(config_text)


def test_headers_are_read_only() -> None:
    headers = {'X-FOO': 'bar'}
    config = SsdpConfig(headers=headers)
    with pytest.raises(TypeError):
        config.headers['X-BAR'] = 1 # type: ignore[index]
    headers['X-BAZ'] = 'qux'
    assert dict(config.headers) == {'X-FOO': 'bar'}
    assert dict(config.copy_with(port=1901).headers) == {'X-FOO': 'bar'}
