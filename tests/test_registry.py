#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

from __future__ import annotations

import pytest

from ssdp_discovery_protocol import SsdpServiceRegistry, SsdpSearchMatch

UDN = 'uuid:ABC'
BASIC = 'urn:schemas-upnp-org:device:Basic:1'
CONTENT_DIRECTORY = 'urn:schemas-upnp-org:service:ContentDirectory:1'


@pytest.fixture
def registry() -> SsdpServiceRegistry:
    registry = SsdpServiceRegistry(UDN)
    registry.add(BASIC)
    registry.add(CONTENT_DIRECTORY)
    return registry


def test_add_composes_usn() -> None:
    registry = SsdpServiceRegistry(UDN)
    assert registry.add(BASIC) == f'{UDN}::{BASIC}'
    assert registry[BASIC] == f'{UDN}::{BASIC}'
    registry.add_root_device()
    assert registry[UDN] == UDN
    assert len(registry) == 2
    registry.remove(BASIC)
    assert BASIC not in registry


def test_exact_match(registry: SsdpServiceRegistry) -> None:
    assert registry.match(BASIC) == [SsdpSearchMatch(BASIC, f'{UDN}::{BASIC}')]
    assert registry.match('urn:schemas-upnp-org:device:Other:1') == []


def test_ssdp_all_matches_every_entry(registry: SsdpServiceRegistry) -> None:
    assert registry.match('ssdp:all') == [
        SsdpSearchMatch(BASIC, f'{UDN}::{BASIC}'),
        SsdpSearchMatch(CONTENT_DIRECTORY, f'{UDN}::{CONTENT_DIRECTORY}'),
      ]


def test_quoted_search_target_is_unquoted(registry: SsdpServiceRegistry) -> None:
    assert len(registry.match('"ssdp:all"')) == 2
    assert registry.match(f'"{BASIC}"') == [SsdpSearchMatch(BASIC, f'{UDN}::{BASIC}')]


def test_wildcard_ignored_unless_enabled(registry: SsdpServiceRegistry) -> None:
    assert registry.match('urn:schemas-upnp-org:service:*') == []


def test_wildcard_match_substitutes_search_target_into_usn(registry: SsdpServiceRegistry) -> None:
    st = 'urn:schemas-upnp-org:service:*'
    assert registry.match(st, allow_wildcards=True) == [
        SsdpSearchMatch(st, f'{UDN}::{st}'),
      ]


def test_wildcard_is_anchored_at_end(registry: SsdpServiceRegistry) -> None:
    assert registry.match('ContentDirectory', allow_wildcards=True) == []
    matches = registry.match('ContentDirectory:1', allow_wildcards=True)
    assert [m.st for m in matches] == ['ContentDirectory:1']


def test_wildcard_escapes_other_regex_characters() -> None:
    registry = SsdpServiceRegistry(UDN)
    registry.add('urn:a.b:service:X:1')
    assert registry.match('urn:aXb:service:*', allow_wildcards=True) == []
    assert len(registry.match('urn:a.b:service:*', allow_wildcards=True)) == 1
