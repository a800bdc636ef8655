#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

from __future__ import annotations

from ssdp_discovery_protocol import SsdpMessage, SsdpHeaders


def test_headers_are_case_insensitive_and_stored_upper_cased() -> None:
    headers = SsdpHeaders()
    headers['Cache-Control'] = 'max-age=1800'
    headers['st'] = 'ssdp:all'
    assert list(headers.keys()) == ['CACHE-CONTROL', 'ST']
    assert headers['cache-control'] == 'max-age=1800'
    assert 'St' in headers


def test_parse_search_request() -> None:
    data = (b'M-SEARCH * HTTP/1.1\r\n'
            b'Host: 239.255.255.250:1900\r\n'
            b'Man: "ssdp:discover"\r\n'
            b'MX: 3\r\n'
            b'ST: urn:schemas-upnp-org:device:Basic:1\r\n'
            b'\r\n')
    message = SsdpMessage.parse(data)
    assert not message.is_response
    assert message.method == 'm-search'
    assert message.status_code is None
    assert message.statement_line == 'M-SEARCH * HTTP/1.1'
    assert list(message.headers.keys()) == ['HOST', 'MAN', 'MX', 'ST']
    assert message['man'] == '"ssdp:discover"'
    assert message.hdr_st == 'urn:schemas-upnp-org:device:Basic:1'
    assert message.raw_data == data


def test_parse_response() -> None:
    message = SsdpMessage.parse(b'HTTP/1.1 200 OK\r\nST: ssdp:all\r\nCACHE-CONTROL: max-age = 1800\r\n\r\n')
    assert message.is_response
    assert message.method is None
    assert message.status_code == 200
    assert message.status == 'OK'
    assert message.hdr_max_age == 1800


def test_parse_error_response_without_reason() -> None:
    message = SsdpMessage.parse(b'HTTP/1.1 404\r\n\r\n')
    assert message.is_response
    assert message.status_code == 404
    assert message.status == ''


def test_parse_accepts_bare_lf_and_skips_malformed_lines() -> None:
    message = SsdpMessage.parse(b'NOTIFY * HTTP/1.1\nNTS: ssdp:alive\nthis is not a header\nNT:upnp:rootdevice\n\n')
    assert message.method == 'notify'
    assert dict(message.headers) == {'NTS': 'ssdp:alive', 'NT': 'upnp:rootdevice'}


def test_repeated_header_keeps_last_value() -> None:
    message = SsdpMessage.parse(b'NOTIFY * HTTP/1.1\r\nNT: a\r\nnt: b\r\n\r\n')
    assert message.hdr_nt == 'b'
    assert len(message) == 1


def test_header_value_may_contain_colons() -> None:
    message = SsdpMessage.parse(b'HTTP/1.1 200 OK\r\nLOCATION: http://192.168.1.2:8080/desc.xml\r\n\r\n')
    assert message.hdr_location == 'http://192.168.1.2:8080/desc.xml'


def test_command_serialization() -> None:
    message = SsdpMessage.command('notify', {'Host': '239.255.255.250:1900', 'NTS': 'ssdp:alive', 'LOCATION': None})
    assert message.raw_data == b'NOTIFY * HTTP/1.1\r\nHOST: 239.255.255.250:1900\r\nNTS: ssdp:alive\r\n\r\n'


def test_response_serialization_with_int_and_empty_values() -> None:
    message = SsdpMessage.response('200 OK', {'MX': 3, 'EXT': ''})
    assert message.raw_data == b'HTTP/1.1 200 OK\r\nMX: 3\r\nEXT: \r\n\r\n'


def test_serialized_message_parses_back() -> None:
    message = SsdpMessage.command('m-search', {'HOST': '239.255.255.250:1900', 'MAN': '"ssdp:discover"', 'MX': 3, 'ST': 'ssdp:all'})
    parsed = SsdpMessage.parse(message.raw_data)
    assert parsed.statement_line == 'M-SEARCH * HTTP/1.1'
    assert dict(parsed.headers) == {'HOST': '239.255.255.250:1900', 'MAN': '"ssdp:discover"', 'MX': '3', 'ST': 'ssdp:all'}


def test_mutation_rebuilds_raw_data() -> None:
    message = SsdpMessage.command('notify', {'NT': 'upnp:rootdevice'})
    message['usn'] = 'uuid:ABC::upnp:rootdevice'
    assert message.raw_data.endswith(b'USN: uuid:ABC::upnp:rootdevice\r\n\r\n')
    del message['NT']
    assert b'NT:' not in message.raw_data
    message.set_header('USN', None)
    assert message.raw_data == b'NOTIFY * HTTP/1.1\r\n\r\n'


def test_copy_is_independent() -> None:
    message = SsdpMessage.command('notify', {'NT': 'a'})
    copy = message.copy()
    assert copy == message
    copy['NT'] = 'b'
    assert message.hdr_nt == 'a'
    assert copy != message
