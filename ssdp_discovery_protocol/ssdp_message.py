#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Abstraction of a message packet used in the SSDP protocol.

SSDP messages are HTTP-like text datagrams. A message is either a command, e.g.:

    M-SEARCH * HTTP/1.1
    HOST: 239.255.255.250:1900
    MAN: "ssdp:discover"
    MX: 3
    ST: ssdp:all

or a response, e.g.:

    HTTP/1.1 200 OK
    ST: urn:schemas-upnp-org:device:Basic:1
    USN: uuid:ABC::urn:schemas-upnp-org:device:Basic:1
    ...

Each header line is terminated by CRLF, and the header block is terminated by an empty line.
"""

from __future__ import annotations

import re

from ssdp_discovery_protocol.internal_types import *
from .pkg_logging import logger

from .util import CaseInsensitiveDict, split_bytes_at_lf_or_crlf

HeaderValue = Union[str, int]
NullableHeaderValue = Optional[HeaderValue]

_response_statement_re = re.compile(r'^HTTP/(?P<version_major>[0-9])\.(?P<version_minor>[0-9]) (?P<status_code>[0-9]{3})(?: (?P<status>.*))?$')
_header_line_re = re.compile(r'^([^:]+):\s*(.*)$')

class SsdpHeaders(CaseInsensitiveDict):
    """An ordered, case-insensitive mapping of header names to values.

    Header names are stored upper-cased, so iteration yields e.g. "CACHE-CONTROL"
    regardless of the case used when the header was set. Setting an existing header
    replaces its value but keeps its original position.
    """

    def __setitem__(self, key: str, value: HeaderValue) -> None:
        super().__setitem__(key.upper(), value)

    def copy(self) -> SsdpHeaders:
        return SsdpHeaders(self)

class SsdpMessage(MutableMapping[str, HeaderValue]):
    """Wrapper for a raw SSDP message.

    This class provides parsing and formatting of the HTTP-like packets, a dict-like
    interface to the headers, and a few other convenient properties.
    """

    _raw_data: bytes
    """The raw UDP datagram contents"""

    _statement_line: str
    """The first line of the message; e.g., "HTTP/1.1 200 OK", "NOTIFY * HTTP/1.1", etc."""

    _headers: SsdpHeaders
    """The headers, keyed by upper-cased name."""

    def __init__(
            self,
            statement: Optional[str]=None,
            headers: Optional[Mapping[str, NullableHeaderValue]]=None,
            raw_data: Optional[bytes]=None,
            copy_from: Optional[SsdpMessage]=None
          ):
        if copy_from is not None:
            assert statement is None and headers is None and raw_data is None
            self._raw_data = copy_from._raw_data
            self._statement_line = copy_from._statement_line
            self._headers = copy_from._headers.copy()
            return
        self._headers = SsdpHeaders()
        if raw_data is None:
            if statement is None:
                raise ValueError("Either statement or raw_data must be provided")
            assert isinstance(statement, str)
            self._statement_line = statement
            if headers is not None:
                self._update_no_rebuild(headers)
            self._rebuild_raw_data()
        else:
            if not (statement is None and headers is None):
                raise ValueError("If raw_data is provided, statement and headers must be None")
            self.raw_data = raw_data

    @classmethod
    def command(cls, method: str, headers: Optional[Mapping[str, NullableHeaderValue]]=None) -> SsdpMessage:
        """Creates a command message; e.g., SsdpMessage.command("notify", {...}) -> "NOTIFY * HTTP/1.1"."""
        return cls(statement=f"{method.upper()} * HTTP/1.1", headers=headers)

    @classmethod
    def response(cls, status: str, headers: Optional[Mapping[str, NullableHeaderValue]]=None) -> SsdpMessage:
        """Creates a response message; e.g., SsdpMessage.response("200 OK", {...}) -> "HTTP/1.1 200 OK"."""
        return cls(statement=f"HTTP/1.1 {status.upper()}", headers=headers)

    @classmethod
    def parse(cls, data: Union[bytes, str]) -> SsdpMessage:
        """Parses a received datagram. Raises UnicodeDecodeError if the datagram is not valid UTF-8."""
        if isinstance(data, str):
            data = data.encode('utf-8')
        return cls(raw_data=data)

    def __str__(self) -> str:
        return f"SsdpMessage('{self._statement_line}', headers={dict(self._headers)})"

    def __repr__(self) -> str:
        return str(self)

    @property
    def raw_data(self) -> bytes:
        """The raw UDP datagram contents"""
        return self._raw_data

    @raw_data.setter
    def raw_data(self, value: bytes) -> None:
        """Set the raw UDP datagram contents, and recompute statement line and headers."""
        assert isinstance(value, bytes)
        lines = split_bytes_at_lf_or_crlf(value)
        self._statement_line = lines[0].decode('utf-8')
        self._headers.clear()
        for line in lines[1:]:
            if len(line) == 0:
                continue
            m = _header_line_re.match(line.decode('utf-8'))
            if m is None:
                logger.debug(f"Skipping malformed SSDP header line: {line!r}")
                continue
            self._headers[m.group(1)] = m.group(2)
        self._raw_data = value

    @property
    def statement_line(self) -> str:
        """The first line of the message; e.g., "HTTP/1.1 200 OK", "NOTIFY * HTTP/1.1", etc."""
        return self._statement_line

    @statement_line.setter
    def statement_line(self, value: str) -> None:
        assert isinstance(value, str)
        self._statement_line = value
        self._rebuild_raw_data()

    @property
    def is_response(self) -> bool:
        """True if the statement line is an HTTP status line; otherwise the message is a command."""
        return _response_statement_re.match(self._statement_line) is not None

    @property
    def method(self) -> Optional[str]:
        """For a command, the lower-cased method token (e.g., "m-search"). None for a response."""
        if self.is_response:
            return None
        return self._statement_line.split(' ', 1)[0].lower()

    @property
    def status_code(self) -> Optional[int]:
        """For a response, the numeric status code (e.g., 200). None for a command or an unparseable status."""
        if not self.is_response:
            return None
        parts = self._statement_line.split(' ', 2)
        try:
            return int(parts[1])
        except (IndexError, ValueError):
            return None

    @property
    def status(self) -> Optional[str]:
        """For a response, the reason phrase (e.g., "OK"). None for a command."""
        m = _response_statement_re.match(self._statement_line)
        if m is None:
            return None
        return m.group('status') or ''

    @property
    def headers(self) -> SsdpHeaders:
        """The headers. Mutating this mapping directly does not update raw_data; use
           set_header(), del_header() or item assignment on the message instead."""
        return self._headers

    def set_header(self, name: str, value: NullableHeaderValue) -> None:
        """Set a header value. If value is None, the header is removed.
           The raw packet byte string is updated to reflect the new header value.
        """
        self._set_header_no_rebuild(name, value)
        self._rebuild_raw_data()

    def del_header(self, name: str) -> None:
        """Delete a header if it exists. If the header does not exist, this is a no-op."""
        self._headers.pop(name, None)
        self._rebuild_raw_data()

    def get_str(self, name: str) -> Optional[str]:
        """Returns a header value as a str, or None if the header is absent."""
        result = self._headers.get(name)
        if result is None:
            return None
        return str(result)

    @property
    def hdr_st(self) -> Optional[str]:
        """The "ST" (search target) header."""
        return self.get_str("ST")

    @property
    def hdr_nt(self) -> Optional[str]:
        """The "NT" (notification type) header."""
        return self.get_str("NT")

    @property
    def hdr_nts(self) -> Optional[str]:
        """The "NTS" (notification sub-type) header."""
        return self.get_str("NTS")

    @property
    def hdr_usn(self) -> Optional[str]:
        """The "USN" (unique service name) header."""
        return self.get_str("USN")

    @property
    def hdr_location(self) -> Optional[str]:
        """The "LOCATION" header."""
        return self.get_str("LOCATION")

    @property
    def hdr_max_age(self) -> Optional[int]:
        """Returns the max-age directive of the "CACHE-CONTROL" header as an int.

        Returns None if there is no valid max-age directive.
        """
        cache_control = self.get_str("CACHE-CONTROL")
        if cache_control is None:
            return None
        for directive in cache_control.split(','):
            name, _, value = directive.strip().partition('=')
            if name.strip().lower() == 'max-age':
                try:
                    return int(value.strip())
                except ValueError:
                    return None
        return None

    def __setitem__(self, key: str, value: NullableHeaderValue) -> None:
        self.set_header(key, value)

    def __getitem__(self, key: str) -> HeaderValue:
        return self._headers[key]

    def __delitem__(self, key: str) -> None:
        if key not in self._headers:
            raise KeyError(key)
        self.del_header(key)

    def __iter__(self) -> Iterator[str]:
        return iter(self._headers)

    def __len__(self) -> int:
        return len(self._headers)

    def update(   # type: ignore[override]
            self,
            other: Union[Mapping[str, NullableHeaderValue], Iterable[Tuple[str, NullableHeaderValue]]]=(),
            /,
            **kwargs: NullableHeaderValue
          ) -> None:
        self._update_no_rebuild(other, **kwargs)
        self._rebuild_raw_data()

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, SsdpMessage):
            return False
        return (self._statement_line == other._statement_line and
                list(self._headers.items()) == list(other._headers.items()))

    def copy(self) -> SsdpMessage:
        return SsdpMessage(copy_from=self)

    def _update_no_rebuild(
            self,
            other: Union[Mapping[str, NullableHeaderValue], Iterable[Tuple[str, NullableHeaderValue]]]=(),
            /,
            **kwargs: NullableHeaderValue
          ) -> None:
        if isinstance(other, Mapping):
            for key in other:
                self._set_header_no_rebuild(key, other[key])
        else:
            for key, value in other:
                self._set_header_no_rebuild(key, value)
        for key, value in kwargs.items():
            self._set_header_no_rebuild(key, value)

    def _set_header_no_rebuild(self, name: str, value: NullableHeaderValue) -> None:
        if value is None:
            self._headers.pop(name, None)
        else:
            assert isinstance(value, (str, int))
            self._headers[name] = value

    def _rebuild_raw_data(self) -> None:
        """Rebuild the raw data from the statement line and headers, in header insertion order."""
        lines = [self._statement_line]
        for name, value in self._headers.items():
            lines.append(f"{name}: {value}")
        lines.append('\r\n')
        self._raw_data = '\r\n'.join(lines).encode('utf-8')
