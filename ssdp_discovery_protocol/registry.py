#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
SsdpServiceRegistry -- the set of services advertised by a local SSDP node, and the
matcher that selects which of them answer an M-SEARCH request.
"""

from __future__ import annotations

import re

from ssdp_discovery_protocol.internal_types import *
from .constants import SSDP_ALL

class SsdpSearchMatch:
    """One registry entry that matched a search request."""

    st: str
    """The ST header to send in the response"""

    usn: str
    """The USN header to send in the response"""

    def __init__(self, st: str, usn: str):
        self.st = st
        self.usn = usn

    def __str__(self) -> str:
        return f"SsdpSearchMatch(st={self.st!r}, usn={self.usn!r})"

    def __repr__(self) -> str:
        return str(self)

    def __eq__(self, other: Any) -> bool:
        return isinstance(other, SsdpSearchMatch) and self.st == other.st and self.usn == other.usn

def unquote_search_target(search_target: str) -> str:
    """Removes one pair of enclosing double quotes, if present."""
    if len(search_target) >= 2 and search_target[0] == '"' and search_target[-1] == '"':
        return search_target[1:-1]
    return search_target

def compile_wildcard_search_target(search_target: str) -> re.Pattern[str]:
    """Compiles an ST value in which '*' matches any text into a regular expression
       anchored at the end of the string."""
    return re.compile(re.escape(search_target).replace(r'\*', '.*') + '$')

class SsdpServiceRegistry:
    """
    A mapping of service identifiers (the notification type / search target, e.g.
    "urn:schemas-upnp-org:service:ContentDirectory:1") to the USN advertised for them,
    "<udn>::<service identifier>".
    """

    udn: str
    """The Unique Device Name used to compose USNs."""

    _entries: Dict[str, str]

    def __init__(self, udn: str):
        self.udn = udn
        self._entries = {}

    def add(self, service: str) -> str:
        """Registers a service identifier. Returns the composed USN."""
        usn = f"{self.udn}::{service}"
        self._entries[service] = usn
        return usn

    def add_root_device(self) -> None:
        """Registers the bare UDN as its own entry, advertising the root device."""
        self._entries[self.udn] = self.udn

    def remove(self, service: str) -> None:
        self._entries.pop(service, None)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, service: Any) -> bool:
        return service in self._entries

    def __getitem__(self, service: str) -> str:
        return self._entries[service]

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def items(self) -> List[Tuple[str, str]]:
        return list(self._entries.items())

    def match(self, search_target: str, allow_wildcards: bool=False) -> List[SsdpSearchMatch]:
        """Returns the entries that should answer an M-SEARCH for search_target.

        "ssdp:all" matches every entry, and each response carries the entry's own
        identifier as its ST. Otherwise, without wildcards, only an entry whose identifier
        equals the search target matches. With wildcards, '*' in the search target matches
        any text, the pattern is anchored at the end, and the portion of the USN that matched
        is replaced by the literal search target.
        """
        search_target = unquote_search_target(search_target)
        st_re: Optional[re.Pattern[str]] = None
        if allow_wildcards:
            st_re = compile_wildcard_search_target(search_target)

        results: List[SsdpSearchMatch] = []
        for service, usn in self._entries.items():
            if search_target == SSDP_ALL:
                accepted = True
            elif st_re is not None:
                accepted = st_re.search(service) is not None
            else:
                accepted = service == search_target
            if not accepted:
                continue
            if st_re is not None:
                usn = st_re.sub(lambda m: search_target, usn, count=1)
            st = service if search_target == SSDP_ALL else search_target
            results.append(SsdpSearchMatch(st, usn))
        return results
