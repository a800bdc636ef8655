#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Type hints used internally by this package"""

from typing import (
    Dict, List, Optional, Union, Any, TypeVar, Tuple, overload,
    Callable, Iterable, Iterator, Generator, cast, TYPE_CHECKING,
    Mapping, MutableMapping, Awaitable, Set, Sequence,
    AsyncIterator, AsyncIterable, AsyncContextManager,
  )

from types import TracebackType

from typing_extensions import Self, SupportsIndex

Jsonable = Union[str, int, float, bool, None, Dict[str, Any], List[Any]]
"""A type hint for a simple JSON-serializable value; i.e., str, int, float, bool, None, Dict[str, Jsonable], List[Jsonable]"""

JsonableDict = Dict[str, Jsonable]
"""A type hint for a simple JSON-serializable dict; i.e., Dict[str, Jsonable]"""

JsonableTypes = (str, int, float, bool, dict, list)
"""A tuple of the non-None types that may appear in a Jsonable value; usable with isinstance()"""

HostAndPort = Tuple[str, int]
"""A type hint for a socket address tuple of (host, port)."""

SockAddr = Union[Tuple[str, int], Tuple[str, int, int, int]]
"""A type hint for an IPv4 (host, port) or IPv6 (host, port, flowinfo, scope_id) socket address."""
