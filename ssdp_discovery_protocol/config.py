# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Configuration support.

An SsdpConfig is an immutable bundle of options shared by SsdpNode, SsdpClient and
SsdpServer. It can be constructed directly from keyword arguments, or loaded from
a JSON document with the same property names.
"""

from __future__ import annotations

import os
import json
import platform
from types import MappingProxyType

from .internal_types import *
from .exceptions import SsdpConfigError
from .version import __version__
from .constants import (
    SSDP_PORT,
    DEFAULT_UDN,
    DEFAULT_MULTICAST_TTL,
    DEFAULT_ADVERTISE_INTERVAL,
    DEFAULT_MAX_AGE,
  )

HeaderValue = Union[str, int]

LocationProducer = Callable[[], Optional[str]]
"""A zero-argument function that returns the current LOCATION header value."""

LocationOption = Union[None, str, LocationProducer]

_T = TypeVar('_T')

def get_ssdp_signature() -> str:
  """Returns the default SERVER header value; e.g., "python/3.11.4 UPnP/1.1 ssdp-discovery-protocol/1.0.0"."""
  return f"python/{platform.python_version()} UPnP/1.1 ssdp-discovery-protocol/{__version__}"

class SsdpConfig:
  """Options for an SSDP node. Immutable once constructed."""

  signature: str
  """The SERVER header value sent with responses and alive advertisements."""

  multicast_address: Optional[str]
  """An explicit multicast group to join and send to. If None, the SSDP default
     group for each socket's address family is used."""

  port: int
  """The multicast destination port (and the port in the HOST header)."""

  multicast_ttl: int
  """The multicast TTL (IPv4) or hop limit (IPv6) of outgoing multicast packets."""

  advertise_interval: float
  """Seconds between periodic server advertisements."""

  max_age: int
  """The cache lifetime, in seconds, announced in CACHE-CONTROL of search responses."""

  udn: str
  """The Unique Device Name; registry entries are composed as '<udn>::<usn>'."""

  headers: Mapping[str, HeaderValue]
  """Additional headers merged into every outgoing packet. They win on collision. Read-only."""

  allow_wildcards: bool
  """If True, '*' in an M-SEARCH ST header matches any text (non-standard)."""

  explicit_socket_bind: bool
  """If True, each socket binds to its interface address instead of the wildcard address."""

  source_port: int
  """The local port each socket binds to. 0 selects an ephemeral port."""

  reuse_addr: bool
  """If True, SO_REUSEADDR (and SO_REUSEPORT where available) is set on each socket."""

  suppress_root_device_advertisements: bool
  """If True, a server does not register its bare UDN as a root device entry."""

  enable_ipv6: bool
  """If True, sockets are also created for IPv6 interface addresses."""

  include_loopback: bool
  """If True, loopback interface addresses are included when enumerating interfaces."""

  _location_producer: LocationProducer
  _frozen: bool = False

  def __init__(
        self,
        signature: Optional[str]=None,
        multicast_address: Optional[str]=None,
        port: int=SSDP_PORT,
        multicast_ttl: int=DEFAULT_MULTICAST_TTL,
        advertise_interval: float=DEFAULT_ADVERTISE_INTERVAL,
        max_age: int=DEFAULT_MAX_AGE,
        udn: str=DEFAULT_UDN,
        headers: Optional[Mapping[str, HeaderValue]]=None,
        allow_wildcards: bool=False,
        explicit_socket_bind: bool=False,
        source_port: int=0,
        reuse_addr: bool=True,
        location: LocationOption=None,
        suppress_root_device_advertisements: bool=False,
        enable_ipv6: bool=False,
        include_loopback: bool=False,
      ):
    self.signature = get_ssdp_signature() if signature is None else signature
    self.multicast_address = multicast_address
    self.port = self._check_int('port', port)
    self.multicast_ttl = self._check_int('multicast_ttl', multicast_ttl)
    if not isinstance(advertise_interval, (int, float)) or isinstance(advertise_interval, bool) or advertise_interval <= 0:
      raise SsdpConfigError(f"SsdpConfig: advertise_interval must be a positive number, got {advertise_interval!r}")
    self.advertise_interval = float(advertise_interval)
    self.max_age = self._check_int('max_age', max_age)
    if not isinstance(udn, str) or udn == '':
      raise SsdpConfigError(f"SsdpConfig: udn must be a nonempty str, got {udn!r}")
    self.udn = udn
    extra_headers: Dict[str, HeaderValue] = {}
    if headers is not None:
      for name, value in headers.items():
        if not isinstance(name, str) or not isinstance(value, (str, int)) or isinstance(value, bool):
          raise SsdpConfigError(f"SsdpConfig: Header {name!r} must map to str or int, got {type(value)}")
        extra_headers[name] = value
    self.headers = MappingProxyType(extra_headers)
    self.allow_wildcards = bool(allow_wildcards)
    self.explicit_socket_bind = bool(explicit_socket_bind)
    self.source_port = self._check_int('source_port', source_port)
    self.reuse_addr = bool(reuse_addr)
    if location is None or isinstance(location, str):
      static_location = location
      self._location_producer = lambda: static_location
    elif callable(location):
      self._location_producer = location
    else:
      raise SsdpConfigError(f"SsdpConfig: location must be a str or a callable, got {type(location)}")
    self.suppress_root_device_advertisements = bool(suppress_root_device_advertisements)
    self.enable_ipv6 = bool(enable_ipv6)
    self.include_loopback = bool(include_loopback)
    self._frozen = True

  @staticmethod
  def _check_int(key: str, value: Any) -> int:
    if not isinstance(value, int) or isinstance(value, bool) or value < 0:
      raise SsdpConfigError(f"SsdpConfig: Expected property {key} to be a non-negative int, got {value!r}")
    return value

  def __setattr__(self, name: str, value: Any) -> None:
    if self._frozen:
      raise SsdpConfigError(f"SsdpConfig is immutable; cannot set {name}")
    super().__setattr__(name, value)

  @property
  def location(self) -> Optional[str]:
    """The current LOCATION header value. Re-evaluated on every access if a function was configured."""
    return self._location_producer()

  def __str__(self) -> str:
    return f"SsdpConfig(udn={self.udn!r}, port={self.port}, multicast_address={self.multicast_address!r})"

  def __repr__(self) -> str:
    return str(self)

  def copy_with(self, **kwargs: Any) -> SsdpConfig:
    """Returns a new SsdpConfig with the given options replaced."""
    options: Dict[str, Any] = dict(
        signature=self.signature,
        multicast_address=self.multicast_address,
        port=self.port,
        multicast_ttl=self.multicast_ttl,
        advertise_interval=self.advertise_interval,
        max_age=self.max_age,
        udn=self.udn,
        headers=self.headers,
        allow_wildcards=self.allow_wildcards,
        explicit_socket_bind=self.explicit_socket_bind,
        source_port=self.source_port,
        reuse_addr=self.reuse_addr,
        location=self._location_producer,
        suppress_root_device_advertisements=self.suppress_root_device_advertisements,
        enable_ipv6=self.enable_ipv6,
        include_loopback=self.include_loopback,
      )
    options.update(kwargs)
    return SsdpConfig(**options)

  _json_properties: Dict[str, Tuple[type, ...]] = {
      'signature': (str,),
      'multicast_address': (str,),
      'port': (int,),
      'multicast_ttl': (int,),
      'advertise_interval': (int, float),
      'max_age': (int,),
      'udn': (str,),
      'headers': (dict,),
      'allow_wildcards': (bool,),
      'explicit_socket_bind': (bool,),
      'source_port': (int,),
      'reuse_addr': (bool,),
      'location': (str,),
      'suppress_root_device_advertisements': (bool,),
      'enable_ipv6': (bool,),
      'include_loopback': (bool,),
    }

  @classmethod
  def from_json_data(cls, json_data: JsonableDict, **overrides: Any) -> SsdpConfig:
    """Builds an SsdpConfig from a JSON-style dict. Keyword overrides take precedence."""
    if not isinstance(json_data, dict):
      raise SsdpConfigError(f"SsdpConfig: Expected config data to be dict, got {type(json_data)}")
    options: Dict[str, Any] = {}
    for key, value in json_data.items():
      expected = cls._json_properties.get(key)
      if expected is None:
        raise SsdpConfigError(f"SsdpConfig: Unknown property {key!r}")
      if value is None:
        continue
      if not isinstance(value, expected):
        raise SsdpConfigError(f"SsdpConfig: Expected property {key} to be {expected[0].__name__}, got {type(value).__name__}")
      options[key] = value
    options.update(overrides)
    return cls(**options)

  @classmethod
  def loads(cls, config_text: str, **overrides: Any) -> SsdpConfig:
    try:
      json_data = json.loads(config_text)
    except json.JSONDecodeError as e:
      raise SsdpConfigError(f"SsdpConfig: Invalid JSON: {e}") from e
    return cls.from_json_data(json_data, **overrides)

  @classmethod
  def load(cls, pathname: str, **overrides: Any) -> SsdpConfig:
    """Loads an SsdpConfig from a JSON file."""
    with open(os.path.expanduser(pathname), encoding='utf-8') as f:
      config_text = f.read()
    return cls.loads(config_text, **overrides)
