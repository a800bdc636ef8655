#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Exceptions defined by this package"""

class SsdpError(Exception):
  """Base class for all error exceptions defined by this package."""
  pass

class SsdpConfigError(SsdpError):
  """Raised when an SsdpConfig is given an invalid option."""
  pass

class SsdpUsageError(SsdpError):
  """Raised when the package API is used in a way that violates its invariants;
     e.g., starting a second advertisement loop."""
  pass
