# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Exceptions defined by this package"""

class OrviboError(Exception):
  """Base class for all error exceptions defined by this package."""
  pass

class NetworkError(OrviboError):
  """A socket could not be bound, or a datagram could not be sent or received."""
  pass

class ProtocolError(OrviboError):
  """A received datagram is empty, undersized, or otherwise cannot be decoded."""
  pass

class InvalidOperationError(OrviboError):
  """An operation was requested that the target device does not support."""
  pass

class UnknownDeviceError(OrviboError):
  """A MAC address was given that is not present in the device registry."""
  pass
