#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Type hints and aliases used internally by this package"""

from __future__ import annotations

from typing import (
    TYPE_CHECKING, Any, Awaitable, Callable, Dict, Iterable, Iterator, List,
    Mapping, Optional, Sequence, Set, Tuple, Union, AsyncContextManager,
  )
from typing_extensions import Self, TypeAlias
from types import TracebackType

HostAndPort: TypeAlias = Tuple[str, int]
"""An (ip_address, port) tuple as used by the socket module."""

JsonableTypes = (str, int, float, bool, dict, list)
Jsonable: TypeAlias = Union[str, int, float, bool, None, Dict[str, Any], List[Any]]
JsonableDict: TypeAlias = Dict[str, Jsonable]
