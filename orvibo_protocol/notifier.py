#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
OrviboNotifier -- Best-effort relay of events from the receive path to the consumer.

Publishing never blocks. The notifier holds at most `capacity` undelivered events (one by
default); an event published while it is full is dropped. A consumer that drains faster than
events are produced sees every event in order. A slower consumer misses the events that arrived
while the slots were occupied.
"""

from __future__ import annotations

import asyncio

from orvibo_protocol.internal_types import *
from .pkg_logging import logger
from .device import OrviboDevice, OrviboEvent

DEFAULT_EVENT_CAPACITY = 1

class OrviboNotifier:
    queue: asyncio.Queue[OrviboEvent]
    capacity: int

    dropped_count: int = 0
    """The number of events that were discarded because no slot was free"""

    def __init__(self, capacity: int=DEFAULT_EVENT_CAPACITY):
        if capacity < 1:
            raise ValueError(f"Event capacity must be at least 1: {capacity}")
        self.capacity = capacity
        self.queue = asyncio.Queue(capacity)
        self.dropped_count = 0

    def publish(self, name: str, device: Optional[OrviboDevice]=None) -> bool:
        """Offers an event to the consumer. Returns True if it was placed, False if it was dropped."""
        event = OrviboEvent(name, OrviboDevice() if device is None else device.copy())
        try:
            self.queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped_count += 1
            logger.debug(f"Event slot full, dropping {event}")
            return False
        return True

    def get_nowait(self) -> Optional[OrviboEvent]:
        """Returns the pending event, or None if there is none."""
        try:
            return self.queue.get_nowait()
        except asyncio.QueueEmpty:
            return None

    async def get(self) -> OrviboEvent:
        """Waits for the next event."""
        return await self.queue.get()

    @property
    def pending(self) -> int:
        return self.queue.qsize()

    def clear(self) -> None:
        while self.get_nowait() is not None:
            pass
