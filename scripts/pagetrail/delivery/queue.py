"""
Batching queue between capture and delivery.

Accumulates events in memory and flushes when:
- The queue reaches batch_size
- batch_interval has passed since the first unflushed event
- flush()/drain() is called explicitly

Nothing is flushed until the device id is resolved. A failed batch goes back
to the head of the queue and waits for the next flush.
"""

import asyncio
import sys
from collections import deque
from typing import Awaitable, Callable, Deque, List, Optional, Set

from ..errors import DeliveryError, PagetrailError
from ..identity.device import DeviceIdentityResolver
from ..telemetry.schema import EventRecord


Sender = Callable[[List[EventRecord]], Awaitable[object]]


class EventQueue:
    """FIFO event buffer with size/time flush triggers."""

    def __init__(
        self,
        device: DeviceIdentityResolver,
        sender: Sender,
        batch_size: int = 10,
        batch_interval: float = 2.0,
        max_errors: int = 50,
        debug: bool = False
    ):
        """
        Initialize queue.

        Args:
            device: Resolver whose readiness gates flushing
            sender: Coroutine function delivering one batch
            batch_size: Flush when the queue reaches this size
            batch_interval: Seconds after the first unflushed event before flushing
            max_errors: How many delivery errors to keep in `errors`
            debug: Print deferral decisions to stderr
        """
        self.device = device
        self.sender = sender
        self.batch_size = batch_size
        self.batch_interval = batch_interval
        self.debug = debug

        self.events: List[EventRecord] = []
        self.errors: Deque[PagetrailError] = deque(maxlen=max_errors)
        self._timer: Optional[asyncio.TimerHandle] = None
        self._inflight: Set[asyncio.Task] = set()
        self._error_callbacks: List[Callable[[PagetrailError, List[EventRecord]], None]] = []

    def __len__(self) -> int:
        return len(self.events)

    @property
    def has_pending_timer(self) -> bool:
        return self._timer is not None

    def on_error(self, callback: Callable[[PagetrailError, List[EventRecord]], None]):
        """Register a callback receiving (error, failed_batch) after a failed delivery."""
        self._error_callbacks.append(callback)

    def enqueue(self, events: List[EventRecord]):
        """Append events; flushes are deferred until the device id is ready."""
        self.events.extend(events)

        if self.device.ready:
            self.process_if_ready()
        elif self.debug:
            print("Debug: Device ID not ready, keeping events in queue", file=sys.stderr)

    def process_if_ready(self):
        """Flush now if the batch is full, otherwise make sure a timer is pending."""
        if not self.device.ready or not self.events:
            return

        if len(self.events) >= self.batch_size:
            self.flush()
        elif self._timer is None:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                return
            self._timer = loop.call_later(self.batch_interval, self._on_timer)

    def _on_timer(self):
        self._timer = None
        self.flush()

    def flush(self) -> Optional[asyncio.Task]:
        """
        Snapshot and clear the queue, stamp device ids and start delivery.

        Returns:
            The delivery task, or None if there was nothing to send
        """
        if not self.events or not self.device.ready:
            return None
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return None

        device_id = self.device.device_id
        batch = [event.with_device_id(device_id) for event in self.events]
        self.events = []
        self._cancel_timer()

        task = loop.create_task(self._deliver(batch))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return task

    async def _deliver(self, batch: List[EventRecord]):
        try:
            await self.sender(batch)
        except PagetrailError as e:
            # Back to the head so the next flush keeps chronological order
            self.events[0:0] = batch
            self.errors.append(e)
            print(f"Warning: Failed to send batch of {len(batch)} events, requeued: {e}",
                  file=sys.stderr)
            for callback in self._error_callbacks:
                callback(e, batch)
        except (TypeError, ValueError) as e:
            # Only records that can never be encoded are dropped
            rejected = [event for event in batch if not event.is_serializable()]
            sendable = [event for event in batch if event.is_serializable()]
            error = DeliveryError(f"Batch could not be serialized: {e}")
            self.errors.append(error)
            print(f"Error: Dropping {len(rejected)} unserializable event(s) of {len(batch)}: {e}",
                  file=sys.stderr)
            for callback in self._error_callbacks:
                callback(error, rejected)
            if sendable and rejected:
                self.events[0:0] = sendable
                self.flush()
            elif sendable:
                self.events[0:0] = sendable

    async def drain(self):
        """Flush whatever is queued and wait for every in-flight delivery."""
        self.flush()
        while self._inflight:
            await asyncio.gather(*list(self._inflight))

    def _cancel_timer(self):
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def close(self):
        """Cancel the pending flush timer; queued events are kept."""
        self._cancel_timer()
