import asyncio
import logging
import threading
from typing import List, Optional

from ..config import Config
from ..data.schemas import RescanSample

logger = logging.getLogger(__name__)

_END = object()

class StreamClosed(Exception):
    """Raised by Subscription.get once the hub has closed the subscription."""

class Subscription:
    """Bounded per-client queue. Overflow drops the new sample."""

    def __init__(self, capacity: int):
        self._queue = asyncio.Queue(maxsize=capacity)
        self.closed = False
        self.dropped = 0

    def offer(self, sample: RescanSample) -> bool:
        if self.closed:
            return False
        try:
            self._queue.put_nowait(sample)
            return True
        except asyncio.QueueFull:
            self.dropped += 1
            return False

    def close(self):
        if self.closed:
            return
        self.closed = True
        # End-of-stream must always get through, even to a full queue
        if self._queue.full():
            self._queue.get_nowait()
        self._queue.put_nowait(_END)

    def pending(self) -> int:
        return self._queue.qsize()

    async def get(self, timeout: Optional[float] = None) -> Optional[RescanSample]:
        """
        Next sample, or None if `timeout` elapses first.
        Raises StreamClosed after the end-of-stream marker.
        """
        try:
            item = await asyncio.wait_for(self._queue.get(), timeout)
        except asyncio.TimeoutError:
            return None
        if item is _END:
            raise StreamClosed()
        return item

class BroadcastHub:
    """
    Fans the single upstream rescan stream out to every connected client.
    Only the task owning the active stream publishes.
    """

    def __init__(self, capacity: int = None):
        self.capacity = capacity or Config.SUBSCRIBER_CAPACITY
        self._subscribers: List[Subscription] = []
        self._lock = threading.Lock()
        self._stream = None
        self._stream_lock = threading.Lock()
        self.last_sample: Optional[RescanSample] = None

    def subscribe(self) -> Subscription:
        sub = Subscription(self.capacity)
        with self._lock:
            self._subscribers.append(sub)
        return sub

    def unsubscribe(self, sub: Subscription):
        with self._lock:
            if sub in self._subscribers:
                self._subscribers.remove(sub)

    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def publish(self, sample: RescanSample) -> int:
        """Best-effort delivery to every subscriber. Returns how many accepted it."""
        with self._lock:
            targets = list(self._subscribers)
        self.last_sample = sample
        delivered = 0
        for sub in targets:
            if sub.offer(sample):
                delivered += 1
        return delivered

    def close_all(self):
        with self._lock:
            targets = self._subscribers
            self._subscribers = []
        for sub in targets:
            sub.close()
        logger.info(f"Rescan stream ended - closed {len(targets)} subscriber(s)")

    # Active upstream stream

    @property
    def active_stream(self):
        with self._stream_lock:
            return self._stream

    def has_active_stream(self) -> bool:
        return self.active_stream is not None

    def attach_stream(self, stream) -> bool:
        """Claim the single upstream slot. False if another stream holds it."""
        with self._stream_lock:
            if self._stream is not None:
                return False
            self._stream = stream
            self.last_sample = None
            return True

    def detach_stream(self, stream):
        with self._stream_lock:
            if self._stream is stream:
                self._stream = None
