"""
Queue-backed event streams

Each subscriber gets its own asyncio.Queue so a slow consumer never blocks
the publisher or other subscribers. Streams of whole snapshots can be
made latest-only: a subscriber then holds at most one undelivered item,
the newest.
"""
import asyncio
from typing import Generic, List, Optional, TypeVar

T = TypeVar("T")

_CLOSED = object()


class Subscription(Generic[T]):
    """Async iterator over the items published after subscribing"""

    def __init__(self, stream: "EventStream[T]", latest_only: bool = False):
        self._stream = stream
        self._latest_only = latest_only
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=1 if latest_only else 0)

    def _push(self, item: object) -> None:
        if self._latest_only and self._queue.full():
            # Replace the undelivered snapshot; a close marker always wins
            stale = self._queue.get_nowait()
            if stale is _CLOSED:
                item = _CLOSED
        self._queue.put_nowait(item)

    def pending(self) -> List[T]:
        """Drain and return items already queued, without waiting"""
        items = []
        while True:
            try:
                item = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            if item is _CLOSED:
                self._queue.put_nowait(_CLOSED)
                break
            items.append(item)
        return items

    async def get(self) -> T:
        """Wait for the next item; raises StopAsyncIteration once closed"""
        item = await self._queue.get()
        if item is _CLOSED:
            self._queue.put_nowait(_CLOSED)
            raise StopAsyncIteration
        return item

    def close(self) -> None:
        """Stop receiving items"""
        self._stream.unsubscribe(self)
        self._push(_CLOSED)

    def __aiter__(self) -> "Subscription[T]":
        return self

    async def __anext__(self) -> T:
        return await self.get()


class EventStream(Generic[T]):
    """
    Fan-out stream of items to any number of subscribers.

    Args:
        latest_only: Keep only the newest undelivered item per subscriber
    """

    def __init__(self, latest_only: bool = False):
        self.latest_only = latest_only
        self._subscribers: List[Subscription[T]] = []
        self._latest: Optional[T] = None

    @property
    def latest(self) -> Optional[T]:
        """Most recently published item"""
        return self._latest

    def subscribe(self) -> Subscription[T]:
        subscription = Subscription(self, latest_only=self.latest_only)
        self._subscribers.append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription[T]) -> None:
        if subscription in self._subscribers:
            self._subscribers.remove(subscription)

    def publish(self, item: T) -> None:
        self._latest = item
        for subscription in list(self._subscribers):
            subscription._push(item)

    def close(self) -> None:
        """Close every subscription"""
        for subscription in list(self._subscribers):
            subscription.close()

    def __len__(self) -> int:
        return len(self._subscribers)
