"""Bounded asynchronous channels with explicit closing on both ends."""

from __future__ import annotations

import asyncio
from collections import deque
from typing import Any, Deque, Generic, Optional, Tuple, TypeVar

T = TypeVar("T")


class ChannelClosedError(Exception):
    """Raised when sending into a channel that can no longer deliver."""

    def __init__(self, item: Any = None) -> None:
        super().__init__("channel closed")
        self.item = item


class _Shared(Generic[T]):
    def __init__(self, capacity: int) -> None:
        self.capacity = capacity
        self.items: Deque[T] = deque()
        self.senders = 0
        self.receiver_closed = False
        self._changed = asyncio.Event()

    def notify(self) -> None:
        self._changed.set()
        self._changed = asyncio.Event()

    async def wait(self) -> None:
        await self._changed.wait()


class Sender(Generic[T]):
    """Sending half of a channel. Several senders may share one channel."""

    def __init__(self, shared: _Shared[T]) -> None:
        self._shared = shared
        self._open = True
        shared.senders += 1

    async def send(self, item: T) -> None:
        """Queue an item, waiting while the channel is full."""
        shared = self._shared
        while True:
            if shared.receiver_closed or not self._open:
                raise ChannelClosedError(item)
            if len(shared.items) < shared.capacity:
                shared.items.append(item)
                shared.notify()
                return
            await shared.wait()

    def is_closed(self) -> bool:
        """Whether the receiving half has been closed."""
        return self._shared.receiver_closed

    def clone(self) -> "Sender[T]":
        """Another sender feeding the same channel."""
        return Sender(self._shared)

    def close(self) -> None:
        """Drop this sender; once all senders are closed the receiver ends."""
        if self._open:
            self._open = False
            self._shared.senders -= 1
            self._shared.notify()

    def __repr__(self) -> str:
        return f"Sender(closed={self.is_closed()})"


class Receiver(Generic[T]):
    """Receiving half of a channel, usable as an async iterator."""

    def __init__(self, shared: _Shared[T]) -> None:
        self._shared = shared

    async def recv(self) -> Optional[T]:
        """Next item, or None once the channel is closed and drained."""
        shared = self._shared
        while True:
            if shared.items:
                item = shared.items.popleft()
                shared.notify()
                return item
            if shared.receiver_closed or shared.senders == 0:
                return None
            await shared.wait()

    def close(self) -> None:
        """Refuse further sends; already queued items can still be received."""
        self._shared.receiver_closed = True
        self._shared.notify()

    def __aiter__(self) -> "Receiver[T]":
        return self

    async def __anext__(self) -> T:
        item = await self.recv()
        if item is None:
            raise StopAsyncIteration
        return item

    def __repr__(self) -> str:
        return f"Receiver(pending={len(self._shared.items)})"


def channel(capacity: int) -> Tuple[Sender[Any], Receiver[Any]]:
    """Create a bounded channel holding at most ``capacity`` items."""
    if capacity < 1:
        raise ValueError("channel capacity must be at least 1")
    shared: _Shared[Any] = _Shared(capacity)
    return Sender(shared), Receiver(shared)