import asyncio
from collections import deque
from collections.abc import Callable
from collections.abc import Iterator
from typing import Optional

from microchat.longpoll.events import Event
from microchat.longpoll.events import now_ms


class TopicBuffer:
    """Bounded, time-bounded log of events for one topic key.

    Events are kept oldest first. Once ``max_size`` is exceeded the head is
    dropped. Events older than ``ttl_seconds`` are never returned; they are
    pruned lazily on read, or eagerly through ``purge_expired``.

    The buffer itself does no locking. ``lock`` is held by the broker around
    every mutation and around waiter registration for this key.
    """

    def __init__(
        self,
        key: str,
        max_size: int,
        ttl_seconds: Optional[float] = None,
        clock: Callable[[], int] = now_ms,
    ):
        if max_size < 1:
            raise ValueError("max_size must be >= 1")
        self.key = key
        self.max_size = max_size
        self.ttl_seconds = ttl_seconds
        self.lock = asyncio.Lock()
        self._clock = clock
        self._events: deque[Event] = deque()

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self) -> Iterator[Event]:
        return iter(list(self._events))

    @property
    def last_event_at(self) -> Optional[int]:
        return self._events[-1].timestamp if self._events else None

    def append(self, event: Event) -> None:
        self._events.append(event)
        while len(self._events) > self.max_size:
            self._events.popleft()

    def query(self, since: int) -> list[Event]:
        self.purge_expired()
        # newest events sit at the tail, so walk backwards until the cursor
        found = []
        for event in reversed(self._events):
            if event.timestamp <= since:
                break
            found.append(event)
        found.reverse()
        return found

    def take(self, since: int) -> list[Event]:
        """Same as ``query`` but the returned events leave the buffer."""
        found = self.query(since)
        if found:
            taken = {event.id for event in found}
            self._events = deque(e for e in self._events if e.id not in taken)
        return found

    def purge_expired(self) -> int:
        if self.ttl_seconds is None:
            return 0
        cutoff = self._clock() - int(self.ttl_seconds * 1000)
        removed = 0
        while self._events and self._events[0].timestamp < cutoff:
            self._events.popleft()
            removed += 1
        return removed
