import asyncio
import contextlib
import itertools
import logging
from collections.abc import Callable
from collections.abc import Iterable
from contextlib import AsyncExitStack
from typing import Any
from typing import Literal
from typing import Optional
from typing import Union

from pydantic import BaseModel
from pydantic import Field

from microchat.longpoll.buffer import TopicBuffer
from microchat.longpoll.errors import InternalError
from microchat.longpoll.errors import InvalidArgument
from microchat.longpoll.errors import LongpollError
from microchat.longpoll.events import Event
from microchat.longpoll.events import now_ms
from microchat.longpoll.waiter import Waiter
from microchat.longpoll.waiter import WaiterState

logger = logging.getLogger(__name__)


class LongpollOptions(BaseModel):
    max_event_buffer_size: int = Field(default=250, ge=1)
    # None keeps events until the size bound pushes them out
    event_ttl_seconds: Optional[float] = Field(default=None, gt=0)
    max_timeout_seconds: int = Field(default=110, ge=1)
    # True gives queue semantics: an event is handed out by the first read only
    delete_event_after_first_retrieval: bool = False
    purge_interval_seconds: float = Field(default=30.0, gt=0)
    max_topic_length: int = Field(default=1024, ge=1)


class SubscribeResult(BaseModel):
    status: Literal["data", "timeout", "aborted"]
    events: list[Event] = Field(default_factory=list)
    timestamp: int


class LongpollBroker:
    """In-process long-poll pub/sub.

    Publishers append to a per-topic ``TopicBuffer`` and wake whatever
    ``Waiter`` objects are parked on that topic. Subscribers read from the
    buffers and, when nothing newer than their cursor exists, park a Waiter
    until data, their timeout, or shutdown resolves it.

    Each topic has its own lock, so traffic on one topic never contends with
    another. A broker is a plain object: create as many as you need.
    """

    def __init__(self, options: Optional[LongpollOptions] = None, clock: Callable[[], int] = now_ms):
        self.options = options or LongpollOptions()
        self._clock = clock
        self._buffers: dict[str, TopicBuffer] = {}
        self._waiters: dict[str, set[Waiter]] = {}
        self._seq = itertools.count(1)
        self._last_timestamp = 0
        self._purge_task: Optional[asyncio.Task] = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    # -------------- lifecycle --------------

    def start(self) -> None:
        """Start the background purge task. Safe to call more than once."""
        if self._closed:
            raise InternalError("broker has been shut down")
        if self._purge_task is None:
            self._purge_task = asyncio.get_running_loop().create_task(self._purge_loop())
            logger.info(
                "longpoll broker started (buffer=%d, ttl=%s, max_timeout=%ds)",
                self.options.max_event_buffer_size,
                self.options.event_ttl_seconds,
                self.options.max_timeout_seconds,
            )

    async def shutdown(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._purge_task is not None:
            self._purge_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._purge_task
            self._purge_task = None

        pending = {waiter for waiters in self._waiters.values() for waiter in waiters}
        self._waiters.clear()
        for waiter in pending:
            waiter.abort()
        logger.info("longpoll broker shut down, aborted %d pending subscription(s)", len(pending))

    # -------------- publish / subscribe --------------

    async def publish(self, topic: str, payload: Any = None) -> Event:
        self._check_topic(topic)
        self._check_open()
        self.start()

        buffer = self._buffer(topic)
        try:
            async with buffer.lock:
                event = Event(
                    topic=topic,
                    timestamp=self._next_timestamp(),
                    seq=next(self._seq),
                    payload=payload,
                )
                buffer.append(event)
                waiters = self._waiters.pop(topic, set())
        except LongpollError:
            raise
        except Exception as exc:
            logger.warning("publish to %r failed: %s", topic, exc)
            raise InternalError(f"failed to publish to {topic!r}") from exc

        # fan-out outside the lock; delivering never waits on a subscriber
        woken = sum(1 for waiter in waiters if waiter.deliver([event]))
        logger.debug("published %s to %r at %d, woke %d", event.id, topic, event.timestamp, woken)
        return event

    async def subscribe(
        self,
        topics: Union[str, Iterable[str]],
        since: Optional[int] = None,
        *,
        timeout: float,
    ) -> SubscribeResult:
        """Return events newer than ``since`` on any of ``topics``.

        Answers at once when buffered events qualify. Otherwise parks until
        a publish, ``timeout`` seconds, or shutdown. ``since=None`` means
        only events published after this call are of interest.
        """
        keys = self._check_topics(topics)
        timeout = self._check_timeout(timeout)
        if since is None:
            # same clock publishes are stamped with, so nothing already buffered qualifies
            since = max(self._clock(), self._last_timestamp)
        elif isinstance(since, bool) or not isinstance(since, int):
            raise InvalidArgument("since must be an integer timestamp in milliseconds")
        self._check_open()
        self.start()

        buffers = [self._buffer(key) for key in keys]
        try:
            async with self._locked(buffers):
                events = self._collect(buffers, since)
                if events:
                    return SubscribeResult(status="data", events=events, timestamp=self._clock())
                waiter = Waiter(keys, since, timeout)
                for key in keys:
                    self._waiters.setdefault(key, set()).add(waiter)
        except LongpollError:
            raise
        except Exception as exc:
            logger.warning("subscribe to %r failed: %s", keys, exc)
            raise InternalError(f"failed to subscribe to {', '.join(keys)}") from exc

        logger.debug("parked %r for up to %ss", waiter, timeout)
        try:
            state = await waiter.wait()
        except asyncio.CancelledError:
            waiter.abort()
            logger.debug("subscription to %r cancelled", keys)
            raise
        finally:
            self._unregister(waiter)

        if state is not WaiterState.DATA:
            return SubscribeResult(status=state.value, timestamp=self._clock())

        # re-read so that events published in the same tick come back together
        async with self._locked(buffers):
            events = self._collect(buffers, since) or waiter.events
        return SubscribeResult(status="data", events=events, timestamp=self._clock())

    # -------------- maintenance --------------

    def purge(self) -> int:
        """Drop expired events and forget idle topics. Returns events removed."""
        removed = 0
        for key, buffer in list(self._buffers.items()):
            if buffer.lock.locked():
                continue
            removed += buffer.purge_expired()
            if not len(buffer) and not self._waiters.get(key):
                del self._buffers[key]
                logger.debug("reaped idle topic %r", key)
        return removed

    def topics(self) -> list[str]:
        return sorted(self._buffers)

    def stats(self) -> dict[str, int]:
        pending = {waiter for waiters in self._waiters.values() for waiter in waiters}
        return {
            "topics": len(self._buffers),
            "events": sum(len(buffer) for buffer in self._buffers.values()),
            "waiters": len(pending),
        }

    async def _purge_loop(self) -> None:
        while True:
            await asyncio.sleep(self.options.purge_interval_seconds)
            try:
                removed = self.purge()
            except Exception:
                logger.exception("purge pass failed")
                continue
            if removed:
                logger.debug("purged %d expired event(s)", removed)

    # -------------- internals --------------

    def _buffer(self, topic: str) -> TopicBuffer:
        buffer = self._buffers.get(topic)
        if buffer is None:
            buffer = TopicBuffer(
                topic,
                self.options.max_event_buffer_size,
                self.options.event_ttl_seconds,
                clock=self._clock,
            )
            self._buffers[topic] = buffer
        return buffer

    @contextlib.asynccontextmanager
    async def _locked(self, buffers: list[TopicBuffer]):
        # buffers come in sorted key order, so the lock order is global
        async with AsyncExitStack() as stack:
            for buffer in buffers:
                await stack.enter_async_context(buffer.lock)
            yield

    def _collect(self, buffers: list[TopicBuffer], since: int) -> list[Event]:
        read = "take" if self.options.delete_event_after_first_retrieval else "query"
        events: list[Event] = []
        for buffer in buffers:
            events.extend(getattr(buffer, read)(since))
        if len(buffers) > 1:
            events.sort(key=lambda event: event.sort_key)
        return events

    def _unregister(self, waiter: Waiter) -> None:
        for key in waiter.topics:
            waiters = self._waiters.get(key)
            if waiters is None:
                continue
            waiters.discard(waiter)
            if not waiters:
                del self._waiters[key]

    def _next_timestamp(self) -> int:
        # never step backwards, so every buffer stays sorted by timestamp
        self._last_timestamp = max(self._clock(), self._last_timestamp)
        return self._last_timestamp

    def _check_open(self) -> None:
        if self._closed:
            raise InternalError("broker has been shut down")

    def _check_topic(self, topic: Any) -> None:
        if not isinstance(topic, str) or not topic:
            raise InvalidArgument("topic must be a non-empty string")
        if len(topic) > self.options.max_topic_length:
            raise InvalidArgument(
                f"topic must be 1-{self.options.max_topic_length} characters long"
            )

    def _check_topics(self, topics: Union[str, Iterable[str]]) -> tuple[str, ...]:
        if isinstance(topics, str):
            topics = [topics]
        try:
            keys = sorted(set(topics))
        except TypeError as exc:
            raise InvalidArgument("topics must be a string or an iterable of strings") from exc
        if not keys:
            raise InvalidArgument("at least one topic is required")
        for key in keys:
            self._check_topic(key)
        return tuple(keys)

    def _check_timeout(self, timeout: Any) -> float:
        limit = self.options.max_timeout_seconds
        if isinstance(timeout, bool) or not isinstance(timeout, (int, float)):
            raise InvalidArgument(f"timeout must be a number of seconds, 1-{limit}")
        if not 0 < timeout <= limit:
            raise InvalidArgument(f"timeout must be greater than 0 and at most {limit} seconds")
        return timeout

