import asyncio
import enum
from collections.abc import Iterable
from typing import Optional

from microchat.longpoll.events import Event


class WaiterState(enum.Enum):
    PENDING = "pending"
    DATA = "data"
    TIMEOUT = "timeout"
    ABORTED = "aborted"


class Waiter:
    """One pending long-poll.

    Resolved exactly once, by new data, by its deadline timer, or by an
    abort (client gone, broker shutdown). Every resolving call is
    synchronous and never blocks, so publishers can fire it from anywhere on
    the loop. Only the call that actually resolved the waiter gets ``True``.
    """

    def __init__(self, topics: Iterable[str], since: int, timeout: float):
        self.topics = tuple(topics)
        self.since = since
        self.events: list[Event] = []
        self._loop = asyncio.get_running_loop()
        self.deadline = self._loop.time() + timeout
        self._future: asyncio.Future = self._loop.create_future()
        self._timer: Optional[asyncio.TimerHandle] = self._loop.call_at(self.deadline, self.expire)

    def __repr__(self) -> str:
        return f"<Waiter topics={self.topics!r} since={self.since} state={self.state.value}>"

    @property
    def state(self) -> WaiterState:
        if not self._future.done():
            return WaiterState.PENDING
        return self._future.result()

    @property
    def resolved(self) -> bool:
        return self._future.done()

    def deliver(self, events: list[Event]) -> bool:
        if self._future.done():
            return False
        self.events = list(events)
        return self._resolve(WaiterState.DATA)

    def expire(self) -> bool:
        return self._resolve(WaiterState.TIMEOUT)

    def abort(self) -> bool:
        return self._resolve(WaiterState.ABORTED)

    async def wait(self) -> WaiterState:
        # shielded: a cancelled caller must not cancel the future, the
        # caller is responsible for calling abort() instead
        return await asyncio.shield(self._future)

    def _resolve(self, state: WaiterState) -> bool:
        if self._future.done():
            return False
        self._future.set_result(state)
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        return True
