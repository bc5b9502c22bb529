import time
from typing import Any
from uuid import uuid4

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field


def now_ms() -> int:
    return int(time.time() * 1000)


class Event(BaseModel):
    """One published item. Immutable once built; shared by every buffer it lands in."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: uuid4().hex)
    topic: str
    timestamp: int
    seq: int = 0
    payload: Any = None

    @property
    def sort_key(self) -> tuple[int, int]:
        return (self.timestamp, self.seq)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", include={"id", "timestamp", "topic", "payload"})
