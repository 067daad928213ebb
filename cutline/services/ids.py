"""Id generation strategies injected into the timeline store."""

import itertools
from typing import Protocol
from uuid import uuid4


class IdGenerator(Protocol):
    def __call__(self) -> str: ...


class CounterIdGenerator:
    """Deterministic ids: prefix + monotonically increasing counter."""

    def __init__(self, prefix: str = "clip", start: int = 1):
        self.prefix = prefix
        self._counter = itertools.count(start)

    def __call__(self) -> str:
        return f"{self.prefix}-{next(self._counter)}"


class UuidIdGenerator:
    """Random ids for production use."""

    def __call__(self) -> str:
        return uuid4().hex
