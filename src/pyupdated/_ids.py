"""Attempt id allocation.

Every attempt started by :func:`pyupdated.driver.run_update` is tagged with
an id taken from an :class:`IdGenerator`.  The process-wide default is a
counter seeded once from the wall clock, so ids from two processes started
at different times rarely overlap.  Tests inject their own generator.
"""

from __future__ import annotations

import itertools
import threading
import time
from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Protocol, runtime_checkable

_EPOCH = datetime(2020, 1, 1, tzinfo=UTC)


@runtime_checkable
class IdGenerator(Protocol):
    def next_id(self) -> int: ...


def _seed_from_clock() -> int:
    """Milliseconds elapsed since 2020-01-01 UTC."""
    return int(time.time() * 1000) - int(_EPOCH.timestamp() * 1000)


class MonotonicIdGenerator:
    """Strictly increasing ids starting at ``seed``."""

    def __init__(self, seed: int | None = None) -> None:
        self._counter = itertools.count(_seed_from_clock() if seed is None else seed)
        self._lock = threading.Lock()

    def next_id(self) -> int:
        with self._lock:
            return next(self._counter)


class SequenceIdGenerator:
    """Hand out a fixed sequence of ids, then fail loudly.

    Useful to make id assignment deterministic in tests.
    """

    def __init__(self, ids: Iterable[int]) -> None:
        self._ids = iter(ids)

    def next_id(self) -> int:
        try:
            return next(self._ids)
        except StopIteration:
            raise RuntimeError("SequenceIdGenerator exhausted") from None


_default_generator = MonotonicIdGenerator()


def default_id_generator() -> IdGenerator:
    """The shared generator used when none is injected."""
    return _default_generator
