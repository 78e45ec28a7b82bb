"""In-memory store broadcasting the states of a single update.

This is the push-based way to consume :func:`pyupdated.driver.run_update`:
the notifier owns the current state, feeds it back to the driver, stores
every produced item before republishing it, and fans items out to
listeners.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from datetime import UTC, datetime, timedelta
from typing import Any, Generic, TypeVar

from pyupdated._ids import IdGenerator
from pyupdated.config import UpdateConfig
from pyupdated.driver import Producer, run_update
from pyupdated.exceptions import NotifierClosedError
from pyupdated.options import UpdateOverride
from pyupdated.update import NotLoaded, Update, Updated

_logger = logging.getLogger(__name__)

T = TypeVar("T")

Listener = Callable[[Update[T]], None]

_CLOSED: Any = object()


def _utcnow() -> datetime:
    return datetime.now(UTC)


class UpdateNotifier(Generic[T]):
    """Store for one :class:`~pyupdated.update.Update` value.

    Usage::

        async with UpdateNotifier[int]() as notifier:
            unsubscribe = notifier.listen(print)
            await notifier.execute(fetch_value, optimistic_value=32)
            unsubscribe()
    """

    def __init__(
        self,
        initial_value: T | None = None,
        *,
        config: UpdateConfig | None = None,
        id_generator: IdGenerator | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._config = config or UpdateConfig()
        self._id_generator = id_generator
        self._clock = clock
        self._state: Update[T]
        if initial_value is None:
            self._state = NotLoaded()
        else:
            self._state = Updated(id=0, value=initial_value, updated_at=clock())
        self._listeners: list[Listener[T]] = []
        self._queues: list[asyncio.Queue[Any]] = []
        self._closed = False

    async def __aenter__(self) -> UpdateNotifier[T]:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        self.close()

    @property
    def current_state(self) -> Update[T]:
        return self._state

    @property
    def closed(self) -> bool:
        return self._closed

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def listen(self, callback: Listener[T]) -> Callable[[], None]:
        """Call ``callback`` with every produced state; returns an unsubscribe function."""
        self._ensure_open()
        self._listeners.append(callback)

        def _unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return _unsubscribe

    def updates(self) -> AsyncIterator[Update[T]]:
        """Yield every state produced from now on, until :meth:`close`.

        The subscription starts when this method is called, not when the
        iterator is first advanced.
        """
        self._ensure_open()
        queue: asyncio.Queue[Any] = asyncio.Queue()
        self._queues.append(queue)
        return self._drain(queue)

    async def _drain(self, queue: asyncio.Queue[Any]) -> AsyncIterator[Update[T]]:
        try:
            while True:
                item = await queue.get()
                if item is _CLOSED:
                    return
                yield item
        finally:
            if queue in self._queues:
                self._queues.remove(queue)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def execute(
        self,
        producer: Producer[T],
        *,
        override: UpdateOverride | str | None = None,
        optimistic_value: T | None = None,
        expire_at: datetime | None = None,
        expire_after: timedelta | float | None = None,
    ) -> list[Update[T]]:
        """Run an update against the stored state.

        Every produced state is stored, then passed to listeners, in
        emission order.  Returns the produced states (zero to two).
        """
        self._ensure_open()
        if override is None:
            override = self._config.default_override
        if expire_after is None and expire_at is None:
            expire_after = self._config.expire_after_delta

        produced: list[Update[T]] = []
        async for item in run_update(
            producer,
            lambda: self._state,
            override=override,
            optimistic_value=optimistic_value,
            expire_at=expire_at,
            expire_after=expire_after,
            id_generator=self._id_generator,
            clock=self._clock,
        ):
            # Must be stored before the driver suspends again.
            self._state = item
            produced.append(item)
            self._publish(item)
        return produced

    def _publish(self, item: Update[T]) -> None:
        if self._closed:
            return
        for callback in list(self._listeners):
            try:
                callback(item)
            except Exception:
                _logger.debug("Update listener %r failed", callback, exc_info=True)
        for queue in self._queues:
            queue.put_nowait(item)

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Release listeners and end every :meth:`updates` iterator."""
        if self._closed:
            return
        self._closed = True
        self._listeners.clear()
        for queue in self._queues:
            queue.put_nowait(_CLOSED)

    def _ensure_open(self) -> None:
        if self._closed:
            raise NotifierClosedError("UpdateNotifier is closed")
