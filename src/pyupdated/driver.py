"""Update driver: runs one attempt and yields the resulting states.

Usage::

    state = NotLoaded()
    async for item in run_update(fetch, lambda: state, optimistic_value=32):
        state = item

:func:`run_update` inspects the current state once, at call time, and
decides whether an attempt starts at all.  When it does, the returned
iterator yields the transient state (:class:`Updating` or
:class:`Refreshing`) before awaiting the producer, then the terminal state
once the producer settles, unless the attempt was superseded meanwhile.

An attempt is superseded when the state returned by ``get_current_state``
after the producer settles no longer carries the attempt's id.  The
producer itself is never interrupted; only its result is dropped.  This is
correct only if the caller stores every yielded item before the next
suspension point, so that ``get_current_state`` always returns the latest
accepted state.
"""

from __future__ import annotations

import logging
import traceback
from collections.abc import AsyncIterator, Awaitable, Callable
from datetime import UTC, datetime, timedelta
from functools import partial
from typing import Any, TypeVar

from pyupdated import policy
from pyupdated._ids import IdGenerator, default_id_generator
from pyupdated.exceptions import UpdateContractError
from pyupdated.options import UpdateOptions, UpdateOverride
from pyupdated.update import (
    FailedRefresh,
    FailedUpdate,
    Refreshing,
    Update,
    Updated,
    Updating,
)

_logger = logging.getLogger(__name__)

T = TypeVar("T")

Producer = Callable[[], Awaitable[T]]
# Builds the transient state of a new attempt from (id, optimistic_value, now).
_Start = Callable[..., "Updating[Any] | Refreshing[Any]"]


def _utcnow() -> datetime:
    return datetime.now(UTC)


def run_update(
    producer: Producer[T],
    get_current_state: Callable[[], Update[T]],
    *,
    override: UpdateOverride | str = UpdateOverride.IGNORE,
    optimistic_value: T | None = None,
    expire_at: datetime | None = None,
    expire_after: timedelta | float | None = None,
    id_generator: IdGenerator | None = None,
    clock: Callable[[], datetime] | None = None,
) -> AsyncIterator[Update[T]]:
    """Start an update from the state returned by ``get_current_state``.

    Parameters
    ----------
    producer : callable
        Zero-argument callable returning an awaitable of the new value.
        Any exception it raises becomes a failure state.
    get_current_state : callable
        Returns the latest accepted state.  Read once now and once more
        after the producer settles.
    override : UpdateOverride
        Behaviour when an attempt is already in flight.
    optimistic_value : object, optional
        Anticipated value exposed by the transient state.
    expire_at : datetime, optional
        An ``Updated`` state is refreshed only if this instant is in the
        past.  Naive datetimes are taken as UTC.
    expire_after : timedelta or float, optional
        Lifetime (seconds when numeric) of an ``Updated`` value, used when
        ``expire_at`` is not given.
    id_generator : IdGenerator, optional
        Source of attempt ids.  Defaults to the process-wide generator.
    clock : callable, optional
        Returns the current aware datetime.

    Returns
    -------
    AsyncIterator[Update]
        Zero, one or two states.

    Raises
    ------
    UpdateContractError
        If ``producer`` or ``get_current_state`` is missing.
    UpdatedConfigError
        If the options are invalid.
    """
    if producer is None or not callable(producer):
        raise UpdateContractError("producer must be a callable returning an awaitable")
    if get_current_state is None or not callable(get_current_state):
        raise UpdateContractError("get_current_state must be a callable returning an Update")

    options = UpdateOptions.build(
        override=override,
        optimistic_value=optimistic_value,
        expire_at=expire_at,
        expire_after=expire_after,
    )
    ids = id_generator if id_generator is not None else default_id_generator()
    now = clock if clock is not None else _utcnow

    current = get_current_state()
    start = _plan(current, options, now())
    if start is None:
        return _skipped()
    return _attempt(start, producer, get_current_state, ids, options.optimistic_value, now)


def _plan(current: Update[Any], options: UpdateOptions, now: datetime) -> _Start | None:
    """Pick the transient constructor for ``current``, or ``None`` to do nothing."""
    cancel_previous = options.override == UpdateOverride.CANCEL_PREVIOUS

    def _updating(state: Updating[Any]) -> _Start | None:
        if not cancel_previous:
            _logger.debug("Update id=%d already in flight; ignoring request", state.id)
            return None
        return partial(Updating.cancelling, state)

    def _refreshing(state: Refreshing[Any]) -> _Start | None:
        if not cancel_previous:
            _logger.debug("Refresh id=%d already in flight; ignoring request", state.id)
            return None
        return partial(Refreshing.cancelling, state)

    def _updated(state: Updated[Any]) -> _Start | None:
        expire_at = policy.resolve_expiration(
            state,
            expire_at=options.expire_at,
            expire_after=options.expire_after,
        )
        if not policy.is_expired(now, expire_at):
            _logger.debug("Value id=%d still fresh until %s; not refreshing", state.id, expire_at)
            return None
        return partial(Refreshing.from_updated, state)

    return current.map(
        not_loaded=lambda state: partial(Updating.from_not_loaded, state),
        failed_update=lambda state: partial(Updating.from_failed, state),
        updating=_updating,
        refreshing=_refreshing,
        updated=_updated,
        failed_refresh=lambda state: partial(Refreshing.from_failed, state),
    )


async def _skipped() -> AsyncIterator[Update[Any]]:
    return
    yield  # pragma: no cover


async def _attempt(
    start: _Start,
    producer: Producer[T],
    get_current_state: Callable[[], Update[T]],
    ids: IdGenerator,
    optimistic_value: T | None,
    clock: Callable[[], datetime],
) -> AsyncIterator[Update[T]]:
    transient = start(id=ids.next_id(), optimistic_value=optimistic_value, now=clock())
    _logger.debug("Starting %s id=%d", type(transient).__name__, transient.id)
    yield transient

    try:
        result = await producer()
    except Exception as exc:
        if policy.is_cancelled(get_current_state(), transient.id):
            _logger.debug("Attempt id=%d was superseded; dropping its failure", transient.id)
            return
        _logger.debug("Attempt id=%d failed: %r", transient.id, exc)
        yield _failure(transient, exc, clock())
        return

    if policy.is_cancelled(get_current_state(), transient.id):
        _logger.debug("Attempt id=%d was superseded; dropping its result", transient.id)
        return
    _logger.debug("Attempt id=%d succeeded", transient.id)
    yield _success(transient, result, clock())


def _success(transient: Updating[T] | Refreshing[T], value: T, now: datetime) -> Updated[T]:
    if isinstance(transient, Refreshing):
        return Updated.from_refreshing(transient, value, now=now)
    return Updated.from_updating(transient, value, now=now)


def _failure(
    transient: Updating[T] | Refreshing[T],
    error: Exception,
    now: datetime,
) -> FailedUpdate[T] | FailedRefresh[T]:
    stack_trace = "".join(traceback.format_exception(error))
    if isinstance(transient, Refreshing):
        return FailedRefresh.from_refreshing(transient, error=error, stack_trace=stack_trace, now=now)
    return FailedUpdate.from_updating(transient, error=error, stack_trace=stack_trace, now=now)
