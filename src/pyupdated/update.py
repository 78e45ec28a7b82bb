"""Lifecycle states of an asynchronously loaded value.

An :class:`Update` is always exactly one of six immutable variants:

* :class:`NotLoaded` - no load attempted yet.
* :class:`Updating` - first load in flight.
* :class:`Updated` - a value was obtained (first load or refresh).
* :class:`FailedUpdate` - the first load failed, no value was ever obtained.
* :class:`Refreshing` - a refresh of an already obtained value is in flight.
* :class:`FailedRefresh` - a refresh failed, the last good value is kept.

Consumers branch on the variant with :meth:`Update.map` (every handler
required) or :meth:`Update.maybe_map` (missing handlers fall back to
``or_else``).  The query helpers (``has_value``, ``is_loading``, ...) are
all expressed on top of those two dispatchers.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Generic, TypeVar

from pyupdated.exceptions import UpdateContractError

T = TypeVar("T")
T1 = TypeVar("T1")
T2 = TypeVar("T2")
T3 = TypeVar("T3")
K = TypeVar("K")

_HANDLER_NAMES = frozenset(
    {"not_loaded", "updating", "failed_update", "refreshing", "failed_refresh", "updated"}
)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Update(Generic[T]):
    """Base of the six lifecycle variants.

    Never instantiated directly; use :class:`NotLoaded` as the initial state.
    """

    __slots__ = ()

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def map(
        self,
        *,
        not_loaded: Callable[[NotLoaded[T]], K],
        updating: Callable[[Updating[T]], K],
        failed_update: Callable[[FailedUpdate[T]], K],
        refreshing: Callable[[Refreshing[T]], K],
        failed_refresh: Callable[[FailedRefresh[T]], K],
        updated: Callable[[Updated[T]], K],
    ) -> K:
        """Map the current state to a ``K`` value.

        Every handler is mandatory.
        """
        handlers = {
            "not_loaded": not_loaded,
            "updating": updating,
            "failed_update": failed_update,
            "refreshing": refreshing,
            "failed_refresh": failed_refresh,
            "updated": updated,
        }
        missing = sorted(name for name, handler in handlers.items() if handler is None)
        if missing:
            raise UpdateContractError(f"map() requires a handler for: {', '.join(missing)}")
        return handlers[self._variant()](self)

    def maybe_map(self, *, or_else: Callable[[], K], **handlers: Callable[[Any], K] | None) -> K:
        """Map the current state to a ``K`` value.

        ``or_else`` is called for any variant without a handler.
        """
        if or_else is None:
            raise UpdateContractError("maybe_map() requires an or_else fallback")
        unknown = sorted(set(handlers) - _HANDLER_NAMES)
        if unknown:
            raise UpdateContractError(f"maybe_map() got unknown handlers: {', '.join(unknown)}")
        handler = handlers.get(self._variant())
        if handler is None:
            return or_else()
        return handler(self)

    def _variant(self) -> str:
        match self:
            case Updated():
                return "updated"
            case NotLoaded():
                return "not_loaded"
            case FailedUpdate():
                return "failed_update"
            case Updating():
                return "updating"
            case Refreshing():
                return "refreshing"
            case FailedRefresh():
                return "failed_refresh"
        raise UpdateContractError(f"{type(self).__name__} is not an Update variant")

    # ------------------------------------------------------------------
    # Value
    # ------------------------------------------------------------------

    def map_value(self, *, value: Callable[[T, bool], K], or_else: Callable[[], K]) -> K:
        """Map the available value, if any.

        ``value`` receives the value and whether it is an optimistic one.
        Optimistic values take precedence over the previous confirmed value
        while refreshing.
        """

        def _refreshing(state: Refreshing[T]) -> K:
            if state.optimistic_value is not None:
                return value(state.optimistic_value, True)
            return value(state.previous_update.value, False)

        def _updating(state: Updating[T]) -> K:
            if state.optimistic_value is not None:
                return value(state.optimistic_value, True)
            return or_else()

        return self.map(
            not_loaded=lambda _: or_else(),
            updating=_updating,
            failed_update=lambda _: or_else(),
            refreshing=_refreshing,
            failed_refresh=lambda state: value(state.previous_update.value, False),
            updated=lambda state: value(state.value, False),
        )

    def get_value(self, default_value: Callable[[], T]) -> T:
        """Return the available value (optimistic or not), else ``default_value()``."""
        return self.map_value(value=lambda v, _: v, or_else=default_value)

    @property
    def has_value(self) -> bool:
        return self.map_value(value=lambda *_: True, or_else=lambda: False)

    # ------------------------------------------------------------------
    # Loading / failure
    # ------------------------------------------------------------------

    @property
    def is_loading(self) -> bool:
        """``True`` for :class:`Updating` and :class:`Refreshing`."""
        return self.maybe_map(
            updating=lambda _: True,
            refreshing=lambda _: True,
            or_else=lambda: False,
        )

    @property
    def has_failed(self) -> bool:
        """``True`` for :class:`FailedUpdate` and :class:`FailedRefresh`."""
        return self.maybe_map(
            failed_update=lambda _: True,
            failed_refresh=lambda _: True,
            or_else=lambda: False,
        )

    @property
    def has_succeeded(self) -> bool:
        return self.maybe_map(updated=lambda _: True, or_else=lambda: False)

    def map_loading(self, *, loading: Callable[[], K], not_loading: Callable[[], K]) -> K:
        return loading() if self.is_loading else not_loading()

    def map_error(self, *, error: Callable[[BaseException, str | None], K], or_else: Callable[[], K]) -> K:
        """Map the failure of a failed state, else call ``or_else``."""
        return self.maybe_map(
            failed_update=lambda state: error(state.error, state.stack_trace),
            failed_refresh=lambda state: error(state.error, state.stack_trace),
            or_else=or_else,
        )

    # ------------------------------------------------------------------
    # Merge
    # ------------------------------------------------------------------

    @staticmethod
    def combine(
        update1: Update[T1],
        update2: Update[T2],
        combine_values: Callable[[T1, T2], T3],
    ) -> Update[T3]:
        """Combine two updates into one.

        When both sides carry a value they are merged with ``combine_values``.
        The result follows a fixed per-variant table which is neither
        symmetric nor associative; see ``_MERGE_TABLE`` below.
        """
        if not callable(combine_values):
            raise UpdateContractError("combine_values must be callable")
        cell = _MERGE_TABLE[(_variant_type(update1), _variant_type(update2))]
        return cell(update1, update2, combine_values)


@dataclass(frozen=True, slots=True, eq=False)
class NotLoaded(Update[T]):
    """No load attempted yet. All instances are equal."""

    def __eq__(self, other: object) -> bool:
        return isinstance(other, NotLoaded)

    def __hash__(self) -> int:
        return hash(NotLoaded)


@dataclass(frozen=True, slots=True, eq=False)
class Updating(Update[T]):
    """First load in flight."""

    id: int
    optimistic_value: T | None = None
    started_at: datetime = field(default_factory=_utcnow)

    @classmethod
    def from_not_loaded(
        cls,
        previous: NotLoaded[T],
        *,
        id: int,
        optimistic_value: T | None = None,
        now: datetime | None = None,
    ) -> Updating[T]:
        _expect(previous, NotLoaded)
        return cls(id=id, optimistic_value=optimistic_value, started_at=now or _utcnow())

    @classmethod
    def from_failed(
        cls,
        previous: FailedUpdate[T],
        *,
        id: int,
        optimistic_value: T | None = None,
        now: datetime | None = None,
    ) -> Updating[T]:
        _expect(previous, FailedUpdate)
        return cls(id=id, optimistic_value=optimistic_value, started_at=now or _utcnow())

    @classmethod
    def cancelling(
        cls,
        previous: Updating[T],
        *,
        id: int,
        optimistic_value: T | None = None,
        now: datetime | None = None,
    ) -> Updating[T]:
        """Start a new attempt superseding the in-flight ``previous`` one."""
        _expect(previous, Updating)
        return cls(id=id, optimistic_value=optimistic_value, started_at=now or _utcnow())

    def __eq__(self, other: object) -> bool:
        return (
            isinstance(other, Updating)
            and self.id == other.id
            and self.optimistic_value == other.optimistic_value
        )

    def __hash__(self) -> int:
        return hash((Updating, self.id, _hash_or_zero(self.optimistic_value)))


@dataclass(frozen=True, slots=True, eq=False)
class Updated(Update[T]):
    """A value was obtained."""

    id: int
    value: T
    updated_at: datetime = field(default_factory=_utcnow)

    @classmethod
    def from_updating(cls, previous: Updating[T], value: T, *, now: datetime | None = None) -> Updated[T]:
        _expect(previous, Updating)
        return cls(id=previous.id, value=value, updated_at=now or _utcnow())

    @classmethod
    def from_refreshing(cls, previous: Refreshing[T], value: T, *, now: datetime | None = None) -> Updated[T]:
        _expect(previous, Refreshing)
        return cls(id=previous.id, value=value, updated_at=now or _utcnow())

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Updated) and self.id == other.id and self.value == other.value

    def __hash__(self) -> int:
        return hash((Updated, self.id, _hash_or_zero(self.value)))


@dataclass(frozen=True, slots=True, eq=False)
class FailedUpdate(Update[T]):
    """The first load failed.

    ``stack_trace`` holds the formatted traceback of ``error`` when known.
    """

    id: int
    error: BaseException
    stack_trace: str | None = None
    failed_at: datetime = field(default_factory=_utcnow)

    @classmethod
    def from_updating(
        cls,
        previous: Updating[T],
        *,
        error: BaseException,
        stack_trace: str | None = None,
        now: datetime | None = None,
    ) -> FailedUpdate[T]:
        _expect(previous, Updating)
        return cls(id=previous.id, error=error, stack_trace=stack_trace, failed_at=now or _utcnow())

    def __eq__(self, other: object) -> bool:
        return isinstance(other, FailedUpdate) and self.id == other.id

    def __hash__(self) -> int:
        return hash((FailedUpdate, self.id))


@dataclass(frozen=True, slots=True, eq=False)
class Refreshing(Update[T]):
    """A refresh of ``previous_update`` is in flight."""

    id: int
    previous_update: Updated[T]
    optimistic_value: T | None = None
    started_at: datetime = field(default_factory=_utcnow)

    def __post_init__(self) -> None:
        _expect_previous_update(self.previous_update)

    @classmethod
    def from_updated(
        cls,
        previous: Updated[T],
        *,
        id: int,
        optimistic_value: T | None = None,
        now: datetime | None = None,
    ) -> Refreshing[T]:
        return cls(
            id=id,
            previous_update=previous,
            optimistic_value=optimistic_value,
            started_at=now or _utcnow(),
        )

    @classmethod
    def from_failed(
        cls,
        previous: FailedRefresh[T],
        *,
        id: int,
        optimistic_value: T | None = None,
        now: datetime | None = None,
    ) -> Refreshing[T]:
        _expect(previous, FailedRefresh)
        return cls(
            id=id,
            previous_update=previous.previous_update,
            optimistic_value=optimistic_value,
            started_at=now or _utcnow(),
        )

    @classmethod
    def cancelling(
        cls,
        previous: Refreshing[T],
        *,
        id: int,
        optimistic_value: T | None = None,
        now: datetime | None = None,
    ) -> Refreshing[T]:
        """Start a new refresh superseding the in-flight ``previous`` one."""
        _expect(previous, Refreshing)
        return cls(
            id=id,
            previous_update=previous.previous_update,
            optimistic_value=optimistic_value,
            started_at=now or _utcnow(),
        )

    def __eq__(self, other: object) -> bool:
        return (
            isinstance(other, Refreshing)
            and self.id == other.id
            and self.optimistic_value == other.optimistic_value
            and self.previous_update == other.previous_update
        )

    def __hash__(self) -> int:
        return hash((Refreshing, self.id, _hash_or_zero(self.optimistic_value), self.previous_update))


@dataclass(frozen=True, slots=True, eq=False)
class FailedRefresh(Update[T]):
    """A refresh failed; ``previous_update`` is the last good value."""

    id: int
    previous_update: Updated[T]
    error: BaseException
    stack_trace: str | None = None
    failed_at: datetime = field(default_factory=_utcnow)

    def __post_init__(self) -> None:
        _expect_previous_update(self.previous_update)

    @classmethod
    def from_refreshing(
        cls,
        previous: Refreshing[T],
        *,
        error: BaseException,
        stack_trace: str | None = None,
        now: datetime | None = None,
    ) -> FailedRefresh[T]:
        _expect(previous, Refreshing)
        return cls(
            id=previous.id,
            previous_update=previous.previous_update,
            error=error,
            stack_trace=stack_trace,
            failed_at=now or _utcnow(),
        )

    def __eq__(self, other: object) -> bool:
        return (
            isinstance(other, FailedRefresh)
            and self.id == other.id
            and self.previous_update == other.previous_update
        )

    def __hash__(self) -> int:
        return hash((FailedRefresh, self.id, self.previous_update))


def _expect(previous: object, variant: type[Update[Any]]) -> None:
    if not isinstance(previous, variant):
        raise UpdateContractError(f"expected a {variant.__name__} state, got {type(previous).__name__}")


def _expect_previous_update(previous_update: object) -> None:
    # A refresh can only start from a confirmed value.
    if not isinstance(previous_update, Updated):
        raise UpdateContractError(
            f"previous_update must be an Updated state, got {type(previous_update).__name__}"
        )


def _hash_or_zero(value: object) -> int:
    try:
        return hash(value)
    except TypeError:
        # Unhashable payloads (lists, dicts) still compare structurally.
        return 0


# ---------------------------------------------------------------------------
# Merge table
#
# The result of combining two updates is looked up in an explicit 6x6 table
# keyed by the variants of both sides.  It is deliberately neither symmetric
# nor associative: a first-load failure on either side makes the pair a
# first-load failure, a refresh paired with a first load degrades to a first
# load, and when both sides failed a refresh the first side's error wins.
#
# Composite ids are ``a.id ^ b.id``: stable for the same pair of source ids,
# though distinct pairs may collide.  Cells where only one side carries an
# id keep that side's id unchanged.
# ---------------------------------------------------------------------------

_Combiner = Callable[[Any, Any], Any]
_Cell = Callable[[Any, Any, _Combiner], Update[Any]]


def _merge_updated(a: Updated[Any], b: Updated[Any], combine_values: _Combiner) -> Updated[Any]:
    return Updated(
        id=a.id ^ b.id,
        value=combine_values(a.value, b.value),
        updated_at=a.updated_at,
    )


def _confirmed(state: Any) -> Updated[Any]:
    if isinstance(state, Updated):
        return state
    return state.previous_update


def _started_at(*states: Update[Any]) -> datetime:
    return min(state.started_at for state in states if isinstance(state, Updating | Refreshing))


def _not_loaded(a: Any, b: Any, combine_values: _Combiner) -> Update[Any]:
    return NotLoaded()


def _fail_with_a(a: Any, b: Any, combine_values: _Combiner) -> Update[Any]:
    """First-load failure carrying only ``a``'s id and error."""
    return FailedUpdate(id=a.id, error=a.error, stack_trace=a.stack_trace, failed_at=a.failed_at)


def _fail_with_b(a: Any, b: Any, combine_values: _Combiner) -> Update[Any]:
    """First-load failure carrying only ``b``'s id and error."""
    return FailedUpdate(id=b.id, error=b.error, stack_trace=b.stack_trace, failed_at=b.failed_at)


def _fail_with_b_paired(a: Any, b: Any, combine_values: _Combiner) -> Update[Any]:
    return FailedUpdate(id=a.id ^ b.id, error=b.error, stack_trace=b.stack_trace, failed_at=b.failed_at)


def _updating_a(a: Any, b: Any, combine_values: _Combiner) -> Update[Any]:
    return Updating(id=a.id, started_at=_started_at(a))


def _updating_paired(a: Any, b: Any, combine_values: _Combiner) -> Update[Any]:
    return Updating(id=a.id ^ b.id, started_at=_started_at(a, b))


def _refreshing(a: Any, b: Any, combine_values: _Combiner) -> Update[Any]:
    return Refreshing(
        id=a.id ^ b.id,
        previous_update=_merge_updated(_confirmed(a), _confirmed(b), combine_values),
        started_at=_started_at(a, b),
    )


def _failed_refresh_a(a: Any, b: Any, combine_values: _Combiner) -> Update[Any]:
    return FailedRefresh(
        id=a.id ^ b.id,
        previous_update=_merge_updated(_confirmed(a), _confirmed(b), combine_values),
        error=a.error,
        stack_trace=a.stack_trace,
        failed_at=a.failed_at,
    )


def _failed_refresh_b(a: Any, b: Any, combine_values: _Combiner) -> Update[Any]:
    return FailedRefresh(
        id=a.id ^ b.id,
        previous_update=_merge_updated(_confirmed(a), _confirmed(b), combine_values),
        error=b.error,
        stack_trace=b.stack_trace,
        failed_at=b.failed_at,
    )


def _updated(a: Any, b: Any, combine_values: _Combiner) -> Update[Any]:
    return _merge_updated(a, b, combine_values)


_MERGE_TABLE: dict[tuple[type, type], _Cell] = {
    # NotLoaded row: only a failure on the other side escapes NotLoaded.
    (NotLoaded, NotLoaded): _not_loaded,
    (NotLoaded, Updating): _not_loaded,
    (NotLoaded, FailedUpdate): _fail_with_b,
    (NotLoaded, Refreshing): _not_loaded,
    (NotLoaded, FailedRefresh): _fail_with_b,
    (NotLoaded, Updated): _not_loaded,
    # Updating row
    (Updating, NotLoaded): _updating_a,
    (Updating, Updating): _updating_paired,
    (Updating, FailedUpdate): _fail_with_b_paired,
    (Updating, Refreshing): _updating_paired,
    (Updating, FailedRefresh): _fail_with_b_paired,
    (Updating, Updated): _updating_paired,
    # FailedUpdate row: always a's failure.
    (FailedUpdate, NotLoaded): _fail_with_a,
    (FailedUpdate, Updating): _fail_with_a,
    (FailedUpdate, FailedUpdate): _fail_with_a,
    (FailedUpdate, Refreshing): _fail_with_a,
    (FailedUpdate, FailedRefresh): _fail_with_a,
    (FailedUpdate, Updated): _fail_with_a,
    # Refreshing row
    (Refreshing, NotLoaded): _updating_a,
    (Refreshing, Updating): _updating_paired,
    (Refreshing, FailedUpdate): _fail_with_b_paired,
    (Refreshing, Refreshing): _refreshing,
    (Refreshing, FailedRefresh): _failed_refresh_b,
    (Refreshing, Updated): _refreshing,
    # FailedRefresh row
    (FailedRefresh, NotLoaded): _fail_with_a,
    (FailedRefresh, Updating): _updating_paired,
    (FailedRefresh, FailedUpdate): _fail_with_b_paired,
    (FailedRefresh, Refreshing): _failed_refresh_a,
    (FailedRefresh, FailedRefresh): _failed_refresh_a,
    (FailedRefresh, Updated): _failed_refresh_a,
    # Updated row
    (Updated, NotLoaded): _not_loaded,
    (Updated, Updating): _updating_paired,
    (Updated, FailedUpdate): _fail_with_b_paired,
    (Updated, Refreshing): _refreshing,
    (Updated, FailedRefresh): _failed_refresh_b,
    (Updated, Updated): _updated,
}


def _variant_type(update: object) -> type:
    for variant in (NotLoaded, Updating, FailedUpdate, Refreshing, FailedRefresh, Updated):
        if isinstance(update, variant):
            return variant
    raise UpdateContractError(f"{type(update).__name__} is not an Update variant")
