"""Tests for Update.combine and its merge table."""

from __future__ import annotations

import operator
from datetime import UTC, datetime, timedelta

import pytest

from pyupdated.exceptions import UpdateContractError
from pyupdated.update import (
    FailedRefresh,
    FailedUpdate,
    NotLoaded,
    Refreshing,
    Update,
    Updated,
    Updating,
)

T0 = datetime(2026, 1, 1, tzinfo=UTC)
T1 = T0 + timedelta(minutes=5)

ERROR_A = RuntimeError("left failed")
ERROR_B = RuntimeError("right failed")

# Left ids live in the low byte, right ids in the second byte, so that
# every XOR pairing is recognizable.
PREVIOUS_A = Updated(id=0x10, value=1, updated_at=T0)
PREVIOUS_B = Updated(id=0x1000, value=10, updated_at=T1)


def _left() -> dict[str, Update[int]]:
    return {
        "not_loaded": NotLoaded(),
        "updating": Updating(id=0x01, started_at=T0),
        "failed_update": FailedUpdate(id=0x02, error=ERROR_A, stack_trace="trace A", failed_at=T0),
        "refreshing": Refreshing(id=0x03, previous_update=PREVIOUS_A, started_at=T0),
        "failed_refresh": FailedRefresh(id=0x04, previous_update=PREVIOUS_A, error=ERROR_A, failed_at=T0),
        "updated": PREVIOUS_A,
    }


def _right() -> dict[str, Update[int]]:
    return {
        "not_loaded": NotLoaded(),
        "updating": Updating(id=0x100, started_at=T1),
        "failed_update": FailedUpdate(id=0x200, error=ERROR_B, stack_trace="trace B", failed_at=T1),
        "refreshing": Refreshing(id=0x300, previous_update=PREVIOUS_B, started_at=T1),
        "failed_refresh": FailedRefresh(id=0x400, previous_update=PREVIOUS_B, error=ERROR_B, failed_at=T1),
        "updated": PREVIOUS_B,
    }


def _variant(update: Update[int]) -> str:
    return update.map(
        not_loaded=lambda _: "not_loaded",
        updating=lambda _: "updating",
        failed_update=lambda _: "failed_update",
        refreshing=lambda _: "refreshing",
        failed_refresh=lambda _: "failed_refresh",
        updated=lambda _: "updated",
    )


_COLUMNS = ("not_loaded", "updating", "failed_update", "refreshing", "failed_refresh", "updated")

# Expected result variant, row = left side, columns in _COLUMNS order.
_EXPECTED: dict[str, tuple[str, ...]] = {
    "not_loaded": ("not_loaded", "not_loaded", "failed_update", "not_loaded", "failed_update", "not_loaded"),
    "updating": ("updating", "updating", "failed_update", "updating", "failed_update", "updating"),
    "failed_update": ("failed_update",) * 6,
    "refreshing": ("updating", "updating", "failed_update", "refreshing", "failed_refresh", "refreshing"),
    "failed_refresh": (
        "failed_update",
        "updating",
        "failed_update",
        "failed_refresh",
        "failed_refresh",
        "failed_refresh",
    ),
    "updated": ("not_loaded", "updating", "failed_update", "refreshing", "failed_refresh", "updated"),
}


@pytest.mark.parametrize(
    ("left", "right", "expected"),
    [(row, column, _EXPECTED[row][index]) for row in _EXPECTED for index, column in enumerate(_COLUMNS)],
)
def test_merge_table(left: str, right: str, expected: str) -> None:
    result = Update.combine(_left()[left], _right()[right], operator.add)
    assert _variant(result) == expected


# ------------------------------------------------------------------
# Successful values
# ------------------------------------------------------------------


def test_updated_pair_combines_values_and_ids() -> None:
    result = Update.combine(Updated(id=5, value=2), Updated(id=3, value="x"), lambda n, s: s * n)
    assert result == Updated(id=5 ^ 3, value="xx")


def test_updated_pair_keeps_left_timestamp() -> None:
    result = Update.combine(PREVIOUS_A, PREVIOUS_B, operator.add)
    assert isinstance(result, Updated)
    assert result.updated_at == T0
    assert result.value == 11


def test_refreshing_pair_wraps_merged_previous_values() -> None:
    left = _left()["refreshing"]
    right = _right()["refreshing"]
    result = Update.combine(left, right, operator.add)
    assert result == Refreshing(
        id=0x03 ^ 0x300,
        previous_update=Updated(id=0x10 ^ 0x1000, value=11),
    )
    assert result.get_value(lambda: -1) == 11


def test_updated_with_refreshing_wraps_merged_value() -> None:
    result = Update.combine(PREVIOUS_A, _right()["refreshing"], operator.add)
    assert result == Refreshing(
        id=0x10 ^ 0x300,
        previous_update=Updated(id=0x10 ^ 0x1000, value=11),
    )
    assert result.map(
        not_loaded=lambda _: None,
        updating=lambda _: None,
        failed_update=lambda _: None,
        refreshing=lambda s: s.started_at,
        failed_refresh=lambda _: None,
        updated=lambda _: None,
    ) == T1


def test_values_are_combined_in_argument_order() -> None:
    result = Update.combine(Updated(id=1, value="a"), Updated(id=2, value="b"), operator.add)
    swapped = Update.combine(Updated(id=2, value="b"), Updated(id=1, value="a"), operator.add)
    assert result.get_value(lambda: "") == "ab"
    assert swapped.get_value(lambda: "") == "ba"


# ------------------------------------------------------------------
# Failures
# ------------------------------------------------------------------


class TestFailures:
    def test_failed_update_on_the_left_wins_with_its_own_id(self) -> None:
        left = FailedUpdate(id=1, error=ERROR_A)
        result = Update.combine(left, Updated(id=2, value=5), operator.add)
        assert result == FailedUpdate(id=1, error=ERROR_A)
        assert result.map_error(error=lambda e, _: e, or_else=lambda: None) is ERROR_A

    def test_failed_update_on_the_right_pairs_ids(self) -> None:
        right = FailedUpdate(id=1, error=ERROR_B)
        result = Update.combine(Updated(id=2, value=5), right, operator.add)
        assert result == FailedUpdate(id=2 ^ 1, error=ERROR_B)
        assert result.map_error(error=lambda e, _: e, or_else=lambda: None) is ERROR_B

    def test_not_loaded_with_failure_takes_the_failure(self) -> None:
        right = _right()["failed_refresh"]
        result = Update.combine(NotLoaded(), right, operator.add)
        assert result == FailedUpdate(id=0x400, error=ERROR_B)
        assert not result.has_value

    def test_failed_refresh_with_not_loaded_degrades_to_failed_update(self) -> None:
        result = Update.combine(_left()["failed_refresh"], NotLoaded(), operator.add)
        assert result == FailedUpdate(id=0x04, error=ERROR_A)

    def test_refreshing_with_failed_refresh_keeps_right_error(self) -> None:
        result = Update.combine(_left()["refreshing"], _right()["failed_refresh"], operator.add)
        assert result == FailedRefresh(
            id=0x03 ^ 0x400,
            previous_update=Updated(id=0x10 ^ 0x1000, value=11),
            error=ERROR_B,
        )
        assert result.map_error(error=lambda e, _: e, or_else=lambda: None) is ERROR_B
        assert result.get_value(lambda: -1) == 11

    def test_failed_refresh_with_refreshing_keeps_left_error(self) -> None:
        result = Update.combine(_left()["failed_refresh"], _right()["refreshing"], operator.add)
        assert result.map_error(error=lambda e, _: e, or_else=lambda: None) is ERROR_A

    def test_failed_refresh_pair_keeps_left_error(self) -> None:
        result = Update.combine(_left()["failed_refresh"], _right()["failed_refresh"], operator.add)
        assert result == FailedRefresh(
            id=0x04 ^ 0x400,
            previous_update=Updated(id=0x10 ^ 0x1000, value=11),
            error=ERROR_A,
        )
        assert result.map_error(error=lambda e, trace: e, or_else=lambda: None) is ERROR_A

    def test_updated_with_failed_refresh_keeps_right_error(self) -> None:
        result = Update.combine(PREVIOUS_A, _right()["failed_refresh"], operator.add)
        assert result.map_error(error=lambda e, _: e, or_else=lambda: None) is ERROR_B
        assert result.get_value(lambda: -1) == 11


# ------------------------------------------------------------------
# Asymmetries
# ------------------------------------------------------------------


@pytest.mark.parametrize(
    ("left", "right", "expected", "swapped_expected"),
    [
        ("not_loaded", "refreshing", "not_loaded", "updating"),
        ("not_loaded", "updating", "not_loaded", "updating"),
        ("updated", "not_loaded", "not_loaded", "not_loaded"),
        ("failed_refresh", "not_loaded", "failed_update", "failed_update"),
        ("refreshing", "failed_refresh", "failed_refresh", "failed_refresh"),
    ],
)
def test_swapped_arguments(left: str, right: str, expected: str, swapped_expected: str) -> None:
    assert _variant(Update.combine(_left()[left], _right()[right], operator.add)) == expected
    assert _variant(Update.combine(_right()[right], _left()[left], operator.add)) == swapped_expected


def test_combine_values_is_not_called_without_two_values() -> None:
    def _fail(a: int, b: int) -> int:
        raise AssertionError("combine_values should not be called")

    Update.combine(_left()["updating"], _right()["updated"], _fail)
    Update.combine(NotLoaded(), _right()["refreshing"], _fail)


def test_combine_rejects_missing_combiner() -> None:
    with pytest.raises(UpdateContractError):
        Update.combine(NotLoaded(), NotLoaded(), None)  # type: ignore[arg-type]
