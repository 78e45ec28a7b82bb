"""Pure decisions taken by the update driver.

This module holds no state; the driver feeds it the current state, the
options and the current time.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from pyupdated.update import Update, Updated


def resolve_expiration(
    state: Updated[object],
    *,
    expire_at: datetime | None,
    expire_after: timedelta | None,
) -> datetime | None:
    """Return the instant after which ``state`` must be refreshed.

    An explicit ``expire_at`` wins; otherwise ``expire_after`` is counted
    from ``state.updated_at``.  ``None`` means "no expiration policy".
    """
    if expire_at is None and expire_after is not None:
        return state.updated_at + expire_after
    return expire_at


def is_expired(now: datetime, expire_at: datetime | None) -> bool:
    """Without an expiration instant a value is always considered expired."""
    if expire_at is None:
        return True
    return expire_at < now


def is_cancelled(current: Update[object], attempt_id: int) -> bool:
    """Whether the attempt ``attempt_id`` lost ownership of the state.

    Any state not tagged with ``attempt_id`` means another invocation (or
    a reset to :class:`~pyupdated.update.NotLoaded`) took over.
    """
    return current.maybe_map(
        updating=lambda state: state.id != attempt_id,
        updated=lambda state: state.id != attempt_id,
        failed_update=lambda state: state.id != attempt_id,
        refreshing=lambda state: state.id != attempt_id,
        failed_refresh=lambda state: state.id != attempt_id,
        or_else=lambda: True,
    )
