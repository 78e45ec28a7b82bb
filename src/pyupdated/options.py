"""Validated per-invocation options for the update driver."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from pyupdated.exceptions import UpdatedConfigError


class UpdateOverride(StrEnum):
    """What to do when an update is requested while another one is in flight."""

    #: Keep the in-flight attempt; the new request produces nothing.
    IGNORE = "ignore"
    #: Start a new attempt; the in-flight one has its result dropped.
    CANCEL_PREVIOUS = "cancel_previous"


class UpdateOptions(BaseModel):
    """Options of a single :func:`pyupdated.driver.run_update` invocation."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    override: UpdateOverride = UpdateOverride.IGNORE
    optimistic_value: Any = Field(
        default=None,
        description="Anticipated result exposed while the attempt is in flight.",
    )
    expire_at: datetime | None = Field(
        default=None,
        description="An Updated state is refreshed only once this instant has passed.",
    )
    expire_after: timedelta | None = Field(
        default=None,
        description="Used to derive expire_at from the last update time when expire_at is unset.",
    )

    @field_validator("expire_at")
    @classmethod
    def _ensure_tz_aware(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value

    @field_validator("expire_after")
    @classmethod
    def _non_negative(cls, value: timedelta | None) -> timedelta | None:
        if value is not None and value < timedelta(0):
            raise ValueError("expire_after must not be negative")
        return value

    @classmethod
    def build(cls, **values: Any) -> UpdateOptions:
        """Validate ``values``, raising :class:`UpdatedConfigError` on bad input."""
        try:
            return cls(**values)
        except ValidationError as exc:
            raise UpdatedConfigError(str(exc)) from exc
