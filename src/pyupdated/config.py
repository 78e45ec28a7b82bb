"""Notifier configuration for pyupdated."""

from __future__ import annotations

import dataclasses
import os
from datetime import timedelta
from typing import Any

from pyupdated.exceptions import UpdatedConfigError
from pyupdated.options import UpdateOverride


def _env_override(value: str | None, default: UpdateOverride) -> UpdateOverride:
    if value is None:
        return default
    normalized = value.strip().lower().replace("-", "_")
    try:
        return UpdateOverride(normalized)
    except ValueError:
        raise UpdatedConfigError(f"Unknown override policy: {value!r}") from None


def _env_seconds(value: str | None) -> float | None:
    if value is None or not value.strip():
        return None
    try:
        seconds = float(value)
    except ValueError:
        raise UpdatedConfigError(f"Expected a number of seconds, got {value!r}") from None
    if seconds < 0:
        raise UpdatedConfigError("expire_after must not be negative")
    return seconds


@dataclasses.dataclass(frozen=True)
class UpdateConfig:
    """Defaults applied by :class:`~pyupdated.notifier.UpdateNotifier`.

    Parameters
    ----------
    default_override : UpdateOverride
        Override policy used when ``execute`` is called without one.
    expire_after : float or None
        Lifetime in seconds of an ``Updated`` value before ``execute``
        refreshes it.  ``None`` refreshes on every call.
    """

    default_override: UpdateOverride = UpdateOverride.IGNORE
    expire_after: float | None = None

    def __post_init__(self) -> None:
        if self.expire_after is not None and self.expire_after < 0:
            raise UpdatedConfigError("expire_after must not be negative")

    @property
    def expire_after_delta(self) -> timedelta | None:
        if self.expire_after is None:
            return None
        return timedelta(seconds=self.expire_after)

    @classmethod
    def from_env(cls, **overrides: Any) -> UpdateConfig:
        """Create configuration from environment variables.

        Reads ``UPDATED_DEFAULT_OVERRIDE`` (``ignore`` or
        ``cancel_previous``) and ``UPDATED_EXPIRE_AFTER`` (seconds).
        Explicit keyword arguments override environment values.
        """
        env = os.environ

        config_kwargs: dict[str, Any] = {}
        if "default_override" not in overrides:
            config_kwargs["default_override"] = _env_override(
                env.get("UPDATED_DEFAULT_OVERRIDE"),
                UpdateOverride.IGNORE,
            )
        if "expire_after" not in overrides:
            config_kwargs["expire_after"] = _env_seconds(env.get("UPDATED_EXPIRE_AFTER"))

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
