"""Custom exception hierarchy for pyupdated."""

from __future__ import annotations


class UpdatedError(Exception):
    """Base exception for all pyupdated errors."""


class UpdateContractError(UpdatedError, TypeError):
    """A required argument is missing or has the wrong shape.

    Raised at call time for a ``None`` producer or state accessor, a
    ``map`` call that omits a handler, or a refresh-family state built
    without a confirmed ``Updated`` value.  Never raised for producer
    failures, which are captured as failure states instead.
    """


class UpdatedConfigError(UpdatedError, ValueError):
    """Invalid or missing configuration."""


class NotifierClosedError(UpdatedError):
    """The notifier was used after :meth:`UpdateNotifier.close`."""
