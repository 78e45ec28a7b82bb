"""pyupdated - lifecycle states for asynchronously loaded and refreshed values."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pyupdated")
except PackageNotFoundError:
    __version__ = "0+local"
from pyupdated._ids import IdGenerator, MonotonicIdGenerator, SequenceIdGenerator
from pyupdated.config import UpdateConfig
from pyupdated.driver import run_update
from pyupdated.exceptions import (
    NotifierClosedError,
    UpdateContractError,
    UpdatedConfigError,
    UpdatedError,
)
from pyupdated.notifier import UpdateNotifier
from pyupdated.options import UpdateOptions, UpdateOverride
from pyupdated.update import (
    FailedRefresh,
    FailedUpdate,
    NotLoaded,
    Refreshing,
    Update,
    Updated,
    Updating,
)

__all__ = [
    "__version__",
    "FailedRefresh",
    "FailedUpdate",
    "IdGenerator",
    "MonotonicIdGenerator",
    "NotLoaded",
    "NotifierClosedError",
    "Refreshing",
    "SequenceIdGenerator",
    "Update",
    "UpdateConfig",
    "UpdateContractError",
    "UpdateNotifier",
    "UpdateOptions",
    "UpdateOverride",
    "Updated",
    "UpdatedConfigError",
    "UpdatedError",
    "Updating",
    "run_update",
]
