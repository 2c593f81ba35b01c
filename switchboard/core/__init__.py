"""Core functionality"""

from .config import get_config, set_config, clear_config_cache, EnvConfig
from .exceptions import (
    ExternalApplyError,
    NotFoundError,
    PersistenceError,
    ProbeFailure,
    ProbeTimeout,
    SwitchConflictError,
    SwitchboardError,
    ValidationError,
)

__all__ = [
    "get_config",
    "set_config",
    "clear_config_cache",
    "EnvConfig",
    "ExternalApplyError",
    "NotFoundError",
    "PersistenceError",
    "ProbeFailure",
    "ProbeTimeout",
    "SwitchConflictError",
    "SwitchboardError",
    "ValidationError",
]
