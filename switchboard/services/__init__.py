"""Service layer"""

from .provider_store import ProviderStore
from .config_applier import (
    ApplyResult,
    ConfigApplier,
    EnvironmentSink,
    ProcessEnvironmentSink,
    RecordingEnvironmentSink,
)
from .secret_mask import mask_env, mask_settings_config
from .speed_probe import SpeedProbe
from .switch_service import Switchboard, SwitchResult

__all__ = [
    "ProviderStore",
    "ApplyResult",
    "ConfigApplier",
    "EnvironmentSink",
    "ProcessEnvironmentSink",
    "RecordingEnvironmentSink",
    "mask_env",
    "mask_settings_config",
    "SpeedProbe",
    "Switchboard",
    "SwitchResult",
]
