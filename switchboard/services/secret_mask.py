"""Display-safe redaction of credential-shaped env values.

Masked output is for display only. It must never be persisted or passed back
into an upsert: the raw key is gone and the value is irreversibly truncated.
"""

from typing import Any, Dict, Mapping

from switchboard.models.provider import SettingsConfig

SENSITIVE_MARKERS = ("TOKEN", "KEY", "SECRET")
MASK_MIN_LENGTH = 12
MASKED_SUFFIX = "_MASKED"


def is_sensitive_key(key: str) -> bool:
    """Case-sensitive substring match against the credential markers"""
    return any(marker in key for marker in SENSITIVE_MARKERS)


def mask_value(value: str) -> str:
    """First 8 chars + '...' + last 4 chars"""
    return f"{value[:8]}...{value[-4:]}"


def mask_env(env: Mapping[str, Any]) -> Dict[str, Any]:
    """Mask credential-shaped entries of an env map.

    Sensitive keys whose value is longer than 12 characters are replaced by
    ``<key>_MASKED``. Shorter values pass through unmasked.

    Example: ``{"ANTHROPIC_API_KEY": "sk-1234567890abcdef"}`` →
    ``{"ANTHROPIC_API_KEY_MASKED": "sk-12345...cdef"}``
    """
    masked: Dict[str, Any] = {}
    for key, value in env.items():
        if (
            is_sensitive_key(key)
            and isinstance(value, str)
            and len(value) > MASK_MIN_LENGTH
        ):
            masked[f"{key}{MASKED_SUFFIX}"] = mask_value(value)
        else:
            masked[key] = value
    return masked


def mask_settings_config(config: SettingsConfig) -> Dict[str, Any]:
    """Serialize a provider's settings with its env masked"""
    data = config.to_storage()
    data["env"] = mask_env(config.env)
    return data
