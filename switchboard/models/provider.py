"""Provider models"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .app import AppType, get_app_profile


class ProviderCategory(str, Enum):
    """Provider category enum"""

    OFFICIAL = "official"
    PARTNER = "partner"
    CUSTOM = "custom"


class SettingsConfig(BaseModel):
    """Provider settings with a typed ``env`` map.

    App-specific extras (e.g. ``configToml`` for Codex) are kept as-is and
    round-trip through storage untouched.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    env: Dict[str, str] = Field(
        default_factory=dict, description="Env vars holding URLs, credentials and model names"
    )
    config_toml: Optional[str] = Field(
        default=None, alias="configToml", description="Raw config.toml payload (Codex)"
    )

    @field_validator("env", mode="before")
    @classmethod
    def stringify_env(cls, value: Any) -> Any:
        """Env values are always strings; drop nulls and stringify scalars"""
        if value is None:
            return {}
        if isinstance(value, dict):
            return {str(k): str(v) for k, v in value.items() if v is not None}
        return value

    def to_storage(self) -> Dict[str, Any]:
        """Serialize for the settings_config JSON column"""
        return self.model_dump(by_alias=True, exclude_none=True)


class Provider(BaseModel):
    """A named endpoint + credential bundle for one app type"""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(..., description="Stable provider identifier")
    app_type: AppType = Field(default=AppType.CLAUDE, description="Target app")
    name: str = Field(default="", description="Display name")
    settings_config: SettingsConfig = Field(default_factory=SettingsConfig)
    website_url: Optional[str] = None
    category: ProviderCategory = ProviderCategory.CUSTOM
    notes: Optional[str] = None
    icon: Optional[str] = None
    icon_color: str = "#6366f1"
    is_current: bool = Field(
        default=False, description="Read-only; changed only through the atomic switch"
    )
    sort_index: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("settings_config", mode="before")
    @classmethod
    def default_settings_config(cls, value: Any) -> Any:
        return {} if value is None else value

    @property
    def env(self) -> Dict[str, str]:
        return self.settings_config.env

    @property
    def base_url(self) -> Optional[str]:
        """Base URL from the app's env key, falling back to the website URL"""
        profile = get_app_profile(self.app_type)
        return self.env.get(profile.base_url_env) or self.website_url

    @property
    def model(self) -> Optional[str]:
        return self.env.get(get_app_profile(self.app_type).model_env)


class ProviderView(BaseModel):
    """Display-safe provider returned to UI layers (credentials masked)"""

    id: str
    app_type: AppType
    name: str
    settings_config: Dict[str, Any]
    website_url: Optional[str] = None
    category: ProviderCategory
    notes: Optional[str] = None
    icon: Optional[str] = None
    icon_color: str
    is_current: bool
    sort_index: int
    base_url: Optional[str] = None
    model: Optional[str] = None
