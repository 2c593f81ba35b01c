"""Data models and schemas"""
from .app import APP_PROFILES, AppProfile, AppType, get_app_profile
from .mcp import McpServer
from .prompt import Prompt
from .provider import Provider, ProviderCategory, ProviderView, SettingsConfig
from .speed_test import SpeedStatus, SpeedTestResult

__all__ = [
    "APP_PROFILES",
    "AppProfile",
    "AppType",
    "get_app_profile",
    "McpServer",
    "Prompt",
    "Provider",
    "ProviderCategory",
    "ProviderView",
    "SettingsConfig",
    "SpeedStatus",
    "SpeedTestResult",
]
