"""App type identities and their per-app conventions"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Mapping, Optional, Tuple


class AppType(str, Enum):
    """External AI command-line tools a provider can be projected onto"""

    CLAUDE = "claude"
    CODEX = "codex"
    GEMINI = "gemini"


@dataclass(frozen=True)
class AppProfile:
    """Endpoint, credential and env-key conventions of one app type"""

    app_type: AppType
    default_base_url: str
    base_url_env: str
    api_key_envs: Tuple[str, ...]
    model_env: str
    health_path: str
    api_key_header: str

    def resolve_base_url(self, env: Mapping[str, str]) -> str:
        """Return the env override for the base URL, or the app default"""
        base_url = env.get(self.base_url_env) or self.default_base_url
        return base_url.rstrip("/")

    def resolve_api_key(self, env: Mapping[str, str]) -> Optional[str]:
        """Return the first configured API key env value, if any"""
        for key in self.api_key_envs:
            if env.get(key):
                return env[key]
        return None

    def health_url(self, env: Mapping[str, str]) -> str:
        return f"{self.resolve_base_url(env)}{self.health_path}"


APP_PROFILES: Dict[AppType, AppProfile] = {
    AppType.CLAUDE: AppProfile(
        app_type=AppType.CLAUDE,
        default_base_url="https://api.anthropic.com",
        base_url_env="ANTHROPIC_BASE_URL",
        api_key_envs=("ANTHROPIC_AUTH_TOKEN", "ANTHROPIC_API_KEY"),
        model_env="ANTHROPIC_MODEL",
        health_path="/v1/models",
        api_key_header="x-api-key",
    ),
    AppType.CODEX: AppProfile(
        app_type=AppType.CODEX,
        default_base_url="https://api.openai.com/v1",
        base_url_env="OPENAI_BASE_URL",
        api_key_envs=("OPENAI_API_KEY",),
        model_env="OPENAI_MODEL",
        health_path="/models",
        api_key_header="api-key",
    ),
    AppType.GEMINI: AppProfile(
        app_type=AppType.GEMINI,
        default_base_url="https://generativelanguage.googleapis.com",
        base_url_env="GOOGLE_GEMINI_BASE_URL",
        api_key_envs=("GEMINI_API_KEY", "GOOGLE_API_KEY"),
        model_env="GEMINI_MODEL",
        health_path="/v1beta/models",
        api_key_header="x-goog-api-key",
    ),
}


def get_app_profile(app_type: AppType) -> AppProfile:
    """Get the conventions for an app type"""
    return APP_PROFILES[AppType(app_type)]
