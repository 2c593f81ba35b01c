"""Tests for domain models"""
import pytest

from switchboard.models import (
    AppType,
    McpServer,
    Provider,
    ProviderCategory,
    SettingsConfig,
    get_app_profile,
)


@pytest.mark.unit
class TestSettingsConfig:
    """Tests for SettingsConfig"""

    def test_config_toml_alias(self):
        """Test that configToml is accepted and serialized under its alias"""
        config = SettingsConfig.model_validate({"configToml": "a = 1\n"})
        assert config.config_toml == "a = 1\n"
        assert config.to_storage() == {"env": {}, "configToml": "a = 1\n"}

    def test_extras_pass_through(self):
        """Test that unknown app-specific keys round-trip through storage"""
        raw = {"env": {"A": "1"}, "auth": {"OPENAI_API_KEY": "k"}, "permissions": ["x"]}
        config = SettingsConfig.model_validate(raw)
        assert config.to_storage() == raw

    def test_env_values_are_stringified(self):
        """Test that scalar env values become strings and nulls are dropped"""
        config = SettingsConfig.model_validate({"env": {"PORT": 8080, "EMPTY": None}})
        assert config.env == {"PORT": "8080"}

    def test_missing_env_defaults_to_empty(self):
        assert SettingsConfig.model_validate({}).env == {}


@pytest.mark.unit
class TestProvider:
    """Tests for the Provider model"""

    def test_defaults(self):
        provider = Provider(id="p1", name="One")
        assert provider.app_type == AppType.CLAUDE
        assert provider.category == ProviderCategory.CUSTOM
        assert provider.icon_color == "#6366f1"
        assert provider.is_current is False
        assert provider.settings_config.env == {}

    def test_base_url_and_model_from_env(self):
        """Test that display fields follow the app's env conventions"""
        provider = Provider(
            id="p1",
            app_type=AppType.CODEX,
            name="Relay",
            settings_config={"env": {"OPENAI_BASE_URL": "https://relay/v1", "OPENAI_MODEL": "gpt-5"}},
        )
        assert provider.base_url == "https://relay/v1"
        assert provider.model == "gpt-5"

    def test_base_url_falls_back_to_website(self):
        provider = Provider(id="p1", name="Site", website_url="https://example.com")
        assert provider.base_url == "https://example.com"
        assert provider.model is None

    def test_null_settings_config(self):
        provider = Provider(id="p1", name="x", settings_config=None)
        assert provider.settings_config.env == {}


@pytest.mark.unit
class TestAppProfiles:
    """Tests for per-app endpoint conventions"""

    def test_default_health_urls(self):
        assert get_app_profile(AppType.CLAUDE).health_url({}) == "https://api.anthropic.com/v1/models"
        assert get_app_profile(AppType.CODEX).health_url({}) == "https://api.openai.com/v1/models"
        assert (
            get_app_profile(AppType.GEMINI).health_url({})
            == "https://generativelanguage.googleapis.com/v1beta/models"
        )

    def test_base_url_override_strips_trailing_slash(self):
        profile = get_app_profile(AppType.CLAUDE)
        env = {"ANTHROPIC_BASE_URL": "https://relay.example.com/"}
        assert profile.health_url(env) == "https://relay.example.com/v1/models"

    def test_resolve_api_key_order(self):
        """Test that the first configured key env wins"""
        profile = get_app_profile(AppType.CLAUDE)
        env = {"ANTHROPIC_API_KEY": "key", "ANTHROPIC_AUTH_TOKEN": "token"}
        assert profile.resolve_api_key(env) == "token"
        assert profile.resolve_api_key({"ANTHROPIC_API_KEY": "key"}) == "key"
        assert profile.resolve_api_key({}) is None

    def test_accepts_plain_strings(self):
        assert get_app_profile("gemini").app_type == AppType.GEMINI


@pytest.mark.unit
class TestMcpServer:
    """Tests for the McpServer model"""

    def test_defaults_match_schema(self):
        server = McpServer(id="fs", name="filesystem", command="npx")
        assert server.enabled_claude is True
        assert server.enabled_codex is False
        assert server.enabled_gemini is False
        assert server.args == []

    def test_is_enabled_for(self):
        server = McpServer(
            id="fs", name="fs", command="npx", enabled_claude=False, enabled_gemini=True
        )
        assert server.is_enabled_for(AppType.CLAUDE) is False
        assert server.is_enabled_for(AppType.CODEX) is False
        assert server.is_enabled_for(AppType.GEMINI) is True
