"""Shared test fixtures and configuration"""
from typing import Callable, Dict, Optional

import pytest

from switchboard.core.config import clear_config_cache
from switchboard.core.database import Database, DatabaseConfig
from switchboard.models import AppType, Provider, SettingsConfig
from switchboard.services import (
    ConfigApplier,
    ProviderStore,
    RecordingEnvironmentSink,
)


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    """Point every config path at tmp_path and reset the config cache"""
    monkeypatch.setenv("SWITCHBOARD_DB_PATH", str(tmp_path / "switchboard.db"))
    monkeypatch.setenv("CLAUDE_CONFIG_DIR", str(tmp_path / ".claude"))
    monkeypatch.setenv("CODEX_HOME", str(tmp_path / ".codex"))
    monkeypatch.setenv("GEMINI_CONFIG_DIR", str(tmp_path / ".gemini"))
    clear_config_cache()
    yield
    clear_config_cache()


@pytest.fixture
async def db(tmp_path):
    """Connected database on a temporary file"""
    database = Database(DatabaseConfig(path=tmp_path / "switchboard.db"))
    await database.connect()
    yield database
    await database.disconnect()


@pytest.fixture
def store(db) -> ProviderStore:
    return ProviderStore(db)


@pytest.fixture
def env_sink() -> RecordingEnvironmentSink:
    return RecordingEnvironmentSink()


@pytest.fixture
def applier(tmp_path, env_sink) -> ConfigApplier:
    return ConfigApplier(
        claude_dir=tmp_path / ".claude",
        codex_dir=tmp_path / ".codex",
        gemini_dir=tmp_path / ".gemini",
        env_sink=env_sink,
    )


@pytest.fixture
def make_provider() -> Callable[..., Provider]:
    """Factory for Provider instances"""

    def _make(
        provider_id: str,
        app_type: AppType = AppType.CLAUDE,
        name: Optional[str] = None,
        env: Optional[Dict[str, str]] = None,
        **kwargs,
    ) -> Provider:
        settings = kwargs.pop("settings_config", None) or SettingsConfig(env=env or {})
        return Provider(
            id=provider_id,
            app_type=app_type,
            name=name if name is not None else f"Provider {provider_id}",
            settings_config=settings,
            **kwargs,
        )

    return _make
