"""Configuration management for the provider switchboard.

Everything is read from environment variables (optionally seeded from a
``.env`` file). Providers, prompts and MCP servers live in the database.
"""

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


def _str_to_bool(value: str) -> bool:
    """Convert string to boolean. Accepts: 'true', '1', 'yes', 'on' (case-insensitive)"""
    return value.lower() in ("true", "1", "yes", "on")


def _path_from_env(name: str, default: Path) -> Path:
    raw = os.environ.get(name)
    return Path(raw).expanduser() if raw else default


class EnvConfig:
    """Switchboard configuration from environment variables"""

    def __init__(self):
        home = Path.home()
        self.db_path: Path = _path_from_env(
            "SWITCHBOARD_DB_PATH", home / ".cc-switch" / "switchboard.db"
        )
        # Config directories of the external tools we project providers into
        self.claude_dir: Path = _path_from_env("CLAUDE_CONFIG_DIR", home / ".claude")
        self.codex_dir: Path = _path_from_env("CODEX_HOME", home / ".codex")
        self.gemini_dir: Path = _path_from_env("GEMINI_CONFIG_DIR", home / ".gemini")

        self.probe_timeout_secs: float = float(
            os.environ.get("PROBE_TIMEOUT_SECS", "10")
        )
        self.probe_max_concurrent: int = int(
            os.environ.get("PROBE_MAX_CONCURRENT", "8")
        )
        self.speed_test_keep_count: int = int(
            os.environ.get("SPEED_TEST_KEEP_COUNT", "10")
        )
        self.verify_ssl: bool = _str_to_bool(os.environ.get("VERIFY_SSL", "true"))
        self.log_level: str = os.environ.get("LOG_LEVEL", "INFO")
        self.log_file: Optional[str] = os.environ.get("LOG_FILE")

    @classmethod
    def from_env(cls) -> "EnvConfig":
        """Load configuration from environment variables"""
        return cls()


_cached_config: Optional[EnvConfig] = None


def set_config(config: EnvConfig) -> None:
    """Override the runtime configuration (tests, embedding callers)"""
    global _cached_config
    _cached_config = config


def clear_config_cache() -> None:
    """Clear the configuration cache"""
    global _cached_config
    _cached_config = None


def get_config() -> EnvConfig:
    """Get current runtime configuration, loading it from the environment once"""
    global _cached_config
    if _cached_config is None:
        _cached_config = EnvConfig.from_env()
    return _cached_config
