"""Projection of a provider onto the external tools' own config files.

Every file is written atomically (temp sibling + fsync + rename), so an
interrupted apply leaves the previous file intact. The live process
environment is updated last, through an injected ``EnvironmentSink``, and only
after every file write has succeeded.

Failures raise ``ExternalApplyError``. They never roll back the provider
switch already committed in the database.
"""

import json
import os
import stat
import tempfile
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Protocol

from dotenv import dotenv_values
from loguru import logger

from switchboard.core.config import get_config
from switchboard.core.exceptions import ExternalApplyError
from switchboard.core.metrics import CONFIG_APPLIES
from switchboard.models import AppType, Provider, get_app_profile


class EnvironmentSink(Protocol):
    """Receives env entries after a successful apply"""

    def set(self, key: str, value: str) -> None: ...


class ProcessEnvironmentSink:
    """Writes into ``os.environ`` so in-process logic sees the new provider"""

    def set(self, key: str, value: str) -> None:
        os.environ[key] = value


class RecordingEnvironmentSink:
    """Keeps env entries in a dict instead of touching process state"""

    def __init__(self):
        self.values: Dict[str, str] = {}

    def set(self, key: str, value: str) -> None:
        self.values[key] = value


@dataclass
class ApplyResult:
    """Outcome of a successful apply"""

    provider_id: str
    app_type: AppType
    written_files: List[Path] = field(default_factory=list)
    env_keys: List[str] = field(default_factory=list)


def atomic_write_text(path: Path, content: str) -> None:
    """Write ``content`` to ``path`` via a temp sibling file and a rename.

    The target is never truncated in place. The temp file is removed on every
    failure path, and the target keeps its permission bits if it existed.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(
        prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent)
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(content)
            fh.flush()
            os.fsync(fh.fileno())
        if path.exists():
            os.chmod(tmp_name, stat.S_IMODE(path.stat().st_mode))
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


def read_json_file(path: Path) -> Dict[str, Any]:
    """Read a JSON object; a missing or unparsable file counts as ``{}``"""
    try:
        with open(path, "r", encoding="utf-8") as fh:
            data = json.load(fh)
    except FileNotFoundError:
        return {}
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        logger.warning(f"Ignoring unreadable settings file {path}: {e}")
        return {}
    return data if isinstance(data, dict) else {}


def _format_dotenv_value(value: str) -> str:
    if value and not any(ch in value for ch in ' #"\'\\\n\t='):
        return value
    escaped = value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")
    return f'"{escaped}"'


def render_dotenv(values: Mapping[str, str]) -> str:
    """Render a flat ``KEY=value`` file"""
    return "".join(f"{key}={_format_dotenv_value(value)}\n" for key, value in values.items())


class ConfigApplier:
    """Writes a provider's settings into the config files of its app"""

    SETTINGS_FILE = "settings.json"
    CODEX_CONFIG_FILE = "config.toml"
    CODEX_AUTH_FILE = "auth.json"
    GEMINI_ENV_FILE = ".env"

    def __init__(
        self,
        claude_dir: Optional[Path] = None,
        codex_dir: Optional[Path] = None,
        gemini_dir: Optional[Path] = None,
        env_sink: Optional[EnvironmentSink] = None,
    ):
        config = get_config()
        self.app_dirs: Dict[AppType, Path] = {
            AppType.CLAUDE: Path(claude_dir or config.claude_dir),
            AppType.CODEX: Path(codex_dir or config.codex_dir),
            AppType.GEMINI: Path(gemini_dir or config.gemini_dir),
        }
        self.env_sink: EnvironmentSink = env_sink or ProcessEnvironmentSink()

    def settings_path(self, app_type: AppType) -> Path:
        """Path of the JSON settings document of Claude or Gemini"""
        return self.app_dirs[AppType(app_type)] / self.SETTINGS_FILE

    def apply(self, provider: Provider, app_type: Optional[AppType] = None) -> ApplyResult:
        """Project ``provider`` onto its app's config files, then into the env sink.

        Raises:
            ExternalApplyError: A file could not be read or written, the Codex
                TOML payload is invalid, or the env sink failed
        """
        app_type = AppType(app_type or provider.app_type)
        env = dict(provider.settings_config.env)
        result = ApplyResult(provider_id=provider.id, app_type=app_type)

        try:
            if app_type == AppType.CODEX:
                result.written_files = self._apply_codex(provider, env)
            else:
                result.written_files = self._apply_json_settings(app_type, env)
                if app_type == AppType.GEMINI:
                    result.written_files.append(self._apply_gemini_dotenv(env))
        except ExternalApplyError:
            CONFIG_APPLIES.labels(app_type=app_type.value, outcome="error").inc()
            raise
        except OSError as e:
            CONFIG_APPLIES.labels(app_type=app_type.value, outcome="error").inc()
            logger.error(f"Failed to apply provider {provider.id} to {app_type.value}: {e}")
            raise ExternalApplyError(
                f"Failed to write {app_type.value} config: {e}",
                app_type=app_type.value,
                path=getattr(e, "filename", None),
            ) from e

        # Process-wide side effect goes last, after every file is in place
        try:
            for key, value in env.items():
                self.env_sink.set(key, value)
        except Exception as e:
            CONFIG_APPLIES.labels(app_type=app_type.value, outcome="error").inc()
            raise ExternalApplyError(
                f"Failed to update environment: {e}", app_type=app_type.value
            ) from e
        result.env_keys = list(env.keys())

        CONFIG_APPLIES.labels(app_type=app_type.value, outcome="success").inc()
        logger.info(
            f"Applied provider {provider.id} to {app_type.value}: "
            f"{', '.join(str(p) for p in result.written_files) or 'no files'}"
        )
        return result

    def _apply_json_settings(self, app_type: AppType, env: Mapping[str, str]) -> List[Path]:
        """Shallow-merge ``env`` into the document's ``env`` object.

        Other top-level keys (``mcpServers``, ``systemPrompt``, ...) and
        unrelated env keys are preserved.
        """
        path = self.settings_path(app_type)
        settings = read_json_file(path)
        existing_env = settings.get("env")
        merged_env = dict(existing_env) if isinstance(existing_env, dict) else {}
        merged_env.update(env)
        settings["env"] = merged_env
        atomic_write_text(path, json.dumps(settings, indent=2, ensure_ascii=False) + "\n")
        return [path]

    def _apply_gemini_dotenv(self, env: Mapping[str, str]) -> Path:
        """Merge ``env`` into Gemini's flat ``KEY=value`` credential file"""
        path = self.app_dirs[AppType.GEMINI] / self.GEMINI_ENV_FILE
        existing = dotenv_values(path) if path.exists() else {}
        merged = {key: value for key, value in existing.items() if value is not None}
        merged.update(env)
        atomic_write_text(path, render_dotenv(merged))
        return path

    def _apply_codex(self, provider: Provider, env: Mapping[str, str]) -> List[Path]:
        codex_dir = self.app_dirs[AppType.CODEX]
        written: List[Path] = []

        config_toml = provider.settings_config.config_toml
        if config_toml is not None:
            try:
                tomllib.loads(config_toml)
            except tomllib.TOMLDecodeError as e:
                raise ExternalApplyError(
                    f"Invalid configToml for provider {provider.id}: {e}",
                    app_type=AppType.CODEX.value,
                ) from e

        api_key = get_app_profile(AppType.CODEX).resolve_api_key(env)

        if config_toml is not None:
            path = codex_dir / self.CODEX_CONFIG_FILE
            atomic_write_text(path, config_toml)
            written.append(path)

        if api_key:
            path = codex_dir / self.CODEX_AUTH_FILE
            atomic_write_text(path, json.dumps({"OPENAI_API_KEY": api_key}, indent=2) + "\n")
            written.append(path)

        return written
