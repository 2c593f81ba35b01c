"""Tests for the Switchboard orchestrator"""
import asyncio
import json

import pytest

from switchboard.core.exceptions import (
    ExternalApplyError,
    NotFoundError,
    SwitchConflictError,
)
from switchboard.models import AppType
from switchboard.services import SpeedProbe, Switchboard


@pytest.fixture
def board(store, applier) -> Switchboard:
    return Switchboard(store, applier=applier, probe=SpeedProbe(store))


@pytest.mark.integration
class TestSwitchProvider:
    """Tests for switch_provider"""

    @pytest.mark.asyncio
    async def test_switch_commits_and_applies(
        self, board, store, env_sink, make_provider, tmp_path
    ):
        """Test that a switch updates the store, the settings file and the env"""
        await store.upsert_provider(make_provider("old", env={"ANTHROPIC_MODEL": "a"}))
        await store.upsert_provider(
            make_provider("new", name="Relay", env={"ANTHROPIC_MODEL": "b"})
        )
        await board.switch_provider("old", AppType.CLAUDE)

        result = await board.switch_provider("new", AppType.CLAUDE)

        assert result.provider.id == "new"
        assert result.previous_id == "old"
        assert result.message == "Switched to Relay"
        assert (await store.get_current(AppType.CLAUDE)).id == "new"
        settings = json.loads((tmp_path / ".claude" / "settings.json").read_text())
        assert settings["env"]["ANTHROPIC_MODEL"] == "b"
        assert env_sink.values["ANTHROPIC_MODEL"] == "b"

    @pytest.mark.asyncio
    async def test_concurrent_switches_report_consistent_previous(
        self, board, store, make_provider
    ):
        """Test that each switch reports the provider it actually replaced"""
        for pid in ("a", "b", "c"):
            await store.upsert_provider(make_provider(pid))
        await store.switch_to("a", AppType.CLAUDE)

        first, second = await asyncio.gather(
            board.switch_provider("b", AppType.CLAUDE),
            board.switch_provider("c", AppType.CLAUDE),
        )

        results = {r.provider.id: r.previous_id for r in (first, second)}
        current = (await store.get_current(AppType.CLAUDE)).id
        earlier = "b" if current == "c" else "c"
        assert results == {earlier: "a", current: earlier}

    @pytest.mark.asyncio
    async def test_unknown_provider_touches_nothing(
        self, board, store, env_sink, make_provider, tmp_path
    ):
        await store.upsert_provider(make_provider("a"))

        with pytest.raises(NotFoundError):
            await board.switch_provider("missing", AppType.CLAUDE)

        assert await store.get_current(AppType.CLAUDE) is None
        assert not (tmp_path / ".claude").exists()
        assert env_sink.values == {}

    @pytest.mark.asyncio
    async def test_conflict_touches_nothing(self, board, store, make_provider, tmp_path):
        for pid in ("a", "b"):
            await store.upsert_provider(make_provider(pid))
        await store.switch_to("a", AppType.CLAUDE)

        with pytest.raises(SwitchConflictError):
            await board.switch_provider("b", AppType.CLAUDE, expected_current_id="b")

        assert (await store.get_current(AppType.CLAUDE)).id == "a"
        assert not (tmp_path / ".claude").exists()

    @pytest.mark.asyncio
    async def test_apply_failure_is_partial_success(
        self, board, store, env_sink, make_provider, tmp_path
    ):
        """Test that a failed projection keeps the committed switch"""
        (tmp_path / ".claude").write_text("not a directory", encoding="utf-8")
        await store.upsert_provider(make_provider("a", env={"ANTHROPIC_MODEL": "m"}))

        with pytest.raises(ExternalApplyError) as exc_info:
            await board.switch_provider("a", AppType.CLAUDE)

        assert exc_info.value.committed is True
        assert exc_info.value.provider.id == "a"
        assert (await store.get_current(AppType.CLAUDE)).id == "a"
        assert env_sink.values == {}

    @pytest.mark.asyncio
    async def test_reapply_after_partial_success(
        self, board, store, env_sink, make_provider, tmp_path
    ):
        """Test that reapply_current finishes a partial switch"""
        blocker = tmp_path / ".claude"
        blocker.write_text("not a directory", encoding="utf-8")
        await store.upsert_provider(make_provider("a", env={"ANTHROPIC_MODEL": "m"}))
        with pytest.raises(ExternalApplyError):
            await board.switch_provider("a", AppType.CLAUDE)

        blocker.unlink()
        result = await board.reapply_current(AppType.CLAUDE)

        assert result.written_files == [tmp_path / ".claude" / "settings.json"]
        assert env_sink.values == {"ANTHROPIC_MODEL": "m"}

    @pytest.mark.asyncio
    async def test_reapply_without_current(self, board):
        with pytest.raises(NotFoundError):
            await board.reapply_current(AppType.CODEX)


@pytest.mark.integration
class TestQueries:
    """Tests for read-side operations"""

    @pytest.mark.asyncio
    async def test_list_providers_masks_credentials(self, board, store, make_provider):
        await store.upsert_provider(
            make_provider(
                "a",
                env={
                    "ANTHROPIC_AUTH_TOKEN": "sk-1234567890abcdef",
                    "ANTHROPIC_BASE_URL": "https://relay.example.com",
                },
            )
        )

        (view,) = await board.list_providers(AppType.CLAUDE)

        assert view.settings_config["env"] == {
            "ANTHROPIC_AUTH_TOKEN_MASKED": "sk-12345...cdef",
            "ANTHROPIC_BASE_URL": "https://relay.example.com",
        }
        assert view.base_url == "https://relay.example.com"
        # Storage keeps the raw key
        stored = await store.get_by_id("a")
        assert stored.env["ANTHROPIC_AUTH_TOKEN"] == "sk-1234567890abcdef"

    @pytest.mark.asyncio
    async def test_current_provider(self, board, store, make_provider):
        assert await board.current_provider(AppType.CLAUDE) is None
        await store.upsert_provider(make_provider("a"))
        await store.switch_to("a", AppType.CLAUDE)

        view = await board.current_provider(AppType.CLAUDE)
        assert view.id == "a"
        assert view.is_current is True

    @pytest.mark.asyncio
    async def test_status(self, board):
        status = board.status()
        assert status["installed"] is True
        assert status["version"] == "1.0.0"
        assert "switch" in status["features"]
