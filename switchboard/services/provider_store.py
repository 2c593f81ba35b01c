"""Persistence of providers, prompts, MCP servers, probe results and settings.

The store owns the two exclusivity invariants of the switchboard:

* at most one current provider per app type (``switch_to``)
* at most one enabled prompt per app type (``set_enabled_prompt``)

Both flags are only ever changed by a clear-then-set inside a single
transaction, so readers see either the old or the new selection. Generic
upserts never touch them.
"""

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncGenerator, Dict, Iterable, List, Optional, Tuple

from loguru import logger
from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from switchboard.core.database import (
    Database,
    McpServerModel,
    PromptModel,
    ProviderModel,
    SettingModel,
    SpeedTestModel,
)
from switchboard.core.exceptions import (
    NotFoundError,
    SwitchConflictError,
    ValidationError,
)
from switchboard.models import (
    AppType,
    McpServer,
    Prompt,
    Provider,
    SpeedTestResult,
)

DEFAULT_KEEP_COUNT = 10

# Per-app enable column of the MCP server table
_MCP_ENABLED_COLUMNS = {
    AppType.CLAUDE: McpServerModel.enabled_claude,
    AppType.CODEX: McpServerModel.enabled_codex,
    AppType.GEMINI: McpServerModel.enabled_gemini,
}

# Bulk statements below never need the identity map kept in sync
_NO_SYNC = {"synchronize_session": False}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _require(value: Optional[str], field: str, kind: str) -> None:
    if value is None or not str(value).strip():
        raise ValidationError(f"{kind} {field} is required")


class ProviderStore:
    """Async store over the switchboard database"""

    def __init__(self, db: Database):
        self.db = db
        # SQLite has a single writer; serialize write transactions in-process
        self._write_lock = asyncio.Lock()

    @asynccontextmanager
    async def _write(self) -> AsyncGenerator[AsyncSession, None]:
        async with self._write_lock:
            async with self.db.session() as session:
                yield session

    # ------------------------------------------------------------------
    # Providers
    # ------------------------------------------------------------------

    async def upsert_provider(self, provider: Provider) -> Provider:
        """Insert or fully replace a provider by id.

        ``is_current`` is ignored: new providers start inactive and existing
        providers keep their flag.

        Raises:
            ValidationError: id or name is empty, or the app type would change
        """
        _require(provider.id, "id", "Provider")
        _require(provider.name, "name", "Provider")

        async with self._write() as session:
            row = await session.get(ProviderModel, provider.id)
            if row is None:
                row = ProviderModel(
                    id=provider.id,
                    app_type=provider.app_type.value,
                    is_current=False,
                )
                session.add(row)
            elif row.app_type != provider.app_type.value:
                raise ValidationError(
                    f"Provider '{provider.id}' belongs to app '{row.app_type}' "
                    f"and cannot be moved to '{provider.app_type.value}'"
                )

            row.name = provider.name
            row.settings_config = provider.settings_config.to_storage()
            row.website_url = provider.website_url
            row.category = provider.category.value
            row.notes = provider.notes
            row.icon = provider.icon
            row.icon_color = provider.icon_color or "#6366f1"
            row.sort_index = provider.sort_index
            row.updated_at = _utcnow()

            await session.flush()
            await session.refresh(row)
            logger.debug(f"Upserted provider {row.id} ({row.app_type})")
            return Provider.model_validate(row)

    async def switch_to(
        self,
        provider_id: str,
        app_type: AppType,
        expected_current_id: Optional[str] = None,
    ) -> Provider:
        """Atomically make ``provider_id`` the only current provider of ``app_type``"""
        provider, _ = await self.swap_current(provider_id, app_type, expected_current_id)
        return provider

    async def swap_current(
        self,
        provider_id: str,
        app_type: AppType,
        expected_current_id: Optional[str] = None,
    ) -> Tuple[Provider, Optional[str]]:
        """Like ``switch_to``, also returning the id of the provider it replaced.

        The previous id is read inside the switch transaction.

        Args:
            provider_id: Provider to activate
            app_type: App type the provider must belong to
            expected_current_id: Optional compare-and-swap guard. When given,
                the switch only happens if the current provider id equals it
                ("" means no provider is current).

        Raises:
            NotFoundError: No provider with this id and app type
            SwitchConflictError: The compare-and-swap guard did not match
            PersistenceError: The transaction failed and was rolled back
        """
        app_type = AppType(app_type)
        async with self._write() as session:
            target = await session.scalar(
                select(ProviderModel).where(
                    ProviderModel.id == provider_id,
                    ProviderModel.app_type == app_type.value,
                )
            )
            if target is None:
                raise NotFoundError("Provider", provider_id, app_type.value)

            current_id = await session.scalar(
                select(ProviderModel.id).where(
                    ProviderModel.app_type == app_type.value,
                    ProviderModel.is_current == True,  # noqa: E712
                )
            )
            if expected_current_id is not None and (current_id or "") != expected_current_id:
                raise SwitchConflictError(app_type.value, expected_current_id, current_id)

            await session.execute(
                update(ProviderModel)
                .where(ProviderModel.app_type == app_type.value)
                .values(is_current=False)
                .execution_options(**_NO_SYNC)
            )
            await session.execute(
                update(ProviderModel)
                .where(
                    ProviderModel.id == provider_id,
                    ProviderModel.app_type == app_type.value,
                )
                .values(is_current=True)
                .execution_options(**_NO_SYNC)
            )
            await session.refresh(target)
            logger.info(f"Switched {app_type.value} provider to {provider_id}")
            return Provider.model_validate(target), current_id

    async def get_current(self, app_type: AppType) -> Optional[Provider]:
        """Get the current provider of an app type, if any"""
        async with self.db.session() as session:
            row = await session.scalar(
                select(ProviderModel)
                .where(
                    ProviderModel.app_type == AppType(app_type).value,
                    ProviderModel.is_current == True,  # noqa: E712
                )
                .limit(1)
            )
            return Provider.model_validate(row) if row else None

    async def get_all(self, app_type: AppType) -> List[Provider]:
        """List providers of an app type in display order"""
        async with self.db.session() as session:
            result = await session.scalars(
                select(ProviderModel)
                .where(ProviderModel.app_type == AppType(app_type).value)
                .order_by(ProviderModel.sort_index.asc(), ProviderModel.created_at.desc())
            )
            return [Provider.model_validate(row) for row in result.all()]

    async def get_by_id(self, provider_id: str) -> Optional[Provider]:
        async with self.db.session() as session:
            row = await session.get(ProviderModel, provider_id)
            return Provider.model_validate(row) if row else None

    async def delete(self, provider_id: str) -> bool:
        """Delete a provider (allowed even if it is current). Returns True if deleted."""
        async with self._write() as session:
            result = await session.execute(
                delete(ProviderModel)
                .where(ProviderModel.id == provider_id)
                .execution_options(**_NO_SYNC)
            )
            return result.rowcount > 0

    async def update_sort_order(self, updates: Iterable[Tuple[str, int]]) -> None:
        """Set ``sort_index`` for several providers in one transaction"""
        async with self._write() as session:
            for provider_id, sort_index in updates:
                await session.execute(
                    update(ProviderModel)
                    .where(ProviderModel.id == provider_id)
                    .values(sort_index=sort_index)
                    .execution_options(**_NO_SYNC)
                )

    # ------------------------------------------------------------------
    # Prompts
    # ------------------------------------------------------------------

    async def upsert_prompt(self, prompt: Prompt) -> Prompt:
        """Insert or fully replace a prompt by id; ``is_enabled`` is ignored"""
        _require(prompt.id, "id", "Prompt")
        _require(prompt.name, "name", "Prompt")

        async with self._write() as session:
            row = await session.get(PromptModel, prompt.id)
            if row is None:
                row = PromptModel(
                    id=prompt.id, app_type=prompt.app_type.value, is_enabled=False
                )
                session.add(row)
            elif row.app_type != prompt.app_type.value:
                raise ValidationError(
                    f"Prompt '{prompt.id}' belongs to app '{row.app_type}' "
                    f"and cannot be moved to '{prompt.app_type.value}'"
                )

            row.name = prompt.name
            row.content = prompt.content
            row.description = prompt.description
            row.sort_index = prompt.sort_index
            row.updated_at = _utcnow()

            await session.flush()
            await session.refresh(row)
            return Prompt.model_validate(row)

    async def get_prompts(self, app_type: AppType) -> List[Prompt]:
        async with self.db.session() as session:
            result = await session.scalars(
                select(PromptModel)
                .where(PromptModel.app_type == AppType(app_type).value)
                .order_by(PromptModel.sort_index.asc(), PromptModel.created_at.desc())
            )
            return [Prompt.model_validate(row) for row in result.all()]

    async def get_prompt(self, prompt_id: str) -> Optional[Prompt]:
        async with self.db.session() as session:
            row = await session.get(PromptModel, prompt_id)
            return Prompt.model_validate(row) if row else None

    async def get_enabled_prompt(self, app_type: AppType) -> Optional[Prompt]:
        async with self.db.session() as session:
            row = await session.scalar(
                select(PromptModel)
                .where(
                    PromptModel.app_type == AppType(app_type).value,
                    PromptModel.is_enabled == True,  # noqa: E712
                )
                .limit(1)
            )
            return Prompt.model_validate(row) if row else None

    async def set_enabled_prompt(self, prompt_id: str, app_type: AppType) -> Prompt:
        """Atomically make ``prompt_id`` the only enabled prompt of ``app_type``.

        Enabling an already-enabled prompt is a no-op with the same outcome.
        """
        app_type = AppType(app_type)
        async with self._write() as session:
            target = await session.scalar(
                select(PromptModel).where(
                    PromptModel.id == prompt_id,
                    PromptModel.app_type == app_type.value,
                )
            )
            if target is None:
                raise NotFoundError("Prompt", prompt_id, app_type.value)

            await session.execute(
                update(PromptModel)
                .where(PromptModel.app_type == app_type.value)
                .values(is_enabled=False)
                .execution_options(**_NO_SYNC)
            )
            await session.execute(
                update(PromptModel)
                .where(PromptModel.id == prompt_id)
                .values(is_enabled=True)
                .execution_options(**_NO_SYNC)
            )
            await session.refresh(target)
            logger.info(f"Enabled {app_type.value} prompt {prompt_id}")
            return Prompt.model_validate(target)

    async def disable_all_prompts(self, app_type: AppType) -> None:
        async with self._write() as session:
            await session.execute(
                update(PromptModel)
                .where(PromptModel.app_type == AppType(app_type).value)
                .values(is_enabled=False)
                .execution_options(**_NO_SYNC)
            )

    async def delete_prompt(self, prompt_id: str) -> bool:
        async with self._write() as session:
            result = await session.execute(
                delete(PromptModel)
                .where(PromptModel.id == prompt_id)
                .execution_options(**_NO_SYNC)
            )
            return result.rowcount > 0

    # ------------------------------------------------------------------
    # MCP servers
    # ------------------------------------------------------------------

    async def upsert_mcp_server(self, server: McpServer) -> McpServer:
        """Insert or fully replace an MCP server by id"""
        _require(server.id, "id", "MCP server")
        _require(server.name, "name", "MCP server")
        _require(server.command, "command", "MCP server")

        async with self._write() as session:
            row = await session.get(McpServerModel, server.id)
            if row is None:
                row = McpServerModel(id=server.id)
                session.add(row)

            row.name = server.name
            row.command = server.command
            row.args = list(server.args)
            row.env = dict(server.env)
            row.enabled_claude = server.enabled_claude
            row.enabled_codex = server.enabled_codex
            row.enabled_gemini = server.enabled_gemini
            row.description = server.description
            row.sort_index = server.sort_index
            row.updated_at = _utcnow()

            await session.flush()
            await session.refresh(row)
            return McpServer.model_validate(row)

    async def get_mcp_servers(self) -> List[McpServer]:
        async with self.db.session() as session:
            result = await session.scalars(
                select(McpServerModel).order_by(
                    McpServerModel.sort_index.asc(), McpServerModel.created_at.desc()
                )
            )
            return [McpServer.model_validate(row) for row in result.all()]

    async def get_mcp_servers_for_app(self, app_type: AppType) -> List[McpServer]:
        """List MCP servers enabled for one app"""
        column = _MCP_ENABLED_COLUMNS[AppType(app_type)]
        async with self.db.session() as session:
            result = await session.scalars(
                select(McpServerModel)
                .where(column == True)  # noqa: E712
                .order_by(
                    McpServerModel.sort_index.asc(), McpServerModel.created_at.desc()
                )
            )
            return [McpServer.model_validate(row) for row in result.all()]

    async def toggle_mcp_app(
        self, server_id: str, app_type: AppType, enabled: bool
    ) -> None:
        """Enable or disable an MCP server for one app, leaving other apps alone"""
        app_type = AppType(app_type)
        column = _MCP_ENABLED_COLUMNS[app_type]
        async with self._write() as session:
            result = await session.execute(
                update(McpServerModel)
                .where(McpServerModel.id == server_id)
                .values({column: bool(enabled), McpServerModel.updated_at: _utcnow()})
                .execution_options(**_NO_SYNC)
            )
            if result.rowcount == 0:
                raise NotFoundError("MCP server", server_id)

    async def delete_mcp_server(self, server_id: str) -> bool:
        async with self._write() as session:
            result = await session.execute(
                delete(McpServerModel)
                .where(McpServerModel.id == server_id)
                .execution_options(**_NO_SYNC)
            )
            return result.rowcount > 0

    # ------------------------------------------------------------------
    # Speed test results
    # ------------------------------------------------------------------

    async def record_speed_result(self, result: SpeedTestResult) -> SpeedTestResult:
        """Append a probe result"""
        async with self._write() as session:
            row = SpeedTestModel(
                provider_id=result.provider_id,
                app_type=AppType(result.app_type).value,
                response_time_ms=result.response_time_ms,
                http_status=result.http_status,
                status=result.status.value,
                tested_at=result.tested_at or _utcnow(),
            )
            session.add(row)
            await session.flush()
            await session.refresh(row)
            return SpeedTestResult.model_validate(row)

    async def prune_speed_results(
        self, provider_id: str, keep_count: int = DEFAULT_KEEP_COUNT
    ) -> int:
        """Keep only the newest ``keep_count`` results of one provider.

        Idempotent. Returns the number of deleted rows.
        """
        if keep_count < 0:
            raise ValidationError("keep_count must be >= 0")

        newest = (
            select(SpeedTestModel.id)
            .where(SpeedTestModel.provider_id == provider_id)
            .order_by(SpeedTestModel.tested_at.desc(), SpeedTestModel.id.desc())
            .limit(keep_count)
        )
        async with self._write() as session:
            result = await session.execute(
                delete(SpeedTestModel)
                .where(
                    SpeedTestModel.provider_id == provider_id,
                    SpeedTestModel.id.not_in(newest),
                )
                .execution_options(**_NO_SYNC)
            )
            deleted = result.rowcount or 0

        if deleted:
            logger.debug(f"Pruned {deleted} speed results of provider {provider_id}")
        return deleted

    async def cleanup_speed_results(self, keep_count: int = DEFAULT_KEEP_COUNT) -> int:
        """Apply the retention trim to every provider at once"""
        if keep_count < 0:
            raise ValidationError("keep_count must be >= 0")

        ranked = select(
            SpeedTestModel.id,
            func.row_number()
            .over(
                partition_by=SpeedTestModel.provider_id,
                order_by=(SpeedTestModel.tested_at.desc(), SpeedTestModel.id.desc()),
            )
            .label("rn"),
        ).subquery()
        keep_ids = select(ranked.c.id).where(ranked.c.rn <= keep_count)

        async with self._write() as session:
            result = await session.execute(
                delete(SpeedTestModel)
                .where(SpeedTestModel.id.not_in(keep_ids))
                .execution_options(**_NO_SYNC)
            )
            return result.rowcount or 0

    async def get_speed_results(self, provider_id: str) -> List[SpeedTestResult]:
        """Probe history of one provider, newest first"""
        async with self.db.session() as session:
            result = await session.scalars(
                select(SpeedTestModel)
                .where(SpeedTestModel.provider_id == provider_id)
                .order_by(SpeedTestModel.tested_at.desc(), SpeedTestModel.id.desc())
            )
            return [SpeedTestResult.model_validate(row) for row in result.all()]

    async def get_latest_speed_results(self, app_type: AppType) -> List[SpeedTestResult]:
        """Newest result per provider of an app type, with the provider name"""
        app_value = AppType(app_type).value
        latest_ids = (
            select(func.max(SpeedTestModel.id))
            .where(SpeedTestModel.app_type == app_value)
            .group_by(SpeedTestModel.provider_id)
        )
        async with self.db.session() as session:
            rows = await session.execute(
                select(SpeedTestModel, ProviderModel.name)
                .join(ProviderModel, SpeedTestModel.provider_id == ProviderModel.id)
                .where(SpeedTestModel.id.in_(latest_ids))
                .order_by(SpeedTestModel.tested_at.desc())
            )
            results = []
            for speed_row, provider_name in rows.all():
                item = SpeedTestResult.model_validate(speed_row)
                item.provider_name = provider_name
                results.append(item)
            return results

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    async def get_setting(self, key: str, default: Any = None) -> Any:
        async with self.db.session() as session:
            row = await session.get(SettingModel, key)
            return row.value if row is not None else default

    async def set_setting(self, key: str, value: Any) -> None:
        """Store a JSON value (last write wins)"""
        _require(key, "key", "Setting")
        async with self._write() as session:
            row = await session.get(SettingModel, key)
            if row is None:
                session.add(SettingModel(key=key, value=value))
            else:
                row.value = value
                row.updated_at = _utcnow()

    async def get_all_settings(self) -> Dict[str, Any]:
        async with self.db.session() as session:
            result = await session.scalars(select(SettingModel))
            return {row.key: row.value for row in result.all()}
