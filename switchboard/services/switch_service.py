"""Switchboard: switches providers and projects them onto external apps.

A switch is two-phase. The database commit decides which provider is
selected; the file projection that follows is best-effort. If projection
fails, ``ExternalApplyError`` is raised with ``committed=True`` and the store
is left as committed. Callers can retry the projection with
``reapply_current``.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from loguru import logger

from switchboard import __version__
from switchboard.core.exceptions import ExternalApplyError, NotFoundError, SwitchboardError
from switchboard.core.metrics import PROVIDER_SWITCHES
from switchboard.models import AppType, Provider, ProviderView, SpeedTestResult
from switchboard.services.config_applier import ApplyResult, ConfigApplier
from switchboard.services.provider_store import ProviderStore
from switchboard.services.secret_mask import mask_settings_config
from switchboard.services.speed_probe import SpeedProbe


@dataclass
class SwitchResult:
    """Outcome of a fully successful switch"""

    provider: Provider
    applied: ApplyResult
    previous_id: Optional[str] = None

    @property
    def message(self) -> str:
        return f"Switched to {self.provider.name}"


def to_view(provider: Provider) -> ProviderView:
    """Build the display-safe view of a provider"""
    return ProviderView(
        id=provider.id,
        app_type=provider.app_type,
        name=provider.name,
        settings_config=mask_settings_config(provider.settings_config),
        website_url=provider.website_url,
        category=provider.category,
        notes=provider.notes,
        icon=provider.icon,
        icon_color=provider.icon_color,
        is_current=provider.is_current,
        sort_index=provider.sort_index,
        base_url=provider.base_url,
        model=provider.model,
    )


class Switchboard:
    """Thin orchestrator over ProviderStore, ConfigApplier and SpeedProbe"""

    def __init__(
        self,
        store: ProviderStore,
        applier: Optional[ConfigApplier] = None,
        probe: Optional[SpeedProbe] = None,
    ):
        self.store = store
        self.applier = applier or ConfigApplier()
        self.probe = probe or SpeedProbe(store)

    async def switch_provider(
        self,
        provider_id: str,
        app_type: AppType,
        expected_current_id: Optional[str] = None,
    ) -> SwitchResult:
        """Select a provider and write it into the app's config files

        Raises:
            NotFoundError: Unknown provider for this app type (nothing changed)
            SwitchConflictError: ``expected_current_id`` did not match (nothing changed)
            PersistenceError: Transaction failed and was rolled back (nothing changed)
            ExternalApplyError: Selection committed, projection failed (partial success)
        """
        app_type = AppType(app_type)
        try:
            provider, previous_id = await self.store.swap_current(
                provider_id, app_type, expected_current_id=expected_current_id
            )
        except SwitchboardError:
            PROVIDER_SWITCHES.labels(app_type=app_type.value, outcome="rejected").inc()
            raise

        try:
            applied = self.applier.apply(provider, app_type)
        except ExternalApplyError as e:
            e.committed = True
            e.provider = provider
            PROVIDER_SWITCHES.labels(app_type=app_type.value, outcome="partial").inc()
            logger.error(
                f"Provider {provider_id} is now current for {app_type.value} "
                f"but its config could not be applied: {e}"
            )
            raise

        PROVIDER_SWITCHES.labels(app_type=app_type.value, outcome="success").inc()
        return SwitchResult(
            provider=provider,
            applied=applied,
            previous_id=previous_id,
        )

    async def reapply_current(self, app_type: AppType) -> ApplyResult:
        """Project the current provider again, e.g. after a partial switch"""
        app_type = AppType(app_type)
        provider = await self.store.get_current(app_type)
        if provider is None:
            raise NotFoundError("Current provider", app_type.value, app_type.value)
        return self.applier.apply(provider, app_type)

    async def list_providers(self, app_type: AppType) -> List[ProviderView]:
        return [to_view(p) for p in await self.store.get_all(app_type)]

    async def current_provider(self, app_type: AppType) -> Optional[ProviderView]:
        provider = await self.store.get_current(app_type)
        return to_view(provider) if provider else None

    async def probe_provider(
        self, provider_id: str, timeout: Optional[float] = None
    ) -> SpeedTestResult:
        return await self.probe.probe_by_id(provider_id, timeout=timeout)

    async def probe_all(
        self,
        app_type: AppType,
        timeout: Optional[float] = None,
        max_concurrent: Optional[int] = None,
    ) -> List[SpeedTestResult]:
        return await self.probe.probe_all(
            app_type, timeout=timeout, max_concurrent=max_concurrent
        )

    def status(self) -> Dict[str, Any]:
        """Whether the database file exists, plus version and feature list"""
        file_path = self.store.db.config.file_path
        return {
            "installed": file_path is None or file_path.exists(),
            "version": __version__,
            "features": ["providers", "switch", "prompts", "mcp", "speed_test"],
        }
