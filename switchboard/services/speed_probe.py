"""Speed probe service for measuring provider availability"""

import asyncio
import time
from typing import Dict, List, Optional

import httpx
from loguru import logger

from switchboard.core.config import get_config
from switchboard.core.exceptions import NotFoundError, ProbeFailure, ProbeTimeout
from switchboard.core.http_client import get_http_client
from switchboard.core.logging import clear_provider_context, set_provider_context
from switchboard.core.metrics import PROBE_LATENCY, PROBE_RESULTS
from switchboard.models import (
    AppProfile,
    AppType,
    Provider,
    SpeedStatus,
    SpeedTestResult,
    get_app_profile,
)
from switchboard.services.provider_store import ProviderStore


class SpeedProbe:
    """Probes provider endpoints and records the outcome as speed test results"""

    def __init__(
        self,
        store: ProviderStore,
        client: Optional[httpx.AsyncClient] = None,
        timeout_secs: Optional[float] = None,
        max_concurrent: Optional[int] = None,
        keep_count: Optional[int] = None,
    ):
        config = get_config()
        self.store = store
        self.client = client
        self.timeout_secs = (
            timeout_secs if timeout_secs is not None else config.probe_timeout_secs
        )
        self.max_concurrent = max_concurrent or config.probe_max_concurrent
        self.keep_count = (
            keep_count if keep_count is not None else config.speed_test_keep_count
        )

    @staticmethod
    def build_headers(profile: AppProfile, env: Dict[str, str]) -> Dict[str, str]:
        """Send the key both header-style and as a bearer token.

        The remote may expect either scheme; the probe does not need to know.
        """
        headers = {"Accept": "application/json"}
        api_key = profile.resolve_api_key(env)
        if api_key:
            headers[profile.api_key_header] = api_key
            headers["Authorization"] = f"Bearer {api_key}"
        return headers

    async def probe(
        self,
        provider: Provider,
        app_type: Optional[AppType] = None,
        timeout: Optional[float] = None,
    ) -> SpeedTestResult:
        """Probe one provider, record the result and trim its history

        Args:
            provider: Provider to probe
            app_type: App type whose endpoint conventions apply (default: provider's)
            timeout: Deadline in seconds for the whole request

        Returns:
            The recorded SpeedTestResult. Timeouts and transport failures are
            reported through ``status``, never raised.

        Raises:
            NotFoundError: The provider is not stored, so its result could not be kept
        """
        if await self.store.get_by_id(provider.id) is None:
            raise NotFoundError("Provider", provider.id)
        return await self._run(provider, app_type, timeout)

    async def _run(
        self,
        provider: Provider,
        app_type: Optional[AppType],
        timeout: Optional[float],
    ) -> SpeedTestResult:
        app_type = AppType(app_type or provider.app_type)
        timeout = self.timeout_secs if timeout is None else timeout
        profile = get_app_profile(app_type)
        env = provider.settings_config.env
        url = profile.health_url(env)
        headers = self.build_headers(profile, env)

        http_status: Optional[int] = None
        set_provider_context(provider.name)
        start_time = time.perf_counter()
        try:
            response = await self._send(url, headers, timeout)
            http_status = response.status_code
            status = (
                SpeedStatus.OPERATIONAL if http_status < 500 else SpeedStatus.DEGRADED
            )
        except ProbeTimeout as e:
            logger.warning(f"{provider.id}: {e}")
            status = SpeedStatus.DEGRADED
        except ProbeFailure as e:
            logger.warning(f"{provider.id}: {e}")
            status = SpeedStatus.FAILED
        finally:
            clear_provider_context()
        elapsed_ms = int((time.perf_counter() - start_time) * 1000)

        PROBE_RESULTS.labels(app_type=app_type.value, status=status.value).inc()
        PROBE_LATENCY.labels(app_type=app_type.value).observe(elapsed_ms / 1000)
        logger.debug(
            f"Probed {provider.id} ({app_type.value}): {status.value}, "
            f"http={http_status}, {elapsed_ms}ms"
        )

        recorded = await self.store.record_speed_result(
            SpeedTestResult(
                provider_id=provider.id,
                app_type=app_type,
                response_time_ms=elapsed_ms,
                http_status=http_status,
                status=status,
            )
        )
        await self.store.prune_speed_results(provider.id, self.keep_count)
        return recorded

    async def _send(
        self, url: str, headers: Dict[str, str], timeout: float
    ) -> httpx.Response:
        """Issue the probe request, cancelling it once ``timeout`` elapses"""
        client = self.client or get_http_client()
        try:
            return await asyncio.wait_for(
                client.get(url, headers=headers), timeout=timeout
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            raise ProbeTimeout(timeout, url) from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise ProbeFailure(url, str(e) or type(e).__name__) from e
        except Exception as e:
            logger.exception(f"Unexpected probe error for {url}")
            raise ProbeFailure(url, str(e) or type(e).__name__) from e

    async def probe_by_id(
        self,
        provider_id: str,
        app_type: Optional[AppType] = None,
        timeout: Optional[float] = None,
    ) -> SpeedTestResult:
        provider = await self.store.get_by_id(provider_id)
        if provider is None:
            raise NotFoundError("Provider", provider_id)
        return await self._run(provider, app_type, timeout)

    async def probe_all(
        self,
        app_type: AppType,
        timeout: Optional[float] = None,
        max_concurrent: Optional[int] = None,
    ) -> List[SpeedTestResult]:
        """Probe every provider of an app type with controlled concurrency

        Args:
            app_type: App type whose providers are probed
            timeout: Per-probe deadline in seconds
            max_concurrent: Maximum number of probes in flight (default from config)

        Returns:
            Recorded results, one per provider whose result could be stored
        """
        app_type = AppType(app_type)
        providers = await self.store.get_all(app_type)
        if not providers:
            return []

        limit = max(1, min(max_concurrent or self.max_concurrent, len(providers)))
        semaphore = asyncio.Semaphore(limit)

        async def probe_with_limit(provider: Provider) -> SpeedTestResult:
            """Probe a provider with concurrency limit"""
            async with semaphore:
                return await self.probe(provider, app_type, timeout)

        results = await asyncio.gather(
            *[probe_with_limit(p) for p in providers],
            return_exceptions=True,
        )

        # A failing probe must not hide its siblings' results
        recorded = []
        for provider, result in zip(providers, results):
            if isinstance(result, BaseException):
                logger.error(f"Error probing provider {provider.id}: {result}")
                continue
            recorded.append(result)

        logger.info(
            f"Probed {len(recorded)}/{len(providers)} {app_type.value} providers "
            f"(max_concurrent={limit})"
        )
        return recorded
