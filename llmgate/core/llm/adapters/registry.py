"""Provider registry and health monitor."""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from llmgate.core.errors import ProviderError
from llmgate.core.llm.adapters.base import ProviderAdapter
from llmgate.core.llm.types import ProviderDescriptor, ProviderHealth

if TYPE_CHECKING:
    from llmgate.api.config import ProviderSettings, Settings

logger = logging.getLogger(__name__)


def create_adapter(config: "ProviderSettings") -> ProviderAdapter:
    """Create the adapter for a catalog entry.

    Raises:
        ValueError: If the provider kind is unknown
    """
    if config.kind == "openai":
        from llmgate.core.llm.adapters.openai_adapter import OpenAIAdapter
        return OpenAIAdapter(model=config.model or "gpt-4o-mini")

    elif config.kind == "anthropic":
        from llmgate.core.llm.adapters.anthropic_adapter import AnthropicAdapter
        return AnthropicAdapter(model=config.model or "claude-3-haiku-20240307")

    elif config.kind == "grok":
        from llmgate.core.llm.adapters.grok_adapter import GrokAdapter
        return GrokAdapter(model=config.model or "grok-beta")

    elif config.kind == "local":
        from llmgate.core.llm.adapters.local_adapter import LocalModelAdapter
        return LocalModelAdapter(
            model=config.model or "llama2",
            endpoint=config.endpoint or "http://localhost:11434",
        )

    elif config.kind == "echo":
        from llmgate.core.llm.adapters.echo_adapter import EchoAdapter
        return EchoAdapter(model=config.model or "echo-1")

    raise ValueError(f"Unknown provider kind: {config.kind}")


class ProviderRegistry:
    """Catalog of providers and their rolling health state.

    The registry is the only writer of ``ProviderDescriptor`` health and
    latency. Each descriptor is an immutable value swapped into a dict in
    one assignment, so readers never block and never see partial updates.
    Registration order is preserved and used for tie-breaking.
    """

    def __init__(
        self,
        health_check_timeout: float = 5.0,
        refresh_interval: float = 0.0,
        max_staleness: float = 60.0,
    ):
        """Initialize an empty registry.

        Args:
            health_check_timeout: Seconds allowed per provider health check
            refresh_interval: Minimum seconds between full refreshes
            max_staleness: Seconds after which a successful check no longer counts
        """
        self._descriptors: dict[str, ProviderDescriptor] = {}
        self._adapters: dict[str, ProviderAdapter] = {}
        self._health_check_timeout = health_check_timeout
        self._refresh_interval = refresh_interval
        self._max_staleness = timedelta(seconds=max_staleness)
        self._last_refresh: float | None = None
        self._refresh_task: asyncio.Task | None = None

    @classmethod
    def from_settings(cls, settings: "Settings") -> ProviderRegistry:
        """Build the registry from the configured catalog.

        Providers without credentials are still registered; their health
        checks fail and they report down until a key is supplied.
        """
        registry = cls(
            health_check_timeout=settings.health_check_timeout,
            refresh_interval=settings.health_check_interval,
            max_staleness=settings.health_max_staleness,
        )
        for config in settings.providers:
            if not config.enabled:
                continue
            registry.register(
                ProviderDescriptor(
                    id=config.id,
                    name=config.name,
                    endpoint=config.endpoint,
                    model=config.model,
                    credential_env=config.credential_env,
                    cost_per_token=config.cost_per_token,
                    quality_score=config.quality_score,
                ),
                create_adapter(config),
            )
        return registry

    def register(self, descriptor: ProviderDescriptor, adapter: ProviderAdapter) -> None:
        """Register a provider. Starts down until its first successful check."""
        if descriptor.id in self._descriptors:
            raise ValueError(f"Provider already registered: {descriptor.id}")
        self._descriptors[descriptor.id] = descriptor.model_copy(
            update={"health": ProviderHealth.DOWN, "last_success": None}
        )
        self._adapters[descriptor.id] = adapter
        logger.info("Registered provider: id=%s model=%s", descriptor.id, descriptor.model)

    def get(self, provider_id: str) -> ProviderDescriptor | None:
        return self._descriptors.get(provider_id)

    def get_adapter(self, provider_id: str) -> ProviderAdapter:
        """Get the adapter for a registered provider.

        Raises:
            ProviderError: If the provider is not registered
        """
        adapter = self._adapters.get(provider_id)
        if adapter is None:
            raise ProviderError(provider_id, "No adapter registered")
        return adapter

    def descriptors(self) -> list[ProviderDescriptor]:
        """All descriptors in registration order."""
        return list(self._descriptors.values())

    def list_healthy(self) -> list[ProviderDescriptor]:
        """Selectable providers in registration order.

        A provider is selectable only if its latest check succeeded and that
        success is within the staleness bound.
        """
        now = datetime.now(timezone.utc)
        return [
            d for d in self._descriptors.values()
            if d.is_selectable(now, self._max_staleness)
        ]

    async def refresh_health(self, force: bool = False) -> None:
        """Run every provider's health check concurrently.

        Skips probing when the last refresh is younger than the refresh
        interval, unless forced. Concurrent callers share one in-flight
        refresh, which keeps a single writer per cycle.
        """
        if self._refresh_task is not None and not self._refresh_task.done():
            await asyncio.shield(self._refresh_task)
            return

        if (
            not force
            and self._last_refresh is not None
            and time.monotonic() - self._last_refresh < self._refresh_interval
        ):
            return

        self._refresh_task = asyncio.ensure_future(self._refresh_all())
        await asyncio.shield(self._refresh_task)

    async def _refresh_all(self) -> None:
        await asyncio.gather(*(self._check_one(pid) for pid in list(self._adapters)))
        self._last_refresh = time.monotonic()
        logger.debug(
            "Health refresh complete: healthy=%s",
            [d.id for d in self.list_healthy()],
        )

    async def _check_one(self, provider_id: str) -> None:
        """Check one provider and swap in its updated descriptor."""
        adapter = self._adapters[provider_id]
        start = time.monotonic()

        try:
            healthy = await asyncio.wait_for(
                adapter.health_check(), timeout=self._health_check_timeout
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Health check timed out: provider=%s timeout=%.1fs",
                provider_id,
                self._health_check_timeout,
            )
            healthy = False
        except Exception as e:
            logger.warning("Health check failed: provider=%s error=%s", provider_id, e)
            healthy = False

        latency_ms = (time.monotonic() - start) * 1000
        now = datetime.now(timezone.utc)

        update: dict = {
            "health": ProviderHealth.HEALTHY if healthy else ProviderHealth.DOWN,
            "last_health_check": now,
        }
        if healthy:
            update["latency_ms"] = latency_ms
            update["last_success"] = now

        self._descriptors[provider_id] = self._descriptors[provider_id].model_copy(update=update)
