"""Tests for the provider registry and health monitor."""

from datetime import datetime, timedelta, timezone

import pytest

from llmgate.api.config import ProviderSettings, Settings
from llmgate.core.errors import ProviderError
from llmgate.core.llm import ProviderHealth, ProviderRegistry, create_adapter
from llmgate.core.llm.adapters import EchoAdapter, GrokAdapter, LocalModelAdapter

from conftest import SpyAdapter, build_registry, make_descriptor


class TestRegistration:
    """Catalog management."""

    def test_new_providers_start_down(self) -> None:
        """Nothing is selectable before its first successful check."""
        registry = build_registry((make_descriptor("a"), SpyAdapter("a")))
        assert registry.get("a").health == ProviderHealth.DOWN
        assert registry.list_healthy() == []

    def test_duplicate_id_rejected(self) -> None:
        """Provider IDs are unique."""
        registry = build_registry((make_descriptor("a"), SpyAdapter("a")))
        with pytest.raises(ValueError):
            registry.register(make_descriptor("a"), SpyAdapter("a"))

    def test_unknown_adapter_raises_provider_error(self) -> None:
        """Looking up an unregistered adapter fails with the taxonomy error."""
        with pytest.raises(ProviderError):
            ProviderRegistry().get_adapter("ghost")

    def test_from_settings_skips_disabled(self) -> None:
        """Disabled catalog entries are not registered."""
        settings = Settings(
            providers=[
                ProviderSettings(id="echo", name="Echo", kind="echo"),
                ProviderSettings(id="off", name="Off", kind="echo", enabled=False),
            ]
        )
        registry = ProviderRegistry.from_settings(settings)
        assert [d.id for d in registry.descriptors()] == ["echo"]


class TestHealthRefresh:
    """Concurrent health checks."""

    @pytest.mark.asyncio
    async def test_healthy_and_down_marked(self) -> None:
        """Check results drive health state."""
        registry = build_registry(
            (make_descriptor("up"), SpyAdapter("up", healthy=True)),
            (make_descriptor("down"), SpyAdapter("down", healthy=False)),
        )
        await registry.refresh_health()

        assert registry.get("up").health == ProviderHealth.HEALTHY
        assert registry.get("up").last_success is not None
        assert registry.get("down").health == ProviderHealth.DOWN
        assert [d.id for d in registry.list_healthy()] == ["up"]

    @pytest.mark.asyncio
    async def test_timeout_marks_down(self) -> None:
        """A check exceeding the timeout counts as down."""
        registry = build_registry(
            (make_descriptor("slow"), SpyAdapter("slow", probe_delay=1.0)),
            health_check_timeout=0.05,
        )
        await registry.refresh_health()
        assert registry.get("slow").health == ProviderHealth.DOWN
        assert registry.get("slow").last_health_check is not None

    @pytest.mark.asyncio
    async def test_probe_exception_marks_down(self) -> None:
        """Any probe failure reads as unavailable, never propagates."""

        class Exploding(SpyAdapter):
            async def _probe(self) -> bool:
                raise ConnectionError("refused")

        registry = build_registry((make_descriptor("boom"), Exploding("boom")))
        await registry.refresh_health()
        assert registry.get("boom").health == ProviderHealth.DOWN

    @pytest.mark.asyncio
    async def test_latency_recorded_on_success(self) -> None:
        """Successful checks update measured latency."""
        registry = build_registry((make_descriptor("a"), SpyAdapter("a", probe_delay=0.02)))
        await registry.refresh_health()
        assert registry.get("a").latency_ms >= 10.0

    @pytest.mark.asyncio
    async def test_refresh_interval_limits_probing(self) -> None:
        """Within the interval, refreshes reuse the last result."""
        spy = SpyAdapter("a")
        registry = build_registry((make_descriptor("a"), spy), refresh_interval=60.0)
        await registry.refresh_health()
        await registry.refresh_health()
        assert spy.health_checks == 1

        await registry.refresh_health(force=True)
        assert spy.health_checks == 2

    @pytest.mark.asyncio
    async def test_stale_success_not_selectable(self) -> None:
        """A healthy provider whose last success is too old is excluded."""
        registry = build_registry((make_descriptor("a"), SpyAdapter("a")), max_staleness=30.0)
        await registry.refresh_health()
        descriptor = registry.get("a")

        stale = descriptor.model_copy(
            update={"last_success": datetime.now(timezone.utc) - timedelta(seconds=31)}
        )
        assert not stale.is_selectable(datetime.now(timezone.utc), timedelta(seconds=30))
        assert descriptor.is_selectable(datetime.now(timezone.utc), timedelta(seconds=30))


class TestAdapterFactory:
    """Catalog kinds map onto adapters."""

    def test_kinds(self) -> None:
        """Each kind builds the matching adapter."""
        assert isinstance(create_adapter(ProviderSettings(id="e", name="E", kind="echo")), EchoAdapter)
        assert isinstance(create_adapter(ProviderSettings(id="g", name="G", kind="grok")), GrokAdapter)
        local = create_adapter(
            ProviderSettings(id="l", name="L", kind="local", endpoint="http://ollama:11434/api/generate")
        )
        assert isinstance(local, LocalModelAdapter)

    @pytest.mark.asyncio
    async def test_echo_adapter_generates(self) -> None:
        """The offline adapter answers without any network."""
        from llmgate.core.llm.types import GenerationOptions

        adapter = EchoAdapter()
        assert await adapter.health_check() is True
        result = await adapter.generate("plan my week", GenerationOptions())
        assert result.response.startswith("Noted:")
        assert result.tokens_used > 0

    @pytest.mark.asyncio
    async def test_vendor_errors_are_wrapped(self) -> None:
        """Adapters surface vendor failures as ProviderError."""
        from llmgate.core.llm.types import GenerationOptions

        adapter = SpyAdapter("x", fail_with=RuntimeError("HTTP 500 from vendor"))
        with pytest.raises(ProviderError) as exc_info:
            await adapter.generate("hi", GenerationOptions())
        assert exc_info.value.provider_id == "x"
