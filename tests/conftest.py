"""Shared fixtures: spy adapters and an in-memory gateway."""

from __future__ import annotations

import asyncio

import pytest

from llmgate.audit import AuditChain, MemoryAuditStorage
from llmgate.core.governance import PolicyEngine
from llmgate.core.hitl import OversightStore
from llmgate.core.llm import ProviderAdapter, ProviderDescriptor, ProviderRegistry
from llmgate.core.llm.types import GenerationOptions
from llmgate.core.orchestrator import Orchestrator


class SpyAdapter(ProviderAdapter):
    """Adapter double that counts calls and never touches the network."""

    def __init__(
        self,
        provider_id: str,
        reply: str = "Try a short walk and a journal entry.",
        tokens: int = 120,
        healthy: bool = True,
        fail_with: Exception | None = None,
        delay: float = 0.0,
        probe_delay: float = 0.0,
    ):
        super().__init__(model=f"{provider_id}-model")
        self.provider_id = provider_id
        self.reply = reply
        self.tokens = tokens
        self.healthy = healthy
        self.fail_with = fail_with
        self.delay = delay
        self.probe_delay = probe_delay
        self.generate_calls = 0
        self.health_checks = 0
        self.last_system_prompt: str | None = None

    async def _complete(
        self,
        prompt: str,
        system_prompt: str,
        options: GenerationOptions,
    ) -> tuple[str, int]:
        self.generate_calls += 1
        self.last_system_prompt = system_prompt
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_with is not None:
            raise self.fail_with
        return self.reply, self.tokens

    async def _probe(self) -> bool:
        self.health_checks += 1
        if self.probe_delay:
            await asyncio.sleep(self.probe_delay)
        return self.healthy


def make_descriptor(
    provider_id: str,
    quality: float = 0.8,
    cost: float = 0.00002,
    name: str | None = None,
) -> ProviderDescriptor:
    return ProviderDescriptor(
        id=provider_id,
        name=name or f"{provider_id.title()} Model",
        cost_per_token=cost,
        quality_score=quality,
    )


def build_registry(*entries: tuple[ProviderDescriptor, ProviderAdapter], **kwargs) -> ProviderRegistry:
    registry = ProviderRegistry(**kwargs)
    for descriptor, adapter in entries:
        registry.register(descriptor, adapter)
    return registry


@pytest.fixture
def spies() -> dict[str, SpyAdapter]:
    """Two healthy spy providers."""
    return {
        "alpha": SpyAdapter("alpha", reply="Alpha answer"),
        "beta": SpyAdapter("beta", reply="Beta answer"),
    }


@pytest.fixture
def registry(spies: dict[str, SpyAdapter]) -> ProviderRegistry:
    return build_registry(
        (make_descriptor("alpha", quality=0.9, cost=0.00003), spies["alpha"]),
        (make_descriptor("beta", quality=0.7, cost=0.0), spies["beta"]),
        health_check_timeout=1.0,
    )


@pytest.fixture
def audit_storage() -> MemoryAuditStorage:
    return MemoryAuditStorage()


@pytest.fixture
def oversight_store() -> OversightStore:
    return OversightStore()


@pytest.fixture
def orchestrator(
    registry: ProviderRegistry,
    audit_storage: MemoryAuditStorage,
    oversight_store: OversightStore,
) -> Orchestrator:
    return Orchestrator(
        policy_engine=PolicyEngine(),
        registry=registry,
        audit_chain=AuditChain(audit_storage),
        oversight_store=oversight_store,
        generation_timeout=2.0,
        audit_write_timeout=1.0,
    )
