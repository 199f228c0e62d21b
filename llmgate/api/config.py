"""Gateway configuration via pydantic-settings."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

ProviderKind = Literal["openai", "anthropic", "grok", "local", "echo"]


class ProviderSettings(BaseModel):
    """Static catalog entry for one provider."""

    id: str
    name: str
    kind: ProviderKind
    endpoint: str = ""
    model: str = ""
    credential_env: str | None = None
    cost_per_token: float = Field(default=0.0, ge=0.0)
    quality_score: float = Field(default=0.5, ge=0.0, le=1.0)
    enabled: bool = True


def default_providers() -> list[ProviderSettings]:
    """The standard catalog: three hosted vendors plus a local Ollama model."""
    return [
        ProviderSettings(
            id="openai",
            name="OpenAI GPT-4",
            kind="openai",
            endpoint="https://api.openai.com/v1/chat/completions",
            model="gpt-4o-mini",
            credential_env="OPENAI_API_KEY",
            cost_per_token=0.00003,
            quality_score=0.9,
        ),
        ProviderSettings(
            id="claude",
            name="Anthropic Claude",
            kind="anthropic",
            endpoint="https://api.anthropic.com/v1/messages",
            model="claude-3-haiku-20240307",
            credential_env="ANTHROPIC_API_KEY",
            cost_per_token=0.000025,
            quality_score=0.85,
        ),
        ProviderSettings(
            id="grok",
            name="Grok-3",
            kind="grok",
            endpoint="https://api.x.ai/v1/chat/completions",
            model="grok-beta",
            credential_env="GROK_API_KEY",
            cost_per_token=0.00002,
            quality_score=0.8,
        ),
        ProviderSettings(
            id="local",
            name="Local Model",
            kind="local",
            endpoint="http://localhost:11434",
            model="llama2",
            cost_per_token=0.0,
            quality_score=0.7,
        ),
    ]


class Settings(BaseSettings):
    """Gateway settings loaded from environment."""

    model_config = SettingsConfigDict(
        env_prefix="LLMGATE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Server configuration
    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False
    log_level: str = "INFO"

    # API configuration
    api_title: str = "LLM Orchestration Gateway"
    api_version: str = "1.0.0"
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])

    # === POLICY SETTINGS ===
    # JSON or YAML rule set; built-in defaults are used when unset or unreadable
    policy_rules_path: str | None = None
    policy_reload_interval: float = 30.0

    # === PROVIDER SETTINGS ===
    providers: list[ProviderSettings] = Field(default_factory=default_providers)
    health_check_timeout: float = 5.0
    health_check_interval: float = 5.0
    health_max_staleness: float = 60.0
    generation_timeout: float = 60.0

    # === AUDIT SETTINGS ===
    audit_storage_type: Literal["memory", "file"] = "file"
    audit_storage_path: str = "data/audit"
    audit_write_timeout: float = 5.0

    # === OVERSIGHT SETTINGS ===
    oversight_storage_type: Literal["memory", "file"] = "file"
    oversight_storage_path: str = "data/oversight"
