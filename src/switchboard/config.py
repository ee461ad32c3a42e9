"""Provider and fallback configuration.

Configs are immutable pydantic snapshots: a change produces a new object
(``config.model_copy(update=...)``) that replaces the old one wherever it
is held, so an in-flight call never sees a half-applied update.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from enum import Enum

from pydantic import BaseModel, Field


class ProviderType(str, Enum):
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GEMINI = "gemini"
    OPENAI_COMPATIBLE = "openai-compatible"
    CUSTOM = "custom"


class ProviderConfig(BaseModel):
    model_config = {"frozen": True}

    id: str
    name: str
    type: ProviderType
    enabled: bool = False
    is_builtin: bool = False
    order: int = 0
    api_key: str = ""
    base_url: str = ""
    default_model: str = ""
    available_models: list[str] = Field(default_factory=list)
    custom_models: list[str] = Field(default_factory=list)
    max_tokens: int | None = None
    temperature: float = 0.7
    system_prompt: str = ""
    timeout: float = 600.0

    def is_ready(self) -> bool:
        return bool(self.api_key) and bool(self.base_url) and self.enabled


class FallbackConfig(BaseModel):
    """Ordering and budget for fallback execution.

    An empty ``fallback_provider_ids`` means every other ready provider, in
    registration order, follows the active one. ``max_retries`` counts the
    first attempt.
    """

    fallback_provider_ids: list[str] = Field(default_factory=list)
    max_retries: int = Field(default=3, ge=1)


class ProviderMetadata(BaseModel):
    model_config = {"frozen": True}

    id: str
    name: str
    description: str
    default_base_url: str
    default_models: list[str]
    type: ProviderType
    api_key_env: str
    website: str = ""


BUILTIN_PROVIDERS: dict[str, ProviderMetadata] = {
    meta.id: meta
    for meta in (
        ProviderMetadata(
            id="openai",
            name="OpenAI",
            description="GPT models via the OpenAI API",
            default_base_url="https://api.openai.com/v1",
            default_models=["gpt-4o", "gpt-4o-mini", "o3-mini", "o1", "o1-mini", "gpt-4-turbo"],
            type=ProviderType.OPENAI,
            api_key_env="OPENAI_API_KEY",
            website="https://platform.openai.com",
        ),
        ProviderMetadata(
            id="claude",
            name="Claude",
            description="Anthropic Claude models via the Messages API",
            default_base_url="https://api.anthropic.com/v1",
            default_models=[
                "claude-haiku-4-5-20251001",
                "claude-sonnet-4-5-20250929",
                "claude-opus-4-5-20251101",
                "claude-3-5-haiku-20241022",
                "claude-3-haiku-20240307",
            ],
            type=ProviderType.ANTHROPIC,
            api_key_env="ANTHROPIC_API_KEY",
            website="https://console.anthropic.com",
        ),
        ProviderMetadata(
            id="gemini",
            name="Gemini",
            description="Google Gemini models via the Generative Language API",
            default_base_url="https://generativelanguage.googleapis.com/v1beta",
            default_models=[
                "gemini-2.5-pro-preview-06-05",
                "gemini-2.5-flash-preview-05-20",
                "gemini-2.0-flash-exp",
                "gemini-1.5-pro",
                "gemini-1.5-flash",
            ],
            type=ProviderType.GEMINI,
            api_key_env="GEMINI_API_KEY",
            website="https://aistudio.google.com",
        ),
        ProviderMetadata(
            id="deepseek",
            name="DeepSeek",
            description="DeepSeek chat and reasoning models",
            default_base_url="https://api.deepseek.com/v1",
            default_models=["deepseek-chat", "deepseek-reasoner"],
            type=ProviderType.OPENAI_COMPATIBLE,
            api_key_env="DEEPSEEK_API_KEY",
            website="https://platform.deepseek.com",
        ),
        ProviderMetadata(
            id="mistral",
            name="Mistral",
            description="Mistral AI models",
            default_base_url="https://api.mistral.ai/v1",
            default_models=[
                "pixtral-large-latest",
                "mistral-large-latest",
                "mistral-small-latest",
                "codestral-latest",
            ],
            type=ProviderType.OPENAI_COMPATIBLE,
            api_key_env="MISTRAL_API_KEY",
            website="https://console.mistral.ai",
        ),
        ProviderMetadata(
            id="groq",
            name="Groq",
            description="Low-latency open models on Groq",
            default_base_url="https://api.groq.com/openai/v1",
            default_models=[
                "llama-3.3-70b-versatile",
                "llama-3.1-8b-instant",
                "mixtral-8x7b-32768",
                "gemma2-9b-it",
            ],
            type=ProviderType.OPENAI_COMPATIBLE,
            api_key_env="GROQ_API_KEY",
            website="https://console.groq.com",
        ),
        ProviderMetadata(
            id="openrouter",
            name="OpenRouter",
            description="Many vendors behind one OpenAI-compatible API",
            default_base_url="https://openrouter.ai/api/v1",
            default_models=[
                "openai/gpt-4o",
                "anthropic/claude-sonnet-4-20250514",
                "google/gemini-2.0-flash-exp:free",
                "deepseek/deepseek-chat",
            ],
            type=ProviderType.OPENAI_COMPATIBLE,
            api_key_env="OPENROUTER_API_KEY",
            website="https://openrouter.ai",
        ),
    )
}


def default_provider_configs(
    environ: Mapping[str, str] | None = None,
) -> list[ProviderConfig]:
    """One config per builtin provider.

    A provider is enabled when its API key environment variable is set.
    """
    if environ is None:
        environ = os.environ
    configs = []
    for order, meta in enumerate(BUILTIN_PROVIDERS.values()):
        api_key = environ.get(meta.api_key_env, "")
        configs.append(ProviderConfig(
            id=meta.id,
            name=meta.name,
            type=meta.type,
            enabled=bool(api_key),
            is_builtin=True,
            order=order,
            api_key=api_key,
            base_url=meta.default_base_url,
            default_model=meta.default_models[0],
            available_models=list(meta.default_models),
        ))
    return configs


class ProviderStorageData(BaseModel):
    """Serialized registry state."""

    active_provider_id: str | None = None
    providers: list[ProviderConfig] = Field(default_factory=list)
    fallback_config: FallbackConfig = Field(default_factory=FallbackConfig)
