"""The provider registry: configs, live adapters and fallback ordering.

A :class:`ProviderRegistry` is an explicit object passed to whoever needs
it. It owns one immutable :class:`~switchboard.config.ProviderConfig` per
provider and builds adapters lazily from them.
"""

from __future__ import annotations

import itertools
import logging
from collections.abc import Callable, Mapping

import httpx

from switchboard.config import (
    FallbackConfig,
    ProviderConfig,
    ProviderStorageData,
    ProviderType,
    default_provider_configs,
)
from switchboard.providers.anthropic import AnthropicProvider
from switchboard.providers.base import ChatProvider
from switchboard.providers.gemini import GeminiProvider
from switchboard.providers.openai_compatible import OpenAICompatibleProvider

logger = logging.getLogger(__name__)

PROVIDER_CLASSES: dict[ProviderType, type] = {
    ProviderType.OPENAI: OpenAICompatibleProvider,
    ProviderType.OPENAI_COMPATIBLE: OpenAICompatibleProvider,
    ProviderType.CUSTOM: OpenAICompatibleProvider,
    ProviderType.ANTHROPIC: AnthropicProvider,
    ProviderType.GEMINI: GeminiProvider,
}


def create_provider(
    config: ProviderConfig,
    client: httpx.AsyncClient | None = None,
) -> ChatProvider:
    """Build the adapter matching ``config.type``."""
    return PROVIDER_CLASSES[config.type](config, client=client)


class ProviderRegistry:
    """Holds provider configs and derives the fallback chain from them.

    Args:
        configs: Initial provider configs, in registration order.
        active_provider_id: The provider tried first.
        fallback_config: Explicit fallback order and retry budget.
        client: Optional shared ``httpx.AsyncClient`` handed to every adapter.
        on_provider_change: Called with the new id whenever the active
            provider changes, or with ``None`` when no provider remains.
    """

    def __init__(
        self,
        configs: list[ProviderConfig] | None = None,
        *,
        active_provider_id: str | None = None,
        fallback_config: FallbackConfig | None = None,
        client: httpx.AsyncClient | None = None,
        on_provider_change: Callable[[str | None], None] | None = None,
    ):
        self._configs: dict[str, ProviderConfig] = {}
        self._providers: dict[str, ChatProvider] = {}
        self._client = client
        self._custom_ids = itertools.count(1)
        self.fallback_config = fallback_config or FallbackConfig()
        self.on_provider_change = on_provider_change
        for config in configs or []:
            self.register(config)
        self.active_provider_id = active_provider_id

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        **kwargs,
    ) -> ProviderRegistry:
        """Registry of the builtin providers, keyed from the environment.

        The first provider with a credential becomes active unless
        ``active_provider_id`` is given.
        """
        configs = default_provider_configs(environ)
        if "active_provider_id" not in kwargs:
            ready = [c.id for c in configs if c.is_ready()]
            kwargs["active_provider_id"] = ready[0] if ready else None
        return cls(configs, **kwargs)

    # ------------------------------------------------------------------
    # Providers
    # ------------------------------------------------------------------

    def register(self, config: ProviderConfig) -> None:
        """Add or replace a provider config."""
        self._configs[config.id] = config
        self._providers.pop(config.id, None)

    def get_provider_config(self, provider_id: str) -> ProviderConfig | None:
        return self._configs.get(provider_id)

    def get_provider(self, provider_id: str) -> ChatProvider | None:
        config = self._configs.get(provider_id)
        if config is None:
            return None
        provider = self._providers.get(provider_id)
        if provider is None:
            provider = create_provider(config, client=self._client)
            self._providers[provider_id] = provider
        return provider

    def get_active_provider(self) -> ChatProvider | None:
        if self.active_provider_id is None:
            return None
        return self.get_provider(self.active_provider_id)

    def set_active_provider(self, provider_id: str) -> bool:
        """Make ``provider_id`` active; unknown ids are ignored."""
        if provider_id not in self._configs:
            logger.warning(f"Unknown provider: {provider_id}")
            return False
        self.active_provider_id = provider_id
        if self.on_provider_change is not None:
            self.on_provider_change(provider_id)
        return True

    def get_all_configs(self) -> list[ProviderConfig]:
        return sorted(self._configs.values(), key=lambda c: c.order)

    def get_configured_providers(self) -> list[ChatProvider]:
        """Adapters whose config is enabled, in display order."""
        return [
            self.get_provider(c.id)
            for c in self.get_all_configs()
            if c.enabled
        ]

    def update_provider_config(self, provider_id: str, **changes) -> bool:
        config = self._configs.get(provider_id)
        if config is None:
            return False
        self.register(config.model_copy(update=changes))
        return True

    def add_custom_provider(self, name: str, **fields) -> str:
        """Register an enabled OpenAI-compatible provider and return its id."""
        provider_id = f"custom-{next(self._custom_ids)}"
        while provider_id in self._configs:
            provider_id = f"custom-{next(self._custom_ids)}"
        fields.setdefault("enabled", True)
        self.register(ProviderConfig(
            id=provider_id,
            name=name,
            type=ProviderType.CUSTOM,
            is_builtin=False,
            order=len(self._configs),
            **fields,
        ))
        return provider_id

    def remove_custom_provider(self, provider_id: str) -> bool:
        config = self._configs.get(provider_id)
        if config is None or config.is_builtin:
            return False
        del self._configs[provider_id]
        self._providers.pop(provider_id, None)
        self.fallback_config = self.fallback_config.model_copy(update={
            "fallback_provider_ids": [
                i for i in self.fallback_config.fallback_provider_ids
                if i != provider_id
            ],
        })
        if self.active_provider_id == provider_id:
            remaining = self.get_all_configs()
            self.active_provider_id = remaining[0].id if remaining else None
            if self.on_provider_change is not None:
                self.on_provider_change(self.active_provider_id)
        return True

    def add_custom_model(self, provider_id: str, model: str) -> bool:
        config = self._configs.get(provider_id)
        if config is None or model in config.available_models:
            return False
        return self.update_provider_config(
            provider_id,
            available_models=[*config.available_models, model],
            custom_models=[*config.custom_models, model],
        )

    def remove_custom_model(self, provider_id: str, model: str) -> bool:
        """Remove a user-added model; builtin models cannot be removed."""
        config = self._configs.get(provider_id)
        if config is None or model not in config.custom_models:
            return False
        available = [m for m in config.available_models if m != model]
        changes = {
            "available_models": available,
            "custom_models": [m for m in config.custom_models if m != model],
        }
        if config.default_model == model and available:
            changes["default_model"] = available[0]
        return self.update_provider_config(provider_id, **changes)

    # ------------------------------------------------------------------
    # Fallback ordering
    # ------------------------------------------------------------------

    def _ready(self, provider_id: str) -> ChatProvider | None:
        provider = self.get_provider(provider_id)
        if provider is not None and provider.is_ready():
            return provider
        return None

    def get_fallback_chain(self) -> list[ChatProvider]:
        """Ready providers in the order the executor tries them.

        The active provider leads. It is followed by the explicit fallback
        ids when any are set, otherwise by every other ready provider in
        registration order.
        """
        chain: list[ChatProvider] = []
        active = self.get_active_provider()
        if active is not None and active.is_ready():
            chain.append(active)

        if self.fallback_config.fallback_provider_ids:
            candidates = self.fallback_config.fallback_provider_ids
        else:
            candidates = list(self._configs)

        for provider_id in candidates:
            if provider_id == self.active_provider_id:
                continue
            provider = self._ready(provider_id)
            if provider is not None and provider not in chain:
                chain.append(provider)
        return chain

    def update_fallback_config(self, **changes) -> None:
        self.fallback_config = FallbackConfig.model_validate(
            {**self.fallback_config.model_dump(), **changes}
        )

    def set_fallback_providers(self, provider_ids: list[str]) -> None:
        """Set the explicit fallback order, keeping only ready providers."""
        valid = [i for i in provider_ids if self._ready(i) is not None]
        dropped = set(provider_ids) - set(valid)
        if dropped:
            logger.info(f"Ignoring providers that are not ready: {sorted(dropped)}")
        self.update_fallback_config(fallback_provider_ids=valid)

    def clear_fallback_providers(self) -> None:
        self.update_fallback_config(fallback_provider_ids=[])

    def get_available_fallback_providers(self) -> list[dict]:
        """``{"id", "name", "is_active"}`` for every ready provider."""
        return [
            {
                "id": provider_id,
                "name": self._configs[provider_id].name,
                "is_active": provider_id == self.active_provider_id,
            }
            for provider_id in self._configs
            if self._ready(provider_id) is not None
        ]

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    def to_storage(self) -> ProviderStorageData:
        return ProviderStorageData(
            active_provider_id=self.active_provider_id,
            providers=list(self._configs.values()),
            fallback_config=self.fallback_config,
        )

    def dump_storage(self) -> str:
        return self.to_storage().model_dump_json(indent=2)

    def load_storage(self, data: str | ProviderStorageData) -> None:
        """Replace every config and the fallback settings from stored state."""
        if isinstance(data, str):
            data = ProviderStorageData.model_validate_json(data)
        self._configs.clear()
        self._providers.clear()
        for config in data.providers:
            self.register(config)
        self.fallback_config = data.fallback_config
        self.active_provider_id = data.active_provider_id
