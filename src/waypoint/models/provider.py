"""Abstract base class for LLM provider implementations.

``ModelProvider`` defines the contract that concrete providers (OpenAI,
Anthropic) implement. The ``get_provider()`` factory builds a provider
instance from a ``"provider:model_name"`` string.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from waypoint.config import ModelConfig, parse_model_string
from waypoint.log import get_logger
from waypoint.registry import Registry, RegistryError
from waypoint.types import Message

from .types import ModelError, ModelResponse

_log = get_logger(__name__)

model_registry: Registry[type[ModelProvider]] = Registry("model_registry")
"""Global registry mapping provider names to ``ModelProvider`` subclasses."""


class ModelProvider(ABC):
    """Abstract base class for LLM providers.

    Args:
        config: Provider connection configuration.
    """

    def __init__(self, config: ModelConfig) -> None:
        self.config = config

    @abstractmethod
    async def complete(
        self,
        messages: list[Message],
        *,
        tools: list[dict[str, Any]] | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        output_schema: dict[str, Any] | None = None,
    ) -> ModelResponse:
        """Send a completion request and return the full response.

        Args:
            messages: Conversation history, system instructions first.
            tools: OpenAI-format tool descriptors.
            temperature: Sampling temperature override.
            max_tokens: Maximum output tokens override.
            output_schema: ``{"name", "schema"}`` the final answer must match,
                for providers that can constrain output.

        Raises:
            ModelError: If the provider call fails.
        """


def get_provider(
    model: str, *, api_key: str | None = None, base_url: str | None = None, **kwargs: Any
) -> ModelProvider:
    """Build a ``ModelProvider`` from a model string.

    Args:
        model: Model string, e.g. ``"openai:gpt-4o"``.
        api_key: API key. When omitted the SDK reads its usual env var.
        base_url: Custom API base URL.
        **kwargs: Extra fields forwarded to ``ModelConfig``.

    Raises:
        ModelError: If the provider is not registered.
    """
    provider_name, model_name = parse_model_string(model)
    try:
        cls = model_registry.get(provider_name)
    except RegistryError:
        raise ModelError(
            f"Provider '{provider_name}' not registered. Available: {model_registry.names()}",
            model=model,
        ) from None
    config = ModelConfig(
        provider=provider_name,
        model_name=model_name,
        api_key=api_key,
        base_url=base_url,
        **kwargs,
    )
    _log.debug("Resolved provider '%s' for model '%s'", provider_name, model_name)
    return cls(config)
