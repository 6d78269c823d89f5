"""
Base Provider Abstraction Layer

Defines the completion client interface used both for the model under
evaluation and for judge models. ``complete()`` is a template method: it
applies the request timeout and transient-error retry around the
provider-specific ``_complete()``, so every provider surfaces failures as
ProviderTimeoutError / ProviderError instead of hanging.

Usage:
    from llm_evals.providers import ProviderFactory, create_client

    client = create_client("gpt-4o-mini")           # provider inferred
    client = ProviderFactory.create("ollama", model="qwen2.5:7b")
    result = await client.complete(messages, CompletionOptions(max_tokens=256))
    print(result.content, result.usage)
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple, Type, runtime_checkable

from utils.exceptions import ProviderError, ProviderTimeoutError
from utils.retry import TRANSIENT_EXCEPTIONS, RetryConfig, retry_async

from ..models import ChatMessage, CompletionResult

logger = logging.getLogger(__name__)


class ProviderType(Enum):
    """Supported LLM provider types."""

    OLLAMA = auto()
    GOOGLE = auto()
    OPENAI = auto()


@dataclass
class CompletionOptions:
    """Per-request generation options."""

    temperature: float = 0.0
    max_tokens: Optional[int] = None
    top_p: Optional[float] = None
    stop: List[str] = field(default_factory=list)
    seed: Optional[int] = None


@runtime_checkable
class CompletionClient(Protocol):
    """Anything that can turn chat messages into a CompletionResult."""

    model: str

    async def complete(
        self,
        messages: Sequence[ChatMessage],
        options: Optional[CompletionOptions] = None,
    ) -> CompletionResult:
        ...


class BaseProvider(ABC):
    """
    Abstract base class for completion providers.

    Subclasses implement:
    - provider_type: ProviderType enum value
    - _complete(): a single, un-retried completion request

    Subclasses may extend ``retryable_exceptions`` with their SDK's
    transient error types, or raise RetryableError from ``_complete``.
    """

    retryable_exceptions: Tuple[Type[BaseException], ...] = TRANSIENT_EXCEPTIONS

    def __init__(
        self,
        model: str,
        options: Optional[CompletionOptions] = None,
        timeout: float = 120.0,
        retry_config: Optional[RetryConfig] = None,
    ):
        """
        Args:
            model: Model name/identifier.
            options: Default completion options for this client.
            timeout: Request timeout in seconds.
            retry_config: Backoff settings for transient failures.
        """
        self.model = model
        self.options = options or CompletionOptions()
        self.timeout = timeout
        self.retry_config = retry_config or RetryConfig(max_attempts=3, initial_delay=1.0)
        self._request_count = 0
        self._total_tokens = 0

    @property
    @abstractmethod
    def provider_type(self) -> ProviderType:
        """Return the provider type enum."""
        ...

    @abstractmethod
    async def _complete(
        self,
        messages: Sequence[ChatMessage],
        options: CompletionOptions,
    ) -> CompletionResult:
        """Issue one completion request. May raise any exception."""
        ...

    async def complete(
        self,
        messages: Sequence[ChatMessage],
        options: Optional[CompletionOptions] = None,
    ) -> CompletionResult:
        """
        Generate a completion for a multi-turn conversation.

        Args:
            messages: Ordered chat messages.
            options: Override default completion options.

        Returns:
            CompletionResult with content, usage and finish reason.

        Raises:
            ProviderTimeoutError: If every attempt exceeded the timeout.
            ProviderError: For any other provider failure.
        """
        opts = options or self.options
        name = self.provider_type.name.lower()

        async def attempt() -> CompletionResult:
            return await asyncio.wait_for(self._complete(messages, opts), timeout=self.timeout)

        try:
            result = await retry_async(
                attempt,
                retry_config=self.retry_config,
                retryable_exceptions=self.retryable_exceptions,
            )
        except asyncio.TimeoutError as e:
            raise ProviderTimeoutError(
                f"{name} completion timed out after {self.timeout:.0f}s",
                provider=name,
                model=self.model,
            ) from e
        except ProviderError:
            raise
        except Exception as e:
            raise ProviderError(
                f"{name} completion failed: {e}", provider=name, model=self.model
            ) from e

        self._request_count += 1
        if result.usage:
            self._total_tokens += result.usage.total_tokens
        return result

    def get_stats(self) -> Dict[str, Any]:
        """Get usage statistics for this provider instance."""
        return {
            "model": self.model,
            "provider": self.provider_type.name,
            "request_count": self._request_count,
            "total_tokens": self._total_tokens,
        }


def resolve_provider_name(model: str) -> str:
    """Infer the provider from a model name.

    gpt-*, o1*, o3*, o4* map to openai, gemini* to google; anything else is
    assumed to be served by a local Ollama instance.
    """
    name = model.lower()
    if name.startswith(("gpt-", "o1", "o3", "o4")):
        return "openai"
    if name.startswith("gemini"):
        return "google"
    return "ollama"


class ProviderFactory:
    """
    Factory for creating provider instances.

    Usage:
        provider = ProviderFactory.create("ollama", model="qwen2.5:32b")
    """

    _registry: Dict[str, type] = {}

    @classmethod
    def register(cls, name: str, provider_class: type) -> None:
        """Register a provider class."""
        cls._registry[name.lower()] = provider_class

    @classmethod
    def create(
        cls,
        provider_name: str,
        model: str,
        options: Optional[CompletionOptions] = None,
        **kwargs: Any,
    ) -> BaseProvider:
        """
        Create a provider instance.

        Args:
            provider_name: Provider name (ollama, google, openai).
            model: Model name/identifier.
            options: Default completion options.
            **kwargs: Provider-specific arguments.

        Returns:
            Configured provider instance.

        Raises:
            ValueError: If provider is not registered.
        """
        provider_class = cls._registry.get(provider_name.lower())
        if provider_class is None:
            available = ", ".join(cls._registry.keys())
            raise ValueError(
                f"Unknown provider '{provider_name}'. Available: {available}"
            )
        return provider_class(model=model, options=options, **kwargs)

    @classmethod
    def available_providers(cls) -> List[str]:
        """List registered provider names."""
        return list(cls._registry.keys())


def create_client(model: str, provider: Optional[str] = None, **kwargs: Any) -> BaseProvider:
    """Create a completion client, inferring the provider from the model name."""
    provider_name = provider or resolve_provider_name(model)
    logger.debug(f"Creating {provider_name} client for {model}")
    return ProviderFactory.create(provider_name, model=model, **kwargs)
