"""
OpenAI Provider Implementation

Chat completions via the official OpenAI SDK.

Usage:
    provider = OpenAIProvider(model="gpt-4o-mini")
    result = await provider.complete([ChatMessage("user", "What is 2+2?")])
"""

import logging
from typing import Any, Dict, Optional, Sequence, Tuple, Type

import openai

import config
from utils.exceptions import ConfigError, ProviderError
from utils.retry import TRANSIENT_EXCEPTIONS

from ..models import ChatMessage, CompletionResult, TokenUsage
from .base import BaseProvider, CompletionOptions, ProviderFactory, ProviderType

logger = logging.getLogger(__name__)

# APITimeoutError is a subclass of APIConnectionError
OPENAI_TRANSIENT_ERRORS: Tuple[Type[BaseException], ...] = (
    openai.APIConnectionError,
    openai.RateLimitError,
    openai.InternalServerError,
)


class OpenAIProvider(BaseProvider):
    """
    OpenAI provider (gpt-*, o-series).

    Requires OPENAI_API_KEY environment variable or explicit api_key.
    """

    retryable_exceptions = TRANSIENT_EXCEPTIONS + OPENAI_TRANSIENT_ERRORS

    def __init__(
        self,
        model: str,
        options: Optional[CompletionOptions] = None,
        timeout: float = 120.0,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        **kwargs: Any,
    ):
        """
        Raises:
            ConfigError: If no API key is configured.
        """
        super().__init__(model, options, timeout, **kwargs)
        self._api_key = api_key or config.OPENAI_API_KEY
        if not self._api_key:
            raise ConfigError(
                "OPENAI_API_KEY not configured. Set it in .env or environment variables."
            )
        self._base_url = base_url
        self._client: Any = None

    @property
    def provider_type(self) -> ProviderType:
        return ProviderType.OPENAI

    def _ensure_client(self) -> None:
        """Lazily initialize the async OpenAI client."""
        if self._client is not None:
            return

        from openai import AsyncOpenAI

        # Retries are handled by BaseProvider.complete
        self._client = AsyncOpenAI(api_key=self._api_key, base_url=self._base_url, max_retries=0)
        logger.info("OpenAI client initialized")

    async def _complete(
        self,
        messages: Sequence[ChatMessage],
        options: CompletionOptions,
    ) -> CompletionResult:
        self._ensure_client()

        request: Dict[str, Any] = {
            "model": self.model,
            "messages": [m.to_dict() for m in messages],
            "temperature": options.temperature,
        }
        if options.max_tokens is not None:
            request["max_tokens"] = options.max_tokens
        if options.top_p is not None:
            request["top_p"] = options.top_p
        if options.stop:
            request["stop"] = list(options.stop)
        if options.seed is not None:
            request["seed"] = options.seed

        response = await self._client.chat.completions.create(**request)

        choice = response.choices[0]
        if not choice.message.content:
            raise ProviderError("Empty completion received", provider="openai", model=self.model)

        usage = None
        if response.usage:
            usage = TokenUsage(
                prompt_tokens=response.usage.prompt_tokens,
                completion_tokens=response.usage.completion_tokens,
                total_tokens=response.usage.total_tokens,
            )

        return CompletionResult(
            content=choice.message.content,
            model=response.model,
            usage=usage,
            finish_reason=choice.finish_reason,
        )


# Register with factory
ProviderFactory.register("openai", OpenAIProvider)
