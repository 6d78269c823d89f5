"""
Ollama Provider Implementation

Local LLM inference via the Ollama chat API.

Usage:
    provider = OllamaProvider(model="qwen2.5:7b")
    result = await provider.complete([ChatMessage("user", "What is 2+2?")])
"""

import logging
from typing import Any, Dict, Optional, Sequence

from ollama import AsyncClient

import config

from ..models import ChatMessage, CompletionResult, TokenUsage
from .base import BaseProvider, CompletionOptions, ProviderFactory, ProviderType

logger = logging.getLogger(__name__)


class OllamaProvider(BaseProvider):
    """
    Ollama provider for local LLM inference.

    Connects to an Ollama server (default: OLLAMA_HOST or http://localhost:11434).
    """

    def __init__(
        self,
        model: str,
        options: Optional[CompletionOptions] = None,
        timeout: float = 120.0,
        host: Optional[str] = None,
        **kwargs: Any,
    ):
        """
        Args:
            model: Ollama model name (e.g., "qwen2.5:32b", "llama3.2:3b").
            options: Default completion options.
            timeout: Request timeout in seconds.
            host: Ollama server URL.
        """
        super().__init__(model, options, timeout, **kwargs)
        self.host = host or config.OLLAMA_HOST
        self._client = AsyncClient(host=self.host)

    @property
    def provider_type(self) -> ProviderType:
        return ProviderType.OLLAMA

    def _build_options(self, opts: CompletionOptions) -> Dict[str, Any]:
        options: Dict[str, Any] = {"temperature": opts.temperature}
        if opts.max_tokens is not None:
            options["num_predict"] = opts.max_tokens
        if opts.top_p is not None:
            options["top_p"] = opts.top_p
        if opts.stop:
            options["stop"] = list(opts.stop)
        if opts.seed is not None:
            options["seed"] = opts.seed
        return options

    async def _complete(
        self,
        messages: Sequence[ChatMessage],
        options: CompletionOptions,
    ) -> CompletionResult:
        response = await self._client.chat(
            model=self.model,
            messages=[m.to_dict() for m in messages],
            options=self._build_options(options),
            stream=False,
        )

        message = response.get("message") or {}
        prompt_tokens = response.get("prompt_eval_count") or 0
        completion_tokens = response.get("eval_count") or 0

        return CompletionResult(
            content=message.get("content") or "",
            model=response.get("model") or self.model,
            usage=TokenUsage(
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
                total_tokens=prompt_tokens + completion_tokens,
            ),
            finish_reason=response.get("done_reason"),
        )


# Register with factory
ProviderFactory.register("ollama", OllamaProvider)
