"""
Google Gemini Provider Implementation

Cloud LLM inference via the Google GenAI SDK (async client).

Usage:
    provider = GoogleProvider(model="gemini-2.5-flash")
    result = await provider.complete([ChatMessage("user", "Explain AI")])
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

import config
from utils.exceptions import ConfigError
from utils.retry import RetryableError

from ..models import ChatMessage, CompletionResult, TokenUsage
from .base import BaseProvider, CompletionOptions, ProviderFactory, ProviderType

logger = logging.getLogger(__name__)

# HTTP status codes from the Gemini API worth retrying
TRANSIENT_STATUS_CODES = (408, 429, 500, 502, 503, 504)


class GoogleProvider(BaseProvider):
    """
    Google Gemini provider for cloud LLM inference.

    Requires GOOGLE_API_KEY environment variable or explicit api_key.
    """

    def __init__(
        self,
        model: str,
        options: Optional[CompletionOptions] = None,
        timeout: float = 120.0,
        api_key: Optional[str] = None,
        **kwargs: Any,
    ):
        """
        Args:
            model: Gemini model name (e.g., "gemini-2.5-flash").
            options: Default completion options.
            timeout: Request timeout in seconds.
            api_key: Google API key (defaults to GOOGLE_API_KEY env var).

        Raises:
            ConfigError: If no API key is configured.
        """
        super().__init__(model, options, timeout, **kwargs)
        self._api_key = api_key or config.GOOGLE_API_KEY
        if not self._api_key:
            raise ConfigError(
                "Google API key required. Set GOOGLE_API_KEY env var or pass api_key."
            )
        self._client: Any = None
        self._genai: Any = None
        self._errors: Any = None

    @property
    def provider_type(self) -> ProviderType:
        return ProviderType.GOOGLE

    def _ensure_client(self) -> None:
        """Lazily initialize the Google GenAI client."""
        if self._client is not None:
            return

        try:
            from google import genai
            from google.genai import errors
        except ImportError as e:
            raise ImportError("google-genai package required: pip install google-genai") from e

        self._genai = genai
        self._errors = errors
        self._client = genai.Client(api_key=self._api_key)

    @staticmethod
    def _to_contents(messages: Sequence[ChatMessage]) -> tuple:
        """Split chat messages into Gemini contents and a system instruction.

        Gemini uses "user" and "model" roles; system messages are joined into
        the system instruction.
        """
        contents: List[Dict[str, Any]] = []
        system_parts: List[str] = []
        for msg in messages:
            if msg.role == "system":
                system_parts.append(msg.content)
            elif msg.role == "assistant":
                contents.append({"role": "model", "parts": [{"text": msg.content}]})
            else:
                contents.append({"role": "user", "parts": [{"text": msg.content}]})
        return contents, "\n\n".join(system_parts) or None

    async def _complete(
        self,
        messages: Sequence[ChatMessage],
        options: CompletionOptions,
    ) -> CompletionResult:
        self._ensure_client()
        contents, system_instruction = self._to_contents(messages)

        generation_config: Dict[str, Any] = {"temperature": options.temperature}
        if options.max_tokens is not None:
            generation_config["max_output_tokens"] = options.max_tokens
        if options.top_p is not None:
            generation_config["top_p"] = options.top_p
        if options.stop:
            generation_config["stop_sequences"] = list(options.stop)
        if options.seed is not None:
            generation_config["seed"] = options.seed
        if system_instruction:
            generation_config["system_instruction"] = system_instruction

        try:
            response = await self._client.aio.models.generate_content(
                model=self.model,
                contents=contents,
                config=self._genai.types.GenerateContentConfig(**generation_config),
            )
        except self._errors.APIError as e:
            if e.code in TRANSIENT_STATUS_CODES:
                raise RetryableError(f"Gemini API error {e.code}: {e}") from e
            raise

        text = ""
        finish_reason = None
        if response.candidates:
            candidate = response.candidates[0]
            if candidate.content and candidate.content.parts:
                text = "".join(part.text or "" for part in candidate.content.parts)
            if candidate.finish_reason is not None:
                finish_reason = str(getattr(candidate.finish_reason, "name", candidate.finish_reason))

        usage = getattr(response, "usage_metadata", None)
        prompt_tokens = (getattr(usage, "prompt_token_count", 0) or 0) if usage else 0
        completion_tokens = (getattr(usage, "candidates_token_count", 0) or 0) if usage else 0

        return CompletionResult(
            content=text,
            model=self.model,
            usage=TokenUsage(
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
                total_tokens=prompt_tokens + completion_tokens,
            ),
            finish_reason=finish_reason,
        )


# Register with factory
ProviderFactory.register("google", GoogleProvider)
