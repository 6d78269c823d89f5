"""
LLM Provider Abstraction Layer

Unified completion interface for the model under evaluation and for judge
models, across Ollama, Google and OpenAI backends.

Usage:
    from llm_evals.providers import ProviderFactory, create_client

    # Provider inferred from the model name
    client = create_client("gemini-2.5-flash")

    # Via factory
    client = ProviderFactory.create("ollama", model="qwen2.5:32b")
    result = await client.complete(messages)
"""

from .base import (
    BaseProvider,
    CompletionClient,
    CompletionOptions,
    ProviderFactory,
    ProviderType,
    create_client,
    resolve_provider_name,
)
from .google_provider import GoogleProvider
from .ollama_provider import OllamaProvider
from .openai_provider import OpenAIProvider

__all__ = [
    # Base classes and types
    "BaseProvider",
    "CompletionClient",
    "CompletionOptions",
    "ProviderFactory",
    "ProviderType",
    "create_client",
    "resolve_provider_name",
    # Providers
    "OllamaProvider",
    "GoogleProvider",
    "OpenAIProvider",
]
