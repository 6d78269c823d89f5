"""
Embeddings provider backends: OpenAI API, Ollama, and local
sentence-transformers models.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence

from ollama import AsyncClient

import config
from utils.exceptions import ConfigError

from .service import EmbeddingsProvider

logger = logging.getLogger(__name__)


class OpenAIEmbeddingsProvider(EmbeddingsProvider):
    """Hosted embeddings via the OpenAI API."""

    name = "openai"
    default_model = "text-embedding-3-small"

    def __init__(self, model: Optional[str] = None, api_key: Optional[str] = None):
        super().__init__(model)
        self._api_key = api_key or config.OPENAI_API_KEY
        if not self._api_key:
            raise ConfigError(
                "OPENAI_API_KEY not configured. Set it in .env or environment variables."
            )
        self._client: Any = None

    def _ensure_client(self) -> None:
        if self._client is not None:
            return

        from openai import AsyncOpenAI

        self._client = AsyncOpenAI(api_key=self._api_key)

    async def embed_many(self, texts: Sequence[str]) -> List[Sequence[float]]:
        self._ensure_client()
        response = await self._client.embeddings.create(model=self.model, input=list(texts))
        data = sorted(response.data, key=lambda item: item.index)
        return [item.embedding for item in data]


class OllamaEmbeddingsProvider(EmbeddingsProvider):
    """Embeddings from a local Ollama server."""

    name = "ollama"
    default_model = "nomic-embed-text"

    def __init__(self, model: Optional[str] = None, host: Optional[str] = None):
        super().__init__(model)
        self._client = AsyncClient(host=host or config.OLLAMA_HOST)

    async def embed_many(self, texts: Sequence[str]) -> List[Sequence[float]]:
        response = await self._client.embed(model=self.model, input=list(texts))
        return list(response.get("embeddings") or [])


class LocalEmbeddingsProvider(EmbeddingsProvider):
    """
    In-process sentence-transformers model.

    The model is loaded on first use; encoding runs in a worker thread so
    it does not block the event loop.
    """

    name = "local"
    default_model = "all-MiniLM-L6-v2"

    def __init__(self, model: Optional[str] = None, cache_dir: Optional[str] = None):
        super().__init__(model)
        self.cache_dir = cache_dir
        self._model: Any = None

    def _load_model(self) -> Any:
        if self._model is None:
            try:
                from sentence_transformers import SentenceTransformer
            except ImportError as e:
                raise ImportError(
                    "sentence-transformers package required: pip install 'llm-evals[local]'"
                ) from e

            kwargs: Dict[str, Any] = {}
            if self.cache_dir:
                kwargs["cache_folder"] = str(self.cache_dir)
            logger.info(f"Loading local embedding model {self.model}")
            self._model = SentenceTransformer(self.model, **kwargs)
        return self._model

    def _encode(self, texts: List[str]) -> List[Sequence[float]]:
        vectors = self._load_model().encode(texts, convert_to_numpy=True)
        return [v for v in vectors]

    async def embed_many(self, texts: Sequence[str]) -> List[Sequence[float]]:
        return await asyncio.to_thread(self._encode, list(texts))


EMBEDDINGS_PROVIDERS: Dict[str, type] = {
    "openai": OpenAIEmbeddingsProvider,
    "ollama": OllamaEmbeddingsProvider,
    "local": LocalEmbeddingsProvider,
}


def create_embeddings_provider(
    name: str, model: Optional[str] = None, **kwargs: Any
) -> EmbeddingsProvider:
    """Instantiate an embeddings provider by name.

    Raises:
        ConfigError: If the provider name is unknown.
    """
    provider_class = EMBEDDINGS_PROVIDERS.get(name.lower())
    if provider_class is None:
        available = ", ".join(EMBEDDINGS_PROVIDERS.keys())
        raise ConfigError(f"Unknown embeddings provider '{name}'. Available: {available}")
    return provider_class(model=model, **kwargs)
