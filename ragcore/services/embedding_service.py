from __future__ import annotations

from typing import List, Protocol

import httpx

from ragcore.core.config import settings
from ragcore.core.errors import EmbeddingError
from ragcore.services.ollama_client import OllamaClient


class EmbeddingProvider(Protocol):
    async def embed_strings(self, texts: List[str]) -> List[List[float]]: ...


class EmbeddingService:
    def __init__(self, ollama: OllamaClient, model: str | None = None, dim: int | None = None):
        self.ollama = ollama
        self.model = model or settings.EMBEDDING_MODEL
        self.dim = settings.EMBEDDING_DIM if dim is None else dim

    async def embed_strings(self, texts: List[str]) -> List[List[float]]:
        try:
            vectors = await self.ollama.embed(self.model, texts)
        except (httpx.HTTPError, KeyError, ValueError) as e:
            raise EmbeddingError(f"embedding provider error: {e}") from e

        if len(vectors) != len(texts):
            raise EmbeddingError(
                f"Embedding count mismatch: got {len(vectors)} expected {len(texts)}"
            )
        for vec in vectors:
            if self.dim and len(vec) != self.dim:
                raise EmbeddingError(
                    f"Embedding dim mismatch: got {len(vec)} expected {self.dim}"
                )
        return vectors
