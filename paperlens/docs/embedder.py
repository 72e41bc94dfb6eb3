"""Local embedding model for chunks and queries.

The sentence-transformers model is a process-wide resource loaded lazily on
first use. Loading is single-flight: concurrent first callers wait on one
load instead of each loading their own copy.
"""

import asyncio
import logging
from typing import Protocol

from sentence_transformers import SentenceTransformer

from paperlens.config import get_settings

logger = logging.getLogger(__name__)

EMBED_INPUT_CHARS = 2000


class Embedder(Protocol):
    """Protocol for embedding service implementations."""

    async def embed(self, text: str) -> list[float]:
        """Embed text into a fixed-length, L2-normalized vector."""
        ...


class SentenceTransformerEmbedder:
    """Mean-pooled, L2-normalized embeddings from a local model."""

    def __init__(self, model_name: str) -> None:
        self.model_name = model_name
        self._model: SentenceTransformer | None = None
        self._load_lock = asyncio.Lock()

    async def _get_model(self) -> SentenceTransformer:
        if self._model is not None:
            return self._model
        async with self._load_lock:
            if self._model is None:
                logger.info(f"Loading embedding model: {self.model_name}")
                self._model = await asyncio.to_thread(SentenceTransformer, self.model_name)
        return self._model

    async def embed(self, text: str) -> list[float]:
        """Embed the first EMBED_INPUT_CHARS characters of text."""
        model = await self._get_model()
        vector = await asyncio.to_thread(
            model.encode,
            text[:EMBED_INPUT_CHARS],
            normalize_embeddings=True,
            convert_to_numpy=True,
        )
        return vector.tolist()


_embedder: SentenceTransformerEmbedder | None = None


def get_embedder() -> Embedder:
    """Get global embedder instance (model loads on first embed call)."""
    global _embedder
    if _embedder is None:
        _embedder = SentenceTransformerEmbedder(get_settings().embedding_model_name)
    return _embedder
