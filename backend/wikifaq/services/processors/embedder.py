"""
Embedding Service

Local sentence-transformers inference for FAQ embeddings.

Model: BAAI/bge-large-en-v1.5 (default)
- 1024 dimensions, matching the vector index
- Normalised output, so dot product equals cosine similarity

The model is loaded and run in worker threads so encoding a page's FAQs
never blocks the event loop that other pages in the wave share.
"""

import asyncio
import logging
from typing import Optional

import numpy as np
import torch
from sentence_transformers import SentenceTransformer

from wikifaq.core.config import Settings, get_settings

logger = logging.getLogger(__name__)


class EmbeddingService:
    """
    Service for generating embeddings using sentence-transformers.

    Usage:
    ------
    embedder = EmbeddingService(settings)
    await embedder.initialize()

    vectors = await embedder.embed_texts_batch([
        "Page Title: Albert Einstein\\nQuestion: ...",
        "Page Title: Albert Einstein\\nQuestion: ...",
    ])
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        model_name: Optional[str] = None,
        batch_size: Optional[int] = None,
        device: Optional[str] = None,
        normalize: bool = True
    ):
        self.settings = settings or get_settings()
        self.model_name = model_name or self.settings.EMBEDDING_MODEL
        self.batch_size = batch_size or self.settings.EMBEDDING_BATCH_SIZE
        self.device = device or self.settings.EMBEDDING_DEVICE
        self.normalize = normalize

        self.model: Optional[SentenceTransformer] = None
        self._initialized = False
        self._init_lock = asyncio.Lock()

        self._validate_device()

    def _validate_device(self) -> None:
        """Fall back to CPU when the requested accelerator is missing."""
        if self.device == "cuda" and not torch.cuda.is_available():
            logger.warning("CUDA not available, falling back to CPU")
            self.device = "cpu"
        elif self.device == "mps" and not torch.backends.mps.is_available():
            logger.warning("MPS not available, falling back to CPU")
            self.device = "cpu"

    async def initialize(self) -> None:
        """
        Load the model (downloads it on first use).

        Safe to call from several pages at once; only the first call loads.
        """
        async with self._init_lock:
            if self._initialized:
                return

            try:
                logger.info(f"Loading embedding model: {self.model_name} on {self.device}")
                self.model = await asyncio.to_thread(
                    SentenceTransformer,
                    self.model_name,
                    device=self.device
                )
                self._initialized = True
                logger.info(
                    f"Embedding model loaded. "
                    f"Dimension: {self.get_embedding_dimension()}, Device: {self.device}"
                )
            except Exception as e:
                logger.error(f"Failed to load embedding model: {e}")
                raise

    def get_embedding_dimension(self) -> int:
        if not self._initialized or self.model is None:
            return self.settings.EMBEDDING_DIMENSION
        return self.model.get_sentence_embedding_dimension()

    async def embed_text(self, text: str) -> list[float]:
        """Embedding for a single text."""
        vectors = await self.embed_texts_batch([text])
        return vectors[0]

    async def embed_texts_batch(self, texts: list[str]) -> list[list[float]]:
        """
        Embeddings for ``texts`` in input order.

        Empty texts get a zero vector rather than being sent to the model.

        Raises:
            Exception: If encoding fails
        """
        if not texts:
            return []

        await self.initialize()

        valid = [(i, text) for i, text in enumerate(texts) if text and text.strip()]
        dim = self.get_embedding_dimension()
        result = [[0.0] * dim for _ in texts]

        if not valid:
            return result

        try:
            embeddings = await asyncio.to_thread(
                self._encode,
                [text for _, text in valid],
            )
        except Exception as e:
            logger.error(f"Error in batch embedding generation: {e}")
            raise

        for (index, _), embedding in zip(valid, embeddings):
            result[index] = embedding.tolist()
        return result

    def _encode(self, texts: list[str]) -> np.ndarray:
        """Batch encode (sync, runs in a worker thread)."""
        return self.model.encode(
            texts,
            batch_size=self.batch_size,
            normalize_embeddings=self.normalize,
            show_progress_bar=False,
            convert_to_numpy=True
        )

    async def shutdown(self) -> None:
        """Release the model and any GPU memory."""
        if self.model is not None:
            if self.device == "cuda":
                torch.cuda.empty_cache()
            del self.model
            self.model = None

        self._initialized = False
        logger.info("Embedding service shut down")
