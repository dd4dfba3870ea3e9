"""
Embedding Service

On-device embedding generation using fastembed.
Provides cosine similarity helpers for the vector matching strategy.
"""

import logging
from typing import List, Optional

import numpy as np

from .errors import EmbeddingError

logger = logging.getLogger("faqtriage.common.embedding_service")


class EmbeddingService:
    """
    Embedding service shared by all message-processing tasks.

    Created once at startup and passed by reference. The fastembed model is
    loaded lazily on first use so that deployments using the judged
    strategy never pay for it.
    """

    def __init__(self, model: str = "sentence-transformers/paraphrase-multilingual-MiniLM-L12-v2"):
        self._model_name = model
        self._model = None
        self._dimension: Optional[int] = None
        self._load_failed = False

    def _ensure_model(self):
        if self._model is not None:
            return self._model
        if self._load_failed:
            raise EmbeddingError(f"Embedding model {self._model_name} failed to load")
        try:
            from fastembed import TextEmbedding

            self._model = TextEmbedding(model_name=self._model_name)
            logger.info("Loaded embedding model %s", self._model_name)
        except Exception as e:
            self._load_failed = True
            raise EmbeddingError(f"Could not load embedding model {self._model_name}: {e}") from e
        return self._model

    @property
    def model_name(self) -> str:
        return self._model_name

    @property
    def dimension(self) -> Optional[int]:
        """Output dimensionality, known after the first embedding."""
        return self._dimension

    @property
    def is_available(self) -> bool:
        try:
            self._ensure_model()
        except EmbeddingError:
            return False
        return True

    def embed(self, texts: List[str]) -> List[List[float]]:
        """
        Generate embeddings for a list of texts.

        Args:
            texts: List of strings to embed

        Returns:
            List of embedding vectors

        Raises:
            EmbeddingError: if the model is unavailable or inference fails
        """
        if not texts:
            return []

        model = self._ensure_model()
        try:
            vectors = [np.asarray(v, dtype=float) for v in model.embed(texts)]
        except Exception as e:
            raise EmbeddingError(f"Embedding failed: {e}") from e

        for vec in vectors:
            if self._dimension is None:
                self._dimension = int(vec.shape[0])
            elif vec.shape[0] != self._dimension:
                raise EmbeddingError(
                    f"Embedding dimension changed: expected {self._dimension}, got {vec.shape[0]}"
                )
        return [vec.tolist() for vec in vectors]

    def embed_single(self, text: str) -> List[float]:
        """Generate embedding for a single text."""
        if not text or not text.strip():
            raise ValueError("Cannot embed empty text")
        return self.embed([text])[0]


def cosine_similarity(vec1: List[float], vec2: List[float]) -> float:
    """
    Cosine similarity: dot product over the product of L2 norms.

    Raises:
        ValueError: on dimension mismatch; vectors are never truncated

    Returns:
        Similarity in [-1, 1]; 0.0 when either vector has zero norm or the
        result is NaN
    """
    v1 = np.asarray(vec1, dtype=float)
    v2 = np.asarray(vec2, dtype=float)

    if v1.shape != v2.shape:
        raise ValueError(f"Vector dimension mismatch: {v1.shape} vs {v2.shape}")

    denom = float(np.linalg.norm(v1) * np.linalg.norm(v2))
    if denom == 0.0 or not np.isfinite(denom):
        return 0.0

    similarity = float(np.dot(v1, v2) / denom)
    if not np.isfinite(similarity):
        return 0.0
    return similarity
