"""Embedding model management."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Iterable, Literal, Protocol, Sequence

import numpy as np
from sentence_transformers import SentenceTransformer
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_random_exponential,
)

from chatsync.errors import DimensionMismatchError, EmbeddingProviderError

DEFAULT_MODEL = "sentence-transformers/all-MiniLM-L6-v2"

logger = logging.getLogger(__name__)


class EmbeddingBackend(Protocol):
    dimension: int

    def embed(self, texts: Sequence[str]) -> np.ndarray: ...


@dataclass(slots=True)
class EmbeddingConfig:
    model_name: str = DEFAULT_MODEL
    batch_size: int = 16
    normalize: bool = True
    backend: Literal["torch", "onnx", "openvino"] = "torch"
    device: str | None = None


class EmbeddingModel:
    """Thin wrapper around `SentenceTransformer` for query and chunk embeddings."""

    def __init__(self, config: EmbeddingConfig | None = None) -> None:
        self.config = config or EmbeddingConfig()

        try:
            self._model = self._load_model()
        except Exception as e:
            if self.config.backend != "torch":
                logger.warning(
                    f"Failed to load model with backend '{self.config.backend}': {e}. "
                    "Falling back to PyTorch."
                )
                self.config.backend = "torch"
                self._model = self._load_model()
            else:
                raise

        self.dimension = int(self._model.get_sentence_embedding_dimension())
        logger.info(
            "Loaded %s (backend: %s, dimension: %d)",
            self.config.model_name,
            self.config.backend,
            self.dimension,
        )

    def _load_model(self) -> SentenceTransformer:
        return SentenceTransformer(
            self.config.model_name,
            backend=self.config.backend,
            device=self.config.device,
        )

    def embed(self, texts: Sequence[str] | Iterable[str]) -> np.ndarray:
        """Return float32 embeddings for input texts."""
        sentences = list(texts)
        embeddings = self._model.encode(
            sentences,
            batch_size=self.config.batch_size,
            show_progress_bar=False,
            convert_to_numpy=True,
            normalize_embeddings=self.config.normalize,
        )
        return embeddings.astype("float32", copy=False)


def _is_transient(exc: BaseException) -> bool:
    return isinstance(exc, EmbeddingProviderError) and exc.transient


class Embedder:
    """Async ``text -> vector`` adapter around an embedding backend.

    Backend calls run in a worker thread. Transient provider errors are retried
    with exponential backoff; every returned vector is checked against the
    backend dimension.
    """

    def __init__(
        self,
        backend: EmbeddingBackend,
        *,
        max_retries: int = 3,
        initial_wait: float = 1.0,
        max_wait: float = 20.0,
    ) -> None:
        self.backend = backend
        self.dimension = int(backend.dimension)
        self.max_retries = max_retries
        self.initial_wait = initial_wait
        self.max_wait = max_wait

    async def embed(self, text: str) -> np.ndarray:
        return (await self.embed_batch([text]))[0]

    async def embed_batch(self, texts: Sequence[str]) -> np.ndarray:
        """Embed texts, preserving input order."""
        texts = list(texts)
        if not texts:
            return np.zeros((0, self.dimension), dtype="float32")

        retrying = AsyncRetrying(
            retry=retry_if_exception(_is_transient),
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_random_exponential(multiplier=self.initial_wait, max=self.max_wait),
            before_sleep=lambda retry_state: logger.warning(
                "Embedding provider error, retry %d/%d: %s",
                retry_state.attempt_number,
                self.max_retries,
                retry_state.outcome.exception() if retry_state.outcome else None,
            ),
            reraise=True,
        )
        vectors = await retrying(self._call_backend, texts)
        return self._validate(vectors, len(texts))

    async def _call_backend(self, texts: list[str]) -> np.ndarray:
        try:
            vectors = await asyncio.to_thread(self.backend.embed, texts)
        except EmbeddingProviderError:
            raise
        except OSError as exc:
            raise EmbeddingProviderError(f"Embedding request failed: {exc}", transient=True) from exc
        except Exception as exc:
            raise EmbeddingProviderError(f"Embedding provider rejected input: {exc}") from exc
        return np.asarray(vectors, dtype="float32")

    def _validate(self, vectors: np.ndarray, expected_rows: int) -> np.ndarray:
        if vectors.ndim != 2 or vectors.shape[0] != expected_rows:
            raise EmbeddingProviderError(
                f"Provider returned {vectors.shape[0] if vectors.ndim else 0} vectors "
                f"for {expected_rows} inputs"
            )
        if vectors.shape[1] != self.dimension:
            raise DimensionMismatchError(self.dimension, int(vectors.shape[1]))
        return vectors
