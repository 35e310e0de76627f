# ============================================================================
# src/prescription_triage/knowledge/embeddings.py
# ============================================================================
"""
Embedding Providers for Knowledge Search

Backends:
- sentence_transformers: all-MiniLM-L6-v2 loaded in-process (384 dims)
- ollama: /api/embeddings on a local Ollama server

Every provider returns float32 vectors of exactly `dim` entries, or raises
EmbeddingError. A zero vector is never returned in place of a failure.
"""

import hashlib
import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, Optional

import numpy as np
import requests

from ..utils.exceptions import ConfigurationError, EmbeddingError


logger = logging.getLogger(__name__)


class EmbeddingTask(str, Enum):
    """Asymmetric retrieval models embed queries and documents differently."""
    QUERY = "query"
    DOCUMENT = "document"


class EmbeddingProvider(ABC):

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = config or {}
        self.model_name = self.config.get('embedding_model', 'all-MiniLM-L6-v2')
        self.dim = self.config.get('embedding_dim', 384)
        self.prefixes = {
            EmbeddingTask.QUERY: self.config.get('embedding_query_prefix', ''),
            EmbeddingTask.DOCUMENT: self.config.get('embedding_document_prefix', ''),
        }

        # Embedding cache (LRU-style, keyed by text hash)
        self._cache: Dict[str, np.ndarray] = {}
        self._cache_max_size = 100

    @abstractmethod
    def _embed(self, text: str) -> np.ndarray:
        pass

    def embed(self, text: str, task: EmbeddingTask = EmbeddingTask.QUERY) -> np.ndarray:
        """
        Embed text for the given retrieval task.

        Blocking; async callers run it in an executor.

        Raises:
            EmbeddingError: Backend failed or vector has the wrong size
        """
        prefixed = f"{self.prefixes[task]}{text}"
        key = hashlib.sha256(prefixed.encode()).hexdigest()[:32]
        if key in self._cache:
            return self._cache[key]

        vector = np.asarray(self._embed(prefixed), dtype=np.float32).reshape(-1)
        if vector.shape[0] != self.dim:
            raise EmbeddingError(
                f"{self.model_name} produced {vector.shape[0]} dims, expected {self.dim}"
            )

        # Simple LRU: remove oldest if full
        if len(self._cache) >= self._cache_max_size:
            del self._cache[next(iter(self._cache))]
        self._cache[key] = vector
        return vector


class SentenceTransformerEmbeddings(EmbeddingProvider):

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        super().__init__(config)
        self._model = None

    @property
    def model(self):
        """Lazy load embedding model."""
        if self._model is None:
            from sentence_transformers import SentenceTransformer
            self._model = SentenceTransformer(self.model_name)
            logger.info(f"Loaded embedding model: {self.model_name}")
        return self._model

    def _embed(self, text: str) -> np.ndarray:
        try:
            return self.model.encode(text, convert_to_numpy=True)
        except Exception as e:
            raise EmbeddingError(f"sentence-transformers embedding failed: {e}") from e


class OllamaEmbeddings(EmbeddingProvider):

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        super().__init__(config)
        self.host = self.config.get('ollama_host', 'http://localhost:11434')
        self.timeout = self.config.get('provider_timeout', 30)
        self._http_session: Optional[requests.Session] = None

    @property
    def http_session(self) -> requests.Session:
        """Lazy load HTTP session for connection pooling."""
        if self._http_session is None:
            self._http_session = requests.Session()
        return self._http_session

    def _embed(self, text: str) -> np.ndarray:
        try:
            response = self.http_session.post(
                f"{self.host}/api/embeddings",
                json={"model": self.model_name, "prompt": text},
                timeout=self.timeout,
            )
            response.raise_for_status()
            embedding = response.json().get('embedding')
        except (requests.RequestException, ValueError) as e:
            raise EmbeddingError(f"Ollama embedding failed: {e}") from e

        if not embedding:
            raise EmbeddingError(f"Ollama returned no embedding for model {self.model_name}")
        return np.array(embedding, dtype=np.float32)


def create_embedding_provider(config: Dict[str, Any]) -> EmbeddingProvider:
    backend = config.get('embedding_backend', 'sentence_transformers').lower()
    if backend == 'sentence_transformers':
        return SentenceTransformerEmbeddings(config)
    if backend == 'ollama':
        return OllamaEmbeddings(config)
    raise ConfigurationError(f"Unknown embedding backend: {backend}")
