# ============================================================================
# src/prescription_triage/knowledge/matcher.py
# ============================================================================
"""
Knowledge Matcher

Finds knowledge records relevant to a chat message:

1. Relevance gate (advisory intent or a named condition), else None
2. Curated symptom alias -> exact record (cheap, precise, overrides search)
3. Condition names mentioned verbatim in the query
4. Semantic search over the vector index
5. Keyword search when the vector path fails or finds nothing comparable
   (logged, never raised)

None means "nothing relevant", not an error.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from ..constants.conditions import DEFER_TO_RESPONDER
from ..core.config import get_config
from ..core.models import KnowledgeRecord
from ..utils.exceptions import ConfigurationError, EmbeddingError, VectorSearchError
from .detection import alias_hits, contains_keyword, is_relevant
from .embeddings import EmbeddingProvider, EmbeddingTask, create_embedding_provider
from .store import KnowledgeStore


logger = logging.getLogger(__name__)


class KnowledgeMatcher:
    """
    Args:
        store: Knowledge base
        embedder: Query embedding provider (built from config when omitted)
        config: Overrides merged over get_config()
    """

    def __init__(
        self,
        store: KnowledgeStore,
        embedder: Optional[EmbeddingProvider] = None,
        config: Optional[Dict[str, Any]] = None,
    ):
        self.config = {**get_config(), **(config or {})}
        self.store = store
        self._embedder = embedder
        self.top_k = self.config.get('knowledge_top_k', 3)
        self.index_name = self.config.get('knowledge_index', 'vector_index')
        self.use_vector_search = self.config.get('use_vector_search', True)

    @property
    def embedder(self) -> EmbeddingProvider:
        """Lazy load so keyword-only deployments never build a model."""
        if self._embedder is None:
            self._embedder = create_embedding_provider(self.config)
        return self._embedder

    async def match(self, query: str) -> Optional[List[KnowledgeRecord]]:
        """
        Best-matching knowledge records for a query.

        Args:
            query: Free-text chat message

        Returns:
            Up to top_k records, or None when nothing relevant was found
        """
        if not query or not is_relevant(query):
            return None

        # Alias layer: curated override above automatic retrieval
        for alias, condition in alias_hits(query):
            if condition == DEFER_TO_RESPONDER:
                logger.info(f"Alias '{alias}' defers to the general responder")
                return None
            records = self.store.find_by_condition(condition)
            if records:
                logger.debug(f"Alias '{alias}' -> {condition}")
                return records
            logger.debug(f"Alias '{alias}' -> {condition} has no knowledge record")

        direct = [
            name for name in self.store.condition_names()
            if contains_keyword(query, name)
        ]
        if direct:
            records = []
            for name in direct[:self.top_k]:
                records.extend(self.store.find_by_condition(name))
            return records[:self.top_k]

        records = await self._semantic_search(query)
        if records is None:
            records = self.store.keyword_search(query, top_k=self.top_k)

        return records or None

    async def _semantic_search(self, query: str) -> Optional[List[KnowledgeRecord]]:
        """Vector search; None signals the keyword fallback should run."""
        if not self.use_vector_search:
            return None

        loop = asyncio.get_running_loop()
        try:
            vector = await loop.run_in_executor(None, self.embedder.embed, query, EmbeddingTask.QUERY)
            hits = self.store.vector_search(vector, index_name=self.index_name, top_k=self.top_k)
        except (ConfigurationError, EmbeddingError, VectorSearchError) as e:
            logger.warning(
                f"KnowledgeLookupDegraded: vector search failed, using keyword search ({e})",
                extra={"event": "KnowledgeLookupDegraded", "index": self.index_name},
            )
            return None

        return [record for record, _ in hits]
