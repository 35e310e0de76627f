# ============================================================================
# src/prescription_triage/knowledge/__init__.py
# ============================================================================
"""
Medical knowledge base: storage, embeddings, condition detection, matching.
"""

from .store import KnowledgeStore
from .matcher import KnowledgeMatcher
from .detection import ConditionDetector
from .embeddings import EmbeddingTask, create_embedding_provider
