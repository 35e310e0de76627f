# ============================================================================
# src/prescription_triage/knowledge/store.py
# ============================================================================
"""
Knowledge Store

Read-mostly SQLite store of medical knowledge records (condition,
symptoms, remedy, precautions, severity, 384-dim embedding) plus the
registry of vector indexes built over them.

Follows the same pattern as the history store: raw sqlite3, a fresh
connection per operation, JSON for list fields, embeddings as float32 BLOBs.
"""

import csv
import json
import logging
import re
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

import numpy as np

from ..constants.conditions import ADVISORY_KEYWORDS
from ..core.models import KnowledgeRecord
from ..utils.exceptions import EmbeddingError, VectorSearchError
from .embeddings import EmbeddingProvider, EmbeddingTask


logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = Path("data") / "knowledge.db"

# Words too common in chat to say anything about a condition
_QUERY_STOP_WORDS = frozenset({
    "have", "having", "with", "what", "that", "this", "from", "about", "some",
    "your", "please", "should", "would", "could", "feel", "feeling", "since",
    "there", "been", "were", "when", "which", "really", "very", "much", "also",
    "bad", "any", "can", "the", "and", "for", "you", "are", "but", "not",
    "get", "got", "its", "my", "me", "is", "it", "do", "does", "how",
})

# CSV header fallbacks, first present wins
_CONDITION_COLUMNS = ("Disease Prediction", "Disease", "disease")
_SYMPTOM_COLUMNS = ("Symptoms/Question", "Symptoms", "symptoms")
_REMEDY_COLUMNS = ("Recommended Medicines", "Recommend", "Advice", "remedy")
_PRECAUTION_COLUMNS = ("Advice", "Precautions", "precautions")
_SEVERITY_COLUMNS = ("Severity_Score", "Severity_S", "severity")


def _split_list(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


def _first_column(row: Dict[str, str], columns: Iterable[str]) -> str:
    for column in columns:
        value = row.get(column)
        if value is not None and str(value).strip():
            return str(value).strip()
    return ""


class KnowledgeStore:
    """
    SQLite-backed knowledge base.

    Args:
        db_path: Database file (created if missing)
    """

    def __init__(self, db_path: Optional[Path] = None):
        self.db_path = Path(db_path) if db_path else DEFAULT_DB_PATH
        self._init_database()

    # ------------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------------
    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(str(self.db_path))
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def _init_database(self):
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS knowledge_records (
                    condition       TEXT PRIMARY KEY COLLATE NOCASE,
                    symptoms        TEXT NOT NULL DEFAULT '[]',
                    remedy          TEXT NOT NULL DEFAULT '',
                    precautions     TEXT NOT NULL DEFAULT '[]',
                    severity_score  REAL NOT NULL DEFAULT 0,
                    embedding       BLOB
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS vector_indexes (
                    name            TEXT PRIMARY KEY,
                    dimensions      INTEGER NOT NULL,
                    similarity      TEXT NOT NULL DEFAULT 'cosine',
                    created_at      TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
                )
            """)
        logger.debug(f"Knowledge store initialized: {self.db_path}")

    # ------------------------------------------------------------------
    # Row mapping
    # ------------------------------------------------------------------
    _COLUMNS = "condition, symptoms, remedy, precautions, severity_score, embedding"

    @staticmethod
    def _to_record(row: Tuple) -> KnowledgeRecord:
        condition, symptoms, remedy, precautions, severity, blob = row
        return KnowledgeRecord(
            condition=condition,
            symptoms=tuple(json.loads(symptoms or "[]")),
            remedy=remedy or "",
            precautions=tuple(json.loads(precautions or "[]")),
            severity_score=float(severity or 0.0),
            embedding=np.frombuffer(blob, dtype=np.float32) if blob else None,
        )

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------
    def upsert(self, record: KnowledgeRecord) -> None:
        """Insert or replace one record (keyed by condition, case-insensitive)."""
        self.upsert_many([record])

    def upsert_many(self, records: Iterable[KnowledgeRecord]) -> int:
        rows = [
            (
                r.condition,
                json.dumps(list(r.symptoms)),
                r.remedy,
                json.dumps(list(r.precautions)),
                float(r.severity_score),
                r.embedding.astype(np.float32).tobytes() if r.embedding is not None else None,
            )
            for r in records
        ]
        with self._connect() as conn:
            conn.executemany(f"""
                INSERT INTO knowledge_records ({self._COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(condition) DO UPDATE SET
                    symptoms = excluded.symptoms,
                    remedy = excluded.remedy,
                    precautions = excluded.precautions,
                    severity_score = excluded.severity_score,
                    embedding = excluded.embedding
            """, rows)
        return len(rows)

    def create_index(self, name: str, dimensions: int = 384, similarity: str = "cosine") -> None:
        """Register a vector index over the stored embeddings."""
        if similarity != "cosine":
            raise ValueError(f"Unsupported similarity '{similarity}', only cosine is implemented")
        with self._connect() as conn:
            conn.execute("""
                INSERT INTO vector_indexes (name, dimensions, similarity)
                VALUES (?, ?, ?)
                ON CONFLICT(name) DO UPDATE SET
                    dimensions = excluded.dimensions,
                    similarity = excluded.similarity
            """, (name, dimensions, similarity))
        logger.info(f"Vector index '{name}' registered ({dimensions} dims, {similarity})")

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------
    def count(self) -> int:
        with self._connect() as conn:
            return conn.execute("SELECT COUNT(*) FROM knowledge_records").fetchone()[0]

    def get(self, condition: str) -> Optional[KnowledgeRecord]:
        records = self.find_by_condition(condition)
        return records[0] if records else None

    def find_by_condition(self, condition: str) -> List[KnowledgeRecord]:
        """Exact, case-insensitive condition lookup."""
        with self._connect() as conn:
            rows = conn.execute(
                f"SELECT {self._COLUMNS} FROM knowledge_records WHERE condition = ?",
                (condition,),
            ).fetchall()
        return [self._to_record(row) for row in rows]

    def condition_names(self) -> List[str]:
        with self._connect() as conn:
            rows = conn.execute("SELECT condition FROM knowledge_records ORDER BY condition").fetchall()
        return [row[0] for row in rows]

    def severity_for(self, condition: str) -> Optional[float]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT severity_score FROM knowledge_records WHERE condition = ?",
                (condition,),
            ).fetchone()
        return float(row[0]) if row else None

    def has_index(self, name: str) -> bool:
        return self._index_dimensions(name) is not None

    def _index_dimensions(self, name: str) -> Optional[int]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT dimensions FROM vector_indexes WHERE name = ?", (name,)
            ).fetchone()
        return int(row[0]) if row else None

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------
    def vector_search(
        self,
        query_vector: np.ndarray,
        index_name: str = "vector_index",
        top_k: int = 3,
    ) -> List[Tuple[KnowledgeRecord, float]]:
        """
        Cosine nearest neighbours over stored embeddings.

        Raises:
            VectorSearchError: Index missing, dimension mismatch, database
                unavailable, or no embedding of the index's size to compare
        """
        try:
            dimensions = self._index_dimensions(index_name)
        except sqlite3.Error as e:
            raise VectorSearchError(f"Knowledge base unavailable: {e}") from e
        if dimensions is None:
            raise VectorSearchError(f"Vector index '{index_name}' does not exist")

        query_vector = np.asarray(query_vector, dtype=np.float32).reshape(-1)
        if query_vector.shape[0] != dimensions:
            raise VectorSearchError(
                f"Query has {query_vector.shape[0]} dims, index '{index_name}' expects {dimensions}"
            )

        try:
            with self._connect() as conn:
                rows = conn.execute(
                    f"SELECT {self._COLUMNS} FROM knowledge_records WHERE embedding IS NOT NULL"
                ).fetchall()
        except sqlite3.Error as e:
            raise VectorSearchError(f"Knowledge base unavailable: {e}") from e

        if not rows:
            raise VectorSearchError(f"Vector index '{index_name}' has no embedded records")

        scored = []
        for row in rows:
            record = self._to_record(row)
            if record.embedding.shape[0] != dimensions:
                logger.warning(f"Skipping '{record.condition}': embedding has {record.embedding.shape[0]} dims")
                continue
            scored.append((record, self._cosine_similarity(query_vector, record.embedding)))

        if not scored:
            raise VectorSearchError(f"No embeddings in index '{index_name}' have {dimensions} dims")

        scored.sort(key=lambda item: item[1], reverse=True)
        return scored[:top_k]

    @staticmethod
    def _cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
        norm_a = np.linalg.norm(a)
        norm_b = np.linalg.norm(b)
        if norm_a == 0 or norm_b == 0:
            return 0.0
        return float(np.dot(a, b) / (norm_a * norm_b))

    def keyword_search(self, query: str, top_k: int = 3) -> List[KnowledgeRecord]:
        """
        Regex match of the query and its significant words against condition,
        remedy and symptoms. Never raises; returns [] on any failure.
        """
        query = (query or "").strip().lower()
        if not query:
            return []

        tokens = [
            t for t in re.findall(r"[a-z']+", query)
            if len(t) >= 3 and t not in _QUERY_STOP_WORDS and t not in ADVISORY_KEYWORDS
        ]
        whole = re.compile(re.escape(query))
        token_patterns = [re.compile(rf"\b{re.escape(t)}\b") for t in dict.fromkeys(tokens)]

        try:
            with self._connect() as conn:
                rows = conn.execute(f"SELECT {self._COLUMNS} FROM knowledge_records").fetchall()
        except sqlite3.Error as e:
            logger.error(f"Keyword search unavailable: {e}")
            return []

        scored = []
        for row in rows:
            record = self._to_record(row)
            condition = record.condition.lower()
            symptoms = " ".join(record.symptoms).lower()
            remedy = record.remedy.lower()

            score = 0.0
            if whole.search(condition) or whole.search(symptoms):
                score += 5
            for pattern in token_patterns:
                if pattern.search(condition):
                    score += 3
                if pattern.search(symptoms):
                    score += 1
                if pattern.search(remedy):
                    score += 0.5
            if score > 0:
                scored.append((score, record.condition, record))

        scored.sort(key=lambda item: (-item[0], item[1]))
        return [record for _, _, record in scored[:top_k]]

    # ------------------------------------------------------------------
    # Import
    # ------------------------------------------------------------------
    def import_csv(
        self,
        csv_path: Path,
        embedder: Optional[EmbeddingProvider] = None,
        dimensions: int = 384,
    ) -> int:
        """
        Import a disease CSV, keeping the first row seen per condition.

        Embeddings come from vector_0..vector_{dimensions-1} columns when all
        are present; otherwise from `embedder` if given.

        Returns:
            Number of records written
        """
        records: Dict[str, KnowledgeRecord] = {}
        skipped = 0

        with open(csv_path, newline="", encoding="utf-8-sig") as f:
            reader = csv.DictReader(f)
            vector_columns = [f"vector_{i}" for i in range(dimensions)]
            has_vectors = set(vector_columns).issubset(reader.fieldnames or [])

            for row in reader:
                condition = _first_column(row, _CONDITION_COLUMNS)
                if not condition or condition.lower() in records:
                    skipped += 1
                    continue

                embedding = None
                if has_vectors:
                    try:
                        embedding = np.array([float(row[c]) for c in vector_columns], dtype=np.float32)
                    except (TypeError, ValueError):
                        logger.warning(f"Invalid embedding columns for '{condition}', recomputing")

                symptoms = _split_list(_first_column(row, _SYMPTOM_COLUMNS))
                remedy = _first_column(row, _REMEDY_COLUMNS)
                if embedding is None and embedder is not None:
                    try:
                        embedding = embedder.embed(
                            f"{condition}. {', '.join(symptoms)}. {remedy}",
                            task=EmbeddingTask.DOCUMENT,
                        )
                    except EmbeddingError as e:
                        logger.warning(f"No embedding for '{condition}': {e}")

                try:
                    severity = float(_first_column(row, _SEVERITY_COLUMNS) or 0.0)
                except ValueError:
                    severity = 0.0

                records[condition.lower()] = KnowledgeRecord(
                    condition=condition,
                    symptoms=symptoms,
                    remedy=remedy,
                    precautions=_split_list(_first_column(row, _PRECAUTION_COLUMNS)),
                    severity_score=severity,
                    embedding=embedding,
                )

        written = self.upsert_many(records.values())
        logger.info(f"Imported {written} knowledge records from {csv_path} ({skipped} rows skipped)")
        return written
