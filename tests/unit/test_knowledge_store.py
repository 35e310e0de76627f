# ============================================================================
# FILE: tests/unit/test_knowledge_store.py
# ============================================================================
"""
Unit tests for the SQLite knowledge store
"""

import sqlite3
from dataclasses import replace
from pathlib import Path

import numpy as np
import pytest

from prescription_triage.core.models import KnowledgeRecord
from prescription_triage.knowledge.store import KnowledgeStore
from prescription_triage.utils.exceptions import EmbeddingError, VectorSearchError


EMBEDDING_DIM = 384
SAMPLE_CSV = Path(__file__).parent.parent.parent / "data" / "knowledge" / "sample_diseases.csv"


class TestRecords:
    """Basic record storage"""

    def test_count_and_names(self, knowledge_store):
        """Test seeded records are all present"""
        assert knowledge_store.count() == 6
        assert "Migraine" in knowledge_store.condition_names()

    def test_case_insensitive_lookup(self, knowledge_store):
        """Test condition lookup ignores case"""
        record = knowledge_store.get("heart disease")
        assert record.condition == "Heart Disease"
        assert record.symptoms == ("chest pain", "shortness of breath")
        assert record.embedding.shape == (EMBEDDING_DIM,)

    def test_unknown_condition(self, knowledge_store):
        """Test missing conditions"""
        assert knowledge_store.get("Scurvy") is None
        assert knowledge_store.severity_for("Scurvy") is None
        assert knowledge_store.severity_for("stroke") == 9.5

    def test_records_are_read_only(self, knowledge_store):
        """Test that records handed out cannot be mutated"""
        record = knowledge_store.get("Stroke")
        with pytest.raises(Exception):
            record.remedy = "changed"
        with pytest.raises(ValueError):
            record.embedding[0] = 1.0

    def test_upsert_replaces(self, knowledge_store):
        """Test upsert keyed by condition"""
        knowledge_store.upsert(KnowledgeRecord(condition="MIGRAINE", remedy="Updated", severity_score=5.0))
        assert knowledge_store.count() == 6
        assert knowledge_store.get("Migraine").remedy == "Updated"


class TestVectorSearch:
    """Cosine search over the registered index"""

    def test_nearest_neighbour(self, knowledge_store, vector_for):
        """Test that a record's own vector ranks it first"""
        hits = knowledge_store.vector_search(vector_for("Stroke"), "vector_index", top_k=3)

        assert len(hits) == 3
        assert hits[0][0].condition == "Stroke"
        assert hits[0][1] == pytest.approx(1.0, abs=1e-5)
        assert hits[0][1] >= hits[1][1] >= hits[2][1]

    def test_missing_index(self, knowledge_store, vector_for):
        """Test search against an unregistered index"""
        with pytest.raises(VectorSearchError):
            knowledge_store.vector_search(vector_for("x"), "no_such_index")

    def test_dimension_mismatch(self, knowledge_store):
        """Test that a wrong-sized query vector is rejected"""
        with pytest.raises(VectorSearchError):
            knowledge_store.vector_search(np.ones(128, dtype=np.float32), "vector_index")

    def test_no_embedded_rows(self, empty_knowledge_store, vector_for):
        """Test search over an index with nothing in it"""
        empty_knowledge_store.create_index("vector_index", dimensions=EMBEDDING_DIM)
        assert empty_knowledge_store.has_index("vector_index")
        with pytest.raises(VectorSearchError):
            empty_knowledge_store.vector_search(vector_for("x"), "vector_index")

    def test_only_mismatched_embeddings(self, empty_knowledge_store, sample_records, vector_for):
        """Test that rows skipped for their size leave nothing to rank"""
        empty_knowledge_store.upsert(replace(sample_records[0], embedding=np.ones(128, dtype=np.float32)))
        empty_knowledge_store.create_index("vector_index", dimensions=EMBEDDING_DIM)

        with pytest.raises(VectorSearchError):
            empty_knowledge_store.vector_search(vector_for("x"), "vector_index")

    def test_missing_registry_table(self, knowledge_store, vector_for):
        """Test that a broken database surfaces as VectorSearchError"""
        with sqlite3.connect(str(knowledge_store.db_path)) as conn:
            conn.execute("DROP TABLE vector_indexes")

        with pytest.raises(VectorSearchError):
            knowledge_store.vector_search(vector_for("Stroke"), "vector_index")

    def test_only_cosine(self, empty_knowledge_store):
        """Test unsupported similarity functions"""
        with pytest.raises(ValueError):
            empty_knowledge_store.create_index("dot_index", similarity="dotProduct")


class TestKeywordSearch:
    """Regex fallback search"""

    def test_symptom_match(self, knowledge_store):
        """Test matching on symptom words"""
        results = knowledge_store.keyword_search("what helps with heartburn")
        assert [r.condition for r in results] == ["Acid Reflux"]

    def test_condition_outranks_symptom(self, knowledge_store):
        """Test condition-name hits score above symptom hits"""
        results = knowledge_store.keyword_search("stroke or persistent cough")
        assert results[0].condition == "Stroke"
        assert "Bronchitis" in [r.condition for r in results]

    def test_top_k(self, knowledge_store):
        """Test result cap"""
        assert len(knowledge_store.keyword_search("emergency care treatment pain breath", top_k=1)) <= 1

    @pytest.mark.parametrize("query", ["", "   ", "zzzz qqqq", "(((", "[unclosed"])
    def test_nothing_found(self, knowledge_store, query):
        """Test that odd input returns [] instead of raising"""
        assert knowledge_store.keyword_search(query) == []


class TestImport:
    """CSV import"""

    def test_import_without_embeddings(self, tmp_path):
        """Test the shipped sample CSV with embeddings disabled"""
        store = KnowledgeStore(tmp_path / "kb.db")

        written = store.import_csv(SAMPLE_CSV)

        assert written == 8
        migraine = store.get("Migraine")
        assert migraine.severity_score == 4.5
        assert "throbbing headache" in migraine.symptoms
        assert migraine.remedy.startswith("Rest in a dark room")
        assert "stay hydrated" in migraine.precautions
        assert migraine.embedding is None

    def test_import_with_embedder(self, tmp_path, fake_embedder):
        """Test embeddings computed for every row"""
        store = KnowledgeStore(tmp_path / "kb.db")

        store.import_csv(SAMPLE_CSV, embedder=fake_embedder)

        assert fake_embedder.calls == 8
        assert store.get("Stroke").embedding.shape == (EMBEDDING_DIM,)

    def test_first_row_wins_and_header_fallbacks(self, tmp_path):
        """Test duplicate diseases and the short header names"""
        csv_path = tmp_path / "diseases.csv"
        csv_path.write_text(
            "Disease,Symptoms,Recommend,Precautions,Severity_S\n"
            "Asthma,wheezing,Inhaler,avoid dust,6\n"
            "asthma,cough,Other,none,1\n"
            ",orphan row,,,\n"
            "Eczema,itching,Moisturiser,avoid soap,not-a-number\n",
            encoding="utf-8",
        )
        store = KnowledgeStore(tmp_path / "kb.db")

        assert store.import_csv(csv_path) == 2
        assert store.get("Asthma").remedy == "Inhaler"
        assert store.get("Asthma").severity_score == 6.0
        assert store.get("Eczema").severity_score == 0.0

    def test_embedding_failure_keeps_row(self, tmp_path, make_embedder):
        """Test that one failed embedding does not abort the import"""
        store = KnowledgeStore(tmp_path / "kb.db")

        written = store.import_csv(SAMPLE_CSV, embedder=make_embedder(error=EmbeddingError("offline")))

        assert written == 8
        assert store.get("Stroke").embedding is None
