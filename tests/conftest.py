# ============================================================================
# FILE: tests/conftest.py
# ============================================================================
"""
Pytest configuration and shared fixtures for testing.
"""

import hashlib
import io
from unittest.mock import MagicMock

import numpy as np
import pytest
from PIL import Image, ImageDraw

from prescription_triage.chat.backends import ChatBackend, BackendType
from prescription_triage.chat.orchestrator import ChatOrchestrator
from prescription_triage.core.models import KnowledgeRecord
from prescription_triage.core.pipeline import TriagePipeline
from prescription_triage.extractors.ocr_extractor import TesseractOCR
from prescription_triage.extractors.text_extraction import TextExtractionEngine
from prescription_triage.knowledge.detection import ConditionDetector
from prescription_triage.knowledge.embeddings import EmbeddingProvider
from prescription_triage.knowledge.matcher import KnowledgeMatcher
from prescription_triage.knowledge.store import KnowledgeStore
from prescription_triage.processors.prescription.processor import PrescriptionProcessor
from prescription_triage.triage.history import PatientHistoryStore
from prescription_triage.triage.severity import SeverityTriage
from prescription_triage.utils.exceptions import ModelNotFoundError


EMBEDDING_DIM = 384


def fake_vector(text: str, dim: int = EMBEDDING_DIM) -> np.ndarray:
    """Deterministic pseudo-embedding: same text, same vector."""
    seed = int(hashlib.sha256(text.lower().encode()).hexdigest()[:8], 16)
    return np.random.default_rng(seed).standard_normal(dim).astype(np.float32)


class FakeEmbedder(EmbeddingProvider):
    """Counts calls; optionally fails or returns a fixed vector."""

    def __init__(self, vector=None, error=None):
        super().__init__({'embedding_dim': EMBEDDING_DIM, 'embedding_model': 'fake'})
        self.vector = vector
        self.error = error
        self.calls = 0

    def _embed(self, text):
        self.calls += 1
        if self.error is not None:
            raise self.error
        if self.vector is not None:
            return self.vector
        return fake_vector(text)


class ScriptedBackend(ChatBackend):
    """
    Chat backend whose behaviour per model is scripted:
    a string is returned, an exception instance is raised.
    """

    def __init__(self, script):
        super().__init__({})
        self.script = script
        self.calls = []

    @property
    def backend_type(self):
        return BackendType.OPENAI

    async def generate(self, messages, model):
        self.calls.append((model, messages))
        outcome = self.script.get(model, ModelNotFoundError(f"model {model} not found", model=model))
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


SAMPLE_RECORDS = [
    ("Migraine", ["throbbing headache", "nausea"], "Rest in a dark room; paracetamol", ["stay hydrated"], 4.5),
    ("Heart Disease", ["chest pain", "shortness of breath"], "Seek emergency care", ["call emergency services"], 8.5),
    ("Stroke", ["face drooping", "slurred speech"], "Emergency treatment", ["note time of onset"], 9.5),
    ("Bronchitis", ["persistent cough", "mucus"], "Rest and fluids", ["avoid smoke"], 4.0),
    ("Diabetes", ["frequent urination", "excessive thirst"], "Metformin as prescribed", ["monitor blood sugar"], 6.0),
    ("Acid Reflux", ["heartburn", "regurgitation"], "Antacids", ["avoid late meals"], 3.0),
]


@pytest.fixture
def sample_records():
    return [
        KnowledgeRecord(
            condition=condition,
            symptoms=symptoms,
            remedy=remedy,
            precautions=precautions,
            severity_score=score,
            embedding=fake_vector(condition),
        )
        for condition, symptoms, remedy, precautions, score in SAMPLE_RECORDS
    ]


@pytest.fixture
def knowledge_store(tmp_path, sample_records):
    """Seeded knowledge store with a registered 384-dim cosine index."""
    store = KnowledgeStore(tmp_path / "knowledge.db")
    store.upsert_many(sample_records)
    store.create_index("vector_index", dimensions=EMBEDDING_DIM)
    return store


@pytest.fixture
def empty_knowledge_store(tmp_path):
    return KnowledgeStore(tmp_path / "empty_knowledge.db")


@pytest.fixture
def history_store(tmp_path):
    return PatientHistoryStore(tmp_path / "history.db")


@pytest.fixture
def fake_embedder():
    return FakeEmbedder()


@pytest.fixture
def test_config(tmp_path):
    """Config overrides that keep every component local."""
    return {
        'knowledge_db_path': str(tmp_path / "knowledge.db"),
        'history_db_path': str(tmp_path / "history.db"),
        'vision_backend': 'none',
        'chat_backend': 'openai',
        'chat_models': ['model-a', 'model-b'],
        'emergency_threshold': 7.0,
        'unknown_condition_severity': 5.0,
        'min_extracted_chars': 5,
        'max_medications': 10,
        'knowledge_top_k': 3,
        'knowledge_index': 'vector_index',
        'use_vector_search': True,
        'vision_timeout': 5,
        'ocr_timeout': 5,
        'provider_timeout': 5,
    }


def image_bytes(text: str = "", size=(400, 120), fmt: str = "PNG") -> bytes:
    """White image, optionally with a line of black text."""
    img = Image.new("RGB", size, "white")
    if text:
        ImageDraw.Draw(img).text((10, 40), text, fill="black")
    buf = io.BytesIO()
    img.save(buf, format=fmt)
    return buf.getvalue()


@pytest.fixture
def blank_png():
    return image_bytes()


@pytest.fixture
def prescription_png():
    return image_bytes("Paracetamol 500mg twice daily")


@pytest.fixture
def make_embedder():
    """Factory for FakeEmbedder instances."""
    return FakeEmbedder


@pytest.fixture
def make_backend():
    """Factory for ScriptedBackend instances."""
    return ScriptedBackend


@pytest.fixture
def vector_for():
    """Deterministic embedding for a piece of text."""
    return fake_vector


SCANNED_TEXT = "Paracetamol 500mg twice daily\nCetirizine 10mg at night"


@pytest.fixture
def chat_backend():
    """Backend that answers model-a only."""
    return ScriptedBackend({"model-a": "Rest, stay hydrated and see a doctor if it persists."})


@pytest.fixture
def ocr_engine():
    """Local OCR stand-in returning a two-line prescription."""
    ocr = MagicMock(spec=TesseractOCR)
    ocr.recognize.return_value = (SCANNED_TEXT, 88.0)
    return ocr


@pytest.fixture
def pipeline(test_config, knowledge_store, history_store, fake_embedder, chat_backend, ocr_engine):
    """Fully wired pipeline with local stand-ins for every provider."""
    engine = TextExtractionEngine(test_config, transcriber=None, ocr=ocr_engine)
    orchestrator = ChatOrchestrator(
        backends={"openai": chat_backend},
        default_backend="openai",
        detector=ConditionDetector(),
        severity=SeverityTriage(test_config, fallback_lookup=knowledge_store.severity_for),
        history=history_store,
        config=test_config,
    )
    return TriagePipeline(
        processor=PrescriptionProcessor(test_config, engine=engine),
        matcher=KnowledgeMatcher(knowledge_store, embedder=fake_embedder, config=test_config),
        orchestrator=orchestrator,
        history=history_store,
        candidate_backends=["model-a"],
    )
