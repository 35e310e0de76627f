# ============================================================================
# FILE: tests/unit/test_pipeline.py
# ============================================================================
"""
End-to-end tests of the upload and chat paths with local stand-ins
"""

import pytest

from prescription_triage.core.models import ExtractionSource, MedicationEntity, RawDocument, Timing
from prescription_triage.core.pipeline import TriagePipeline, knowledge_summary
from prescription_triage.triage.history import NO_HISTORY_CONTEXT
from prescription_triage.utils.exceptions import ExtractionFailedError, InvalidInputError


@pytest.fixture
def upload(prescription_png):
    return RawDocument(content=prescription_png, mime_type="image/png", filename="rx.png")


# ============================================================================
# UPLOAD PATH
# ============================================================================

@pytest.mark.asyncio
async def test_scan_stores_medications(pipeline, upload, history_store):
    """Test image -> text -> medications -> patient history"""
    result = await pipeline.scan_prescription(upload, user_id="u1")

    assert result.extracted.source == ExtractionSource.FALLBACK
    assert [(m.name, m.dosage) for m in result.medications] == [
        ("Paracetamol", "500 mg"),
        ("Cetirizine", "10 mg"),
    ]
    assert result.medications[1].timing == Timing.NIGHT

    assert result.prescription_id is not None
    stored = history_store.get_prescription(result.prescription_id)
    assert stored["rawText"] == result.extracted.text
    assert stored["source"] == "fallback"
    assert len(history_store.get("u1")["activeMedications"]) == 2


@pytest.mark.asyncio
async def test_anonymous_scan_is_not_stored(pipeline, upload, history_store):
    """Test that scans without a user never touch history"""
    result = await pipeline.scan_prescription(upload)

    assert result.prescription_id is None
    assert result.to_dict()["prescriptionId"] is None
    assert history_store.get_turns("u1") == []


@pytest.mark.asyncio
async def test_unreadable_scan(pipeline, upload, ocr_engine):
    """Test ExtractionFailed reaches the caller"""
    ocr_engine.recognize.return_value = ("", 0.0)

    with pytest.raises(ExtractionFailedError):
        await pipeline.scan_prescription(upload, user_id="u1")


# ============================================================================
# CHAT PATH
# ============================================================================

@pytest.mark.asyncio
async def test_chat_uses_history_and_knowledge(pipeline, upload, chat_backend, history_store):
    """Test context line, knowledge summary, severity and conversation log"""
    await pipeline.scan_prescription(upload, user_id="u1")

    response = await pipeline.chat("I have a bad migraine, any remedy?", user_id="u1", turn_id="turn-1")

    assert response.reply.startswith("Rest, stay hydrated")
    assert response.severity.condition == "Migraine"
    assert response.severity.is_emergency is False

    system_prompt = chat_backend.calls[0][1][0]["content"]
    assert "Current Meds: Paracetamol (500 mg), Cetirizine (10 mg)." in system_prompt
    assert "Relevant medical knowledge: Migraine" in system_prompt

    turns = history_store.get_turns("u1")
    assert len(turns) == 1
    assert turns[0]["turnId"] == "turn-1"
    assert turns[0]["severity"]["level"] == "Moderate"
    assert history_store.get("u1")["maxSeverityScore"] == 4.5


@pytest.mark.asyncio
async def test_chat_retry_is_idempotent(pipeline, history_store):
    """Test a resubmitted turn is logged and scored once"""
    await pipeline.chat("suspected stroke", user_id="u1", turn_id="turn-7")
    await pipeline.chat("suspected stroke", user_id="u1", turn_id="turn-7")

    assert len(history_store.get_turns("u1")) == 1
    assert len(history_store.severity_history("u1")) == 1


@pytest.mark.asyncio
async def test_turn_ids_are_scoped_per_user(pipeline, history_store):
    """Test two patients sending the same turn id both get severity and a log entry"""
    await pipeline.chat("suspected stroke", user_id="alice", turn_id="1")
    await pipeline.chat("suspected stroke", user_id="bob", turn_id="1")

    assert history_store.get("bob")["maxSeverityScore"] == 9.5
    assert len(history_store.severity_history("bob")) == 1
    assert [t["turnId"] for t in history_store.get_turns("bob")] == ["1"]
    assert len(history_store.get_turns("alice")) == 1


@pytest.mark.asyncio
async def test_chat_explicit_context(pipeline, chat_backend):
    """Test caller-supplied context replaces stored history"""
    await pipeline.chat("hello", context="Patient History: Asthma. Current Meds: None recorded.")

    system_prompt = chat_backend.calls[0][1][0]["content"]
    assert "Patient History: Asthma." in system_prompt
    assert "Relevant medical knowledge" not in system_prompt


@pytest.mark.asyncio
async def test_chat_without_history(pipeline, chat_backend):
    """Test anonymous chat gets the no-history context"""
    response = await pipeline.chat("hello")

    assert response.severity is None
    assert NO_HISTORY_CONTEXT in chat_backend.calls[0][1][0]["content"]


@pytest.mark.asyncio
@pytest.mark.parametrize("message", ["", "   ", None])
async def test_chat_requires_message(pipeline, chat_backend, message):
    """Test empty messages are rejected before any backend call"""
    with pytest.raises(InvalidInputError):
        await pipeline.chat(message, user_id="u1")
    assert chat_backend.calls == []


# ============================================================================
# HISTORY UPDATE
# ============================================================================

@pytest.mark.asyncio
async def test_update_history_feeds_chat_context(pipeline, chat_backend):
    """Test reported conditions show up in the next chat prompt"""
    record = await pipeline.update_history(
        "u1",
        conditions=["Asthma"],
        medications=[MedicationEntity("Salbutamol", "100 mcg", Timing.MORNING)],
    )
    assert record["chronicConditions"] == ["Asthma"]

    await pipeline.chat("hello", user_id="u1")

    system_prompt = chat_backend.calls[0][1][0]["content"]
    assert "Patient History: Asthma. Current Meds: Salbutamol (100 mcg)." in system_prompt


@pytest.mark.asyncio
@pytest.mark.parametrize("user_id", [None, "", "  "])
async def test_update_history_requires_user(pipeline, user_id):
    with pytest.raises(InvalidInputError):
        await pipeline.update_history(user_id, conditions=["Asthma"])


@pytest.mark.asyncio
async def test_update_history_rejects_unnamed_medication(pipeline, history_store):
    """Test nothing is stored when a medication has no name"""
    with pytest.raises(InvalidInputError):
        await pipeline.update_history("u1", medications=[MedicationEntity(" ", "5 mg")])
    assert history_store.get("u1") is None


def test_knowledge_summary(sample_records):
    summary = knowledge_summary(sample_records[:2])
    assert summary.startswith("Relevant medical knowledge: Migraine; symptoms: throbbing headache, nausea")
    assert " | Heart Disease;" in summary
    assert summary.endswith(".")


def test_from_config(test_config):
    """Test wiring from configuration alone"""
    pipeline = TriagePipeline.from_config(test_config)

    assert pipeline.candidate_backends == ["model-a", "model-b"]
    assert pipeline.processor.engine.transcriber is None
    assert pipeline.orchestrator.default_backend == "openai"
    assert str(pipeline.history.db_path) == test_config['history_db_path']
