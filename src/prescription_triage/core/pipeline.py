# ============================================================================
# src/prescription_triage/core/pipeline.py
# ============================================================================
"""
Triage Pipeline

Facade over both entry points:

- Upload path: image -> text -> medications -> patient history
- Chat path:   message -> knowledge context -> severity -> reply -> log
- History:     patient-reported conditions and medications

Usage:
    pipeline = TriagePipeline.from_config()
    scan = await pipeline.scan_prescription(RawDocument(data, "image/jpeg"), user_id="u1")
    response = await pipeline.chat("I have chest pain", user_id="u1")
"""

import asyncio
import logging
import uuid
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

from ..chat.backends import create_chat_backend
from ..chat.orchestrator import ChatOrchestrator
from ..knowledge.detection import ConditionDetector
from ..knowledge.matcher import KnowledgeMatcher
from ..knowledge.store import KnowledgeStore
from ..processors.prescription.processor import PrescriptionProcessor
from ..triage.history import PatientHistoryStore
from ..triage.severity import SeverityTriage
from ..utils.exceptions import InvalidInputError
from ..utils.logging import log_performance
from .config import get_config
from .models import ChatResponse, ChatTurn, KnowledgeRecord, MedicationEntity, RawDocument, ScanResult


logger = logging.getLogger(__name__)


def knowledge_summary(records: List[KnowledgeRecord]) -> str:
    return "Relevant medical knowledge: " + " | ".join(r.summary() for r in records) + "."


class TriagePipeline:
    """
    Wires the processor, matcher, orchestrator and stores together.

    Stateless between requests apart from the history store.
    """

    def __init__(
        self,
        processor: PrescriptionProcessor,
        matcher: KnowledgeMatcher,
        orchestrator: ChatOrchestrator,
        history: PatientHistoryStore,
        candidate_backends: Sequence[str],
    ):
        self.processor = processor
        self.matcher = matcher
        self.orchestrator = orchestrator
        self.history = history
        self.candidate_backends = list(candidate_backends)

    @classmethod
    def from_config(cls, config: Optional[Dict[str, Any]] = None) -> "TriagePipeline":
        """Build the full pipeline from configuration."""
        config = {**get_config(), **(config or {})}

        knowledge = KnowledgeStore(Path(config['knowledge_db_path']))
        history = PatientHistoryStore(Path(config['history_db_path']))

        def normalize(condition: str) -> Optional[str]:
            record = knowledge.get(condition)
            return record.condition if record else None

        backend_family = config.get('chat_backend', 'openai')
        orchestrator = ChatOrchestrator(
            backends={backend_family: create_chat_backend(config, backend_family)},
            default_backend=backend_family,
            detector=ConditionDetector(normalize=normalize),
            severity=SeverityTriage(config, fallback_lookup=knowledge.severity_for),
            history=history,
            config=config,
        )

        return cls(
            processor=PrescriptionProcessor(config),
            matcher=KnowledgeMatcher(knowledge, config=config),
            orchestrator=orchestrator,
            history=history,
            candidate_backends=config.get('chat_models', []),
        )

    @log_performance(logger, "Prescription scan")
    async def scan_prescription(
        self,
        document: RawDocument,
        user_id: Optional[str] = None,
        progress: Optional[Callable[[int], None]] = None,
    ) -> ScanResult:
        """
        Upload path.

        Args:
            document: Uploaded image
            user_id: Patient id; when given, medications are stored in history
            progress: Optional OCR progress callback

        Returns:
            ScanResult (prescription_id set when stored)
        """
        result = await self.processor.process(document, progress=progress)

        if user_id:
            loop = asyncio.get_running_loop()
            result.prescription_id = await loop.run_in_executor(
                None,
                lambda: self.history.add_medications(
                    user_id,
                    result.medications,
                    raw_text=result.extracted.text,
                    source=result.extracted.source.value,
                ),
            )
        return result

    @log_performance(logger, "Chat turn")
    async def chat(
        self,
        message: str,
        user_id: Optional[str] = None,
        context: Optional[str] = None,
        turn_id: Optional[str] = None,
    ) -> ChatResponse:
        """
        Chat path.

        Args:
            message: User message
            user_id: Patient id (history context and severity tracking)
            context: Externally supplied patient context; defaults to stored history
            turn_id: Idempotency key for retried requests

        Returns:
            ChatResponse with reply and optional severity
        """
        if not isinstance(message, str) or not message.strip():
            raise InvalidInputError("Message is required")
        message = message.strip()
        turn_id = turn_id or str(uuid.uuid4())
        loop = asyncio.get_running_loop()

        if context is None:
            context = await loop.run_in_executor(None, self.history.get_context, user_id)

        records = await self.matcher.match(message)
        if records:
            logger.info(f"Knowledge match: {', '.join(r.condition for r in records)}")
            context = f"{context} {knowledge_summary(records)}"

        response = await self.orchestrator.respond(
            message,
            context,
            self.candidate_backends,
            user_id=user_id,
            turn_id=turn_id,
        )

        turn = ChatTurn(
            query=message,
            context=context,
            reply=response.reply,
            severity=response.severity,
            user_id=user_id,
            turn_id=turn_id,
        )
        await loop.run_in_executor(None, self.history.append_turn, turn)
        return response

    async def update_history(
        self,
        user_id: str,
        conditions: Optional[Sequence[str]] = None,
        medications: Optional[Sequence[MedicationEntity]] = None,
    ) -> Dict[str, Any]:
        """
        Merge patient-reported chronic conditions and medications into history.

        Args:
            user_id: Patient id (record is created if missing)
            conditions: Chronic conditions, e.g. ["Asthma"]
            medications: Medications taken outside any scanned prescription

        Returns:
            The updated patient record

        Raises:
            InvalidInputError: Missing user id or a medication without a name
        """
        if not isinstance(user_id, str) or not user_id.strip():
            raise InvalidInputError("userId is required")
        medications = list(medications or [])
        if any(not m.name.strip() for m in medications):
            raise InvalidInputError("Every medication needs a name")

        loop = asyncio.get_running_loop()
        record = await loop.run_in_executor(
            None,
            lambda: self.history.update(user_id.strip(), conditions or [], medications),
        )
        logger.info(
            f"History update for {user_id}: {len(conditions or [])} conditions, {len(medications)} medications"
        )
        return record

    async def close(self):
        await self.orchestrator.close()
        await self.processor.engine.close()
