# ============================================================================
# src/prescription_triage/chat/orchestrator.py
# ============================================================================
"""
Chat Orchestrator

One chat message -> one reply:

1. Detect the condition the message is about
2. Assess severity and record it in the patient's history
3. Build the prompt (patient context + safety instruction + message)
4. Try candidate model identifiers in order; "not found" moves on,
   anything else stops the request
"""

import asyncio
import logging
import uuid
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..core.attempts import AttemptOutcome, AttemptStatus
from ..core.config import get_config
from ..core.models import ChatResponse, SeverityAssessment
from ..knowledge.detection import ConditionDetector
from ..triage.history import PatientHistoryStore
from ..triage.severity import SeverityTriage
from ..utils.exceptions import ModelNotFoundError, NoBackendAvailableError, UnexpectedBackendError
from .backends import ChatBackend, Message


logger = logging.getLogger(__name__)

SAFETY_INSTRUCTION = (
    "Answer clearly and remind the user to consult a doctor for emergencies. "
    "Be specific about symptoms and treatments."
)
EMPTY_REPLY_FALLBACK = "I'm sorry, I couldn't generate a response."


def build_messages(query: str, context: str) -> List[Message]:
    system_prompt = f"You are a helpful medical assistant. {context.strip()} {SAFETY_INSTRUCTION}"
    return [
        {"role": "system", "content": system_prompt.strip()},
        {"role": "user", "content": query},
    ]


class ChatOrchestrator:
    """
    Args:
        backends: Chat backends keyed by family ("openai", "ollama")
        default_backend: Family used for identifiers without a known prefix
        detector: Condition detector
        severity: Severity triage
        history: Patient history store (severity side effect); optional
        config: Overrides merged over get_config()

    Candidate identifiers are model names. An identifier may be prefixed
    with a backend family ("ollama:llama3.1") to route it to that backend.
    """

    def __init__(
        self,
        backends: Dict[str, ChatBackend],
        default_backend: str,
        detector: Optional[ConditionDetector] = None,
        severity: Optional[SeverityTriage] = None,
        history: Optional[PatientHistoryStore] = None,
        config: Optional[Dict[str, Any]] = None,
    ):
        if default_backend not in backends:
            raise ValueError(f"Default backend '{default_backend}' not among {sorted(backends)}")

        self.config = {**get_config(), **(config or {})}
        self.backends = backends
        self.default_backend = default_backend
        self.detector = detector or ConditionDetector()
        self.severity = severity or SeverityTriage(self.config)
        self.history = history
        self.timeout = self.config.get('provider_timeout', 60)

    def _resolve(self, backend_id: str) -> Tuple[ChatBackend, str]:
        family, sep, model = backend_id.partition(":")
        if sep and family in self.backends:
            return self.backends[family], model
        return self.backends[self.default_backend], backend_id

    def assess_query(
        self,
        query: str,
        user_id: Optional[str] = None,
        turn_id: Optional[str] = None,
    ) -> Optional[SeverityAssessment]:
        """Detect, assess and record severity. None when no condition is mentioned."""
        condition = self.detector.detect(query)
        if condition is None:
            return None

        assessment = self.severity.assess(condition)
        if user_id and self.history is not None:
            # Same turn retried -> same key -> no double count
            assessment_id = f"{turn_id}:severity" if turn_id else str(uuid.uuid4())
            self.history.record_severity(user_id, assessment, assessment_id=assessment_id)
        return assessment

    async def _attempt(self, backend_id: str, messages: List[Message]) -> AttemptOutcome:
        backend, model = self._resolve(backend_id)
        try:
            reply = await asyncio.wait_for(backend.generate(messages, model), timeout=self.timeout)
        except ModelNotFoundError as e:
            return AttemptOutcome.retryable(backend_id, str(e), e)
        except asyncio.TimeoutError as e:
            return AttemptOutcome.fatal(backend_id, f"timed out after {self.timeout}s", e)
        except Exception as e:
            return AttemptOutcome.fatal(backend_id, str(e) or type(e).__name__, e)
        return AttemptOutcome.ok(backend_id, reply)

    async def respond(
        self,
        query: str,
        context: str,
        candidate_backends: Sequence[str],
        user_id: Optional[str] = None,
        turn_id: Optional[str] = None,
    ) -> ChatResponse:
        """
        Generate a reply with severity metadata.

        Args:
            query: User message
            context: Patient history context line
            candidate_backends: Model identifiers, preferred first
            user_id: Patient id for the history side effect
            turn_id: Idempotency key for the history side effect

        Returns:
            ChatResponse(reply, severity or None, backend that answered)

        Raises:
            UnexpectedBackendError: A backend failed with anything but "not found"
            NoBackendAvailableError: Every candidate was "not found"
        """
        loop = asyncio.get_running_loop()
        assessment = await loop.run_in_executor(None, self.assess_query, query, user_id, turn_id)
        severity_payload = assessment.to_dict() if assessment else None
        messages = build_messages(query, context)

        tried = []
        for backend_id in candidate_backends:
            tried.append(backend_id)
            outcome = await self._attempt(backend_id, messages)

            if outcome.status is AttemptStatus.RETRYABLE:
                logger.info(f"Model '{backend_id}' not available, trying next candidate")
                continue

            if outcome.status is AttemptStatus.FATAL:
                logger.error(f"Backend '{backend_id}' failed: {outcome.reason}")
                raise UnexpectedBackendError(
                    f"Backend '{backend_id}' failed: {outcome.reason}",
                    model=backend_id,
                    severity=severity_payload,
                ) from outcome.error

            reply = (outcome.value or "").strip() or EMPTY_REPLY_FALLBACK
            logger.info(f"Reply generated by '{backend_id}' ({len(reply)} chars)")
            return ChatResponse(reply=reply, severity=assessment, backend=backend_id)

        raise NoBackendAvailableError(
            f"No candidate model is available (tried: {', '.join(tried) or 'none'})",
            tried=tried,
            severity=severity_payload,
        )

    async def close(self):
        for backend in self.backends.values():
            await backend.close()
