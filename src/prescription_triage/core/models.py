# ============================================================================
# src/prescription_triage/core/models.py
# ============================================================================
"""
Data model shared by the extraction, knowledge, triage and chat stages.

- RawDocument / ExtractedText: upload path
- MedicationEntity: parser output handed to the history store
- KnowledgeRecord: read-only knowledge base row
- SeverityAssessment / ChatTurn / ChatResponse: chat path
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import numpy as np


class ExtractionSource(str, Enum):
    PRIMARY = "primary"
    FALLBACK = "fallback"


class Timing(str, Enum):
    MORNING = "Morning"
    AFTERNOON = "Afternoon"
    NIGHT = "Night"
    AS_DIRECTED = "AsDirected"
    AS_PER_SCHEDULE = "AsPerSchedule"


class SeverityLevel(str, Enum):
    LOW = "Low"
    MODERATE = "Moderate"
    HIGH = "High"
    CRITICAL = "Critical"


@dataclass
class RawDocument:
    """Uploaded image bytes. Lives only for the duration of one extraction."""
    content: bytes
    mime_type: str
    filename: Optional[str] = None
    language: Optional[str] = None  # downstream translation hint, unused here


@dataclass(frozen=True)
class ExtractedText:
    text: str
    source: ExtractionSource
    confidence: Optional[float] = None  # 0-100, fallback engine only

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "source": self.source.value,
            "confidence": self.confidence,
        }


@dataclass(frozen=True)
class MedicationEntity:
    name: str
    dosage: str
    timing: Timing = Timing.AS_DIRECTED

    def to_dict(self) -> Dict[str, str]:
        return {"name": self.name, "dosage": self.dosage, "timing": self.timing.value}


@dataclass(frozen=True)
class KnowledgeRecord:
    """
    One knowledge base entry. Frozen, and the embedding array is marked
    read-only so records borrowed from the store cannot be mutated.
    """
    condition: str
    symptoms: Tuple[str, ...] = ()
    remedy: str = ""
    precautions: Tuple[str, ...] = ()
    severity_score: float = 0.0
    embedding: Optional[np.ndarray] = field(default=None, compare=False, repr=False)

    def __post_init__(self):
        object.__setattr__(self, "symptoms", tuple(self.symptoms))
        object.__setattr__(self, "precautions", tuple(self.precautions))
        if self.embedding is not None:
            embedding = np.array(self.embedding, dtype=np.float32)
            embedding.setflags(write=False)
            object.__setattr__(self, "embedding", embedding)

    def summary(self) -> str:
        """One-line description used to decorate the chat context."""
        parts = [f"{self.condition}"]
        if self.symptoms:
            parts.append(f"symptoms: {', '.join(self.symptoms)}")
        if self.remedy:
            parts.append(f"remedy: {self.remedy}")
        if self.precautions:
            parts.append(f"precautions: {', '.join(self.precautions)}")
        return "; ".join(parts)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "condition": self.condition,
            "symptoms": list(self.symptoms),
            "remedy": self.remedy,
            "precautions": list(self.precautions),
            "severityScore": self.severity_score,
        }


@dataclass(frozen=True)
class SeverityAssessment:
    score: float
    level: SeverityLevel
    is_emergency: bool
    condition: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "score": self.score,
            "level": self.level.value,
            "isEmergency": self.is_emergency,
            "condition": self.condition,
        }


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ChatTurn:
    query: str
    context: str
    reply: str
    severity: Optional[SeverityAssessment] = None
    user_id: Optional[str] = None
    turn_id: Optional[str] = None
    created_at: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class ChatResponse:
    reply: str
    severity: Optional[SeverityAssessment] = None
    backend: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reply": self.reply,
            "severity": self.severity.to_dict() if self.severity else None,
            "backend": self.backend,
        }


@dataclass
class ScanResult:
    """Upload path output: extracted text plus parsed medications."""
    extracted: ExtractedText
    medications: List[MedicationEntity] = field(default_factory=list)
    prescription_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "prescriptionId": self.prescription_id,
            "extracted": self.extracted.to_dict(),
            "medications": [m.to_dict() for m in self.medications],
        }
