# ============================================================================
# src/prescription_triage/core/attempts.py
# ============================================================================
"""
Tagged outcome of one provider attempt.

Fallback chains (vision -> OCR, chat model list) inspect the tag instead of
the exception type: only RETRYABLE moves on to the next candidate.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class AttemptStatus(str, Enum):
    OK = "ok"
    RETRYABLE = "retryable"
    FATAL = "fatal"


@dataclass(frozen=True)
class AttemptOutcome:
    status: AttemptStatus
    candidate: str
    value: Any = None
    reason: Optional[str] = None
    error: Optional[BaseException] = None

    @classmethod
    def ok(cls, candidate: str, value: Any) -> "AttemptOutcome":
        return cls(AttemptStatus.OK, candidate, value=value)

    @classmethod
    def retryable(cls, candidate: str, reason: str, error: Optional[BaseException] = None) -> "AttemptOutcome":
        return cls(AttemptStatus.RETRYABLE, candidate, reason=reason, error=error)

    @classmethod
    def fatal(cls, candidate: str, reason: str, error: Optional[BaseException] = None) -> "AttemptOutcome":
        return cls(AttemptStatus.FATAL, candidate, reason=reason, error=error)

    @property
    def is_ok(self) -> bool:
        return self.status is AttemptStatus.OK
