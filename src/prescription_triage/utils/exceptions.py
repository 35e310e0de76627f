# ============================================================================
# src/prescription_triage/utils/exceptions.py
# ============================================================================
"""
Custom exceptions for the prescription triage pipeline.

Every error carries a short machine-readable ``kind`` so the HTTP layer
can report ``{"kind", "message"}`` without inspecting the class.
"""

from typing import Any, Dict, List, Optional


class PrescriptionTriageError(Exception):
    """Base exception for all prescription triage errors."""

    kind = "PrescriptionTriageError"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "message": self.message}


class ConfigurationError(PrescriptionTriageError):
    """Invalid configuration."""
    kind = "ConfigurationError"


class InvalidInputError(PrescriptionTriageError):
    """Malformed upload or chat message. Never retried."""
    kind = "InvalidInput"


class ExtractionFailedError(PrescriptionTriageError):
    """Neither the vision provider nor local OCR produced usable text."""
    kind = "ExtractionFailed"


class ProviderError(PrescriptionTriageError):
    """A vision or OCR provider call failed."""
    kind = "ProviderError"

    def __init__(self, message: str, provider: str = "unknown"):
        super().__init__(message)
        self.provider = provider


class EmbeddingError(PrescriptionTriageError):
    """Embedding backend failed or returned a vector of the wrong size."""
    kind = "EmbeddingError"


class VectorSearchError(PrescriptionTriageError):
    """Vector index missing or incompatible with the query embedding."""
    kind = "VectorSearchError"


class BackendError(PrescriptionTriageError):
    """Base for chat backend failures. Carries the severity computed before the failure."""
    kind = "BackendError"

    def __init__(self, message: str, severity: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.severity = severity

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        if self.severity is not None:
            data["severity"] = self.severity
        return data


class ModelNotFoundError(BackendError):
    """Backend does not know the requested model identifier."""
    kind = "ModelNotFound"

    def __init__(self, message: str, model: str):
        super().__init__(message)
        self.model = model


class NoBackendAvailableError(BackendError):
    """Every candidate model identifier was rejected as not found."""
    kind = "NoBackendAvailable"

    def __init__(self, message: str, tried: List[str], severity: Optional[Dict[str, Any]] = None):
        super().__init__(message, severity=severity)
        self.tried = list(tried)


class UnexpectedBackendError(BackendError):
    """Backend error outside the not-found class; stops candidate iteration."""
    kind = "UnexpectedBackendError"

    def __init__(
        self,
        message: str,
        model: str,
        severity: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, severity=severity)
        self.model = model
