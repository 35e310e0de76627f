# ============================================================================
# src/prescription_triage/config/triage_config.py
# ============================================================================
"""
Triage Thresholds
- Emergency escalation
- Unknown condition severity
- Extraction and parsing limits
- Knowledge lookup
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class TriageSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    EMERGENCY_THRESHOLD: float = Field(
        default=7.0,
        ge=0.0, le=10.0,
        description="Severity score at or above which a message is escalated as an emergency"
    )
    UNKNOWN_CONDITION_SEVERITY: float = Field(
        default=5.0,
        ge=0.0, le=10.0,
        description="Score used for detected conditions missing from the severity table. Mid-range, unknown is not safe."
    )
    MIN_EXTRACTED_CHARS: int = Field(
        default=5,
        ge=1,
        description="Minimum trimmed length for extracted prescription text to count as a result"
    )
    MAX_MEDICATIONS: int = Field(
        default=10,
        ge=1,
        description="Cap on medication entities returned for one document"
    )
    KNOWLEDGE_TOP_K: int = Field(
        default=3,
        ge=1,
        description="Number of knowledge records returned by name, vector and keyword lookups"
    )
    KNOWLEDGE_INDEX: str = Field(
        default="vector_index",
        description="Name of the knowledge base vector index to query"
    )
    USE_VECTOR_SEARCH: bool = Field(
        default=True,
        description="Query the vector index before keyword search. Disable to go straight to keyword search."
    )


triage_settings = TriageSettings()
