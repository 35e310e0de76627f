# ============================================================================
# src/prescription_triage/config/provider_config.py
# ============================================================================
"""
Provider Settings
- Vision transcription backend (primary text extraction)
- Chat generation backends and candidate model identifiers
- Embedding backend for knowledge search
- Timeouts
"""

from typing import List

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


GEMINI_OPENAI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/openai/"

# Fallback identifiers tried after the configured model, newest first
DEFAULT_CANDIDATE_MODELS = (
    "gemini-2.5-flash",
    "gemini-2.5-flash-latest",
    "gemini-1.5-flash-latest",
    "gemini-1.5-flash-8b-latest",
    "gemini-1.5-pro-latest",
)


class ProviderSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Credentials / endpoint for any OpenAI-compatible API (Gemini, Groq, OpenAI)
    LLM_API_KEY: str = Field(
        default="",
        validation_alias=AliasChoices("LLM_API_KEY", "GEMINI_API_KEY", "OPENAI_API_KEY"),
        description="API key for the OpenAI-compatible generation endpoint"
    )
    LLM_BASE_URL: str = Field(
        default=GEMINI_OPENAI_BASE_URL,
        description="Base URL of the OpenAI-compatible generation endpoint"
    )

    # Chat
    CHAT_BACKEND: str = Field(
        default="openai",
        description="Chat backend family: openai | ollama"
    )
    CHAT_MODEL: str = Field(
        default="gemini-2.0-flash",
        description="Preferred chat model identifier"
    )
    CHAT_FALLBACK_MODELS: str = Field(
        default=",".join(DEFAULT_CANDIDATE_MODELS),
        description="Comma-separated identifiers tried in order when the preferred model is not found"
    )
    CHAT_MAX_TOKENS: int = Field(default=800, ge=1)
    CHAT_TEMPERATURE: float = Field(default=0.3, ge=0.0, le=2.0)

    # Vision (primary extraction)
    VISION_BACKEND: str = Field(
        default="openai",
        description="Vision transcription backend: openai | ollama | none"
    )
    VISION_MODEL: str = Field(
        default="gemini-2.0-flash",
        description="Vision-capable model used to transcribe prescriptions"
    )

    # Local services
    OLLAMA_HOST: str = Field(
        default="http://localhost:11434",
        description="Ollama server URL for local chat, vision and embeddings"
    )

    # Embeddings
    EMBEDDING_BACKEND: str = Field(
        default="sentence_transformers",
        description="Embedding backend: sentence_transformers | ollama"
    )
    EMBEDDING_MODEL: str = Field(
        default="all-MiniLM-L6-v2",
        description="Embedding model name; must produce EMBEDDING_DIM vectors"
    )
    EMBEDDING_DIM: int = Field(
        default=384,
        description="Dimensionality of knowledge base embeddings"
    )
    EMBEDDING_QUERY_PREFIX: str = Field(
        default="",
        description="Prefix applied to retrieval queries (e.g. 'search_query: ' for nomic models)"
    )
    EMBEDDING_DOCUMENT_PREFIX: str = Field(
        default="",
        description="Prefix applied to indexed documents (e.g. 'search_document: ')"
    )

    # Timeouts (seconds)
    PROVIDER_TIMEOUT: float = Field(default=60.0, gt=0)
    VISION_TIMEOUT: float = Field(default=90.0, gt=0)
    OCR_TIMEOUT: float = Field(default=60.0, gt=0)

    def candidate_models(self) -> List[str]:
        """Ordered chat model identifiers, preferred first, without duplicates."""
        models = [self.CHAT_MODEL] + [
            m.strip() for m in self.CHAT_FALLBACK_MODELS.split(",")
        ]
        seen = set()
        ordered = []
        for model in models:
            if model and model not in seen:
                seen.add(model)
                ordered.append(model)
        return ordered


provider_settings = ProviderSettings()
