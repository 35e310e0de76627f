# ============================================================================
# src/prescription_triage/core/config.py
# ============================================================================
"""
Centralized Configuration Management

Loads configuration from environment variables (.env file) through the
pydantic settings classes in prescription_triage.config and flattens them
into one dictionary. All components take an optional config dict that is
merged over this one.

Usage:
    from prescription_triage.core.config import get_config, Config

    # Get full config dict
    config = get_config()

    # Or use Config class for attribute access
    cfg = get_config_instance()
    print(cfg.emergency_threshold)
"""

from pathlib import Path
from typing import Dict, Any, List
from dataclasses import dataclass, asdict
from functools import lru_cache

from dotenv import load_dotenv

from ..config.base_config import BaseSettingsConfig
from ..config.logging_config import LoggingSettings
from ..config.provider_config import ProviderSettings
from ..config.triage_config import TriageSettings
from ..utils.exceptions import ConfigurationError


VISION_BACKENDS = ("openai", "ollama", "none")
CHAT_BACKENDS = ("openai", "ollama")
EMBEDDING_BACKENDS = ("sentence_transformers", "ollama")


def _load_dotenv() -> bool:
    """Load .env file if it exists."""
    # Project root first, then current working directory
    for env_path in (Path(__file__).parent.parent.parent.parent / '.env', Path.cwd() / '.env'):
        if env_path.exists():
            load_dotenv(env_path)
            return True
    return False


@dataclass
class Config:
    """
    Configuration container with attribute access.

    Built from the settings classes, so every value can be overridden by
    an environment variable of the same (upper-case) name.
    """

    # Paths
    data_dir: str
    knowledge_db_path: str
    history_db_path: str

    # Logging
    log_level: str
    log_format_json: bool

    # Generation endpoint
    llm_api_key: str
    llm_base_url: str
    chat_backend: str
    chat_models: List[str]
    chat_max_tokens: int
    chat_temperature: float

    # Vision
    vision_backend: str
    vision_model: str
    ollama_host: str

    # Embeddings
    embedding_backend: str
    embedding_model: str
    embedding_dim: int
    embedding_query_prefix: str
    embedding_document_prefix: str

    # Timeouts
    provider_timeout: float
    vision_timeout: float
    ocr_timeout: float

    # Triage
    emergency_threshold: float
    unknown_condition_severity: float
    min_extracted_chars: int
    max_medications: int
    knowledge_top_k: int
    knowledge_index: str
    use_vector_search: bool

    @classmethod
    def from_settings(cls) -> "Config":
        """Instantiate fresh settings objects so the current environment is read."""
        base = BaseSettingsConfig()
        logs = LoggingSettings()
        providers = ProviderSettings()
        triage = TriageSettings()

        return cls(
            data_dir=str(base.DATA_DIR),
            knowledge_db_path=str(base.KNOWLEDGE_DB_PATH),
            history_db_path=str(base.HISTORY_DB_PATH),
            log_level=logs.LOG_LEVEL,
            log_format_json=logs.LOG_FORMAT_JSON,
            llm_api_key=providers.LLM_API_KEY,
            llm_base_url=providers.LLM_BASE_URL,
            chat_backend=providers.CHAT_BACKEND.lower(),
            chat_models=providers.candidate_models(),
            chat_max_tokens=providers.CHAT_MAX_TOKENS,
            chat_temperature=providers.CHAT_TEMPERATURE,
            vision_backend=providers.VISION_BACKEND.lower(),
            vision_model=providers.VISION_MODEL,
            ollama_host=providers.OLLAMA_HOST,
            embedding_backend=providers.EMBEDDING_BACKEND.lower(),
            embedding_model=providers.EMBEDDING_MODEL,
            embedding_dim=providers.EMBEDDING_DIM,
            embedding_query_prefix=providers.EMBEDDING_QUERY_PREFIX,
            embedding_document_prefix=providers.EMBEDDING_DOCUMENT_PREFIX,
            provider_timeout=providers.PROVIDER_TIMEOUT,
            vision_timeout=providers.VISION_TIMEOUT,
            ocr_timeout=providers.OCR_TIMEOUT,
            emergency_threshold=triage.EMERGENCY_THRESHOLD,
            unknown_condition_severity=triage.UNKNOWN_CONDITION_SEVERITY,
            min_extracted_chars=triage.MIN_EXTRACTED_CHARS,
            max_medications=triage.MAX_MEDICATIONS,
            knowledge_top_k=triage.KNOWLEDGE_TOP_K,
            knowledge_index=triage.KNOWLEDGE_INDEX,
            use_vector_search=triage.USE_VECTOR_SEARCH,
        )

    def validate(self) -> None:
        """Reject backend names no component knows how to build."""
        if self.vision_backend not in VISION_BACKENDS:
            raise ConfigurationError(
                f"Unknown VISION_BACKEND '{self.vision_backend}', expected one of {VISION_BACKENDS}"
            )
        if self.chat_backend not in CHAT_BACKENDS:
            raise ConfigurationError(
                f"Unknown CHAT_BACKEND '{self.chat_backend}', expected one of {CHAT_BACKENDS}"
            )
        if self.embedding_backend not in EMBEDDING_BACKENDS:
            raise ConfigurationError(
                f"Unknown EMBEDDING_BACKEND '{self.embedding_backend}', expected one of {EMBEDDING_BACKENDS}"
            )
        if not self.chat_models:
            raise ConfigurationError("At least one chat model identifier is required")

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary for passing to components."""
        return asdict(self)


@lru_cache(maxsize=1)
def get_config() -> Dict[str, Any]:
    """
    Get configuration dictionary.

    Cached for performance - call once and pass to components.

    Returns:
        Configuration dictionary with all settings
    """
    return get_config_instance().to_dict()


def get_config_instance() -> Config:
    """
    Get Config instance for attribute access.

    Returns:
        Validated Config instance with all settings
    """
    _load_dotenv()
    config = Config.from_settings()
    config.validate()
    return config


# Convenience: reload config (clears cache)
def reload_config() -> Dict[str, Any]:
    """Reload configuration from environment."""
    get_config.cache_clear()
    return get_config()
