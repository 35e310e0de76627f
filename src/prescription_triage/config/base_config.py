# ============================================================================
# src/prescription_triage/config/base_config.py
# ============================================================================
"""
Base Configuration
- Data directory
- Knowledge base database
- Patient history database
"""

from pathlib import Path
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseSettingsConfig(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Root project directory
    PROJECT_ROOT: Path = Field(
        default_factory=lambda: Path(__file__).parent.parent.parent.parent,
        description="Root directory of the project"
    )

    DATA_DIR: Path = Field(
        default=Path("data"),
        description="Directory holding the SQLite databases"
    )

    # Read-only reference dataset (conditions, remedies, embeddings)
    KNOWLEDGE_DB_PATH: Path = Field(
        default=Path("data/knowledge.db"),
        description="SQLite database for the medical knowledge base"
    )

    # Patient history, severity log, conversation log
    HISTORY_DB_PATH: Path = Field(
        default=Path("data/history.db"),
        description="SQLite database for patient history and chat turns"
    )

    def create_directories(self):
        """Create all necessary directories if they don't exist"""
        dirs = [
            self.DATA_DIR,
            self.KNOWLEDGE_DB_PATH.parent,
            self.HISTORY_DB_PATH.parent,
        ]
        for directory in dirs:
            directory.mkdir(parents=True, exist_ok=True)


# Global instance
base_settings = BaseSettingsConfig()
