# ============================================================================
# src/prescription_triage/chat/__init__.py
# ============================================================================
"""
Chat generation: backends and the orchestrator.
"""

from .backends import ChatBackend, create_chat_backend
from .orchestrator import ChatOrchestrator
