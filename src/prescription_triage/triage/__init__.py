# ============================================================================
# src/prescription_triage/triage/__init__.py
# ============================================================================
"""
Severity scoring and patient history.
"""

from .severity import SeverityTriage, level_for_score
from .history import PatientHistoryStore
