# ============================================================================
# src/prescription_triage/constants/__init__.py
# ============================================================================
"""
Convenient imports for all constants
"""

from .conditions import ADVISORY_KEYWORDS, DISEASE_KEYWORDS, SYMPTOM_ALIASES, DEFER_TO_RESPONDER
from .severity_scores import SEVERITY_SCORES, SEVERITY_BREAKPOINTS
from .medication_terms import DOSAGE_UNITS, DOSAGE_FORMS, STOP_WORDS, STRUCTURAL_WORDS
