# ============================================================================
# src/prescription_triage/processors/prescription/__init__.py
# ============================================================================
from .medication_parser import MedicationEntityParser
from .processor import PrescriptionProcessor
