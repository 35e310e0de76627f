# ============================================================================
# src/prescription_triage/__init__.py
# ============================================================================
"""
Prescription understanding and medical triage pipeline.
"""

__version__ = "0.1.0"
