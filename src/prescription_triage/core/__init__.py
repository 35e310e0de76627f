# ============================================================================
# src/prescription_triage/core/__init__.py
# ============================================================================
