# ============================================================================
# src/prescription_triage/processors/__init__.py
# ============================================================================
