# ============================================================================
# src/prescription_triage/utils/__init__.py
# ============================================================================
