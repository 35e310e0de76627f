# ============================================================================
# src/prescription_triage/config/__init__.py
# ============================================================================
"""
Convenient imports for all settings
"""

from .base_config import base_settings
from .provider_config import provider_settings
from .triage_config import triage_settings
from .logging_config import logging_settings
