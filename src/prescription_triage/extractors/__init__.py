# ============================================================================
# src/prescription_triage/extractors/__init__.py
# ============================================================================
"""
Image-to-text extraction: vision transcription with local OCR fallback.
"""

from .text_extraction import TextExtractionEngine
from .vision_client import create_vision_transcriber
