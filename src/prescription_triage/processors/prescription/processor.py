# ============================================================================
# src/prescription_triage/processors/prescription/processor.py
# ============================================================================
"""
Prescription Processor

Upload path: image -> text -> medication entities.

The processor holds no state between documents; the resulting
medications are handed to the history store by the caller.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, Optional

from ...core.config import get_config
from ...core.models import RawDocument, ScanResult
from ...extractors.text_extraction import TextExtractionEngine
from .medication_parser import MedicationEntityParser


class PrescriptionProcessor:
    """
    Runs text extraction then medication parsing for one uploaded image.
    """

    def __init__(
        self,
        config: Optional[Dict[str, Any]] = None,
        engine: Optional[TextExtractionEngine] = None,
        parser: Optional[MedicationEntityParser] = None,
    ):
        self.config = {**get_config(), **(config or {})}
        self.logger = logging.getLogger(__name__)
        self.engine = engine or TextExtractionEngine(self.config)
        self.parser = parser or MedicationEntityParser(
            max_medications=self.config.get('max_medications', 10)
        )

    def _log_step(self, step: str, details: str = None):
        if details:
            self.logger.info(f"[STEP] {step}: {details}")
        else:
            self.logger.info(f"[STEP] {step}")

    async def process(
        self,
        document: RawDocument,
        progress: Optional[Callable[[int], None]] = None,
    ) -> ScanResult:
        """
        Process one prescription image.

        Args:
            document: Uploaded image
            progress: Optional OCR progress callback

        Returns:
            ScanResult with extracted text and medications
        """
        self._log_step("Starting prescription processing", document.filename or document.mime_type)

        extracted = await self.engine.extract(document, progress=progress)
        self._log_step("Text extraction complete", f"{len(extracted.text)} chars from {extracted.source.value}")
        self.logger.debug(f"Extracted text sample: {extracted.text[:500]}")

        loop = asyncio.get_running_loop()
        medications = await loop.run_in_executor(None, self.parser.parse, extracted.text)
        self._log_step("Medication extraction complete", f"{len(medications)} medications found")

        return ScanResult(extracted=extracted, medications=medications)
