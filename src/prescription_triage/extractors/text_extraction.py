# ============================================================================
# src/prescription_triage/extractors/text_extraction.py
# ============================================================================
"""
Text Extraction Engine

Image -> prescription text, in two tiers:

1. Primary: vision-language model transcription (accurate, but subject to
   quota, transient errors and model drift)
2. Fallback: local Tesseract OCR (slower, less accurate, always there)

Fails with ExtractionFailedError only when both tiers come back with
fewer than MIN_EXTRACTED_CHARS characters. The upload is only decoded
locally for OCR; the primary provider receives the original bytes, so
formats Pillow cannot read (HEIC) still reach it.
"""

import asyncio
import logging
import re
from typing import Any, Callable, Dict, Optional

from ..core.attempts import AttemptOutcome
from ..core.config import get_config
from ..core.models import ExtractedText, ExtractionSource, RawDocument
from ..utils.exceptions import ExtractionFailedError, InvalidInputError, ProviderError
from ..utils.image_utils import load_image
from .ocr_extractor import TesseractOCR
from .vision_client import VisionTranscriber, create_vision_transcriber


logger = logging.getLogger(__name__)

UNCLEAR_IMAGE_MESSAGE = (
    "No text detected in the image. The image is likely unclear; "
    "please upload a clearer prescription image."
)

_MARKUP_PATTERNS = (
    re.compile(r"^\s{0,3}#{1,6}\s*", re.MULTILINE),   # headings
    re.compile(r"```[a-zA-Z]*"),                       # code fences
    re.compile(r"\*+"),                                # bold / italic / bullets
    re.compile(r"(?<!\w)_{1,2}|_{1,2}(?!\w)"),         # underscore emphasis
    re.compile(r"`"),
)


def strip_markup(text: str) -> str:
    """Remove markdown emphasis and heading artifacts from model output."""
    for pattern in _MARKUP_PATTERNS:
        text = pattern.sub("", text)
    return "\n".join(line.rstrip() for line in text.splitlines()).strip()


class TextExtractionEngine:
    """
    Two-tier image-to-text extraction.

    Args:
        config: Overrides merged over get_config()
        transcriber: Primary provider (None disables the primary tier)
        ocr: Local OCR engine
    """

    _UNSET = object()

    def __init__(
        self,
        config: Optional[Dict[str, Any]] = None,
        transcriber: Any = _UNSET,
        ocr: Optional[TesseractOCR] = None,
    ):
        self.config = {**get_config(), **(config or {})}
        self.min_chars = self.config.get('min_extracted_chars', 5)
        self.vision_timeout = self.config.get('vision_timeout', 90)
        self.ocr_timeout = self.config.get('ocr_timeout', 60)

        if transcriber is self._UNSET:
            transcriber = create_vision_transcriber(self.config)
        self.transcriber: Optional[VisionTranscriber] = transcriber
        self.ocr = ocr or TesseractOCR(timeout=self.ocr_timeout)

    async def extract(
        self,
        document: RawDocument,
        progress: Optional[Callable[[int], None]] = None,
    ) -> ExtractedText:
        """
        Extract prescription text from an image.

        Args:
            document: Uploaded image and its MIME type
            progress: Optional callback for fallback OCR progress (0-100)

        Returns:
            ExtractedText tagged primary or fallback

        Raises:
            InvalidInputError: Not an image MIME type, or empty
            ExtractionFailedError: Both tiers produced insufficient text
        """
        mime_type = (document.mime_type or "").lower()
        if not mime_type.startswith("image/"):
            raise InvalidInputError(f"Expected an image upload, got '{document.mime_type}'")
        if not document.content:
            raise InvalidInputError("Uploaded image is empty")

        outcome = await self._try_primary(document.content, mime_type)
        if outcome.is_ok:
            logger.info(f"Primary extraction succeeded via {outcome.candidate}: {len(outcome.value)} chars")
            return ExtractedText(text=outcome.value, source=ExtractionSource.PRIMARY)

        logger.warning(f"Primary extraction unavailable ({outcome.reason}), falling back to local OCR")
        return await self._run_fallback(document.content, progress)

    async def _try_primary(self, content: bytes, mime_type: str) -> AttemptOutcome:
        if self.transcriber is None:
            return AttemptOutcome.retryable("none", "vision backend disabled")

        name = self.transcriber.name
        try:
            raw = await asyncio.wait_for(
                self.transcriber.transcribe(content, mime_type),
                timeout=self.vision_timeout,
            )
        except asyncio.TimeoutError as e:
            return AttemptOutcome.retryable(name, f"timed out after {self.vision_timeout}s", e)
        except Exception as e:
            # Any primary failure is recoverable through OCR
            return AttemptOutcome.retryable(name, str(e) or type(e).__name__, e)

        text = strip_markup(raw or "")
        if len(text) < self.min_chars:
            return AttemptOutcome.retryable(name, f"insufficient text ({len(text)} chars)")
        return AttemptOutcome.ok(name, text)

    async def _run_fallback(
        self,
        content: bytes,
        progress: Optional[Callable[[int], None]],
    ) -> ExtractedText:
        def report(value: int):
            logger.debug(f"OCR progress: {value}%")
            if progress is not None:
                progress(value)

        def recognize():
            return self.ocr.recognize(load_image(content), report)

        loop = asyncio.get_running_loop()
        try:
            text, confidence = await asyncio.wait_for(
                loop.run_in_executor(None, recognize),
                timeout=self.ocr_timeout,
            )
        except asyncio.TimeoutError as e:
            raise ExtractionFailedError(
                f"{UNCLEAR_IMAGE_MESSAGE} (OCR timed out after {self.ocr_timeout}s)"
            ) from e
        except ProviderError as e:
            logger.error(f"Fallback OCR failed: {e}")
            raise ExtractionFailedError(UNCLEAR_IMAGE_MESSAGE) from e
        except InvalidInputError as e:
            logger.error(f"Fallback OCR cannot decode the upload: {e}")
            raise ExtractionFailedError(UNCLEAR_IMAGE_MESSAGE) from e

        text = text.strip()
        if len(text) < self.min_chars:
            raise ExtractionFailedError(UNCLEAR_IMAGE_MESSAGE)

        logger.info(f"Fallback OCR extracted {len(text)} chars at {confidence}% confidence")
        return ExtractedText(text=text, source=ExtractionSource.FALLBACK, confidence=confidence)

    async def close(self):
        if self.transcriber is not None:
            await self.transcriber.close()
