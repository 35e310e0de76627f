# ============================================================================
# src/prescription_triage/extractors/ocr_extractor.py
# ============================================================================
"""
Local OCR Fallback

Tesseract with automatic page segmentation and the LSTM recognizer.
Deterministic and always available, so it backs up the vision provider.
CPU-bound: callers run `recognize` in an executor.
"""

import logging
from typing import Callable, Dict, List, Optional, Tuple

import pytesseract
from PIL import Image

from ..utils.exceptions import ProviderError
from ..utils.image_utils import prepare_for_ocr


logger = logging.getLogger(__name__)

# --oem 1: LSTM only (printed + handwritten mix), --psm 3: automatic segmentation
TESSERACT_CONFIG = "--oem 1 --psm 3"

ProgressCallback = Callable[[int], None]


class TesseractOCR:
    """
    Tesseract wrapper returning text and mean word confidence (0-100).

    Args:
        lang: Tesseract language code
        timeout: Seconds before Tesseract is killed (0 disables)
    """

    def __init__(self, lang: str = "eng", timeout: float = 60):
        self.lang = lang
        self.timeout = timeout

    def recognize(
        self,
        image: Image.Image,
        progress: Optional[ProgressCallback] = None,
    ) -> Tuple[str, float]:
        """
        Run OCR on one image.

        Args:
            image: Decoded PIL image
            progress: Optional callback receiving 0-100 progress values

        Returns:
            (text with original line breaks, mean confidence 0-100)

        Raises:
            ProviderError: Tesseract missing, crashed or timed out
        """
        _report(progress, 10)
        prepared = prepare_for_ocr(image)
        _report(progress, 25)

        try:
            data = pytesseract.image_to_data(
                prepared,
                lang=self.lang,
                config=TESSERACT_CONFIG,
                output_type=pytesseract.Output.DICT,
                timeout=self.timeout,
            )
        except pytesseract.TesseractNotFoundError as e:
            raise ProviderError("Tesseract is not installed or not on PATH", provider="tesseract") from e
        except (pytesseract.TesseractError, RuntimeError) as e:
            # pytesseract signals its own timeout with RuntimeError
            raise ProviderError(f"Tesseract failed: {e}", provider="tesseract") from e

        _report(progress, 90)
        text, confidence = self._assemble(data)
        _report(progress, 100)

        logger.debug(f"Tesseract read {len(text)} chars at {confidence:.1f}% confidence")
        return text, confidence

    @staticmethod
    def _assemble(data: Dict[str, List]) -> Tuple[str, float]:
        """Rebuild lines from word-level output, keyed by block/paragraph/line."""
        lines: Dict[Tuple[int, int, int], List[str]] = {}
        confidences = []

        for i, raw_conf in enumerate(data['conf']):
            word = str(data['text'][i]).strip()
            conf = float(raw_conf)
            if not word or conf < 0:
                continue
            key = (data['block_num'][i], data['par_num'][i], data['line_num'][i])
            lines.setdefault(key, []).append(word)
            confidences.append(conf)

        text = "\n".join(" ".join(words) for _, words in sorted(lines.items()))
        avg_confidence = sum(confidences) / len(confidences) if confidences else 0.0
        return text, round(avg_confidence, 1)


def _report(progress: Optional[ProgressCallback], value: int):
    if progress is not None:
        progress(value)
