# ============================================================================
# FILE: tests/unit/test_text_extraction.py
# ============================================================================
"""
Unit tests for the two-tier text extraction engine and local OCR
"""

import asyncio
from unittest.mock import MagicMock, patch

import pytest
from PIL import Image

from prescription_triage.core.models import ExtractionSource, RawDocument
from prescription_triage.extractors.ocr_extractor import TesseractOCR
from prescription_triage.extractors.text_extraction import (
    UNCLEAR_IMAGE_MESSAGE,
    TextExtractionEngine,
    strip_markup,
)
from prescription_triage.extractors.vision_client import VisionTranscriber, create_vision_transcriber
from prescription_triage.utils.exceptions import (
    ExtractionFailedError,
    InvalidInputError,
    ProviderError,
)


# ============================================================================
# FIXTURES
# ============================================================================

class FakeTranscriber(VisionTranscriber):
    """Returns a fixed reply, raises, or hangs."""

    def __init__(self, reply="", error=None, delay=0.0):
        super().__init__({})
        self.reply = reply
        self.error = error
        self.delay = delay
        self.calls = 0
        self.received = None

    @property
    def name(self):
        return "fake:vision"

    async def transcribe(self, content, mime_type):
        self.calls += 1
        self.received = (content, mime_type)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.reply


def make_ocr(text="", confidence=0.0, error=None):
    ocr = MagicMock(spec=TesseractOCR)

    def recognize(image, progress=None):
        if progress is not None:
            progress(100)
        if error is not None:
            raise error
        return text, confidence

    ocr.recognize.side_effect = recognize
    return ocr


@pytest.fixture
def document(prescription_png):
    return RawDocument(content=prescription_png, mime_type="image/png", filename="rx.png")


# ============================================================================
# PRIMARY TIER
# ============================================================================

@pytest.mark.asyncio
async def test_primary_success(test_config, document):
    """Test that a good vision reply is used and OCR never runs"""
    ocr = make_ocr("should not be used")
    engine = TextExtractionEngine(
        test_config, transcriber=FakeTranscriber("Paracetamol 500mg twice daily"), ocr=ocr
    )

    result = await engine.extract(document)

    assert result.source == ExtractionSource.PRIMARY
    assert result.text == "Paracetamol 500mg twice daily"
    assert result.confidence is None
    ocr.recognize.assert_not_called()


@pytest.mark.asyncio
async def test_primary_markup_stripped(test_config, document):
    """Test markdown removal from vision output"""
    engine = TextExtractionEngine(
        test_config,
        transcriber=FakeTranscriber("## Prescription\n**Paracetamol** 500mg\n* Cetirizine 10mg"),
        ocr=make_ocr(),
    )

    result = await engine.extract(document)

    assert "*" not in result.text
    assert "#" not in result.text
    assert "Paracetamol 500mg" in result.text


def test_strip_markup_keeps_words():
    """Test that snake_case words survive underscore stripping"""
    assert strip_markup("__Dolo__ 650mg\nvitamin_b12") == "Dolo 650mg\nvitamin_b12"


# ============================================================================
# FALLBACK TIER
# ============================================================================

@pytest.mark.asyncio
async def test_fallback_on_provider_error(test_config, document):
    """Test OCR fallback when the vision call fails"""
    engine = TextExtractionEngine(
        test_config,
        transcriber=FakeTranscriber(error=ProviderError("quota exceeded", provider="fake")),
        ocr=make_ocr("Amoxicillin 250mg", 81.2),
    )

    result = await engine.extract(document)

    assert result.source == ExtractionSource.FALLBACK
    assert result.text == "Amoxicillin 250mg"
    assert result.confidence == 81.2


@pytest.mark.asyncio
async def test_fallback_on_short_primary_text(test_config, document):
    """Test that fewer than five characters counts as a primary failure"""
    engine = TextExtractionEngine(test_config, transcriber=FakeTranscriber("**ok**"), ocr=make_ocr("Cetirizine 10mg", 70.0))

    result = await engine.extract(document)

    assert result.source == ExtractionSource.FALLBACK


@pytest.mark.asyncio
async def test_fallback_on_primary_timeout(test_config, document):
    """Test that a hung vision call falls back instead of blocking"""
    config = {**test_config, 'vision_timeout': 0.05}
    engine = TextExtractionEngine(config, transcriber=FakeTranscriber("late", delay=1.0), ocr=make_ocr("Ibuprofen 400mg", 65.0))

    result = await engine.extract(document)

    assert result.source == ExtractionSource.FALLBACK


@pytest.mark.asyncio
async def test_fallback_reports_progress(test_config, document):
    """Test that the progress callback sees OCR progress"""
    seen = []
    engine = TextExtractionEngine(test_config, transcriber=None, ocr=make_ocr("Metformin 500mg", 90.0))

    await engine.extract(document, progress=seen.append)

    assert seen == [100]


# ============================================================================
# FAILURES
# ============================================================================

@pytest.mark.asyncio
async def test_blank_image_fails_both_tiers(test_config, blank_png):
    """Test that an unreadable image surfaces ExtractionFailed"""
    engine = TextExtractionEngine(test_config, transcriber=FakeTranscriber(""), ocr=make_ocr("", 0.0))

    with pytest.raises(ExtractionFailedError) as exc_info:
        await engine.extract(RawDocument(content=blank_png, mime_type="image/png"))

    assert exc_info.value.kind == "ExtractionFailed"
    assert exc_info.value.message == UNCLEAR_IMAGE_MESSAGE


@pytest.mark.asyncio
async def test_ocr_error_becomes_extraction_failed(test_config, document):
    """Test that a missing Tesseract binary is reported as ExtractionFailed"""
    engine = TextExtractionEngine(
        test_config,
        transcriber=None,
        ocr=make_ocr(error=ProviderError("Tesseract is not installed", provider="tesseract")),
    )

    with pytest.raises(ExtractionFailedError):
        await engine.extract(document)


@pytest.mark.asyncio
@pytest.mark.parametrize("mime_type,content", [
    ("application/pdf", b"%PDF-1.4"),
    ("text/plain", b"Paracetamol 500mg"),
    ("image/png", b""),
])
async def test_invalid_input(test_config, mime_type, content):
    """Test that non-image uploads are rejected before any provider is called"""
    transcriber = FakeTranscriber("Paracetamol 500mg")
    ocr = make_ocr("Paracetamol 500mg")
    engine = TextExtractionEngine(test_config, transcriber=transcriber, ocr=ocr)

    with pytest.raises(InvalidInputError):
        await engine.extract(RawDocument(content=content, mime_type=mime_type))

    assert transcriber.calls == 0
    ocr.recognize.assert_not_called()


@pytest.mark.asyncio
async def test_undecodable_image_goes_to_primary(test_config):
    """Test that a format Pillow cannot read (HEIC) is still transcribed"""
    content = b"\x00\x00\x00\x18ftypheic\x00\x00\x00\x00mif1heic" + b"\x00" * 64
    transcriber = FakeTranscriber("Paracetamol 500mg twice daily")
    ocr = make_ocr("should not be used")
    engine = TextExtractionEngine(test_config, transcriber=transcriber, ocr=ocr)

    result = await engine.extract(RawDocument(content=content, mime_type="image/heic"))

    assert result.source == ExtractionSource.PRIMARY
    assert transcriber.received == (content, "image/heic")
    ocr.recognize.assert_not_called()


@pytest.mark.asyncio
async def test_undecodable_image_without_primary(test_config):
    """Test that OCR on unreadable bytes is ExtractionFailed, not InvalidInput"""
    ocr = make_ocr("Paracetamol 500mg")
    engine = TextExtractionEngine(
        test_config,
        transcriber=FakeTranscriber(error=ProviderError("quota exceeded", provider="fake")),
        ocr=ocr,
    )

    with pytest.raises(ExtractionFailedError) as exc_info:
        await engine.extract(RawDocument(content=b"definitely not a png", mime_type="image/png"))

    assert exc_info.value.message == UNCLEAR_IMAGE_MESSAGE
    ocr.recognize.assert_not_called()


def test_vision_backend_none_disables_primary(test_config):
    """Test VISION_BACKEND=none"""
    assert create_vision_transcriber({**test_config, 'vision_backend': 'none'}) is None
    engine = TextExtractionEngine(test_config, ocr=make_ocr())
    assert engine.transcriber is None


# ============================================================================
# TESSERACT WRAPPER
# ============================================================================

def _tesseract_data():
    return {
        'text': ["", "Paracetamol", "500mg", "", "Cetirizine", "10mg"],
        'conf': [-1, 90, 80, -1, 70, "60"],
        'block_num': [1, 1, 1, 1, 1, 1],
        'par_num': [1, 1, 1, 1, 1, 1],
        'line_num': [0, 1, 1, 2, 2, 2],
    }


def test_tesseract_assembles_lines():
    """Test word-level output grouped back into lines"""
    progress = []
    with patch("prescription_triage.extractors.ocr_extractor.pytesseract.image_to_data",
               return_value=_tesseract_data()) as image_to_data:
        text, confidence = TesseractOCR(timeout=5).recognize(Image.new("RGB", (50, 20), "white"), progress.append)

    assert text == "Paracetamol 500mg\nCetirizine 10mg"
    assert confidence == 75.0
    assert progress == [10, 25, 90, 100]
    assert image_to_data.call_args.kwargs['config'] == "--oem 1 --psm 3"


def test_tesseract_timeout_is_provider_error():
    """Test that pytesseract's RuntimeError timeout is wrapped"""
    with patch("prescription_triage.extractors.ocr_extractor.pytesseract.image_to_data",
               side_effect=RuntimeError("Tesseract process timeout")):
        with pytest.raises(ProviderError):
            TesseractOCR(timeout=1).recognize(Image.new("RGB", (50, 20), "white"))
