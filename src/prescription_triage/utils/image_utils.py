# ============================================================================
# src/prescription_triage/utils/image_utils.py
# ============================================================================
"""
Image helpers shared by the vision transcribers and the OCR engine.
"""

import base64
import io
import logging
from typing import Tuple

from PIL import Image, ImageOps, UnidentifiedImageError

from .exceptions import InvalidInputError


logger = logging.getLogger(__name__)

# Vision models tile images into fixed-size patches; larger inputs only cost latency
VISION_MAX_IMAGE_DIM = 1024


def load_image(content: bytes) -> Image.Image:
    """
    Decode uploaded bytes and apply EXIF orientation.

    Raises:
        InvalidInputError: Bytes are not a decodable image
    """
    try:
        img = Image.open(io.BytesIO(content))
        img.load()
    except (UnidentifiedImageError, OSError) as e:
        raise InvalidInputError(f"Uploaded file is not a readable image: {e}") from e

    # Phone cameras store landscape pixels with a rotation tag
    return ImageOps.exif_transpose(img)


def encode_for_vision(img: Image.Image, max_dim: int = VISION_MAX_IMAGE_DIM) -> str:
    """Resize to max_dim and return a base64-encoded JPEG."""
    w, h = img.size
    if max(w, h) > max_dim:
        scale = max_dim / max(w, h)
        new_w, new_h = int(w * scale), int(h * scale)
        img = img.resize((new_w, new_h), Image.LANCZOS)
        logger.debug(f"Resized image {w}x{h} -> {new_w}x{new_h} for vision model")

    if img.mode not in ('RGB', 'L'):
        img = img.convert('RGB')

    buf = io.BytesIO()
    img.save(buf, format='JPEG', quality=85)
    return base64.b64encode(buf.getvalue()).decode('utf-8')


def encode_upload(content: bytes, mime_type: str, max_dim: int = VISION_MAX_IMAGE_DIM) -> Tuple[str, str]:
    """
    Base64 payload and MIME type to send a vision model.

    Images Pillow can read are resized and re-encoded as JPEG. Anything else
    (HEIC from phones, for example) goes through untouched under its own
    MIME type and the provider decides whether it can read it.
    """
    try:
        img = load_image(content)
    except InvalidInputError:
        logger.debug(f"Passing {mime_type} upload to the vision model without re-encoding")
        return base64.b64encode(content).decode('utf-8'), mime_type
    return encode_for_vision(img, max_dim), "image/jpeg"


def prepare_for_ocr(img: Image.Image) -> Image.Image:
    """Grayscale + autocontrast; enough for Tesseract on phone photos."""
    gray = ImageOps.grayscale(img)
    return ImageOps.autocontrast(gray)
