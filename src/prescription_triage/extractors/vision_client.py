# ============================================================================
# src/prescription_triage/extractors/vision_client.py
# ============================================================================
"""
Vision Transcription Clients

Primary text extraction: a vision-capable model reads the prescription
image and transcribes it verbatim.

Backends:
- openai: any OpenAI-compatible chat completions endpoint with image input
  (Gemini's OpenAI endpoint by default, OpenAI, Groq)
- ollama: local vision model through /api/generate

Usage:
    transcriber = create_vision_transcriber(config)
    text = await transcriber.transcribe(content, "image/jpeg")
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import aiohttp

from ..utils.exceptions import ConfigurationError, ProviderError
from ..utils.image_utils import encode_upload


logger = logging.getLogger(__name__)


TRANSCRIPTION_PROMPT = (
    "Transcribe this medical prescription exactly as written. "
    "Include medicine names, dosages, timings and any instructions, one item per line. "
    "Do not add explanations or formatting. "
    "If something is unreadable, mark it as [unclear]."
)


class VisionTranscriber(ABC):
    """Abstract interface for the primary transcription provider."""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = config or {}
        self.model = self.config.get('vision_model', '')
        self.timeout = self.config.get('vision_timeout', 90)

    @property
    @abstractmethod
    def name(self) -> str:
        pass

    @abstractmethod
    async def transcribe(self, content: bytes, mime_type: str) -> str:
        """
        Transcribe an uploaded image.

        Args:
            content: Raw upload bytes
            mime_type: MIME type reported by the client

        Returns:
            Raw model output (may contain markup)

        Raises:
            ProviderError: Transport or API failure
        """
        pass

    async def close(self):
        pass


class OpenAIVisionTranscriber(VisionTranscriber):
    """
    OpenAI-compatible chat completions with an inline data-URL image.

    The openai client is synchronous, so calls run in the default executor.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None, client=None):
        super().__init__(config)
        self._client = client

    @property
    def name(self) -> str:
        return f"openai:{self.model}"

    @property
    def client(self):
        """Lazy load OpenAI client."""
        if self._client is None:
            from openai import OpenAI
            self._client = OpenAI(
                api_key=self.config.get('llm_api_key') or None,
                base_url=self.config.get('llm_base_url') or None,
                timeout=self.timeout,
            )
        return self._client

    async def transcribe(self, content: bytes, mime_type: str) -> str:
        def call_api():
            base64_image, image_type = encode_upload(content, mime_type)
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[{
                    "role": "user",
                    "content": [
                        {"type": "text", "text": TRANSCRIPTION_PROMPT},
                        {
                            "type": "image_url",
                            "image_url": {"url": f"data:{image_type};base64,{base64_image}"},
                        },
                    ],
                }],
                temperature=0.0,
            )
            return response.choices[0].message.content or ""

        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, call_api)
        except Exception as e:
            raise ProviderError(f"Vision transcription failed: {e}", provider=self.name) from e


class OllamaVisionTranscriber(VisionTranscriber):
    """Local vision model served by Ollama (e.g. llava, moondream, gemma3)."""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        super().__init__(config)
        self.host = self.config.get('ollama_host', 'http://localhost:11434')
        self._session: Optional[aiohttp.ClientSession] = None

    @property
    def name(self) -> str:
        return f"ollama:{self.model}"

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
        return self._session

    async def close(self):
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def transcribe(self, content: bytes, mime_type: str) -> str:
        loop = asyncio.get_running_loop()
        base64_image, _ = await loop.run_in_executor(None, encode_upload, content, mime_type)
        payload = {
            "model": self.model,
            "prompt": TRANSCRIPTION_PROMPT,
            "images": [base64_image],
            "stream": False,
            "options": {"temperature": 0.0},
        }

        session = await self._get_session()
        try:
            async with session.post(f"{self.host}/api/generate", json=payload) as response:
                if response.status != 200:
                    error_text = await response.text()
                    raise ProviderError(
                        f"Ollama returned status {response.status}: {error_text}",
                        provider=self.name,
                    )
                result = await response.json()
        except aiohttp.ClientError as e:
            raise ProviderError(f"Cannot reach Ollama at {self.host}: {e}", provider=self.name) from e

        return result.get('response', '')


def create_vision_transcriber(config: Dict[str, Any]) -> Optional[VisionTranscriber]:
    """
    Build the configured primary transcriber.

    Returns:
        Transcriber, or None when VISION_BACKEND=none (OCR only)
    """
    backend = config.get('vision_backend', 'openai').lower()

    if backend == 'none':
        logger.info("Vision transcription disabled, using local OCR only")
        return None
    if backend == 'openai':
        return OpenAIVisionTranscriber(config)
    if backend == 'ollama':
        return OllamaVisionTranscriber(config)

    raise ConfigurationError(f"Unknown vision backend: {backend}")
