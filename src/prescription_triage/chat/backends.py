# ============================================================================
# src/prescription_triage/chat/backends.py
# ============================================================================
"""
Chat Generation Backends

Backends:
- openai: OpenAI-compatible chat completions (Gemini's OpenAI endpoint by
  default; Groq or OpenAI by changing LLM_BASE_URL)
- ollama: local models through /api/chat

A backend reports an unknown model identifier with ModelNotFoundError.
Every other failure propagates as-is; the orchestrator treats those as
fatal for the request.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, List, Optional

import aiohttp
import openai

from ..utils.exceptions import ConfigurationError, ModelNotFoundError


logger = logging.getLogger(__name__)

Message = Dict[str, str]


class BackendType(Enum):
    """Supported generation backends."""
    OPENAI = "openai"    # OpenAI-compatible HTTP API
    OLLAMA = "ollama"    # Ollama server


def is_not_found_message(message: str) -> bool:
    return "not found" in (message or "").lower()


class ChatBackend(ABC):
    """
    Abstract base class for chat generation clients.

    All backends must implement:
    - backend_type
    - generate(): async completion for one model identifier
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = config or {}
        self.max_tokens = self.config.get('chat_max_tokens', 800)
        self.temperature = self.config.get('chat_temperature', 0.3)
        self.timeout = self.config.get('provider_timeout', 60)

    @property
    @abstractmethod
    def backend_type(self) -> BackendType:
        pass

    @abstractmethod
    async def generate(self, messages: List[Message], model: str) -> str:
        """
        Generate a reply.

        Args:
            messages: Chat messages (role/content)
            model: Model identifier for this attempt

        Returns:
            Reply text (may be empty)

        Raises:
            ModelNotFoundError: The backend does not know `model`
        """
        pass

    async def close(self):
        pass


class OpenAIChatBackend(ChatBackend):
    """OpenAI SDK client; sync calls run in the default executor."""

    def __init__(self, config: Optional[Dict[str, Any]] = None, client=None):
        super().__init__(config)
        self._client = client

    @property
    def backend_type(self) -> BackendType:
        return BackendType.OPENAI

    @property
    def client(self):
        """Lazy load OpenAI client."""
        if self._client is None:
            self._client = openai.OpenAI(
                api_key=self.config.get('llm_api_key') or None,
                base_url=self.config.get('llm_base_url') or None,
                timeout=self.timeout,
            )
        return self._client

    async def generate(self, messages: List[Message], model: str) -> str:
        def call_api():
            response = self.client.chat.completions.create(
                model=model,
                messages=messages,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
            )
            return response.choices[0].message.content or ""

        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, call_api)
        except openai.NotFoundError as e:
            raise ModelNotFoundError(f"Model '{model}' not found: {e}", model=model) from e
        except openai.APIStatusError as e:
            # Some providers answer unknown models with 400 + "not found"
            if e.status_code == 404 or is_not_found_message(str(e)):
                raise ModelNotFoundError(f"Model '{model}' not found: {e}", model=model) from e
            raise


class OllamaChatBackend(ChatBackend):
    """Ollama /api/chat, non-streaming."""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        super().__init__(config)
        self.host = self.config.get('ollama_host', 'http://localhost:11434')
        self._session: Optional[aiohttp.ClientSession] = None

    @property
    def backend_type(self) -> BackendType:
        return BackendType.OLLAMA

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

    async def generate(self, messages: List[Message], model: str) -> str:
        payload = {
            "model": model,
            "messages": messages,
            "stream": False,
            "options": {
                "num_predict": self.max_tokens,
                "temperature": self.temperature,
            },
        }

        session = await self._get_session()
        async with session.post(f"{self.host}/api/chat", json=payload) as response:
            if response.status != 200:
                error_text = await response.text()
                if response.status == 404 or is_not_found_message(error_text):
                    raise ModelNotFoundError(f"Model '{model}' not found: {error_text}", model=model)
                raise RuntimeError(f"Ollama error ({response.status}): {error_text}")
            data = await response.json()

        return data.get('message', {}).get('content', '')


def create_chat_backend(config: Dict[str, Any], backend_type: Optional[str] = None) -> ChatBackend:
    """Build a chat backend; defaults to CHAT_BACKEND."""
    backend = (backend_type or config.get('chat_backend', 'openai')).lower()
    if backend == BackendType.OPENAI.value:
        return OpenAIChatBackend(config)
    if backend == BackendType.OLLAMA.value:
        return OllamaChatBackend(config)
    raise ConfigurationError(f"Unknown chat backend: {backend}")
