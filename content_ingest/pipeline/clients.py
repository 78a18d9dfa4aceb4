"""
External Service Clients
========================
aiohttp clients for the collaborators the pipeline calls out to.

This module provides:
- TranscriptionClient: submits audio to the speech-to-text vendor
- HttpTextExtractor: fetches readable text for non-audio content
- HttpAnalyzer: triggers downstream analysis by content ID

Each client owns one lazily-created ``aiohttp.ClientSession`` and can be
used as an async context manager. Failures surface as
``ExternalServiceError``; the raw message is classified by the caller
before it is stored anywhere.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

import aiohttp

from ..core.config import ExternalServicesConfig
from ..core.exceptions import ExternalServiceError
from ..core.logging_config import get_logger

logger = get_logger(__name__)

DEEPGRAM_API_URL = "https://api.deepgram.com/v1/listen"
ASSEMBLYAI_API_URL = "https://api.assemblyai.com/v2/transcript"


@dataclass
class ExtractedText:
    text: str
    title: Optional[str] = None


class Transcriber(Protocol):
    async def submit(self, audio_url: str) -> str:
        """Submit audio for asynchronous transcription; returns the correlation ID."""
        ...


class TextExtractor(Protocol):
    async def extract(self, url: str) -> ExtractedText:
        ...


class Analyzer(Protocol):
    async def analyze(self, content_id: str, language: str) -> Dict[str, Any]:
        """Trigger analysis; returns the analyzer's response body."""
        ...


class _SessionClient:
    """Shared session lifecycle for the HTTP clients below."""

    def __init__(self, timeout: float):
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session: Optional[aiohttp.ClientSession] = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def __aenter__(self):
        self._get_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


class TranscriptionClient(_SessionClient):
    """
    Speech-to-text vendor client.

    The callback URL carries the shared webhook secret as a ``token`` query
    parameter; the vendor echoes it back on delivery.
    """

    def __init__(self, config: ExternalServicesConfig, timeout: float = 30.0):
        super().__init__(timeout)
        self.vendor = config.transcription_vendor
        self.api_key = config.transcription_api_key
        self.api_url = config.transcription_api_url
        self.webhook_url = config.transcription_webhook_url
        self.webhook_token = config.transcription_webhook_token

    def callback_url(self) -> str:
        if not self.webhook_token:
            return self.webhook_url
        separator = "&" if "?" in self.webhook_url else "?"
        return f"{self.webhook_url}{separator}token={self.webhook_token}"

    async def submit(self, audio_url: str) -> str:
        """
        Submit ``audio_url`` for diarized transcription.

        Returns:
            str: Vendor correlation ID

        Raises:
            ExternalServiceError: On missing credentials or a non-2xx response
        """
        if not self.api_key:
            raise ExternalServiceError(
                "Transcription service is not configured", "transcription"
            )

        if self.vendor == "assemblyai":
            url = self.api_url or ASSEMBLYAI_API_URL
            params = None
            headers = {"Authorization": self.api_key}
            body = {
                "audio_url": audio_url,
                "speaker_labels": True,
                "language_detection": True,
                "webhook_url": self.callback_url(),
            }
            id_field = "id"
        else:
            url = self.api_url or DEEPGRAM_API_URL
            params = {
                "model": "nova-3",
                "diarize": "true",
                "utterances": "true",
                "smart_format": "true",
                "detect_language": "true",
                "callback": self.callback_url(),
            }
            headers = {"Authorization": f"Token {self.api_key}"}
            body = {"url": audio_url}
            id_field = "request_id"

        session = self._get_session()
        try:
            async with session.post(url, params=params, json=body, headers=headers) as response:
                if response.status >= 400:
                    error_text = await response.text()
                    raise ExternalServiceError(
                        f"Transcription submission failed ({response.status}): {error_text[:200]}",
                        "transcription",
                        status_code=response.status,
                    )
                data = await response.json()
        except asyncio.TimeoutError as e:
            raise ExternalServiceError(
                "Transcription submission timed out", "transcription", cause=e
            )
        except aiohttp.ClientError as e:
            raise ExternalServiceError(
                f"Transcription submission failed: {e}", "transcription", cause=e
            )

        correlation_id = data.get(id_field)
        if not correlation_id:
            raise ExternalServiceError(
                "Transcription submission returned no correlation ID", "transcription"
            )

        logger.info(f"Submitted transcription to {self.vendor}: {correlation_id}")
        return correlation_id


class HttpTextExtractor(_SessionClient):
    """POSTs ``{"url": ...}`` to the extraction service, expects ``{"text", "title"}``."""

    def __init__(self, config: ExternalServicesConfig):
        super().__init__(config.extractor_timeout)
        self.url = config.extractor_url

    async def extract(self, url: str) -> ExtractedText:
        session = self._get_session()
        try:
            async with session.post(self.url, json={"url": url}) as response:
                if response.status >= 400:
                    raise ExternalServiceError(
                        f"Text extraction failed ({response.status})",
                        "extractor",
                        status_code=response.status,
                    )
                data = await response.json()
        except asyncio.TimeoutError as e:
            raise ExternalServiceError("Text extraction timed out", "extractor", cause=e)
        except aiohttp.ClientError as e:
            raise ExternalServiceError(f"Text extraction failed: {e}", "extractor", cause=e)

        return ExtractedText(text=data.get("text") or "", title=data.get("title"))


class HttpAnalyzer(_SessionClient):
    """
    Downstream analyzer client.

    The analyzer is invoked by content ID only and reads the text from the
    shared store itself.
    """

    def __init__(self, config: ExternalServicesConfig):
        super().__init__(config.analyzer_timeout)
        self.url = config.analyzer_url
        self.token = config.analyzer_token

    async def analyze(self, content_id: str, language: str) -> Dict[str, Any]:
        headers = {}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        session = self._get_session()
        try:
            async with session.post(
                self.url,
                json={"content_id": content_id, "language": language},
                headers=headers,
            ) as response:
                if response.status >= 400:
                    error_text = await response.text()
                    raise ExternalServiceError(
                        f"Analyzer request failed ({response.status}): {error_text[:200]}",
                        "analyzer",
                        status_code=response.status,
                    )
                try:
                    return await response.json(content_type=None) or {}
                except ValueError:
                    return {}
        except asyncio.TimeoutError as e:
            raise ExternalServiceError("Analyzer request timed out", "analyzer", cause=e)
        except aiohttp.ClientError as e:
            raise ExternalServiceError(f"Analyzer request failed: {e}", "analyzer", cause=e)
