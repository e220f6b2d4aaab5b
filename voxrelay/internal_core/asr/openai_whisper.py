from __future__ import annotations

import json
import logging
import time
from typing import Optional

import httpx

from ..audio_utils import FORMAT_MIME_TYPES
from .base import ASRError, ASRProvider

logger = logging.getLogger(__name__)

_TRANSIENT_STATUS = {408, 409, 425, 429}


def _truncate(text: str, limit: int = 200) -> str:
    text = " ".join((text or "").split())
    if len(text) > limit:
        return text[:limit] + "..."
    return text


class OpenAIWhisperProvider(ASRProvider):
    def __init__(
        self,
        api_key: str,
        *,
        api_url: str = "https://api.openai.com/v1/audio/transcriptions",
        model: str = "whisper-1",
        language: str = "en",
        timeout_sec: float = 60.0,
        client: Optional[httpx.Client] = None,
    ):
        self._api_key = api_key
        self._api_url = api_url
        self._model = model
        self._language = language
        self._client = client or httpx.Client(timeout=timeout_sec)

    def name(self) -> str:
        return "openai_whisper"

    def close(self) -> None:
        self._client.close()

    def transcribe(self, data: bytes, audio_format: str) -> str:
        filename = f"audio_{int(time.time() * 1000)}.{audio_format}"
        mime_type = FORMAT_MIME_TYPES.get(audio_format, "application/octet-stream")
        form = {"model": self._model, "response_format": "json"}
        if self._language:
            form["language"] = self._language

        logger.debug("posting %d bytes as %s to %s", len(data), audio_format, self._api_url)
        try:
            response = self._client.post(
                self._api_url,
                headers={"Authorization": f"Bearer {self._api_key}"},
                data=form,
                files={"file": (filename, data, mime_type)},
            )
        except httpx.TimeoutException as e:
            raise ASRError("API_TIMEOUT", f"Transcription request timed out: {e}", self.name(), "transient") from e
        except httpx.RequestError as e:
            raise ASRError(
                "API_UNREACHABLE", f"Failed to transcribe audio: {e}", self.name(), "transient"
            ) from e

        status = response.status_code
        if status == 413:
            raise ASRError(
                "PAYLOAD_TOO_LARGE",
                "File too large for API (413 Payload Too Large)",
                self.name(),
                "permanent",
            )
        if status >= 500 or status in _TRANSIENT_STATUS:
            raise ASRError(
                f"HTTP_{status}",
                f"Transcription API error {status}: {_truncate(response.text)}",
                self.name(),
                "transient",
            )
        if status >= 400:
            raise ASRError(
                f"HTTP_{status}",
                f"Transcription API rejected request ({status}): {_truncate(response.text)}",
                self.name(),
                "permanent",
            )

        body = response.text
        if not body.strip():
            logger.info("empty response from transcription API")
            return ""
        try:
            payload = json.loads(body)
        except json.JSONDecodeError as e:
            logger.error("unparseable transcription response: %s", _truncate(body))
            raise ASRError("INVALID_JSON", "Invalid JSON response from API", self.name(), "permanent") from e
        if not isinstance(payload, dict):
            raise ASRError("INVALID_JSON", "Invalid JSON response from API", self.name(), "permanent")
        return str(payload.get("text") or "").strip()
