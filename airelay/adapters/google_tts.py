"""Google Cloud Text-to-Speech adapter (REST ``text:synthesize``)."""

from __future__ import annotations

import base64
import binascii

import httpx

from airelay.adapters.base import SpeechAdapter
from airelay.adapters.upstream import post_json, raise_for_upstream
from airelay.core.errors import ConfigurationError, EmptyResponseError, MalformedResponseError
from airelay.core.models import AudioPayload
from airelay.util.logger import logger


class GoogleSpeechAdapter(SpeechAdapter):
    name = "google_tts"

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_key: str,
        voice: str = "en-US-Neural2-D",
        language_code: str = "en-US",
        base_url: str = "https://texttospeech.googleapis.com",
    ) -> None:
        super().__init__(client)
        self._api_key = api_key
        self.voice = voice
        self.language_code = language_code
        self._base_url = base_url.rstrip("/")

    async def send(self, text: str, voice: str | None = None) -> AudioPayload:
        if not self._api_key:
            raise ConfigurationError("GOOGLE_TTS_API_KEY is not configured")
        voice_name = voice or self.voice
        payload = {
            "input": {"text": text},
            "voice": {"languageCode": self.language_code, "name": voice_name},
            "audioConfig": {"audioEncoding": "MP3"},
        }
        logger.info("google tts voice=%s chars=%d", voice_name, len(text))
        status_code, body = await post_json(
            self._client,
            f"{self._base_url}/v1/text:synthesize",
            payload,
            params={"key": self._api_key},
        )
        raise_for_upstream(self.name, status_code, body)
        if not isinstance(body, dict):
            raise MalformedResponseError("google tts returned an unrecognized response", raw=body)
        encoded = body.get("audioContent")
        if not encoded:
            raise EmptyResponseError("google tts returned no audio", "response has no audioContent")
        try:
            audio = base64.b64decode(encoded)
        except (binascii.Error, ValueError) as exc:
            raise MalformedResponseError("google tts returned undecodable audio", raw=str(encoded)[:80]) from exc
        return AudioPayload(audio=audio, mime_type="audio/mpeg")
