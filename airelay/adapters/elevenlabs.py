"""ElevenLabs text-to-speech adapter."""

from __future__ import annotations

import json
from typing import Any

import httpx

from airelay.adapters.base import SpeechAdapter
from airelay.adapters.upstream import _decode_json_or_text, _unreachable, post_for_bytes, raise_for_upstream
from airelay.core.errors import ConfigurationError, EmptyResponseError, MalformedResponseError
from airelay.core.models import AudioPayload
from airelay.util.logger import logger


class ElevenLabsSpeechAdapter(SpeechAdapter):
    name = "elevenlabs"

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_key: str,
        voice_id: str,
        model: str = "eleven_multilingual_v2",
        base_url: str = "https://api.elevenlabs.io",
        stability: float = 0.5,
        similarity_boost: float = 0.75,
    ) -> None:
        super().__init__(client)
        self._api_key = api_key
        self.voice_id = voice_id
        self.model = model
        self._base_url = base_url.rstrip("/")
        self.stability = stability
        self.similarity_boost = similarity_boost

    def _headers(self) -> dict[str, str]:
        if not self._api_key:
            raise ConfigurationError("ELEVENLABS_API_KEY is not configured")
        return {"xi-api-key": self._api_key, "Accept": "audio/mpeg"}

    async def send(self, text: str, voice: str | None = None) -> AudioPayload:
        headers = self._headers()
        voice_id = voice or self.voice_id
        payload = {
            "text": text,
            "model_id": self.model,
            "voice_settings": {"stability": self.stability, "similarity_boost": self.similarity_boost},
        }
        logger.info("elevenlabs tts voice_id=%s model=%s chars=%d", voice_id, self.model, len(text))
        status_code, content, content_type = await post_for_bytes(
            self._client, f"{self._base_url}/v1/text-to-speech/{voice_id}", payload, headers
        )
        raise_for_upstream(self.name, status_code, _decode_json_or_text(content) if status_code >= 400 else "")
        if not content:
            raise EmptyResponseError("elevenlabs returned no audio", "empty audio body")
        return AudioPayload(audio=content, mime_type=content_type.split(";")[0].strip() or "audio/mpeg")

    async def list_models(self) -> list[dict[str, Any]]:
        if not self._api_key:
            raise ConfigurationError("ELEVENLABS_API_KEY is not configured")
        url = f"{self._base_url}/v1/models"
        try:
            response = await self._client.get(url, headers={"xi-api-key": self._api_key})
        except httpx.HTTPError as exc:
            raise _unreachable(url, exc) from exc
        raise_for_upstream(self.name, response.status_code, _decode_json_or_text(response.content))
        try:
            models = json.loads(response.content.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise MalformedResponseError("elevenlabs returned an unrecognized model list", raw=response.text) from exc
        if not isinstance(models, list):
            raise MalformedResponseError("elevenlabs returned an unrecognized model list", raw=models)
        return [item for item in models if isinstance(item, dict)]
