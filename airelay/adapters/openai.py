"""OpenAI chat, speech, transcription and image adapters (plain REST over httpx)."""

from __future__ import annotations

from typing import Any

import httpx

from airelay.adapters.base import (
    BlockedEnvelope,
    ChatAdapter,
    ChatEnvelope,
    ImageAdapter,
    ImageEnvelope,
    InlineImageEnvelope,
    MalformedEnvelope,
    SpeechAdapter,
    TextEnvelope,
    TranscriptionAdapter,
    image_from_envelope,
    reply_from_envelope,
)
from airelay.adapters.upstream import (
    _decode_json_or_text,
    post_for_bytes,
    post_json,
    post_multipart,
    raise_for_upstream,
)
from airelay.core.errors import ConfigurationError, EmptyResponseError, ValidationError
from airelay.core.history import Dialect, NormalizedHistory
from airelay.core.models import AudioPayload, ChatReply, ImagePayload, ReferenceImage
from airelay.util.logger import logger


def _flatten_content(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, list):
        parts: list[str] = []
        for item in value:
            if isinstance(item, str):
                parts.append(item)
            elif isinstance(item, dict) and isinstance(item.get("text"), str):
                parts.append(item["text"])
        return "".join(parts)
    return ""


def parse_chat_envelope(body: dict[str, Any] | str) -> ChatEnvelope:
    if not isinstance(body, dict):
        return MalformedEnvelope(raw=body)
    choices = body.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return MalformedEnvelope(raw=body)

    first = choices[0]
    message = first.get("message") if isinstance(first.get("message"), dict) else {}
    finish_reason = first.get("finish_reason")
    text = _flatten_content(message.get("content"))
    if text.strip():
        return TextEnvelope(text=text, finish_reason=finish_reason)

    # 主路径为空时依次检查 refusal 与 finish_reason
    refusal = message.get("refusal")
    if isinstance(refusal, str) and refusal.strip():
        return BlockedEnvelope(reason="refusal", detail=refusal.strip())
    if finish_reason == "content_filter":
        return BlockedEnvelope(reason="content_filter", detail="reply withheld by the provider content filter")
    if finish_reason == "length":
        return BlockedEnvelope(reason="length", detail="token limit reached before any reply text")
    return BlockedEnvelope(reason=str(finish_reason or "empty"), detail="provider returned an empty message")


def parse_image_envelope(body: dict[str, Any] | str) -> ImageEnvelope:
    if not isinstance(body, dict):
        return MalformedEnvelope(raw=body)
    data = body.get("data")
    if not isinstance(data, list) or not data:
        return MalformedEnvelope(raw=body)
    first = data[0] if isinstance(data[0], dict) else {}
    b64 = first.get("b64_json")
    if isinstance(b64, str) and b64:
        output_format = str(body.get("output_format") or "png").lower()
        return InlineImageEnvelope(
            data_b64=b64,
            mime_type=f"image/{output_format}",
            text=str(first.get("revised_prompt") or ""),
        )
    return BlockedEnvelope(reason="no_image", detail="provider returned no b64_json image data")


class _OpenAIBase:
    def __init__(self, client: httpx.AsyncClient, api_key: str, base_url: str) -> None:
        self._client = client
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")

    def _headers(self) -> dict[str, str]:
        if not self._api_key:
            raise ConfigurationError("OPENAI_API_KEY is not configured")
        return {"Authorization": f"Bearer {self._api_key}"}


class OpenAIChatAdapter(_OpenAIBase, ChatAdapter):
    name = "openai"
    dialect = Dialect.OPENAI

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_key: str,
        model: str,
        base_url: str = "https://api.openai.com/v1",
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> None:
        super().__init__(client, api_key, base_url)
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens

    def build_payload(self, history: NormalizedHistory, message: str, system_prompt: str | None = None) -> dict[str, Any]:
        messages: list[dict[str, Any]] = []
        system = history.system or system_prompt
        if system:
            messages.append({"role": "system", "content": system})
        messages.extend(history.messages)
        if message:
            messages.append({"role": "user", "content": message})

        payload: dict[str, Any] = {"model": self.model, "messages": messages, "stream": False}
        if self.temperature is not None:
            payload["temperature"] = self.temperature
        if self.max_tokens is not None:
            payload["max_tokens"] = self.max_tokens
        return payload

    async def send(self, history: NormalizedHistory, message: str, system_prompt: str | None = None) -> ChatReply:
        headers = self._headers()
        payload = self.build_payload(history, message, system_prompt)
        logger.info("openai chat model=%s messages=%d", self.model, len(payload["messages"]))
        status_code, body = await post_json(self._client, f"{self._base_url}/chat/completions", payload, headers)
        raise_for_upstream(self.name, status_code, body)
        return reply_from_envelope(self.name, parse_chat_envelope(body))


class OpenAISpeechAdapter(_OpenAIBase, SpeechAdapter):
    name = "openai_tts"

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_key: str,
        model: str,
        voice: str = "alloy",
        base_url: str = "https://api.openai.com/v1",
    ) -> None:
        super().__init__(client, api_key, base_url)
        self.model = model
        self.voice = voice

    async def send(self, text: str, voice: str | None = None) -> AudioPayload:
        headers = self._headers()
        payload = {
            "model": self.model,
            "voice": voice or self.voice,
            "input": text,
            "response_format": "wav",
        }
        status_code, content, content_type = await post_for_bytes(
            self._client, f"{self._base_url}/audio/speech", payload, headers
        )
        raise_for_upstream(self.name, status_code, _decode_json_or_text(content) if status_code >= 400 else "")
        if not content:
            raise EmptyResponseError("openai returned no audio", "empty audio body")
        return AudioPayload(audio=content, mime_type=content_type.split(";")[0].strip() or "audio/wav")


class OpenAITranscriptionAdapter(_OpenAIBase, TranscriptionAdapter):
    name = "openai_transcribe"

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_key: str,
        model: str,
        base_url: str = "https://api.openai.com/v1",
    ) -> None:
        super().__init__(client, api_key, base_url)
        self.model = model

    async def send(self, audio: bytes, filename: str = "speech.webm", content_type: str = "audio/webm") -> str:
        if not audio:
            raise ValidationError("Audio file is required")
        headers = self._headers()
        status_code, body = await post_multipart(
            self._client,
            f"{self._base_url}/audio/transcriptions",
            data={"model": self.model},
            files=[("file", (filename or "speech.webm", audio, content_type or "audio/webm"))],
            headers=headers,
        )
        raise_for_upstream(self.name, status_code, body)
        if isinstance(body, dict):
            text = body.get("text")
            if isinstance(text, str):
                return text
            raise EmptyResponseError("openai returned no transcript", "response has no text field")
        if body.strip():
            return body.strip()
        raise EmptyResponseError("openai returned no transcript", "empty response body")


class OpenAIImageAdapter(_OpenAIBase, ImageAdapter):
    name = "openai_image"

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_key: str,
        model: str,
        size: str = "1024x1024",
        base_url: str = "https://api.openai.com/v1",
    ) -> None:
        super().__init__(client, api_key, base_url)
        self.model = model
        self.size = size

    async def send(self, prompt: str, reference_images: list[ReferenceImage] | None = None) -> ImagePayload:
        headers = self._headers()
        if reference_images:
            files = [
                ("image[]", (f"reference-{index}.{image.mime_type.split('/')[-1]}", image.raw_bytes, image.mime_type))
                for index, image in enumerate(reference_images)
            ]
            status_code, body = await post_multipart(
                self._client,
                f"{self._base_url}/images/edits",
                data={"model": self.model, "prompt": prompt, "size": self.size},
                files=files,
                headers=headers,
            )
        else:
            payload: dict[str, Any] = {"model": self.model, "prompt": prompt, "size": self.size, "n": 1}
            if self.model.startswith("dall-e"):
                payload["response_format"] = "b64_json"
            status_code, body = await post_json(self._client, f"{self._base_url}/images/generations", payload, headers)
        raise_for_upstream(self.name, status_code, body)
        return image_from_envelope(self.name, parse_image_envelope(body))
