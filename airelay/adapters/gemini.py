"""Gemini generateContent adapters: chat, image generation/edit and image analysis."""

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
    TextEnvelope,
    image_from_envelope,
    reply_from_envelope,
)
from airelay.adapters.upstream import post_json, raise_for_upstream
from airelay.core.errors import ConfigurationError, UnsupportedCapabilityError, UpstreamError
from airelay.core.history import Dialect, NormalizedHistory
from airelay.core.models import ChatReply, ImagePayload, ReferenceImage
from airelay.util.logger import logger


SEARCH_TOOL = "google_search"
HARM_CATEGORIES = (
    "HARM_CATEGORY_HARASSMENT",
    "HARM_CATEGORY_HATE_SPEECH",
    "HARM_CATEGORY_SEXUALLY_EXPLICIT",
    "HARM_CATEGORY_DANGEROUS_CONTENT",
)
_TOOL_HINTS = ("google_search", "search", "grounding", "tool")
_REJECTION_HINTS = ("not supported", "unsupported", "not enabled", "not available")


def _first_candidate(body: dict[str, Any]) -> dict[str, Any] | None:
    candidates = body.get("candidates")
    if isinstance(candidates, list) and candidates and isinstance(candidates[0], dict):
        return candidates[0]
    return None


def _candidate_parts(candidate: dict[str, Any]) -> list[dict[str, Any]]:
    content = candidate.get("content")
    if not isinstance(content, dict):
        return []
    parts = content.get("parts")
    if not isinstance(parts, list):
        return []
    return [part for part in parts if isinstance(part, dict)]


def _parts_text(parts: list[dict[str, Any]]) -> str:
    # thought 部分是模型的思考摘要，不返回给前端
    return "".join(part["text"] for part in parts if isinstance(part.get("text"), str) and not part.get("thought"))


def _blocked_categories(candidate: dict[str, Any]) -> list[str]:
    ratings = candidate.get("safetyRatings")
    if not isinstance(ratings, list):
        return []
    return [str(item.get("category")) for item in ratings if isinstance(item, dict) and item.get("blocked")]


def _finish_block(candidate: dict[str, Any]) -> BlockedEnvelope | None:
    finish_reason = candidate.get("finishReason")
    if not finish_reason or finish_reason == "STOP":
        return None
    detail = f"finishReason={finish_reason}"
    categories = _blocked_categories(candidate)
    if categories:
        detail = f"{detail} blocked_categories={','.join(categories)}"
    return BlockedEnvelope(reason=str(finish_reason), detail=detail)


def _prompt_block(body: dict[str, Any]) -> BlockedEnvelope | None:
    feedback = body.get("promptFeedback")
    if isinstance(feedback, dict) and feedback.get("blockReason"):
        reason = str(feedback["blockReason"])
        return BlockedEnvelope(reason=reason, detail=f"prompt blocked: {reason}")
    return None


def parse_chat_envelope(body: dict[str, Any] | str) -> ChatEnvelope:
    if not isinstance(body, dict):
        return MalformedEnvelope(raw=body)
    candidate = _first_candidate(body)
    if candidate is not None:
        text = _parts_text(_candidate_parts(candidate))
        if text.strip():
            return TextEnvelope(text=text, finish_reason=candidate.get("finishReason"))
        return _finish_block(candidate) or BlockedEnvelope(reason="empty", detail="candidate contained no text")
    return _prompt_block(body) or MalformedEnvelope(raw=body)


def parse_image_envelope(body: dict[str, Any] | str) -> ImageEnvelope:
    if not isinstance(body, dict):
        return MalformedEnvelope(raw=body)
    candidate = _first_candidate(body)
    if candidate is None:
        return _prompt_block(body) or MalformedEnvelope(raw=body)

    parts = _candidate_parts(candidate)
    text = _parts_text(parts).strip()
    for part in parts:
        inline = part.get("inlineData") or part.get("inline_data")
        if isinstance(inline, dict) and inline.get("data"):
            mime_type = inline.get("mimeType") or inline.get("mime_type") or "image/png"
            return InlineImageEnvelope(data_b64=str(inline["data"]), mime_type=str(mime_type), text=text)

    blocked = _finish_block(candidate)
    if blocked is not None:
        return blocked
    if text:
        return BlockedEnvelope(reason="text_only", detail=text[:600])
    return BlockedEnvelope(reason="empty", detail="candidate contained no image data")


def is_unsupported_tool_error(exc: UpstreamError) -> bool:
    if exc.status_code != 400:
        return False
    detail = (exc.detail or "").lower()
    return any(hint in detail for hint in _TOOL_HINTS) and any(hint in detail for hint in _REJECTION_HINTS)


def _user_content(text: str, images: list[ReferenceImage] | None = None) -> dict[str, Any]:
    parts: list[dict[str, Any]] = [{"text": text}]
    for image in images or []:
        parts.append({"inline_data": {"mime_type": image.mime_type, "data": image.data_b64}})
    return {"role": "user", "parts": parts}


class _GeminiBase:
    def __init__(self, client: httpx.AsyncClient, api_key: str, model: str, base_url: str) -> None:
        self._client = client
        self._api_key = api_key
        self.model = model
        self._base_url = base_url.rstrip("/")

    def _endpoint(self) -> str:
        return f"{self._base_url}/models/{self.model}:generateContent"

    def _headers(self) -> dict[str, str]:
        if not self._api_key:
            raise ConfigurationError("GEMINI_API_KEY is not configured")
        return {"x-goog-api-key": self._api_key}

    async def _generate(self, payload: dict[str, Any]) -> dict[str, Any] | str:
        status_code, body = await post_json(self._client, self._endpoint(), payload, self._headers())
        try:
            raise_for_upstream(self.name, status_code, body)
        except UpstreamError as exc:
            if "tools" in payload and is_unsupported_tool_error(exc):
                raise UnsupportedCapabilityError(SEARCH_TOOL, exc) from exc
            raise
        return body


class GeminiChatAdapter(_GeminiBase, ChatAdapter):
    name = "gemini"
    dialect = Dialect.GEMINI

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_key: str,
        model: str,
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        temperature: float | None = None,
        max_output_tokens: int | None = None,
        safety_threshold: str | None = "BLOCK_ONLY_HIGH",
        search_grounding: bool = False,
    ) -> None:
        super().__init__(client, api_key, model, base_url)
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens
        self.safety_threshold = safety_threshold
        self.search_grounding = search_grounding

    def build_payload(self, history: NormalizedHistory, message: str, system_prompt: str | None = None) -> dict[str, Any]:
        contents = list(history.messages)
        if message:
            contents.append(_user_content(message))
        payload: dict[str, Any] = {"contents": contents}

        system = history.system or system_prompt
        if system:
            payload["systemInstruction"] = {"parts": [{"text": system}]}

        generation_config: dict[str, Any] = {}
        if self.temperature is not None:
            generation_config["temperature"] = self.temperature
        if self.max_output_tokens is not None:
            generation_config["maxOutputTokens"] = self.max_output_tokens
        if generation_config:
            payload["generationConfig"] = generation_config

        if self.safety_threshold:
            payload["safetySettings"] = [
                {"category": category, "threshold": self.safety_threshold} for category in HARM_CATEGORIES
            ]
        if self.search_grounding:
            payload["tools"] = [{SEARCH_TOOL: {}}]
        return payload

    async def send(self, history: NormalizedHistory, message: str, system_prompt: str | None = None) -> ChatReply:
        payload = self.build_payload(history, message, system_prompt)
        logger.info("gemini chat model=%s contents=%d", self.model, len(payload["contents"]))
        body = await self._generate(payload)
        return reply_from_envelope(self.name, parse_chat_envelope(body))


class GeminiImageAdapter(_GeminiBase, ImageAdapter):
    name = "gemini_image"

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_key: str,
        model: str,
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        search_grounding: bool = False,
    ) -> None:
        super().__init__(client, api_key, model, base_url)
        self.search_grounding = search_grounding

    def build_payload(self, prompt: str, reference_images: list[ReferenceImage] | None = None) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "contents": [_user_content(prompt, reference_images)],
            "generationConfig": {"responseModalities": ["TEXT", "IMAGE"]},
        }
        if self.search_grounding:
            payload["tools"] = [{SEARCH_TOOL: {}}]
        return payload

    async def send(self, prompt: str, reference_images: list[ReferenceImage] | None = None) -> ImagePayload:
        payload = self.build_payload(prompt, reference_images)
        logger.info(
            "gemini image model=%s reference_images=%d tools=%s",
            self.model,
            len(reference_images or []),
            "tools" in payload,
        )
        try:
            body = await self._generate(payload)
        except UnsupportedCapabilityError as exc:
            logger.warning(
                "gemini image capability rejected capability=%s detail=%s, retrying once without it",
                exc.capability,
                exc.detail,
            )
            stripped = {key: value for key, value in payload.items() if key != "tools"}
            body = await self._generate(stripped)
        return image_from_envelope(self.name, parse_image_envelope(body))


class GeminiVisionAdapter(_GeminiBase):
    """Answers a text prompt about one uploaded image."""

    name = "gemini_vision"

    async def send(self, prompt: str, image: ReferenceImage) -> ChatReply:
        payload = {"contents": [_user_content(prompt, [image])]}
        logger.info("gemini vision model=%s mime_type=%s", self.model, image.mime_type)
        body = await self._generate(payload)
        return reply_from_envelope(self.name, parse_chat_envelope(body))
