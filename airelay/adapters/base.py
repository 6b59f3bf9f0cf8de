"""Adapter contracts and the envelope variants adapters unwrap provider bodies into."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

import httpx

from airelay.core.errors import EmptyResponseError, MalformedResponseError
from airelay.core.history import Dialect, NormalizedHistory
from airelay.core.models import AudioPayload, ChatReply, ImagePayload, ReferenceImage


@dataclass(slots=True)
class TextEnvelope:
    text: str
    finish_reason: str | None = None


@dataclass(slots=True)
class InlineImageEnvelope:
    data_b64: str
    mime_type: str
    text: str = ""


@dataclass(slots=True)
class BlockedEnvelope:
    reason: str
    detail: str = ""


@dataclass(slots=True)
class MalformedEnvelope:
    raw: Any


ChatEnvelope = TextEnvelope | BlockedEnvelope | MalformedEnvelope
ImageEnvelope = InlineImageEnvelope | BlockedEnvelope | MalformedEnvelope


def reply_from_envelope(provider: str, envelope: ChatEnvelope) -> ChatReply:
    if isinstance(envelope, TextEnvelope):
        return ChatReply(text=envelope.text, finish_reason=envelope.finish_reason)
    if isinstance(envelope, BlockedEnvelope):
        raise EmptyResponseError(f"{provider} returned no reply text", envelope.detail or envelope.reason)
    if isinstance(envelope, MalformedEnvelope):
        raise MalformedResponseError(f"{provider} returned an unrecognized response", raw=envelope.raw)
    raise TypeError(f"unknown chat envelope: {type(envelope).__name__}")


def image_from_envelope(provider: str, envelope: ImageEnvelope) -> ImagePayload:
    if isinstance(envelope, InlineImageEnvelope):
        return ImagePayload(data_b64=envelope.data_b64, mime_type=envelope.mime_type, note=envelope.text)
    if isinstance(envelope, BlockedEnvelope):
        raise EmptyResponseError(f"{provider} returned no image", envelope.detail or envelope.reason)
    if isinstance(envelope, MalformedEnvelope):
        raise MalformedResponseError(f"{provider} returned an unrecognized response", raw=envelope.raw)
    raise TypeError(f"unknown image envelope: {type(envelope).__name__}")


class BaseAdapter(ABC):
    name = "base"

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client


class ChatAdapter(BaseAdapter):
    dialect: Dialect = Dialect.OPENAI

    @abstractmethod
    async def send(self, history: NormalizedHistory, message: str, system_prompt: str | None = None) -> ChatReply:
        """Send one chat turn on top of an already normalized history."""


class SpeechAdapter(BaseAdapter):
    @abstractmethod
    async def send(self, text: str, voice: str | None = None) -> AudioPayload:
        """Synthesize ``text``; the caller has already truncated it."""


class TranscriptionAdapter(BaseAdapter):
    @abstractmethod
    async def send(self, audio: bytes, filename: str = "speech.webm", content_type: str = "audio/webm") -> str:
        """Return the transcript of ``audio``."""


class ImageAdapter(BaseAdapter):
    @abstractmethod
    async def send(self, prompt: str, reference_images: list[ReferenceImage] | None = None) -> ImagePayload:
        """Generate an image, or edit the reference images when given."""
