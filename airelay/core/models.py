"""Internal transport models."""

from __future__ import annotations

import base64
import binascii
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel

from airelay.core.errors import ValidationError


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class ConversationTurn(BaseModel):
    role: Role
    text: str


@dataclass(slots=True)
class ChatReply:
    text: str
    finish_reason: str | None = None


@dataclass(slots=True)
class AudioPayload:
    audio: bytes
    mime_type: str


@dataclass(slots=True)
class ImagePayload:
    data_b64: str
    mime_type: str
    note: str = ""


@dataclass(slots=True)
class ImageLink:
    url: str
    title: str = ""


_DATA_URL_RE = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+);base64,(?P<data>.*)$", re.DOTALL)


@dataclass(slots=True)
class ReferenceImage:
    mime_type: str
    data_b64: str

    @property
    def raw_bytes(self) -> bytes:
        return base64.b64decode(self.data_b64)

    @classmethod
    def from_bytes(cls, data: bytes, mime_type: str) -> "ReferenceImage":
        return cls(mime_type=mime_type or "image/png", data_b64=base64.b64encode(data).decode("ascii"))

    @classmethod
    def from_payload(cls, item: Any) -> "ReferenceImage":
        """Accept a data URL string or a ``{mimeType, data}`` object."""
        if isinstance(item, str):
            matched = _DATA_URL_RE.match(item.strip())
            if matched:
                mime_type, data = matched.group("mime"), matched.group("data")
            else:
                mime_type, data = "image/png", item.strip()
        elif isinstance(item, dict):
            mime_type = str(item.get("mimeType") or item.get("mime_type") or "image/png")
            data = str(item.get("data") or "")
            nested = _DATA_URL_RE.match(data)
            if nested:
                mime_type, data = nested.group("mime"), nested.group("data")
        else:
            raise ValidationError("Reference images must be data URLs or {mimeType, data} objects")

        data = "".join(data.split())
        if not data:
            raise ValidationError("Reference image is empty")
        try:
            base64.b64decode(data, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ValidationError("Reference image is not valid base64") from exc
        return cls(mime_type=mime_type, data_b64=data)
