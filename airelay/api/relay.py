"""Adapter results and typed failures -> the HTTP contract the browser client expects."""

from __future__ import annotations

from fastapi.responses import JSONResponse, Response

from airelay.core.errors import (
    MalformedResponseError,
    RelayError,
    UnsupportedCapabilityError,
    UpstreamError,
    UpstreamUnavailableError,
    ValidationError,
)
from airelay.core.models import AudioPayload, ImageLink, ImagePayload
from airelay.util.logger import logger


def _status_for(exc: RelayError) -> int:
    if isinstance(exc, ValidationError):
        return 400
    if isinstance(exc, (UpstreamError, UpstreamUnavailableError, UnsupportedCapabilityError)):
        return 502
    return 500


def error_response(exc: RelayError, *, operation: str, request_id: str = "-") -> JSONResponse:
    status_code = _status_for(exc)
    if status_code >= 500:
        logger.error(
            "%s failed request_id=%s code=%s error=%s detail=%s",
            operation,
            request_id,
            exc.code,
            exc.message,
            exc.detail,
        )
        if isinstance(exc, MalformedResponseError):
            logger.error("%s malformed upstream body request_id=%s raw=%.600r", operation, request_id, exc.raw)
    else:
        logger.warning("%s rejected request_id=%s error=%s", operation, request_id, exc.message)

    content: dict[str, str] = {"error": exc.message}
    if exc.detail:
        content["detail"] = exc.detail
    return JSONResponse(status_code=status_code, content=content)


def internal_error_response(operation: str, request_id: str = "-") -> JSONResponse:
    logger.exception("%s unhandled exception request_id=%s", operation, request_id)
    return JSONResponse(status_code=500, content={"error": "internal error"})


def reply_response(text: str) -> JSONResponse:
    return JSONResponse(content={"reply": text})


def transcript_response(text: str) -> JSONResponse:
    return JSONResponse(content={"text": text})


def audio_response(payload: AudioPayload) -> Response:
    return Response(
        content=payload.audio,
        media_type=payload.mime_type,
        headers={"Cache-Control": "no-store"},
    )


def image_response(payload: ImagePayload) -> JSONResponse:
    content = {"image_b64": payload.data_b64, "mimeType": payload.mime_type}
    if payload.note:
        content["text"] = payload.note
    return JSONResponse(content=content)


def image_link_response(link: ImageLink) -> JSONResponse:
    content = {"imageUrl": link.url}
    if link.title:
        content["title"] = link.title
    return JSONResponse(content=content)
