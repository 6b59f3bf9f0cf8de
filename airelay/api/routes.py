"""Browser-facing relay routes."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, File, Form, Request, UploadFile
from fastapi.responses import JSONResponse, Response

from airelay.adapters.registry import Providers
from airelay.api.relay import (
    audio_response,
    error_response,
    image_link_response,
    image_response,
    reply_response,
    transcript_response,
)
from airelay.config.prompts import system_prompt_for
from airelay.core.errors import RelayError, ValidationError
from airelay.core.history import coerce_role, is_system_turn, normalize_history, turn_text
from airelay.core.models import ReferenceImage, Role
from airelay.core.speech_text import truncate_for_speech
from airelay.util.debug_excerpt import debug_log_text
from airelay.util.logger import logger


router = APIRouter()

DEFAULT_ANALYZE_PROMPT = "Describe this image in detail."


def _providers(request: Request) -> Providers:
    return request.app.state.providers


def _request_id(request: Request) -> str:
    return str(getattr(request.state, "request_id", "-"))


def _optional_str(payload: dict[str, Any], key: str) -> str | None:
    value = payload.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"'{key}' must be a string")
    return value.strip() or None


def _chat_inputs(payload: dict[str, Any]) -> tuple[str, list[Any]]:
    message = _optional_str(payload, "message") or ""
    history = payload.get("history") or []
    if not isinstance(history, list):
        raise ValidationError("'history' must be a list")

    if not message and history:
        # /api/chat 客户端只发 history，新消息是最后一条 user turn
        last = history[-1]
        if isinstance(last, dict) and not is_system_turn(last) and coerce_role(last.get("role")) == Role.USER:
            message = turn_text(last).strip()
            history = history[:-1]
    if not message:
        raise ValidationError("Message is required")
    return message, history


def _reference_images(payload: dict[str, Any]) -> list[ReferenceImage]:
    raw_images = payload.get("images")
    if raw_images is None:
        raw_images = [payload["image"]] if payload.get("image") else []
    if not isinstance(raw_images, list):
        raise ValidationError("'images' must be a list")
    return [ReferenceImage.from_payload(item) for item in raw_images]


async def _read_upload(upload: UploadFile | None, max_bytes: int) -> bytes:
    if upload is None:
        return b""
    data = await upload.read()
    if max_bytes > 0 and len(data) > max_bytes:
        raise ValidationError(f"Uploaded file exceeds {max_bytes} bytes")
    return data


@router.post("/chat")
@router.post("/api/chat")
async def chat(payload: dict, request: Request) -> JSONResponse:
    request_id = _request_id(request)
    providers = _providers(request)
    try:
        message, raw_history = _chat_inputs(payload)
        adapter = providers.chat
        history = normalize_history(raw_history, adapter.dialect, providers.history_max_turns)
        system_prompt = system_prompt_for(_optional_str(payload, "genre"))
        debug_log_text("chat_message", message, request_id=request_id)
        reply = await adapter.send(history, message, system_prompt)
    except RelayError as exc:
        return error_response(exc, operation="chat", request_id=request_id)

    debug_log_text("chat_reply", reply.text, request_id=request_id)
    logger.info(
        "chat ok request_id=%s provider=%s history_turns=%d finish_reason=%s",
        request_id,
        providers.chat.name,
        len(history.messages),
        reply.finish_reason,
    )
    return reply_response(reply.text)


@router.post("/speech")
@router.post("/tts")
@router.post("/api/speech")
async def speech(payload: dict, request: Request) -> Response:
    request_id = _request_id(request)
    providers = _providers(request)
    try:
        text = _optional_str(payload, "text")
        if not text:
            raise ValidationError("Text is required")
        prepared = truncate_for_speech(text, providers.speech_max_chars, providers.speech_boundary_window)
        if len(prepared) < len(text):
            logger.info("speech input truncated request_id=%s chars=%d->%d", request_id, len(text), len(prepared))
        audio = await providers.speech.send(prepared, _optional_str(payload, "voice"))
    except RelayError as exc:
        return error_response(exc, operation="speech", request_id=request_id)

    logger.info(
        "speech ok request_id=%s provider=%s bytes=%d mime_type=%s",
        request_id,
        providers.speech.name,
        len(audio.audio),
        audio.mime_type,
    )
    return audio_response(audio)


@router.post("/api/transcribe")
@router.post("/transcribe")
async def transcribe(request: Request, audio: UploadFile | None = File(default=None)) -> JSONResponse:
    request_id = _request_id(request)
    providers = _providers(request)
    try:
        data = await _read_upload(audio, providers.max_upload_bytes)
        filename = (audio.filename if audio else "") or "speech.webm"
        content_type = (audio.content_type if audio else "") or "audio/webm"
        text = await providers.transcription.send(data, filename, content_type)
    except RelayError as exc:
        return error_response(exc, operation="transcribe", request_id=request_id)

    logger.info("transcribe ok request_id=%s bytes=%d chars=%d", request_id, len(data), len(text))
    return transcript_response(text)


async def _generate_image(payload: dict, request: Request, *, require_reference: bool) -> JSONResponse:
    request_id = _request_id(request)
    providers = _providers(request)
    operation = "image_edit" if require_reference else "generate_image"
    try:
        prompt = _optional_str(payload, "prompt")
        if not prompt:
            raise ValidationError("Prompt is required")
        references = _reference_images(payload)
        if require_reference and not references:
            raise ValidationError("At least one image is required")
        debug_log_text("image_prompt", prompt, request_id=request_id)
        result = await providers.image.send(prompt, references or None)
    except RelayError as exc:
        return error_response(exc, operation=operation, request_id=request_id)

    logger.info(
        "%s ok request_id=%s provider=%s reference_images=%d mime_type=%s",
        operation,
        request_id,
        providers.image.name,
        len(references),
        result.mime_type,
    )
    return image_response(result)


@router.post("/generate-image")
async def generate_image(payload: dict, request: Request) -> JSONResponse:
    return await _generate_image(payload, request, require_reference=False)


@router.post("/image-edit")
async def image_edit(payload: dict, request: Request) -> JSONResponse:
    return await _generate_image(payload, request, require_reference=True)


@router.post("/image")
async def image_search(payload: dict, request: Request) -> JSONResponse:
    request_id = _request_id(request)
    providers = _providers(request)
    try:
        prompt = _optional_str(payload, "prompt") or _optional_str(payload, "query")
        if not prompt:
            raise ValidationError("Prompt is required")
        link = await providers.image_search.send(prompt)
    except RelayError as exc:
        return error_response(exc, operation="image_search", request_id=request_id)

    logger.info("image_search ok request_id=%s", request_id)
    return image_link_response(link)


@router.post("/api/analyze")
async def analyze(
    request: Request,
    file: UploadFile | None = File(default=None),
    prompt: str = Form(default=""),
) -> JSONResponse:
    request_id = _request_id(request)
    providers = _providers(request)
    try:
        data = await _read_upload(file, providers.max_upload_bytes)
        if not data:
            raise ValidationError("Image file is required")
        mime_type = (file.content_type if file else "") or "image/png"
        if not mime_type.startswith("image/"):
            raise ValidationError("Uploaded file must be an image")
        image = ReferenceImage.from_bytes(data, mime_type)
        reply = await providers.vision.send(prompt.strip() or DEFAULT_ANALYZE_PROMPT, image)
    except RelayError as exc:
        return error_response(exc, operation="analyze", request_id=request_id)

    logger.info("analyze ok request_id=%s bytes=%d", request_id, len(data))
    return reply_response(reply.text)
