"""
上游 HTTP 调用：客户端构建、JSON/二进制/multipart 转发与错误体解析。
客户端由调用方显式创建并注入各 adapter，本模块不持有全局状态。
"""

from __future__ import annotations

import json
from typing import Any, Mapping

import httpx

from airelay.config.settings import Settings
from airelay.core.errors import UpstreamError, UpstreamUnavailableError
from airelay.util.logger import logger

_ERROR_DETAIL_MAX_CHARS = 600


def _upstream_http_limits(settings: Settings) -> httpx.Limits:
    return httpx.Limits(
        max_connections=max(10, int(settings.upstream_max_connections)),
        max_keepalive_connections=max(5, int(settings.upstream_max_keepalive_connections)),
    )


def _upstream_http_timeout(settings: Settings) -> httpx.Timeout:
    timeout = float(settings.upstream_timeout_seconds)
    if timeout <= 0:
        return httpx.Timeout(None)
    return httpx.Timeout(connect=timeout, read=timeout, write=timeout, pool=timeout)


def build_upstream_client(settings: Settings, transport: httpx.AsyncBaseTransport | None = None) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=_upstream_http_timeout(settings),
        limits=_upstream_http_limits(settings),
        transport=transport,
    )


def _decode_json_or_text(body: bytes) -> dict[str, Any] | str:
    text = body.decode("utf-8", errors="replace")
    if not text:
        return ""
    try:
        parsed = json.loads(text)
        if isinstance(parsed, dict):
            return parsed
        return text
    except json.JSONDecodeError:
        return text


def _safe_error_detail(payload: dict[str, Any] | str) -> str:
    if isinstance(payload, str):
        return payload[:_ERROR_DETAIL_MAX_CHARS]
    error = payload.get("error")
    if isinstance(error, str):
        return error[:_ERROR_DETAIL_MAX_CHARS]
    # OpenAI / Gemini / Google APIs 都把原因放在 error.message
    if isinstance(error, dict) and isinstance(error.get("message"), str):
        return error["message"][:_ERROR_DETAIL_MAX_CHARS]
    detail = payload.get("detail")
    if isinstance(detail, dict) and isinstance(detail.get("message"), str):
        return detail["message"][:_ERROR_DETAIL_MAX_CHARS]
    return json.dumps(payload, ensure_ascii=False)[:_ERROR_DETAIL_MAX_CHARS]


def _unreachable(url: str, exc: httpx.HTTPError) -> UpstreamUnavailableError:
    detail = (str(exc) or "").strip() or type(exc).__name__ or "connection_failed_or_timeout"
    logger.warning("upstream http_error url=%s error=%s", url, detail)
    return UpstreamUnavailableError("upstream provider unreachable", detail)


def raise_for_upstream(provider: str, status_code: int, body: dict[str, Any] | str) -> None:
    if status_code < 400:
        return
    detail = _safe_error_detail(body)
    logger.error("upstream error provider=%s status=%s body=%s", provider, status_code, detail)
    raise UpstreamError(status_code, body, detail)


async def post_json(
    client: httpx.AsyncClient,
    url: str,
    payload: dict[str, Any],
    headers: Mapping[str, str] | None = None,
    params: Mapping[str, str] | None = None,
) -> tuple[int, dict[str, Any] | str]:
    body = json.dumps(payload, ensure_ascii=False).encode("utf-8")
    request_headers = {"Content-Type": "application/json", **dict(headers or {})}
    logger.debug("post_json start url=%s payload_bytes=%d", url, len(body))
    try:
        response = await client.post(url, content=body, headers=request_headers, params=params)
    except httpx.HTTPError as exc:
        raise _unreachable(url, exc) from exc
    logger.debug("post_json done url=%s status=%s", url, response.status_code)
    return response.status_code, _decode_json_or_text(response.content)


async def post_for_bytes(
    client: httpx.AsyncClient,
    url: str,
    payload: dict[str, Any],
    headers: Mapping[str, str] | None = None,
) -> tuple[int, bytes, str]:
    """POST JSON and return the raw body; used by endpoints that answer with audio."""
    body = json.dumps(payload, ensure_ascii=False).encode("utf-8")
    request_headers = {"Content-Type": "application/json", **dict(headers or {})}
    logger.debug("post_for_bytes start url=%s payload_bytes=%d", url, len(body))
    try:
        response = await client.post(url, content=body, headers=request_headers)
    except httpx.HTTPError as exc:
        raise _unreachable(url, exc) from exc
    content_type = response.headers.get("content-type", "")
    logger.debug(
        "post_for_bytes done url=%s status=%s content_type=%s bytes=%d",
        url,
        response.status_code,
        content_type,
        len(response.content),
    )
    return response.status_code, response.content, content_type


async def post_multipart(
    client: httpx.AsyncClient,
    url: str,
    data: Mapping[str, str],
    files: list[tuple[str, tuple[str, bytes, str]]],
    headers: Mapping[str, str] | None = None,
) -> tuple[int, dict[str, Any] | str]:
    logger.debug("post_multipart start url=%s files=%d", url, len(files))
    try:
        response = await client.post(url, data=dict(data), files=files, headers=dict(headers or {}))
    except httpx.HTTPError as exc:
        raise _unreachable(url, exc) from exc
    logger.debug("post_multipart done url=%s status=%s", url, response.status_code)
    return response.status_code, _decode_json_or_text(response.content)


async def get_json(
    client: httpx.AsyncClient,
    url: str,
    params: Mapping[str, str] | None = None,
    headers: Mapping[str, str] | None = None,
) -> tuple[int, dict[str, Any] | str]:
    logger.debug("get_json start url=%s", url)
    try:
        response = await client.get(url, params=params, headers=dict(headers or {}))
    except httpx.HTTPError as exc:
        raise _unreachable(url, exc) from exc
    logger.debug("get_json done url=%s status=%s", url, response.status_code)
    return response.status_code, _decode_json_or_text(response.content)
