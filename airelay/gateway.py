"""FastAPI app entry."""

from __future__ import annotations

import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.cors import CORSMiddleware

from airelay.adapters.registry import Providers, create_providers
from airelay.api.relay import error_response, internal_error_response
from airelay.api.routes import router
from airelay.config.settings import Settings, settings as default_settings
from airelay.core.errors import ValidationError
from airelay.util.logger import logger

REQUEST_ID_HEADER = "x-request-id"
_BODY_METHODS = frozenset({"POST", "PUT", "PATCH"})


def _too_large(limit: int) -> JSONResponse:
    return JSONResponse(status_code=413, content={"error": "Request body too large", "detail": f"limit is {limit} bytes"})


def _validation_detail(exc: RequestValidationError) -> str:
    parts = []
    for item in exc.errors():
        location = ".".join(str(part) for part in item.get("loc", ()))
        parts.append(f"{location}: {item.get('msg', 'invalid')}")
    return "; ".join(parts)[:300]


def create_app(providers: Providers | None = None, app_settings: Settings | None = None) -> FastAPI:
    config = app_settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = getattr(app.state, "providers", None) is None
        if owned:
            app.state.providers = create_providers(config)
        logger.info("%s started port=%s", config.app_name, config.port)
        try:
            yield
        finally:
            if owned:
                await app.state.providers.aclose()
                app.state.providers = None
            logger.info("%s stopped", config.app_name)

    app = FastAPI(title=config.app_name, lifespan=lifespan)
    app.state.providers = providers
    app.include_router(router)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        # 缺失、非对象或无法解析的 JSON 请求体统一按 400 {error} 返回
        request_id = str(getattr(request.state, "request_id", "-"))
        operation = request.url.path.strip("/") or "request"
        return error_response(
            ValidationError("Invalid request body", _validation_detail(exc)),
            operation=operation,
            request_id=request_id,
        )

    @app.middleware("http")
    async def boundary_middleware(request: Request, call_next):
        request_id = (request.headers.get(REQUEST_ID_HEADER) or "").strip()[:64] or uuid.uuid4().hex[:16]
        request.state.request_id = request_id
        logger.debug("request enter request_id=%s method=%s path=%s", request_id, request.method, request.url.path)

        limit = config.max_request_body_bytes
        if limit > 0 and request.method.upper() in _BODY_METHODS:
            content_length = request.headers.get("content-length", "").strip()
            if content_length:
                try:
                    oversized = int(content_length) > limit
                except ValueError:
                    logger.warning("boundary reject invalid content-length request_id=%s", request_id)
                    return JSONResponse(status_code=400, content={"error": "Invalid Content-Length header"})
            else:
                oversized = len(await request.body()) > limit
            if oversized:
                logger.warning(
                    "boundary reject oversize request request_id=%s path=%s limit=%s",
                    request_id,
                    request.url.path,
                    limit,
                )
                return _too_large(limit)

        try:
            response = await call_next(request)
        except Exception:  # pragma: no cover - fail-safe
            return internal_error_response(request.url.path.strip("/") or "request", request_id)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origin_list or ["*"],
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[REQUEST_ID_HEADER],
    )

    @app.get("/health")
    @app.get("/")
    def health() -> dict:
        logger.debug("health check")
        return {"status": "ok"}

    return app


app = create_app()
