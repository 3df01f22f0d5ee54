"""HTTP surface: badge and status endpoints over the counting runtime."""

from __future__ import annotations

import logging
import re
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse, Response

from hitcounter_core import AppConfig, Runtime, build_runtime, storage_status
from hitcounter_counter import StorageUnavailable
from hitcounter_renderer import RenderRequest

logger = logging.getLogger("hitcounter.server")

KEY_RE = re.compile(r"^[A-Za-z0-9_.:@-]+$")
_HEADER_UNSAFE = re.compile(r"[^\x20-\x7e]")


class InvalidKey(ValueError):
    pass


def validate_key(key: str, max_length: int) -> str:
    if not key:
        raise InvalidKey("key must not be empty")
    if len(key) > max_length:
        raise InvalidKey(f"key longer than {max_length} characters")
    if not KEY_RE.match(key):
        raise InvalidKey("key may only contain letters, digits and _ . : @ -")
    return key


def _header_value(text: str, limit: int = 200) -> str:
    return _HEADER_UNSAFE.sub("?", text)[:limit]


def create_app(
    config: AppConfig | None = None,
    runtime: Runtime | None = None,
    base_dir: Path | None = None,
) -> FastAPI:
    cfg = runtime.config if runtime is not None else (config or AppConfig())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        rt = runtime or build_runtime(cfg, base_dir)
        app.state.runtime = rt
        rt.start()
        try:
            yield
        finally:
            logger.info("shutting down, flushing counters", extra={"event": "shutdown"})
            rt.close()

    app = FastAPI(title="hitcounter", lifespan=lifespan)

    @app.get("/status")
    def status(request: Request):
        rt: Runtime = request.app.state.runtime
        storage = storage_status(rt)
        if storage["unavailable"]:
            state = "unavailable"
        elif storage["degraded"]:
            state = "degraded"
        else:
            state = "ok"
        body = {"status": state, "storage": storage, "themes": rt.registry.names()}
        return JSONResponse(status_code=503 if state == "unavailable" else 200, content=body)

    # Sync handler: FastAPI runs it on the worker threadpool, so blocking
    # store I/O only ties up this request's thread.
    @app.get("/{key}")
    def badge(
        key: str,
        request: Request,
        theme: str | None = None,
        fmt: str | None = Query(None, alias="format"),
        length: int | None = Query(None, ge=0),
        readonly: bool = False,
    ):
        rt: Runtime = request.app.state.runtime
        try:
            validate_key(key, rt.config.counter.max_key_length)
        except InvalidKey as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

        min_length = rt.config.render.digit_count if length is None else min(length, rt.config.render.max_length)

        try:
            result = rt.service.hit(key, read_only=readonly)
        except StorageUnavailable as exc:
            logger.error(
                "storage unavailable for %s: %s", key, exc, extra={"event": "storage_unavailable", "key": key}
            )
            return JSONResponse(status_code=503, content={"error": "storage_unavailable", "detail": str(exc)})

        image = rt.renderer.render(RenderRequest(count=result.count, min_length=min_length, theme=theme, format=fmt))
        logger.info(
            "GET /%s count=%d theme=%s format=%s",
            key,
            result.count,
            image.theme,
            image.format,
            extra={"event": "badge", "key": key, "count": result.count, "theme": image.theme, "format": image.format},
        )

        headers = {
            "Cache-Control": "max-age=0, no-cache, no-store, must-revalidate",
            "X-Counter-Value": str(result.count),
            "X-Counter-Theme": _header_value(image.theme),
        }
        if result.storage_warning:
            headers["X-Counter-Warning"] = _header_value(result.storage_warning)
        return Response(content=image.body, media_type=image.content_type, headers=headers)

    return app
