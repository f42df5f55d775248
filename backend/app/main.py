from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from uuid import uuid4

from fastapi import FastAPI, Request, Response
from structlog.contextvars import bind_contextvars, reset_contextvars

from backend.app.api.routes import router
from backend.app.dependencies import get_settings, get_telemetry
from backend.app.logging_config import configure_application_logging


def health_check() -> dict[str, str]:
    return {"status": "ok"}


@asynccontextmanager
async def app_lifespan(_: FastAPI) -> AsyncIterator[None]:
    configure_application_logging(get_settings())
    yield


async def request_context_middleware(
    request: Request,
    call_next: Callable[[Request], Awaitable[Response]],
) -> Response:
    incoming_request_id = (request.headers.get("X-Request-ID") or "").strip()
    request_id = incoming_request_id or str(uuid4())
    span = get_telemetry().start_span(
        "http.request",
        announce=False,
        request_id=request_id,
        method=request.method,
        path=request.url.path,
    )
    context_tokens = bind_contextvars(
        http_request_id=request_id,
        http_method=request.method,
        http_path=request.url.path,
    )
    try:
        response = await call_next(request)
    except Exception as exc:
        span.finish("error", error_type=type(exc).__name__)
        raise
    finally:
        reset_contextvars(**context_tokens)

    response.headers["X-Request-ID"] = request_id
    span.finish("finish", status_code=response.status_code)
    return response


def create_app() -> FastAPI:
    app = FastAPI(title="Playlist Probe API", version="0.1.0", lifespan=app_lifespan)
    app.middleware("http")(request_context_middleware)
    app.include_router(router)
    app.add_api_route(
        "/health",
        health_check,
        methods=["GET"],
        tags=["system"],
        operation_id="health_check",
    )
    return app


app = create_app()
