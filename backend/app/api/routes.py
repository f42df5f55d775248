from __future__ import annotations

import logging
import secrets
from time import perf_counter
from typing import Annotated

from fastapi import APIRouter, Depends, Header, HTTPException
from fastapi.responses import JSONResponse
from structlog.contextvars import bind_contextvars, reset_contextvars

from backend.app.config import AppSettings
from backend.app.dependencies import get_playlist_service, get_settings
from backend.app.models.playlist_contracts import (
    CacheClearResponse,
    PlaylistErrorResponse,
    PlaylistInfoPayload,
    PlaylistLookupResponse,
    ServiceStatusResponse,
)
from backend.app.services.playlist_service import PlaylistService, normalize_playlist_id

LOGGER = logging.getLogger("playlist_probe.api")

PLAYLIST_UNAVAILABLE_MESSAGE = "Unable to retrieve playlist information"
INTERNAL_ERROR_MESSAGE = "Internal server error"
INVALID_PLAYLIST_ID_MESSAGE = "playlistId is missing or invalid"


def require_admin(
    settings: Annotated[AppSettings, Depends(get_settings)],
    authorization: Annotated[str | None, Header()] = None,
) -> None:
    expected_token = settings.admin_api_key
    if expected_token is None:
        return
    provided_token = _extract_bearer_token(authorization)
    if provided_token is None or not secrets.compare_digest(provided_token, expected_token):
        raise HTTPException(status_code=401, detail="Admin authorization required.")


router = APIRouter(dependencies=[Depends(require_admin)])


@router.get(
    "/playlist/{playlist_id}",
    response_model=PlaylistLookupResponse,
    response_model_exclude_none=True,
    responses={
        400: {"model": PlaylistErrorResponse},
        500: {"model": PlaylistErrorResponse},
        503: {"model": PlaylistErrorResponse},
    },
    tags=["playlist"],
    operation_id="get_playlist_info",
)
def get_playlist_info(
    playlist_id: str,
    service: Annotated[PlaylistService, Depends(get_playlist_service)],
) -> PlaylistLookupResponse | JSONResponse:
    started_at = perf_counter()
    normalized_id = normalize_playlist_id(playlist_id)
    if normalized_id is None:
        return _error_response(400, PlaylistErrorResponse(error=INVALID_PLAYLIST_ID_MESSAGE))

    context_tokens = bind_contextvars(playlist_id=normalized_id)
    try:
        result = service.get_playlist_info(normalized_id)
    except Exception as exc:
        LOGGER.exception("playlist lookup crashed playlist_id=%s", normalized_id)
        return _error_response(
            500,
            PlaylistErrorResponse(
                error=INTERNAL_ERROR_MESSAGE,
                details=str(exc) or type(exc).__name__,
                timing=_elapsed_ms(started_at),
            ),
        )
    finally:
        reset_contextvars(**context_tokens)

    if not result.success or result.data is None:
        return _error_response(
            503,
            PlaylistErrorResponse(
                error=PLAYLIST_UNAVAILABLE_MESSAGE,
                details=result.error,
                timing=result.timing_ms,
            ),
        )

    return PlaylistLookupResponse(
        data=PlaylistInfoPayload.from_info(result.data),
        method=result.method or "unknown",
        timing=result.timing_ms,
        cached=result.cached,
    )


@router.delete(
    "/cache",
    response_model=CacheClearResponse,
    tags=["playlist"],
    operation_id="clear_playlist_cache",
)
def clear_playlist_cache(
    service: Annotated[PlaylistService, Depends(get_playlist_service)],
) -> CacheClearResponse:
    service.clear_cache()
    return CacheClearResponse(message="Cache cleared")


@router.get(
    "/status",
    response_model=ServiceStatusResponse,
    tags=["playlist"],
    operation_id="get_playlist_service_status",
)
def get_playlist_service_status(
    service: Annotated[PlaylistService, Depends(get_playlist_service)],
) -> ServiceStatusResponse:
    return ServiceStatusResponse.from_status(service.status())


def _error_response(status_code: int, payload: PlaylistErrorResponse) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=payload.model_dump(exclude_none=True))


def _extract_bearer_token(authorization: str | None) -> str | None:
    if authorization is None:
        return None
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer":
        return None
    normalized = token.strip()
    return normalized or None


def _elapsed_ms(started_at: float) -> int:
    return max(0, int((perf_counter() - started_at) * 1000))
