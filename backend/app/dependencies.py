from __future__ import annotations

from functools import lru_cache

from backend.app.config import AppSettings, load_settings
from backend.app.services.page_fetcher import PageFetcher
from backend.app.services.playlist_cache import PlaylistCache
from backend.app.services.playlist_service import PlaylistService
from backend.app.services.retry_policy import RetryController
from backend.app.telemetry import TelemetryClient, build_telemetry_client


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    return load_settings()


@lru_cache(maxsize=1)
def get_playlist_cache() -> PlaylistCache:
    return PlaylistCache(ttl_seconds=get_settings().playlist_cache_ttl_seconds)


@lru_cache(maxsize=1)
def get_playlist_service() -> PlaylistService:
    settings = get_settings()
    return PlaylistService.with_default_strategies(
        cache=get_playlist_cache(),
        fetcher=PageFetcher(
            timeout_seconds=settings.playlist_request_timeout_seconds,
            max_redirects=settings.playlist_max_redirects,
        ),
        retry_controller=RetryController(
            max_retries=settings.playlist_max_retries,
            backoff_base_seconds=settings.playlist_backoff_base_seconds,
            backoff_max_seconds=settings.playlist_backoff_max_seconds,
        ),
        telemetry=get_telemetry(),
        base_url=settings.youtube_base_url,
    )


@lru_cache(maxsize=1)
def get_telemetry() -> TelemetryClient:
    settings = get_settings()
    return build_telemetry_client(
        enabled=settings.telemetry_enabled,
        sink=settings.telemetry_sink,
    )


def reset_cached_dependencies() -> None:
    get_playlist_service.cache_clear()
    get_playlist_cache.cache_clear()
    get_telemetry.cache_clear()
    get_settings.cache_clear()
