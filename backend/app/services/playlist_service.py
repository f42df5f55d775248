from __future__ import annotations

import logging
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from functools import partial
from time import perf_counter
from typing import Protocol
from urllib.parse import parse_qs, urlencode, urlparse

from backend.app.services.page_fetcher import FEED_ACCEPT, HTML_ACCEPT, FetchError, PageFetcher
from backend.app.services.playlist_cache import PlaylistCache
from backend.app.services.playlist_extractors import (
    ExtractionPipeline,
    PlaylistInfo,
    ScrapingOutcome,
)
from backend.app.services.playlist_feed import parse_playlist_feed
from backend.app.services.retry_policy import RetryController
from backend.app.telemetry import TelemetryClient

LOGGER = logging.getLogger("playlist_probe.playlist")

DEFAULT_YOUTUBE_BASE_URL = "https://www.youtube.com"
ALL_STRATEGIES_FAILED = "All strategies failed"
CACHE_METHOD = "cache"

_PLAYLIST_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")


@dataclass(frozen=True)
class PlaylistLookupResult:
    success: bool
    data: PlaylistInfo | None
    method: str | None
    timing_ms: int
    cached: bool
    error: str | None = None


@dataclass(frozen=True)
class PlaylistServiceStatus:
    cache_entries: int
    cache_max_age_ms: int
    timeout_ms: int
    max_retries: int


class PlaylistStrategy(Protocol):
    name: str

    def attempt(self, playlist_id: str) -> ScrapingOutcome:
        ...


class HtmlPageStrategy:
    name = "html-scraping"

    def __init__(
        self,
        *,
        fetcher: PageFetcher,
        pipeline: ExtractionPipeline | None = None,
        base_url: str = DEFAULT_YOUTUBE_BASE_URL,
        timer: Callable[[], float] = perf_counter,
    ) -> None:
        self._fetcher = fetcher
        self._pipeline = pipeline if pipeline is not None else ExtractionPipeline()
        self._base_url = base_url.rstrip("/")
        self._timer = timer

    def attempt(self, playlist_id: str) -> ScrapingOutcome:
        started_at = self._timer()
        url = f"{self._base_url}/playlist?{urlencode({'list': playlist_id})}"
        try:
            html_text = self._fetcher.fetch(url, accept=HTML_ACCEPT)
        except FetchError as exc:
            return ScrapingOutcome.failed(
                f"HTML scraping failed: {exc.reason}",
                method=self.name,
                timing_ms=_elapsed_ms(self._timer, started_at),
            )
        return self._pipeline.run(
            html_text,
            playlist_id,
            timing_ms=_elapsed_ms(self._timer, started_at),
        )


class RssFeedStrategy:
    name = "rss-feed"

    def __init__(
        self,
        *,
        fetcher: PageFetcher,
        base_url: str = DEFAULT_YOUTUBE_BASE_URL,
        timer: Callable[[], float] = perf_counter,
    ) -> None:
        self._fetcher = fetcher
        self._base_url = base_url.rstrip("/")
        self._timer = timer

    def attempt(self, playlist_id: str) -> ScrapingOutcome:
        started_at = self._timer()
        url = f"{self._base_url}/feeds/videos.xml?{urlencode({'playlist_id': playlist_id})}"
        try:
            feed_xml = self._fetcher.fetch(url, accept=FEED_ACCEPT)
        except FetchError as exc:
            return ScrapingOutcome.failed(
                f"RSS feed failed: {exc.reason}",
                method=self.name,
                timing_ms=_elapsed_ms(self._timer, started_at),
            )

        info = parse_playlist_feed(feed_xml, playlist_id)
        timing_ms = _elapsed_ms(self._timer, started_at)
        if info is None:
            return ScrapingOutcome.failed(
                "RSS feed failed: no videos found in feed",
                method=self.name,
                timing_ms=timing_ms,
            )
        return ScrapingOutcome.succeeded(info, method=self.name, timing_ms=timing_ms)


class PlaylistService:
    """Cache-fronted playlist lookup over an ordered list of fallback strategies.

    Strategies run one after another (HTML page first, RSS feed second), each
    wrapped by the retry controller. The first success is written to the cache;
    nothing else is persisted.
    """

    def __init__(
        self,
        *,
        cache: PlaylistCache,
        strategies: Sequence[PlaylistStrategy],
        retry_controller: RetryController | None = None,
        telemetry: TelemetryClient | None = None,
        request_timeout_seconds: float = 15.0,
        timer: Callable[[], float] = perf_counter,
    ) -> None:
        if not strategies:
            raise ValueError("strategies must not be empty")
        self._cache = cache
        self._strategies = tuple(strategies)
        self._retry_controller = (
            retry_controller if retry_controller is not None else RetryController()
        )
        self._telemetry = telemetry if telemetry is not None else TelemetryClient.disabled()
        self._request_timeout_seconds = request_timeout_seconds
        self._timer = timer

    @classmethod
    def with_default_strategies(
        cls,
        *,
        cache: PlaylistCache,
        fetcher: PageFetcher,
        retry_controller: RetryController | None = None,
        telemetry: TelemetryClient | None = None,
        base_url: str = DEFAULT_YOUTUBE_BASE_URL,
    ) -> PlaylistService:
        return cls(
            cache=cache,
            strategies=(
                HtmlPageStrategy(fetcher=fetcher, base_url=base_url),
                RssFeedStrategy(fetcher=fetcher, base_url=base_url),
            ),
            retry_controller=retry_controller,
            telemetry=telemetry,
            request_timeout_seconds=fetcher.timeout_seconds,
        )

    @property
    def strategies(self) -> tuple[PlaylistStrategy, ...]:
        return self._strategies

    def get_playlist_info(self, playlist_id: str) -> PlaylistLookupResult:
        span = self._telemetry.start_span(
            "playlist.lookup",
            timer=self._timer,
            playlist_id=playlist_id,
        )

        cached_info = self._cache.get(playlist_id)
        if cached_info is not None:
            LOGGER.info("playlist cache hit playlist_id=%s", playlist_id)
            return PlaylistLookupResult(
                success=True,
                data=cached_info,
                method=CACHE_METHOD,
                timing_ms=span.finish("cache_hit"),
                cached=True,
            )

        last_error = ALL_STRATEGIES_FAILED
        for strategy in self._strategies:
            LOGGER.info("trying strategy=%s playlist_id=%s", strategy.name, playlist_id)
            outcome = self._retry_controller.run(
                strategy.name,
                partial(strategy.attempt, playlist_id),
            )
            if outcome.success and outcome.data is not None:
                self._cache.set(playlist_id, outcome.data)
                timing_ms = span.finish(
                    "finish",
                    method=outcome.method,
                    video_count=outcome.data.video_count,
                )
                LOGGER.info(
                    "playlist resolved playlist_id=%s method=%s video_count=%s duration_ms=%s",
                    playlist_id,
                    outcome.method,
                    outcome.data.video_count,
                    timing_ms,
                )
                return PlaylistLookupResult(
                    success=True,
                    data=outcome.data,
                    method=outcome.method,
                    timing_ms=timing_ms,
                    cached=False,
                )
            last_error = outcome.error or f"{strategy.name} failed"

        timing_ms = span.finish("failed", error=last_error)
        LOGGER.error(
            "all playlist strategies failed playlist_id=%s duration_ms=%s last_error=%s",
            playlist_id,
            timing_ms,
            last_error,
        )
        return PlaylistLookupResult(
            success=False,
            data=None,
            method=None,
            timing_ms=timing_ms,
            cached=False,
            error=last_error,
        )

    def clear_cache(self) -> None:
        self._cache.clear()
        LOGGER.info("playlist cache cleared")

    def status(self) -> PlaylistServiceStatus:
        return PlaylistServiceStatus(
            cache_entries=len(self._cache),
            cache_max_age_ms=int(self._cache.ttl_seconds * 1000),
            timeout_ms=int(self._request_timeout_seconds * 1000),
            max_retries=self._retry_controller.max_retries,
        )


def normalize_playlist_id(raw_value: str | None) -> str | None:
    """Accept a bare playlist id or any YouTube URL carrying a `list=` parameter."""
    if raw_value is None:
        return None
    candidate = raw_value.strip()
    if not candidate:
        return None

    if "list=" in candidate:
        parsed = urlparse(candidate if "://" in candidate else f"https://{candidate}")
        list_values = parse_qs(parsed.query).get("list")
        if not list_values:
            return None
        candidate = list_values[0].strip()

    if _PLAYLIST_ID_PATTERN.match(candidate) is None:
        return None
    return candidate


def _elapsed_ms(timer: Callable[[], float], started_at: float) -> int:
    return max(0, int((timer() - started_at) * 1000))
