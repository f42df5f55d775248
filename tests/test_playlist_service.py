from __future__ import annotations

from collections.abc import Mapping
from http.client import IncompleteRead
from typing import Any, cast
from urllib.request import OpenerDirector, Request

import pytest
from playlist_pages import (
    EMPTY_FEED,
    EMPTY_PAGE,
    FakeHttpResponse,
    ScriptedFetcher,
    build_initial_data_page,
    build_meta_tag_page,
    build_playlist_feed,
)

from backend.app.services.page_fetcher import FetchError, PageFetcher
from backend.app.services.playlist_cache import PlaylistCache
from backend.app.services.playlist_service import (
    ALL_STRATEGIES_FAILED,
    HtmlPageStrategy,
    PlaylistService,
    RssFeedStrategy,
    normalize_playlist_id,
)
from backend.app.services.retry_policy import RetryController
from backend.app.telemetry import TelemetryClient


class _RecordingSink:
    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []

    def emit(self, *, event_name: str, attributes: Mapping[str, Any]) -> None:
        self.events.append((event_name, dict(attributes)))


def _no_sleep(_: float) -> None:
    return None


def _build_service(
    fetcher: ScriptedFetcher,
    *,
    cache: PlaylistCache | None = None,
    telemetry: TelemetryClient | None = None,
) -> PlaylistService:
    return PlaylistService.with_default_strategies(
        cache=cache if cache is not None else PlaylistCache(),
        fetcher=cast(Any, fetcher),
        retry_controller=RetryController(sleep=_no_sleep),
        telemetry=telemetry,
        base_url="https://yt.test/",
    )


def test_html_strategy_wins_with_initial_data() -> None:
    fetcher = ScriptedFetcher(page=build_initial_data_page(12), feed=build_playlist_feed(5))
    service = _build_service(fetcher)

    result = service.get_playlist_info("PLpython")

    assert result.success is True
    assert result.cached is False
    assert result.method == "html-ytInitialData"
    assert result.data is not None
    assert result.data.video_count == 12
    assert result.data.title == "Python Fundamentals"
    assert fetcher.calls == ["https://yt.test/playlist?list=PLpython"]


def test_meta_tag_page_resolves_through_html_strategy() -> None:
    fetcher = ScriptedFetcher(page=build_meta_tag_page(8), feed=EMPTY_FEED)

    result = _build_service(fetcher).get_playlist_info("PLrust")

    assert result.method == "html-metatags"
    assert result.data is not None and result.data.video_count == 8


def test_rss_feed_is_used_after_html_retries_are_exhausted() -> None:
    fetcher = ScriptedFetcher(page=EMPTY_PAGE, feed=build_playlist_feed(5))

    result = _build_service(fetcher).get_playlist_info("PLgo")

    assert result.success is True
    assert result.method == "rss-feed"
    assert result.data is not None
    assert result.data.video_count == 5
    assert result.data.title == "Go Concurrency"
    assert fetcher.calls == [
        "https://yt.test/playlist?list=PLgo",
        "https://yt.test/playlist?list=PLgo",
        "https://yt.test/playlist?list=PLgo",
        "https://yt.test/feeds/videos.xml?playlist_id=PLgo",
    ]


def test_total_failure_reports_last_error_and_skips_cache() -> None:
    cache = PlaylistCache()
    fetcher = ScriptedFetcher(
        page=FetchError("HTTP 503: Service Unavailable", http_status=503, retryable=True),
        feed=EMPTY_FEED,
    )

    result = _build_service(fetcher, cache=cache).get_playlist_info("PLdown")

    assert result.success is False
    assert result.data is None
    assert result.method is None
    assert result.cached is False
    assert result.error == "RSS feed failed: no videos found in feed"
    assert len(fetcher.calls) == 6
    assert len(cache) == 0


def test_second_lookup_is_served_from_cache_without_fetching() -> None:
    fetcher = ScriptedFetcher(page=build_initial_data_page(12), feed=EMPTY_FEED)
    service = _build_service(fetcher)

    first = service.get_playlist_info("PLpython")
    fetcher.calls.clear()
    second = service.get_playlist_info("PLpython")

    assert second.success is True
    assert second.cached is True
    assert second.method == "cache"
    assert second.data == first.data
    assert fetcher.calls == []


def test_clear_cache_forces_refetch() -> None:
    fetcher = ScriptedFetcher(page=build_initial_data_page(3), feed=EMPTY_FEED)
    service = _build_service(fetcher)
    service.get_playlist_info("PLpython")

    service.clear_cache()
    result = service.get_playlist_info("PLpython")

    assert result.cached is False
    assert len(fetcher.calls) == 2
    assert service.status().cache_entries == 1


def test_status_reflects_configuration() -> None:
    fetcher = ScriptedFetcher(page=EMPTY_PAGE, feed=EMPTY_FEED)
    service = _build_service(fetcher, cache=PlaylistCache(ttl_seconds=1800))

    status = service.status()

    assert status.cache_entries == 0
    assert status.cache_max_age_ms == 1_800_000
    assert status.timeout_ms == 15_000
    assert status.max_retries == 3
    assert [strategy.name for strategy in service.strategies] == ["html-scraping", "rss-feed"]


def test_lookup_emits_telemetry_events() -> None:
    sink = _RecordingSink()
    fetcher = ScriptedFetcher(page=build_initial_data_page(2), feed=EMPTY_FEED)
    service = _build_service(fetcher, telemetry=TelemetryClient(enabled=True, sink=sink))

    service.get_playlist_info("PLpython")
    service.get_playlist_info("PLpython")

    names = [name for name, _ in sink.events]
    assert names == [
        "playlist.lookup.start",
        "playlist.lookup.finish",
        "playlist.lookup.start",
        "playlist.lookup.cache_hit",
    ]
    assert sink.events[1][1]["method"] == "html-ytInitialData"
    assert sink.events[1][1]["video_count"] == 2


def test_strategy_errors_are_prefixed() -> None:
    failing = ScriptedFetcher(
        page=FetchError("network error: reset", retryable=True),
        feed=FetchError("HTTP 404: Not Found", http_status=404, retryable=False),
    )

    html_outcome = HtmlPageStrategy(fetcher=cast(Any, failing)).attempt("PLx")
    rss_outcome = RssFeedStrategy(fetcher=cast(Any, failing)).attempt("PLx")

    assert html_outcome.error == "HTML scraping failed: network error: reset"
    assert html_outcome.method == "html-scraping"
    assert rss_outcome.error == "RSS feed failed: HTTP 404: Not Found"
    assert rss_outcome.method == "rss-feed"


def test_service_requires_strategies() -> None:
    with pytest.raises(ValueError):
        PlaylistService(cache=PlaylistCache(), strategies=())


@pytest.mark.parametrize(
    ("raw_value", "expected"),
    [
        ("PLrAXtmErZgOeiKm4sgNOknGvNjby9efdf", "PLrAXtmErZgOeiKm4sgNOknGvNjby9efdf"),
        ("  PL_abc-123  ", "PL_abc-123"),
        ("https://www.youtube.com/playlist?list=PLabc123", "PLabc123"),
        ("youtube.com/watch?v=xyz&list=PLfromwatch", "PLfromwatch"),
        ("", None),
        ("   ", None),
        (None, None),
        ("PL abc", None),
        ("https://www.youtube.com/playlist?list=", None),
    ],
)
def test_normalize_playlist_id(raw_value: str | None, expected: str | None) -> None:
    assert normalize_playlist_id(raw_value) == expected


class _RoutingOpener:
    def __init__(self, *, page: FakeHttpResponse, feed: FakeHttpResponse) -> None:
        self._page = page
        self._feed = feed
        self.urls: list[str] = []

    def open(self, request: Request, timeout: float) -> FakeHttpResponse:
        _ = timeout
        self.urls.append(request.full_url)
        return self._feed if "/feeds/videos.xml" in request.full_url else self._page


def _service_over_opener(opener: _RoutingOpener) -> PlaylistService:
    return PlaylistService.with_default_strategies(
        cache=PlaylistCache(),
        fetcher=PageFetcher(opener=cast(OpenerDirector, opener)),
        retry_controller=RetryController(sleep=_no_sleep),
    )


def test_page_with_unknown_charset_still_falls_back_to_feed() -> None:
    opener = _RoutingOpener(
        page=FakeHttpResponse(EMPTY_PAGE.encode(), content_type="text/html; charset=x-bogus"),
        feed=FakeHttpResponse(build_playlist_feed(5).encode(), content_type="application/atom+xml"),
    )

    result = _service_over_opener(opener).get_playlist_info("PLx")

    assert result.success is True
    assert result.method == "rss-feed"
    assert result.data is not None and result.data.video_count == 5
    assert len(opener.urls) == 4


def test_truncated_page_is_retried_then_falls_back_to_feed() -> None:
    opener = _RoutingOpener(
        page=FakeHttpResponse(b"", read_error=IncompleteRead(b"<html>", 2048)),
        feed=FakeHttpResponse(build_playlist_feed(5).encode(), content_type="application/atom+xml"),
    )

    result = _service_over_opener(opener).get_playlist_info("PLx")

    assert result.success is True
    assert result.method == "rss-feed"
    assert opener.urls == [
        "https://www.youtube.com/playlist?list=PLx",
        "https://www.youtube.com/playlist?list=PLx",
        "https://www.youtube.com/playlist?list=PLx",
        "https://www.youtube.com/feeds/videos.xml?playlist_id=PLx",
    ]
