from __future__ import annotations

import json
import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Protocol, cast

from bs4 import BeautifulSoup, Tag

LOGGER = logging.getLogger("playlist_probe.extractors")

DEFAULT_PLAYLIST_TITLE = "YouTube Playlist"

_INITIAL_DATA_MARKER = re.compile(r"""(?:var\s+ytInitialData|window\[["']ytInitialData["']\])\s*=\s*""")
_YOUTUBE_TITLE_SUFFIX = re.compile(r"\s*-\s*YouTube\s*$")
_META_TAG_VIDEO_SELECTOR = ".ytd-playlist-video-renderer, .playlist-video-renderer, [data-video-id]"
_FALLBACK_VIDEO_SELECTORS: tuple[str, ...] = (
    "ytd-playlist-video-renderer",
    ".playlist-video-renderer",
    "[data-video-id]",
    ".ytd-playlist-video-list-renderer",
    "#contents ytd-playlist-video-renderer",
)


@dataclass(frozen=True)
class PlaylistInfo:
    id: str
    title: str
    video_count: int
    description: str | None = None
    thumbnail_url: str | None = None
    channel_name: str | None = None
    is_private: bool | None = None


@dataclass(frozen=True)
class ScrapingOutcome:
    success: bool
    data: PlaylistInfo | None
    error: str | None
    method: str
    timing_ms: int

    @classmethod
    def succeeded(cls, data: PlaylistInfo, *, method: str, timing_ms: int) -> ScrapingOutcome:
        return cls(success=True, data=data, error=None, method=method, timing_ms=timing_ms)

    @classmethod
    def failed(cls, error: str, *, method: str, timing_ms: int) -> ScrapingOutcome:
        return cls(success=False, data=None, error=error, method=method, timing_ms=timing_ms)


class PlaylistExtractor(Protocol):
    name: str

    def extract(self, content: str, playlist_id: str) -> PlaylistInfo | None:
        ...


class InitialDataExtractor:
    """Reads the `ytInitialData` blob YouTube serializes into the playlist page.

    The nested path below is undocumented and changes without notice, so any
    mismatch is reported as "no data" instead of an error.
    """

    name = "ytInitialData"

    def extract(self, content: str, playlist_id: str) -> PlaylistInfo | None:
        data = _decode_initial_data(content)
        if data is None:
            return None

        video_list = _walk(
            data,
            "contents",
            "twoColumnBrowseResultsRenderer",
            "tabs",
            0,
            "tabRenderer",
            "content",
            "sectionListRenderer",
            "contents",
            0,
            "itemSectionRenderer",
            "contents",
            0,
            "playlistVideoListRenderer",
            "contents",
        )
        if not isinstance(video_list, list):
            LOGGER.debug("ytInitialData has no playlistVideoListRenderer playlist_id=%s", playlist_id)
            return None

        videos = [
            renderer
            for renderer in (
                _as_dict(item).get("playlistVideoRenderer") for item in cast(list[Any], video_list)
            )
            if _coerce_text(_as_dict(renderer).get("videoId")) is not None
        ]

        sidebar_items = _as_list(_walk(data, "sidebar", "playlistSidebarRenderer", "items"))
        primary = _as_dict(_walk(sidebar_items, 0, "playlistSidebarPrimaryInfoRenderer"))
        secondary = _as_dict(_walk(sidebar_items, 1, "playlistSidebarSecondaryInfoRenderer"))

        title = (
            _coerce_text(_walk(primary, "title", "runs", 0, "text"))
            or _coerce_text(_walk(primary, "title", "simpleText"))
            or DEFAULT_PLAYLIST_TITLE
        )
        return PlaylistInfo(
            id=playlist_id,
            title=title,
            video_count=len(videos),
            description=_text_from_runs(primary.get("description")),
            thumbnail_url=(
                _coerce_text(_walk(videos[0], "thumbnail", "thumbnails", 0, "url"))
                if videos
                else None
            ),
            channel_name=_coerce_text(
                _walk(secondary, "videoOwner", "videoOwnerRenderer", "title", "runs", 0, "text")
            ),
        )


class ConfigExtractor:
    # Reserved for the `ytcfg.set({...})` blob; it carries no playlist rows yet.
    name = "ytcfg"

    def extract(self, content: str, playlist_id: str) -> PlaylistInfo | None:
        _ = (content, playlist_id)
        return None


class MetaTagExtractor:
    """Page metadata from `<meta>`/`<title>`, video count estimated from list rows."""

    name = "metatags"

    def extract(self, content: str, playlist_id: str) -> PlaylistInfo | None:
        document = _parse_document(content)
        if document.find("meta") is None:
            return None

        video_count = len(document.select(_META_TAG_VIDEO_SELECTOR))
        if video_count <= 0:
            return None

        metadata = _PageMetadata.from_document(document)
        title = (
            metadata.meta_value("og:title")
            or metadata.meta_value("title")
            or metadata.title_text
            or DEFAULT_PLAYLIST_TITLE
        )
        return PlaylistInfo(
            id=playlist_id,
            title=_strip_youtube_suffix(title),
            video_count=video_count,
            description=metadata.meta_value("og:description") or metadata.meta_value("description"),
            thumbnail_url=metadata.meta_value("og:image"),
        )


class JsonLdExtractor:
    # Reserved for schema.org blocks; playlist pages do not ship an ItemList today.
    name = "jsonld"

    def extract(self, content: str, playlist_id: str) -> PlaylistInfo | None:
        _ = (content, playlist_id)
        return None


class ElementCountExtractor:
    name = "elements"

    def __init__(self, selectors: Sequence[str] = _FALLBACK_VIDEO_SELECTORS) -> None:
        self._selectors = tuple(selectors)

    def extract(self, content: str, playlist_id: str) -> PlaylistInfo | None:
        document = _parse_document(content)
        best_count = 0
        best_selector: str | None = None
        for selector in self._selectors:
            count = len(document.select(selector))
            if count > best_count:
                best_count = count
                best_selector = selector

        if best_count <= 0:
            return None

        metadata = _PageMetadata.from_document(document)
        raw_title = metadata.title_text
        title = (
            metadata.meta_value("og:title")
            or (_strip_youtube_suffix(raw_title) if raw_title is not None else None)
            or DEFAULT_PLAYLIST_TITLE
        )
        LOGGER.debug(
            "element count fallback matched playlist_id=%s selector=%s count=%s",
            playlist_id,
            best_selector,
            best_count,
        )
        return PlaylistInfo(id=playlist_id, title=title, video_count=best_count)


DEFAULT_EXTRACTORS: tuple[PlaylistExtractor, ...] = (
    InitialDataExtractor(),
    ConfigExtractor(),
    MetaTagExtractor(),
    JsonLdExtractor(),
    ElementCountExtractor(),
)


class ExtractionPipeline:
    """Runs HTML extractors in priority order against one fetched page.

    The first extractor that reports at least one video wins; the ones after it
    are never called.
    """

    def __init__(self, extractors: Sequence[PlaylistExtractor] = DEFAULT_EXTRACTORS) -> None:
        if not extractors:
            raise ValueError("extractors must not be empty")
        self._extractors = tuple(extractors)

    @property
    def extractors(self) -> tuple[PlaylistExtractor, ...]:
        return self._extractors

    def run(self, content: str, playlist_id: str, *, timing_ms: int) -> ScrapingOutcome:
        LOGGER.debug("extraction pipeline start playlist_id=%s chars=%s", playlist_id, len(content))
        last_error = "no extractor produced playlist data"
        for extractor in self._extractors:
            info = extractor.extract(content, playlist_id)
            if info is not None and info.video_count > 0:
                LOGGER.info(
                    "playlist extracted playlist_id=%s extractor=%s video_count=%s",
                    playlist_id,
                    extractor.name,
                    info.video_count,
                )
                return ScrapingOutcome.succeeded(
                    info,
                    method=f"html-{extractor.name}",
                    timing_ms=timing_ms,
                )
            last_error = f"{extractor.name} extractor found no videos"
            LOGGER.debug("extractor miss playlist_id=%s extractor=%s", playlist_id, extractor.name)

        return ScrapingOutcome.failed(
            f"HTML parsing failed: {last_error}",
            method=f"html-{self._extractors[-1].name}",
            timing_ms=timing_ms,
        )


@dataclass(frozen=True)
class _PageMetadata:
    meta: dict[str, str]
    title_text: str | None

    @classmethod
    def from_document(cls, document: BeautifulSoup) -> _PageMetadata:
        # First occurrence wins for both `property=` and `name=` keys.
        meta: dict[str, str] = {}
        for tag in document.find_all("meta"):
            if not isinstance(tag, Tag):
                continue
            key = _coerce_text(tag.get("property") or tag.get("name"))
            value = _coerce_text(tag.get("content"))
            if key is not None and value is not None:
                meta.setdefault(key.lower(), value)

        title_tag = document.find("title")
        title_text = _coerce_text(title_tag.get_text()) if isinstance(title_tag, Tag) else None
        return cls(meta=meta, title_text=title_text)

    def meta_value(self, key: str) -> str | None:
        return self.meta.get(key.lower())


def _parse_document(content: str) -> BeautifulSoup:
    return BeautifulSoup(content, "html.parser")


def _decode_initial_data(content: str) -> dict[str, Any] | None:
    match = _INITIAL_DATA_MARKER.search(content)
    if match is None:
        return None
    try:
        decoded, _ = json.JSONDecoder().raw_decode(content, match.end())
    except json.JSONDecodeError:
        LOGGER.debug("ytInitialData blob is not valid JSON")
        return None
    if not isinstance(decoded, dict):
        return None
    return _as_dict(decoded)


def _walk(value: Any, *path: str | int) -> Any:
    current = value
    for step in path:
        if isinstance(step, int):
            items = _as_list(current)
            if step >= len(items):
                return None
            current = items[step]
        else:
            current = _as_dict(current).get(step)
        if current is None:
            return None
    return current


def _text_from_runs(value: Any) -> str | None:
    simple_text = _coerce_text(_walk(value, "simpleText"))
    if simple_text is not None:
        return simple_text
    runs = _as_list(_walk(value, "runs"))
    return _coerce_text("".join(str(_as_dict(run).get("text") or "") for run in runs))


def _strip_youtube_suffix(title: str) -> str:
    return _YOUTUBE_TITLE_SUFFIX.sub("", title).strip() or DEFAULT_PLAYLIST_TITLE


def _coerce_text(value: object) -> str | None:
    if isinstance(value, str):
        stripped = value.strip()
        if stripped:
            return stripped
    return None


def _as_dict(value: Any) -> dict[str, Any]:
    if isinstance(value, dict):
        raw_dict = cast(dict[object, object], value)
        converted: dict[str, Any] = {}
        for key, item in raw_dict.items():
            if isinstance(key, str):
                converted[key] = item
        return converted
    return {}


def _as_list(value: Any) -> list[Any]:
    if isinstance(value, list):
        return list(cast(list[Any], value))
    return []
