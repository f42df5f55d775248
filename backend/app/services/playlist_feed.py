from __future__ import annotations

import re
from html import unescape

from backend.app.services.playlist_extractors import DEFAULT_PLAYLIST_TITLE, PlaylistInfo

# Playlist feeds are capped by YouTube (15 entries), so the entry count is only
# exact for small playlists.
_ENTRY_TAG = "<entry>"
_CDATA_TITLE_PATTERN = re.compile(r"<title><!\[CDATA\[(.*?)\]\]></title>", re.DOTALL)
_PLAIN_TITLE_PATTERN = re.compile(r"<title>([^<]*)</title>")
_AUTHOR_NAME_PATTERN = re.compile(r"<author>\s*<name>([^<]*)</name>", re.DOTALL)


def parse_playlist_feed(feed_xml: str, playlist_id: str) -> PlaylistInfo | None:
    video_count = feed_xml.count(_ENTRY_TAG)
    if video_count == 0:
        return None

    return PlaylistInfo(
        id=playlist_id,
        title=_feed_title(feed_xml) or DEFAULT_PLAYLIST_TITLE,
        video_count=video_count,
        channel_name=_first_group(_AUTHOR_NAME_PATTERN, feed_xml),
    )


def _feed_title(feed_xml: str) -> str | None:
    cdata_title = _first_group(_CDATA_TITLE_PATTERN, feed_xml, decode_entities=False)
    if cdata_title is not None:
        return cdata_title
    return _first_group(_PLAIN_TITLE_PATTERN, feed_xml)


def _first_group(
    pattern: re.Pattern[str],
    text: str,
    *,
    decode_entities: bool = True,
) -> str | None:
    match = pattern.search(text)
    if match is None:
        return None
    raw_value = match.group(1)
    value = (unescape(raw_value) if decode_entities else raw_value).strip()
    return value or None
