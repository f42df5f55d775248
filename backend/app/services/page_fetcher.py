from __future__ import annotations

import codecs
import http.client
import logging
import random
from collections.abc import Sequence
from typing import Protocol
from urllib.error import HTTPError, URLError
from urllib.request import HTTPRedirectHandler, OpenerDirector, Request, build_opener

LOGGER = logging.getLogger("playlist_probe.fetcher")

DEFAULT_TIMEOUT_SECONDS = 15.0
DEFAULT_MAX_REDIRECTS = 5
HTML_ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8"
FEED_ACCEPT = "application/atom+xml,application/xml;q=0.9,text/xml;q=0.8,*/*;q=0.5"

DESKTOP_USER_AGENTS: tuple[str, ...] = (
    (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:109.0) Gecko/20100101 Firefox/121.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10.15; rv:109.0) Gecko/20100101 Firefox/121.0",
)
_RETRYABLE_CLIENT_STATUSES: frozenset[int] = frozenset({408, 425, 429})


class FetchError(RuntimeError):
    def __init__(self, reason: str, *, http_status: int | None = None, retryable: bool) -> None:
        super().__init__(reason)
        self.reason = reason
        self.http_status = http_status
        self.retryable = retryable


class UserAgentProvider(Protocol):
    def choose(self) -> str:
        ...


class RandomUserAgentProvider:
    def __init__(
        self,
        user_agents: Sequence[str] = DESKTOP_USER_AGENTS,
        *,
        rng: random.Random | None = None,
    ) -> None:
        if not user_agents:
            raise ValueError("user_agents must not be empty")
        self._user_agents = tuple(user_agents)
        self._rng = rng if rng is not None else random.Random()

    def choose(self) -> str:
        return self._rng.choice(self._user_agents)


class _BoundedRedirectHandler(HTTPRedirectHandler):
    def __init__(self, max_redirections: int) -> None:
        super().__init__()
        self.max_redirections = max_redirections


class PageFetcher:
    """Single bounded GET with a rotating browser identity."""

    def __init__(
        self,
        *,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        max_redirects: int = DEFAULT_MAX_REDIRECTS,
        user_agents: UserAgentProvider | None = None,
        opener: OpenerDirector | None = None,
    ) -> None:
        self._timeout_seconds = max(0.5, timeout_seconds)
        self._max_redirects = max(0, max_redirects)
        self._user_agents = user_agents if user_agents is not None else RandomUserAgentProvider()
        self._opener = (
            opener
            if opener is not None
            else build_opener(_BoundedRedirectHandler(self._max_redirects))
        )

    @property
    def timeout_seconds(self) -> float:
        return self._timeout_seconds

    @property
    def max_redirects(self) -> int:
        return self._max_redirects

    def fetch(self, url: str, *, accept: str = HTML_ACCEPT) -> str:
        request = Request(url, headers=self._build_headers(accept), method="GET")
        try:
            with self._opener.open(request, timeout=self._timeout_seconds) as response:
                status_code = int(getattr(response, "status", None) or response.getcode() or 0)
                charset = _resolve_charset(response.headers.get_content_charset())
                body = response.read().decode(charset, errors="replace")
        except HTTPError as exc:
            status_code = int(exc.code)
            raise FetchError(
                f"HTTP {status_code}: {exc.reason}",
                http_status=status_code,
                retryable=status_code >= 500 or status_code in _RETRYABLE_CLIENT_STATUSES,
            ) from exc
        except URLError as exc:
            raise FetchError(f"network error: {exc.reason}", retryable=True) from exc
        except (TimeoutError, OSError, http.client.HTTPException) as exc:
            raise FetchError(f"network error: {type(exc).__name__}", retryable=True) from exc

        if not 200 <= status_code < 300:
            raise FetchError(
                f"HTTP {status_code}",
                http_status=status_code,
                retryable=status_code >= 500 or status_code in _RETRYABLE_CLIENT_STATUSES,
            )
        LOGGER.debug("fetched url=%s status=%s chars=%s", url, status_code, len(body))
        return body

    def _build_headers(self, accept: str) -> dict[str, str]:
        return {
            "User-Agent": self._user_agents.choose(),
            "Accept": accept,
            "Accept-Language": "en-US,en;q=0.9",
            "DNT": "1",
            "Upgrade-Insecure-Requests": "1",
            "Sec-Fetch-Dest": "document",
            "Sec-Fetch-Mode": "navigate",
            "Sec-Fetch-Site": "none",
            "Cache-Control": "max-age=0",
        }


def _resolve_charset(declared: str | None) -> str:
    if declared is None:
        return "utf-8"
    try:
        return codecs.lookup(declared).name
    except LookupError:
        LOGGER.debug("unknown response charset, decoding as utf-8 charset=%s", declared)
        return "utf-8"
