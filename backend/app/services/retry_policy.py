from __future__ import annotations

import logging
import time
from collections.abc import Callable

from backend.app.services.page_fetcher import FetchError
from backend.app.services.playlist_extractors import ScrapingOutcome

LOGGER = logging.getLogger("playlist_probe.retry")

DEFAULT_MAX_RETRIES = 3
DEFAULT_BACKOFF_BASE_SECONDS = 1.0
DEFAULT_BACKOFF_MAX_SECONDS = 5.0


def backoff_delay_seconds(
    attempt: int,
    *,
    base_seconds: float = DEFAULT_BACKOFF_BASE_SECONDS,
    max_seconds: float = DEFAULT_BACKOFF_MAX_SECONDS,
) -> float:
    """Delay to wait after failed attempt `attempt` (1-indexed): 1s, 2s, 4s, then capped."""
    if attempt < 1:
        raise ValueError("attempt must be >= 1")
    return min(base_seconds * (2 ** (attempt - 1)), max_seconds)


class RetryController:
    def __init__(
        self,
        *,
        max_retries: int = DEFAULT_MAX_RETRIES,
        backoff_base_seconds: float = DEFAULT_BACKOFF_BASE_SECONDS,
        backoff_max_seconds: float = DEFAULT_BACKOFF_MAX_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._max_retries = max(1, max_retries)
        self._backoff_base_seconds = max(0.0, backoff_base_seconds)
        self._backoff_max_seconds = max(0.0, backoff_max_seconds)
        self._sleep = sleep

    @property
    def max_retries(self) -> int:
        return self._max_retries

    def run(self, strategy_name: str, attempt: Callable[[], ScrapingOutcome]) -> ScrapingOutcome:
        outcome = ScrapingOutcome.failed(
            f"{strategy_name} was not attempted",
            method=strategy_name,
            timing_ms=0,
        )
        for attempt_number in range(1, self._max_retries + 1):
            try:
                outcome = attempt()
            except FetchError as exc:
                outcome = ScrapingOutcome.failed(
                    f"{strategy_name} failed: {exc.reason}",
                    method=strategy_name,
                    timing_ms=0,
                )

            if outcome.success and outcome.data is not None:
                return outcome

            LOGGER.warning(
                "strategy attempt failed strategy=%s attempt=%s/%s error=%s",
                strategy_name,
                attempt_number,
                self._max_retries,
                outcome.error,
            )
            if attempt_number < self._max_retries:
                delay = backoff_delay_seconds(
                    attempt_number,
                    base_seconds=self._backoff_base_seconds,
                    max_seconds=self._backoff_max_seconds,
                )
                LOGGER.info(
                    "retrying strategy=%s in %.1fs",
                    strategy_name,
                    delay,
                )
                self._sleep(delay)

        return outcome
