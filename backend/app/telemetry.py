from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from time import perf_counter
from typing import Any, Literal, Protocol

import structlog

from backend.app.logging_config import TELEMETRY_LOGGER_NAME

REDACTED = "[redacted]"
# Attribute keys containing any of these never reach a sink verbatim.
_REDACTED_KEY_TOKENS: tuple[str, ...] = (
    "api_key",
    "authorization",
    "body",
    "content",
    "cookie",
    "html",
    "secret",
    "token",
    "xml",
)
_MAX_VALUE_LENGTH = 160

TelemetryValue = bool | int | float | str | None


class TelemetrySink(Protocol):
    def emit(self, *, event_name: str, attributes: Mapping[str, Any]) -> None:
        ...


class NoOpTelemetrySink:
    def emit(self, *, event_name: str, attributes: Mapping[str, Any]) -> None:
        _ = (event_name, attributes)


class LogTelemetrySink:
    """Writes each event as one structured record on the telemetry logger."""

    def __init__(self, *, service_name: str = "playlist-probe") -> None:
        self._logger = structlog.get_logger(TELEMETRY_LOGGER_NAME)
        self._service_name = service_name

    def emit(self, *, event_name: str, attributes: Mapping[str, Any]) -> None:
        self._logger.info(
            "telemetry",
            telemetry_event=event_name,
            service=self._service_name,
            **dict(attributes),
        )


@dataclass(frozen=True)
class TelemetryClient:
    enabled: bool
    sink: TelemetrySink

    @classmethod
    def disabled(cls) -> TelemetryClient:
        return cls(enabled=False, sink=NoOpTelemetrySink())

    def emit(self, event_name: str, **attributes: Any) -> None:
        if self.enabled:
            self.sink.emit(event_name=event_name, attributes=sanitize_attributes(attributes))

    def start_span(
        self,
        name: str,
        *,
        announce: bool = True,
        timer: Callable[[], float] = perf_counter,
        **attributes: Any,
    ) -> TelemetrySpan:
        """Open a timed operation; `announce` emits `<name>.start` right away."""
        span = TelemetrySpan(
            client=self,
            name=name,
            attributes=dict(attributes),
            timer=timer,
            started_at=timer(),
        )
        if announce:
            self.emit(f"{name}.start", **attributes)
        return span


@dataclass
class TelemetrySpan:
    client: TelemetryClient
    name: str
    attributes: dict[str, Any]
    timer: Callable[[], float]
    started_at: float
    finished: bool = field(default=False, init=False)

    def elapsed_ms(self) -> int:
        return max(0, int((self.timer() - self.started_at) * 1000))

    def finish(self, outcome: str, **attributes: Any) -> int:
        """Emit `<name>.<outcome>` with the span's attributes and return its duration."""
        duration_ms = self.elapsed_ms()
        if self.finished:
            return duration_ms
        self.finished = True
        self.client.emit(
            f"{self.name}.{outcome}",
            **{**self.attributes, **attributes, "duration_ms": duration_ms},
        )
        return duration_ms


def build_telemetry_client(*, enabled: bool, sink: Literal["none", "log"]) -> TelemetryClient:
    if not enabled or sink == "none":
        return TelemetryClient.disabled()
    if sink == "log":
        return TelemetryClient(enabled=True, sink=LogTelemetrySink())

    logging.getLogger(TELEMETRY_LOGGER_NAME).warning(
        "unknown telemetry sink, events will be dropped sink=%s",
        sink,
    )
    return TelemetryClient.disabled()


def sanitize_attributes(attributes: Mapping[str, Any]) -> dict[str, TelemetryValue]:
    sanitized: dict[str, TelemetryValue] = {}
    for raw_key, raw_value in attributes.items():
        key = str(raw_key).strip().lower()
        if not key:
            continue
        redacted = any(token in key for token in _REDACTED_KEY_TOKENS)
        sanitized[key] = REDACTED if redacted else _compact_value(raw_value)
    return sanitized


def _compact_value(value: Any) -> TelemetryValue:
    if value is None or isinstance(value, bool | int | float):
        return value
    if not isinstance(value, str):
        return type(value).__name__
    compact = " ".join(value.split())
    if len(compact) > _MAX_VALUE_LENGTH:
        return compact[:_MAX_VALUE_LENGTH] + "..."
    return compact
