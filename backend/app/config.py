from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_DATA_DIR = ".playlist-probe"
LOG_SUBDIR = "logs"

_TRUTHY = frozenset({"1", "true", "yes", "on"})
_FALSY = frozenset({"0", "false", "no", "off"})


def _as_flag(value: Any, *, default: bool) -> bool:
    """Lenient boolean parsing; anything unrecognised keeps the default."""
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in _TRUTHY:
            return True
        if normalized in _FALSY:
            return False
    return default


class AppSettings(BaseSettings):
    """
    Runtime configuration for the playlist probe service.

    Every option maps to a `PLAYLIST_PROBE_<FIELD>` environment variable (or a
    `.env` entry). `log_dir` follows `data_dir` unless set explicitly.
    """

    model_config = SettingsConfigDict(
        env_prefix="PLAYLIST_PROBE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    data_dir: Path = Field(
        default=Path(DEFAULT_DATA_DIR),
        validate_default=True,
        description="Root runtime directory; only logs are written there.",
    )
    log_dir: Path = Field(
        default=Path(DEFAULT_DATA_DIR) / LOG_SUBDIR,
        description=(
            f"Directory for log files. Defaults to `${{PLAYLIST_PROBE_DATA_DIR}}/{LOG_SUBDIR}`."
        ),
    )
    log_level: str = Field(default="INFO", description="Console log level.")

    youtube_base_url: str = Field(
        default="https://www.youtube.com",
        description="Origin used to build playlist page and RSS feed URLs.",
    )
    playlist_cache_ttl_seconds: int = Field(
        default=30 * 60,
        ge=1,
        description="How long a resolved playlist is served from memory.",
    )
    playlist_request_timeout_seconds: float = Field(
        default=15.0,
        gt=0,
        description="Timeout applied to every page or feed fetch.",
    )
    playlist_max_redirects: int = Field(
        default=5,
        ge=0,
        le=20,
        description="Redirect hops a single fetch may follow.",
    )
    playlist_max_retries: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts per strategy (HTML page, RSS feed) before falling through.",
    )
    playlist_backoff_base_seconds: float = Field(
        default=1.0,
        ge=0,
        description="Wait after the first failed attempt; doubles for each further attempt.",
    )
    playlist_backoff_max_seconds: float = Field(
        default=5.0,
        ge=0,
        description="Ceiling for the wait between two attempts of one strategy.",
    )

    admin_api_key: str | None = Field(
        default=None,
        description="Bearer token for the playlist endpoints. Unset leaves them open.",
    )

    telemetry_enabled: bool = Field(default=True, description="Emit internal telemetry events.")
    telemetry_sink: Literal["none", "log"] = Field(
        default="log",
        description="`log` writes events to the telemetry log file, `none` drops them.",
    )

    @model_validator(mode="before")
    @classmethod
    def _derive_log_dir(cls, data: Any) -> Any:
        if not isinstance(data, dict) or data.get("log_dir") not in (None, ""):
            return data
        data_dir = data.get("data_dir") or DEFAULT_DATA_DIR
        return {**data, "log_dir": Path(str(data_dir)) / LOG_SUBDIR}

    @field_validator("data_dir", "log_dir", mode="before")
    @classmethod
    def _resolve_paths(cls, value: Any) -> Path:
        return Path(value).expanduser().resolve()

    @field_validator("youtube_base_url", mode="before")
    @classmethod
    def _normalize_base_url(cls, value: Any) -> str:
        normalized = str(value).strip().rstrip("/")
        if not normalized.startswith(("http://", "https://")):
            raise ValueError("PLAYLIST_PROBE_YOUTUBE_BASE_URL must be an http(s) URL.")
        return normalized

    @field_validator("telemetry_sink", mode="before")
    @classmethod
    def _normalize_telemetry_sink(cls, value: Any) -> str:
        normalized = str(value).strip().lower()
        if normalized not in {"none", "log"}:
            raise ValueError("PLAYLIST_PROBE_TELEMETRY_SINK must be one of: none, log.")
        return normalized

    @field_validator("telemetry_enabled", mode="before")
    @classmethod
    def _parse_telemetry_enabled(cls, value: Any) -> bool:
        return _as_flag(value, default=True)

    @field_validator("admin_api_key", mode="before")
    @classmethod
    def _blank_key_is_unset(cls, value: Any) -> str | None:
        if not isinstance(value, str):
            return None
        return value.strip() or None

    @model_validator(mode="after")
    def _check_backoff_bounds(self) -> AppSettings:
        if self.playlist_backoff_max_seconds < self.playlist_backoff_base_seconds:
            raise ValueError(
                "PLAYLIST_PROBE_PLAYLIST_BACKOFF_MAX_SECONDS must be >= the base backoff."
            )
        return self


def load_settings() -> AppSettings:
    return AppSettings()
