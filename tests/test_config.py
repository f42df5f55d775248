from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from backend.app.config import AppSettings, load_settings


@pytest.fixture(autouse=True)
def _clear_probe_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "PLAYLIST_PROBE_DATA_DIR",
        "PLAYLIST_PROBE_LOG_DIR",
        "PLAYLIST_PROBE_ADMIN_API_KEY",
        "PLAYLIST_PROBE_TELEMETRY_ENABLED",
        "PLAYLIST_PROBE_TELEMETRY_SINK",
        "PLAYLIST_PROBE_YOUTUBE_BASE_URL",
        "PLAYLIST_PROBE_PLAYLIST_MAX_RETRIES",
    ):
        monkeypatch.delenv(name, raising=False)


def test_load_settings_defaults(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PLAYLIST_PROBE_DATA_DIR", str(tmp_path / "data"))

    settings = load_settings()

    assert settings.data_dir == (tmp_path / "data").resolve()
    assert settings.log_dir == (tmp_path / "data" / "logs").resolve()
    assert settings.youtube_base_url == "https://www.youtube.com"
    assert settings.playlist_cache_ttl_seconds == 1800
    assert settings.playlist_request_timeout_seconds == 15.0
    assert settings.playlist_max_redirects == 5
    assert settings.playlist_max_retries == 3
    assert settings.playlist_backoff_base_seconds == 1.0
    assert settings.playlist_backoff_max_seconds == 5.0
    assert settings.admin_api_key is None
    assert settings.telemetry_enabled is True
    assert settings.telemetry_sink == "log"


def test_load_settings_parses_env_overrides(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PLAYLIST_PROBE_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("PLAYLIST_PROBE_LOG_DIR", str(tmp_path / "elsewhere"))
    monkeypatch.setenv("PLAYLIST_PROBE_YOUTUBE_BASE_URL", " http://localhost:9000/ ")
    monkeypatch.setenv("PLAYLIST_PROBE_PLAYLIST_CACHE_TTL_SECONDS", "60")
    monkeypatch.setenv("PLAYLIST_PROBE_PLAYLIST_MAX_RETRIES", "5")
    monkeypatch.setenv("PLAYLIST_PROBE_ADMIN_API_KEY", "  s3cret  ")
    monkeypatch.setenv("PLAYLIST_PROBE_TELEMETRY_ENABLED", "off")
    monkeypatch.setenv("PLAYLIST_PROBE_TELEMETRY_SINK", " NONE ")

    settings = load_settings()

    assert settings.log_dir == (tmp_path / "elsewhere").resolve()
    assert settings.youtube_base_url == "http://localhost:9000"
    assert settings.playlist_cache_ttl_seconds == 60
    assert settings.playlist_max_retries == 5
    assert settings.admin_api_key == "s3cret"
    assert settings.telemetry_enabled is False
    assert settings.telemetry_sink == "none"


def test_blank_admin_key_disables_guard(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PLAYLIST_PROBE_ADMIN_API_KEY", "   ")

    assert load_settings().admin_api_key is None


def test_unparseable_bool_falls_back_to_default(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PLAYLIST_PROBE_TELEMETRY_ENABLED", "maybe")

    assert load_settings().telemetry_enabled is True


@pytest.mark.parametrize(
    ("name", "value"),
    [
        ("PLAYLIST_PROBE_TELEMETRY_SINK", "otlp"),
        ("PLAYLIST_PROBE_YOUTUBE_BASE_URL", "   "),
        ("PLAYLIST_PROBE_PLAYLIST_MAX_RETRIES", "0"),
    ],
)
def test_load_settings_rejects_invalid_values(
    monkeypatch: pytest.MonkeyPatch,
    name: str,
    value: str,
) -> None:
    monkeypatch.setenv(name, value)

    with pytest.raises(ValidationError):
        load_settings()


def test_backoff_ceiling_must_cover_base(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PLAYLIST_PROBE_PLAYLIST_BACKOFF_BASE_SECONDS", "4")
    monkeypatch.setenv("PLAYLIST_PROBE_PLAYLIST_BACKOFF_MAX_SECONDS", "2")

    with pytest.raises(ValidationError):
        load_settings()


def test_explicit_settings_derive_log_dir(tmp_path: Path) -> None:
    settings = AppSettings(data_dir=tmp_path / "state")

    assert settings.log_dir == (tmp_path / "state" / "logs").resolve()
