from __future__ import annotations

import os
import shutil
from dataclasses import dataclass
from pathlib import Path


class ConfigurationError(RuntimeError):
    """Raised when required collaborator settings are missing at startup."""


def _getenv_str(name: str, default: str) -> str:
    value = os.getenv(name)
    return default if value is None else value


def _getenv_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return int(value)


def _getenv_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return float(value)


def _default_ffmpeg_bin() -> str:
    return shutil.which("ffmpeg") or ""


@dataclass(frozen=True)
class RelayConfig:
    OPENAI_API_KEY: str
    RELAY_TRANSCRIBER: str
    RELAY_OPENAI_API_URL: str
    RELAY_OPENAI_MODEL: str
    RELAY_LANGUAGE: str
    RELAY_REQUEST_TIMEOUT_SEC: float
    RELAY_MIN_CHUNK_BYTES: int
    RELAY_MAX_BUFFER_BYTES: int
    RELAY_MAX_EMPTY_RESPONSES: int
    RELAY_PREFERRED_FORMAT: str
    RELAY_DEFAULT_FORMAT: str
    RELAY_FFMPEG_BIN: str
    RELAY_CONVERT_TIMEOUT_SEC: int
    RELAY_SAMPLE_RATE_HZ: int
    RELAY_TMP_DIR: str
    RELAY_SESSION_TTL_SECONDS: int
    RELAY_CAPTURE_PAGE: str
    RELAY_HOST: str
    RELAY_PORT: int
    RELAY_LOG_LEVEL: str

    def tmp_dir_path(self, repo_root: Path) -> Path:
        return (repo_root / self.RELAY_TMP_DIR).resolve()

    def capture_page_path(self, repo_root: Path) -> Path:
        return (repo_root / self.RELAY_CAPTURE_PAGE).resolve()


def load_config() -> RelayConfig:
    return RelayConfig(
        OPENAI_API_KEY=_getenv_str("OPENAI_API_KEY", "").strip(),
        RELAY_TRANSCRIBER=_getenv_str("RELAY_TRANSCRIBER", "openai").strip().lower(),
        RELAY_OPENAI_API_URL=_getenv_str(
            "RELAY_OPENAI_API_URL", "https://api.openai.com/v1/audio/transcriptions"
        ),
        RELAY_OPENAI_MODEL=_getenv_str("RELAY_OPENAI_MODEL", "whisper-1"),
        RELAY_LANGUAGE=_getenv_str("RELAY_LANGUAGE", "en"),
        RELAY_REQUEST_TIMEOUT_SEC=_getenv_float("RELAY_REQUEST_TIMEOUT_SEC", 60.0),
        RELAY_MIN_CHUNK_BYTES=_getenv_int("RELAY_MIN_CHUNK_BYTES", 1000),
        RELAY_MAX_BUFFER_BYTES=_getenv_int("RELAY_MAX_BUFFER_BYTES", 5 * 1024 * 1024),
        RELAY_MAX_EMPTY_RESPONSES=_getenv_int("RELAY_MAX_EMPTY_RESPONSES", 3),
        RELAY_PREFERRED_FORMAT=_getenv_str("RELAY_PREFERRED_FORMAT", "mp3").strip().lower(),
        RELAY_DEFAULT_FORMAT=_getenv_str("RELAY_DEFAULT_FORMAT", "webm").strip().lower(),
        RELAY_FFMPEG_BIN=_getenv_str("RELAY_FFMPEG_BIN", _default_ffmpeg_bin()),
        RELAY_CONVERT_TIMEOUT_SEC=_getenv_int("RELAY_CONVERT_TIMEOUT_SEC", 30),
        RELAY_SAMPLE_RATE_HZ=_getenv_int("RELAY_SAMPLE_RATE_HZ", 16000),
        RELAY_TMP_DIR=_getenv_str("RELAY_TMP_DIR", "./tmp"),
        RELAY_SESSION_TTL_SECONDS=_getenv_int("RELAY_SESSION_TTL_SECONDS", 3600),
        RELAY_CAPTURE_PAGE=_getenv_str("RELAY_CAPTURE_PAGE", "static/streaming.html"),
        RELAY_HOST=_getenv_str("RELAY_HOST", "127.0.0.1"),
        RELAY_PORT=_getenv_int("PORT", 8080),
        RELAY_LOG_LEVEL=_getenv_str("RELAY_LOG_LEVEL", "INFO"),
    )


def validate_config(cfg: RelayConfig) -> None:
    if cfg.RELAY_TRANSCRIBER not in {"openai", "mock"}:
        raise ConfigurationError(
            f"Unsupported RELAY_TRANSCRIBER={cfg.RELAY_TRANSCRIBER!r} (expected 'openai' or 'mock')"
        )
    if cfg.RELAY_TRANSCRIBER == "openai" and not cfg.OPENAI_API_KEY:
        raise ConfigurationError("OPENAI_API_KEY environment variable is not set.")
    if cfg.RELAY_MAX_EMPTY_RESPONSES < 1:
        raise ConfigurationError("RELAY_MAX_EMPTY_RESPONSES must be >= 1")
    if cfg.RELAY_MIN_CHUNK_BYTES < 0 or cfg.RELAY_MAX_BUFFER_BYTES < 0:
        raise ConfigurationError("RELAY_MIN_CHUNK_BYTES and RELAY_MAX_BUFFER_BYTES must be >= 0")
