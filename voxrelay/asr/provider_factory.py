from __future__ import annotations

"""
Build the transcription and conversion collaborators from configuration.

Design intent:
- Keep provider construction out of API handlers.
- Reuse one HTTP client per distinct provider configuration.
"""

import threading
from pathlib import Path
from typing import Any

from voxrelay.internal_core.asr import FfmpegConverter, MockASRProvider, OpenAIWhisperProvider
from voxrelay.internal_core.asr.base import ASRProvider, FormatConverter
from voxrelay.internal_core.config import ConfigurationError, RelayConfig, validate_config

_PROVIDER_CACHE: dict[tuple[Any, ...], ASRProvider] = {}
_PROVIDER_CACHE_LOCK = threading.Lock()


def _provider_cache_key(cfg: RelayConfig) -> tuple[Any, ...]:
    if cfg.RELAY_TRANSCRIBER == "openai":
        return (
            "openai",
            cfg.OPENAI_API_KEY,
            cfg.RELAY_OPENAI_API_URL,
            cfg.RELAY_OPENAI_MODEL,
            cfg.RELAY_LANGUAGE,
            float(cfg.RELAY_REQUEST_TIMEOUT_SEC),
        )
    return (cfg.RELAY_TRANSCRIBER,)


def build_transcriber(cfg: RelayConfig) -> ASRProvider:
    validate_config(cfg)
    if cfg.RELAY_TRANSCRIBER == "mock":
        return MockASRProvider()

    key = _provider_cache_key(cfg)
    with _PROVIDER_CACHE_LOCK:
        existing = _PROVIDER_CACHE.get(key)
        if existing is not None:
            return existing
        if cfg.RELAY_TRANSCRIBER != "openai":
            raise ConfigurationError(f"Unsupported transcriber: {cfg.RELAY_TRANSCRIBER}")
        created = OpenAIWhisperProvider(
            cfg.OPENAI_API_KEY,
            api_url=cfg.RELAY_OPENAI_API_URL,
            model=cfg.RELAY_OPENAI_MODEL,
            language=cfg.RELAY_LANGUAGE,
            timeout_sec=cfg.RELAY_REQUEST_TIMEOUT_SEC,
        )
        _PROVIDER_CACHE[key] = created
        return created


def build_converter(cfg: RelayConfig, project_root: Path) -> FormatConverter:
    return FfmpegConverter(
        cfg.RELAY_FFMPEG_BIN,
        cfg.tmp_dir_path(project_root),
        sample_rate=cfg.RELAY_SAMPLE_RATE_HZ,
        timeout_sec=cfg.RELAY_CONVERT_TIMEOUT_SEC,
    )


def close_providers() -> int:
    with _PROVIDER_CACHE_LOCK:
        providers = list(_PROVIDER_CACHE.values())
        _PROVIDER_CACHE.clear()
    for provider in providers:
        if isinstance(provider, OpenAIWhisperProvider):
            provider.close()
    return len(providers)
