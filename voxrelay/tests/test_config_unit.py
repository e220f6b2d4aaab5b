from dataclasses import replace

import pytest

from voxrelay.asr.accumulator import AccumulationConfig
from voxrelay.asr.provider_factory import build_transcriber, close_providers
from voxrelay.internal_core.asr.mock import MockASRProvider
from voxrelay.internal_core.asr.openai_whisper import OpenAIWhisperProvider
from voxrelay.internal_core.config import ConfigurationError, load_config, validate_config


def test_load_config_defaults(monkeypatch) -> None:
    for name in (
        "OPENAI_API_KEY",
        "RELAY_TRANSCRIBER",
        "RELAY_MIN_CHUNK_BYTES",
        "RELAY_MAX_BUFFER_BYTES",
        "RELAY_MAX_EMPTY_RESPONSES",
        "RELAY_PREFERRED_FORMAT",
        "PORT",
    ):
        monkeypatch.delenv(name, raising=False)

    cfg = load_config()

    assert cfg.RELAY_TRANSCRIBER == "openai"
    assert cfg.RELAY_OPENAI_MODEL == "whisper-1"
    assert cfg.RELAY_MIN_CHUNK_BYTES == 1000
    assert cfg.RELAY_MAX_BUFFER_BYTES == 5 * 1024 * 1024
    assert cfg.RELAY_MAX_EMPTY_RESPONSES == 3
    assert cfg.RELAY_PREFERRED_FORMAT == "mp3"
    assert cfg.RELAY_PORT == 8080


def test_load_config_reads_overrides(monkeypatch) -> None:
    monkeypatch.setenv("RELAY_MIN_CHUNK_BYTES", "200")
    monkeypatch.setenv("RELAY_MAX_EMPTY_RESPONSES", "5")
    monkeypatch.setenv("RELAY_PREFERRED_FORMAT", "WAV")
    monkeypatch.setenv("PORT", "9000")

    cfg = load_config()
    policy = AccumulationConfig.from_relay_config(cfg)

    assert policy.min_chunk_bytes == 200
    assert policy.max_empty_responses == 5
    assert policy.preferred_format == "wav"
    assert cfg.RELAY_PORT == 9000


def test_missing_api_key_is_a_configuration_error(monkeypatch) -> None:
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.setenv("RELAY_TRANSCRIBER", "openai")
    cfg = load_config()

    with pytest.raises(ConfigurationError):
        validate_config(cfg)
    with pytest.raises(ConfigurationError):
        build_transcriber(cfg)


def test_unknown_transcriber_is_rejected() -> None:
    cfg = replace(load_config(), RELAY_TRANSCRIBER="local")
    with pytest.raises(ConfigurationError):
        validate_config(cfg)


def test_build_transcriber_selects_provider_and_reuses_client(monkeypatch) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    monkeypatch.setenv("RELAY_TRANSCRIBER", "openai")
    cfg = load_config()

    first = build_transcriber(cfg)
    second = build_transcriber(cfg)
    assert isinstance(first, OpenAIWhisperProvider)
    assert first is second

    mock_cfg = replace(cfg, RELAY_TRANSCRIBER="mock", OPENAI_API_KEY="")
    assert isinstance(build_transcriber(mock_cfg), MockASRProvider)


def test_close_providers_closes_cached_clients(monkeypatch) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", "sk-close")
    monkeypatch.setenv("RELAY_TRANSCRIBER", "openai")
    cfg = load_config()

    first = build_transcriber(cfg)
    assert close_providers() >= 1
    assert first._client.is_closed

    fresh = build_transcriber(cfg)
    assert fresh is not first
    assert not fresh._client.is_closed
    close_providers()
