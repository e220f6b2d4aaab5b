import struct

import numpy as np
import pytest

from voxrelay.internal_core.audio_utils import (
    WAV_HEADER_BYTES,
    detect_audio_format,
    ffmpeg_available,
    float32_to_pcm16,
    load_wav_info,
    mime_to_format,
    pcm_to_wav,
)


@pytest.mark.parametrize(
    "data,expected",
    [
        (b"RIFF\x24\x08\x00\x00WAVEfmt ", "wav"),
        (b"\x1a\x45\xdf\xa3\x9f\x42\x86\x81\x01\x42\xf7\x81", "webm"),
        (b"\x00\x00\x00\x1fwebmB\x87\x81\x04", "webm"),
        (b"\xff\xfb\x90\x64\x00\x00\x00\x00\x00\x00\x00\x00", "mp3"),
        (b"ID3\x04\x00\x00\x00\x00\x00\x00\x00\x00", "mp3"),
        (b"OggS\x00\x02\x00\x00\x00\x00\x00\x00", "ogg"),
    ],
)
def test_detect_audio_format_recognizes_magic_markers(data: bytes, expected: str) -> None:
    assert detect_audio_format(data, default="bin") == expected


def test_detect_audio_format_falls_back_to_default() -> None:
    assert detect_audio_format(b"\x00\x01\x02\x03\x04\x05", default="webm") == "webm"
    assert detect_audio_format(b"RI", default="mp3") == "mp3"
    # A RIFF container that is not WAVE is not treated as WAV.
    assert detect_audio_format(b"RIFF\x00\x00\x00\x00AVI LIST", default="webm") == "webm"


def test_pcm_to_wav_builds_fixed_header() -> None:
    pcm = b"\x01\x00" * 1600
    wav = pcm_to_wav(pcm, sample_rate=16000, channels=1)

    assert len(wav) == WAV_HEADER_BYTES + len(pcm)
    assert wav[:4] == b"RIFF"
    assert wav[8:12] == b"WAVE"
    assert struct.unpack("<I", wav[4:8])[0] == len(wav) - 8
    assert struct.unpack("<I", wav[40:44])[0] == len(pcm)
    duration, rate, channels = load_wav_info(wav)
    assert rate == 16000
    assert channels == 1
    assert duration == pytest.approx(0.1)


def test_pcm_to_wav_drops_partial_trailing_frame() -> None:
    wav = pcm_to_wav(b"\x00" * 7, sample_rate=8000, channels=2)
    assert len(wav) == WAV_HEADER_BYTES + 4


def test_pcm_to_wav_rejects_invalid_rate() -> None:
    with pytest.raises(ValueError):
        pcm_to_wav(b"\x00\x00", sample_rate=0)


def test_float32_to_pcm16_clips_and_scales() -> None:
    samples = np.array([0.0, 0.5, -1.0, 2.0], dtype="<f4").tobytes() + b"\x00\x00"
    out = np.frombuffer(float32_to_pcm16(samples), dtype="<i2")

    assert out.tolist() == [0, 16384, -32767, 32767]


@pytest.mark.parametrize(
    "content_type,expected",
    [
        ("audio/webm;codecs=opus", "webm"),
        ("audio/wav", "wav"),
        ("audio/mpeg", "mp3"),
        ("application/octet-stream", None),
        (None, None),
    ],
)
def test_mime_to_format(content_type, expected) -> None:
    assert mime_to_format(content_type) == expected


def test_ffmpeg_available_reports_missing_binary(tmp_path) -> None:
    ok, reason = ffmpeg_available("")
    assert ok is False
    assert "RELAY_FFMPEG_BIN" in reason

    ok, reason = ffmpeg_available(str(tmp_path / "no-such-ffmpeg"))
    assert ok is False
    assert "ffmpeg not found" in reason
