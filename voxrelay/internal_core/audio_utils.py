from __future__ import annotations

import io
import shutil
import wave
from pathlib import Path
from typing import Optional, Tuple

import numpy as np

HEADER_PROBE_BYTES = 12
WAV_HEADER_BYTES = 44

_MIME_FORMATS = {
    "audio/wav": "wav",
    "audio/wave": "wav",
    "audio/x-wav": "wav",
    "audio/vnd.wave": "wav",
    "audio/webm": "webm",
    "video/webm": "webm",
    "audio/mpeg": "mp3",
    "audio/mp3": "mp3",
    "audio/ogg": "ogg",
    "audio/opus": "ogg",
    "audio/mp4": "m4a",
    "audio/x-m4a": "m4a",
    "audio/flac": "flac",
}

FORMAT_MIME_TYPES = {
    "wav": "audio/wav",
    "webm": "audio/webm",
    "mp3": "audio/mpeg",
    "ogg": "audio/ogg",
    "m4a": "audio/mp4",
    "flac": "audio/flac",
}


def _which(cmd: str) -> Optional[str]:
    return shutil.which(cmd)


def mime_to_format(content_type: Optional[str]) -> Optional[str]:
    raw = (content_type or "").split(";", 1)[0].strip().lower()
    if not raw:
        return None
    return _MIME_FORMATS.get(raw)


def detect_audio_format(data: bytes, default: str) -> str:
    """
    Guess the container from the first few bytes.
    Falls back to `default` when no known marker is present.
    """
    header = bytes(data[:HEADER_PROBE_BYTES])
    if len(header) < 4:
        return default
    if header.startswith(b"RIFF") and b"WAVE" in header:
        return "wav"
    if header.startswith(b"\x1a\x45\xdf\xa3") or b"webm" in header:
        return "webm"
    if header.startswith(b"OggS"):
        return "ogg"
    if header.startswith(b"fLaC"):
        return "flac"
    if header.startswith(b"ID3"):
        return "mp3"
    if header[0] == 0xFF and (header[1] & 0xE0) == 0xE0:
        return "mp3"
    return default


def pcm_to_wav(
    pcm: bytes,
    *,
    sample_rate: int = 16000,
    channels: int = 1,
    sample_width: int = 2,
) -> bytes:
    if sample_rate <= 0:
        raise ValueError("sample_rate must be > 0")
    if channels <= 0:
        raise ValueError("channels must be > 0")
    frame_bytes = channels * sample_width
    usable = len(pcm) - (len(pcm) % frame_bytes)
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wf:
        wf.setnchannels(channels)
        wf.setsampwidth(sample_width)
        wf.setframerate(sample_rate)
        wf.writeframes(pcm[:usable])
    return buf.getvalue()


def float32_to_pcm16(raw: bytes) -> bytes:
    usable = len(raw) - (len(raw) % 4)
    audio = np.frombuffer(raw[:usable], dtype="<f4")
    audio = np.nan_to_num(audio, nan=0.0, posinf=1.0, neginf=-1.0).clip(-1.0, 1.0)
    return (audio * 32767.0).round().astype("<i2").tobytes()


def load_wav_info(data: bytes) -> Tuple[float, int, int]:
    with wave.open(io.BytesIO(data), "rb") as wf:
        frames = wf.getnframes()
        rate = wf.getframerate()
        channels = wf.getnchannels()
        duration = frames / float(rate) if rate else 0.0
        return duration, rate, channels


def ffmpeg_available(bin_path: str) -> Tuple[bool, str]:
    if not bin_path:
        return False, "missing RELAY_FFMPEG_BIN (ffmpeg not found on PATH)"
    if Path(bin_path).exists() or _which(bin_path):
        return True, ""
    return False, f"ffmpeg not found: {bin_path}"
