from __future__ import annotations

from .base import ASRError, ASRProvider, ConversionError, FormatConverter
from .ffmpeg_convert import FfmpegConverter
from .mock import MockASRProvider
from .openai_whisper import OpenAIWhisperProvider

__all__ = [
    "ASRError",
    "ASRProvider",
    "ConversionError",
    "FfmpegConverter",
    "FormatConverter",
    "MockASRProvider",
    "OpenAIWhisperProvider",
]
