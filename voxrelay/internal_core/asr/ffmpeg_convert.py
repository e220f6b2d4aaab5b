from __future__ import annotations

import logging
import subprocess
import uuid
from pathlib import Path
from typing import List

from ..audio_utils import ffmpeg_available, pcm_to_wav
from .base import ConversionError, FormatConverter

logger = logging.getLogger(__name__)

_CODEC_ARGS = {
    "mp3": ["-c:a", "libmp3lame", "-q:a", "4"],
    "wav": ["-c:a", "pcm_s16le"],
    "ogg": ["-c:a", "libopus"],
    "webm": ["-c:a", "libopus"],
    "flac": ["-c:a", "flac"],
}


def _safe_unlink(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError:
        logger.warning("could not delete temporary file %s", path)


class FfmpegConverter(FormatConverter):
    def __init__(
        self,
        ffmpeg_bin: str,
        tmp_dir: Path,
        *,
        sample_rate: int = 16000,
        timeout_sec: int = 30,
    ):
        self._ffmpeg_bin = ffmpeg_bin
        self._tmp_dir = tmp_dir
        self._sample_rate = int(sample_rate)
        self._timeout_sec = int(timeout_sec)

    def name(self) -> str:
        return "ffmpeg"

    def build_command(self, input_path: Path, output_path: Path, to_format: str) -> List[str]:
        return [
            self._ffmpeg_bin,
            "-y",
            "-i",
            str(input_path),
            *_CODEC_ARGS.get(to_format, []),
            "-ar",
            str(self._sample_rate),
            "-ac",
            "1",
            str(output_path),
        ]

    def convert(self, data: bytes, from_format_hint: str, to_format: str) -> bytes:
        if not data:
            raise ConversionError("EMPTY_INPUT", "Cannot convert an empty audio buffer")

        ok, reason = ffmpeg_available(self._ffmpeg_bin)
        if not ok:
            if to_format == "wav":
                return self._decode_with_miniaudio(data)
            raise ConversionError("FFMPEG_MISSING", reason)

        stem = f"audio_{uuid.uuid4().hex}"
        input_path = self._tmp_dir / f"{stem}.{from_format_hint or 'bin'}"
        output_path = self._tmp_dir / f"{stem}_out.{to_format}"
        cmd = self.build_command(input_path, output_path, to_format)
        try:
            self._tmp_dir.mkdir(parents=True, exist_ok=True)
            input_path.write_bytes(data)
            logger.debug("running ffmpeg: %s", " ".join(cmd))
            subprocess.run(
                cmd,
                check=True,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                timeout=self._timeout_sec,
            )
            if not output_path.exists():
                raise ConversionError("OUTPUT_MISSING", f"{to_format} file was not created")
            converted = output_path.read_bytes()
            if not converted:
                raise ConversionError("OUTPUT_EMPTY", f"{to_format} file is empty")
            return converted
        except subprocess.TimeoutExpired as e:
            raise ConversionError("FFMPEG_TIMEOUT", f"ffmpeg timed out after {self._timeout_sec}s") from e
        except subprocess.CalledProcessError as e:
            stderr = (
                e.stderr.decode("utf-8", "ignore")
                if isinstance(e.stderr, (bytes, bytearray))
                else str(e.stderr)
            )
            if "Invalid data found" in stderr:
                raise ConversionError(
                    "INVALID_INPUT",
                    "Invalid audio format: corrupted header or incomplete file",
                ) from e
            msg = stderr.strip() or f"exit_code={e.returncode}"
            if len(msg) > 200:
                msg = msg[-200:]
            raise ConversionError("FFMPEG_EXIT_NONZERO", f"Audio conversion failed via ffmpeg: {msg}") from e
        except OSError as e:
            raise ConversionError("FFMPEG_EXEC_FAILED", str(e)) from e
        finally:
            _safe_unlink(input_path)
            _safe_unlink(output_path)

    def _decode_with_miniaudio(self, data: bytes) -> bytes:
        try:
            import miniaudio  # type: ignore
        except Exception:
            raise ConversionError(
                "DECODER_MISSING",
                "Audio conversion requires `ffmpeg` or the Python dependency `miniaudio`.",
            )

        try:
            decoded = miniaudio.decode(
                data,
                output_format=miniaudio.SampleFormat.SIGNED16,
                nchannels=1,
                sample_rate=self._sample_rate,
            )
        except Exception as e:
            raise ConversionError("DECODE_FAILED", f"Audio conversion failed: {e}") from e
        return pcm_to_wav(decoded.samples.tobytes(), sample_rate=self._sample_rate)
