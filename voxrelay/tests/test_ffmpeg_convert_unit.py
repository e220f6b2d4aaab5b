import subprocess
from pathlib import Path

import pytest

from voxrelay.asr.accumulator import AccumulationConfig, AccumulatorState, AudioChunk, handle
from voxrelay.internal_core.asr.base import ConversionError
from voxrelay.internal_core.asr.ffmpeg_convert import FfmpegConverter
from voxrelay.internal_core.asr.mock import MockASRProvider


def _fake_ffmpeg(tmp_path: Path) -> str:
    fake = tmp_path / "ffmpeg"
    fake.write_text("#!/bin/sh\n")
    return str(fake)


def test_convert_runs_ffmpeg_with_mp3_settings_and_cleans_up(monkeypatch, tmp_path) -> None:
    work_dir = tmp_path / "work"
    seen = {}

    def fake_run(cmd, **kwargs):
        seen["cmd"] = cmd
        seen["timeout"] = kwargs.get("timeout")
        Path(cmd[-1]).write_bytes(b"ID3converted")
        return subprocess.CompletedProcess(cmd, 0, b"", b"")

    monkeypatch.setattr("voxrelay.internal_core.asr.ffmpeg_convert.subprocess.run", fake_run)
    converter = FfmpegConverter(_fake_ffmpeg(tmp_path), work_dir, sample_rate=16000, timeout_sec=7)

    out = converter.convert(b"\x1a\x45\xdf\xa3data", "webm", "mp3")

    assert out == b"ID3converted"
    cmd = seen["cmd"]
    assert cmd[1:3] == ["-y", "-i"]
    assert cmd[3].endswith(".webm")
    assert ["-c:a", "libmp3lame", "-q:a", "4"] == cmd[4:8]
    assert ["-ar", "16000", "-ac", "1"] == cmd[8:12]
    assert cmd[-1].endswith(".mp3")
    assert seen["timeout"] == 7
    assert list(work_dir.iterdir()) == []


def test_invalid_input_maps_to_conversion_error(monkeypatch, tmp_path) -> None:
    def fake_run(cmd, **kwargs):
        raise subprocess.CalledProcessError(1, cmd, stderr=b"pipe:0: Invalid data found when processing input")

    monkeypatch.setattr("voxrelay.internal_core.asr.ffmpeg_convert.subprocess.run", fake_run)
    converter = FfmpegConverter(_fake_ffmpeg(tmp_path), tmp_path / "work")

    with pytest.raises(ConversionError) as excinfo:
        converter.convert(b"garbage", "webm", "mp3")
    assert excinfo.value.code == "INVALID_INPUT"
    assert "corrupted header" in excinfo.value.message


def test_timeout_maps_to_conversion_error(monkeypatch, tmp_path) -> None:
    def fake_run(cmd, **kwargs):
        raise subprocess.TimeoutExpired(cmd, kwargs.get("timeout"))

    monkeypatch.setattr("voxrelay.internal_core.asr.ffmpeg_convert.subprocess.run", fake_run)
    converter = FfmpegConverter(_fake_ffmpeg(tmp_path), tmp_path / "work", timeout_sec=1)

    with pytest.raises(ConversionError) as excinfo:
        converter.convert(b"audio", "webm", "mp3")
    assert excinfo.value.code == "FFMPEG_TIMEOUT"


def test_empty_output_is_a_conversion_error(monkeypatch, tmp_path) -> None:
    def fake_run(cmd, **kwargs):
        Path(cmd[-1]).write_bytes(b"")
        return subprocess.CompletedProcess(cmd, 0, b"", b"")

    monkeypatch.setattr("voxrelay.internal_core.asr.ffmpeg_convert.subprocess.run", fake_run)
    converter = FfmpegConverter(_fake_ffmpeg(tmp_path), tmp_path / "work")

    with pytest.raises(ConversionError) as excinfo:
        converter.convert(b"audio", "webm", "mp3")
    assert excinfo.value.code == "OUTPUT_EMPTY"


def test_missing_ffmpeg_for_mp3_target_fails_without_subprocess(monkeypatch, tmp_path) -> None:
    def fail_run(cmd, **kwargs):
        raise AssertionError("subprocess should not run")

    monkeypatch.setattr("voxrelay.internal_core.asr.ffmpeg_convert.subprocess.run", fail_run)
    converter = FfmpegConverter(str(tmp_path / "missing-ffmpeg"), tmp_path / "work")

    with pytest.raises(ConversionError) as excinfo:
        converter.convert(b"audio", "webm", "mp3")
    assert excinfo.value.code == "FFMPEG_MISSING"


def test_empty_input_is_rejected(tmp_path) -> None:
    converter = FfmpegConverter(_fake_ffmpeg(tmp_path), tmp_path / "work")
    with pytest.raises(ConversionError) as excinfo:
        converter.convert(b"", "webm", "mp3")
    assert excinfo.value.code == "EMPTY_INPUT"


def test_unwritable_scratch_dir_maps_to_conversion_error(monkeypatch, tmp_path) -> None:
    def fail_run(cmd, **kwargs):
        raise AssertionError("subprocess should not run")

    monkeypatch.setattr("voxrelay.internal_core.asr.ffmpeg_convert.subprocess.run", fail_run)
    not_a_dir = tmp_path / "not_a_dir"
    not_a_dir.write_text("occupied")
    converter = FfmpegConverter(_fake_ffmpeg(tmp_path), not_a_dir / "sub")

    with pytest.raises(ConversionError) as excinfo:
        converter.convert(b"audio", "webm", "mp3")
    assert excinfo.value.code == "FFMPEG_EXEC_FAILED"


def test_unwritable_scratch_dir_counts_as_empty_result_in_policy(tmp_path) -> None:
    not_a_dir = tmp_path / "not_a_dir"
    not_a_dir.write_text("occupied")
    converter = FfmpegConverter(_fake_ffmpeg(tmp_path), not_a_dir / "sub")
    state = AccumulatorState()

    outcome = handle(
        AudioChunk(data=b"\x1a\x45\xdf\xa3" + b"\x01" * 1496),
        state,
        AccumulationConfig(min_chunk_bytes=1000, preferred_format="mp3"),
        transcriber=MockASRProvider([""]),
        converter=converter,
    )

    assert outcome.error is None
    assert outcome.conversion_error is not None
    assert outcome.conversion_error.code == "FFMPEG_EXEC_FAILED"
    assert outcome.decision == "buffered"
    assert state.consecutive_empty_count == 1
    assert state.pending_size_bytes == 1500
