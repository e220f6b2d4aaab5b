from __future__ import annotations

"""
Carry unrecognized audio forward across chunks for single-shot transcription APIs.

Design intent:
- Prepend audio that produced no text to the next chunk so speech split at a
  chunk boundary still gets a chance to be recognized.
- Try the collaborator's preferred container once when the direct attempt is empty.
- Bound the carried buffer by size and by a run of consecutive empty replies.
- Reset everything on a genuine collaborator failure instead of growing the buffer.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Optional

from voxrelay.internal_core.asr.base import ASRError, ASRProvider, ConversionError, FormatConverter
from voxrelay.internal_core.audio_utils import detect_audio_format
from voxrelay.internal_core.config import RelayConfig
from voxrelay.internal_core.contracts import AccumulationDecision, TranscriptionReply

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AudioChunk:
    data: bytes
    declared_format: Optional[str] = None
    received_at: float = field(default_factory=time.time)

    def __len__(self) -> int:
        return len(self.data)

    def prepend_to(self, newer: "AudioChunk") -> "AudioChunk":
        # The older chunk owns the container header, so its format wins.
        return AudioChunk(
            data=self.data + newer.data,
            declared_format=self.declared_format or newer.declared_format,
            received_at=newer.received_at,
        )


@dataclass
class AccumulatorState:
    pending: Optional[AudioChunk] = None
    pending_size_bytes: int = 0
    consecutive_empty_count: int = 0

    def is_zero(self) -> bool:
        return self.pending is None and self.pending_size_bytes == 0 and self.consecutive_empty_count == 0

    def carry(self, chunk: AudioChunk) -> None:
        self.pending = chunk
        self.pending_size_bytes = len(chunk)

    def drop_pending(self) -> None:
        self.pending = None
        self.pending_size_bytes = 0

    def clear(self) -> None:
        self.drop_pending()
        self.consecutive_empty_count = 0


@dataclass(frozen=True)
class AccumulationConfig:
    min_chunk_bytes: int = 1000
    max_buffer_bytes: int = 5 * 1024 * 1024
    max_empty_responses: int = 3
    preferred_format: str = "mp3"
    default_format: str = "webm"

    @classmethod
    def from_relay_config(cls, cfg: RelayConfig) -> "AccumulationConfig":
        return cls(
            min_chunk_bytes=cfg.RELAY_MIN_CHUNK_BYTES,
            max_buffer_bytes=cfg.RELAY_MAX_BUFFER_BYTES,
            max_empty_responses=max(1, cfg.RELAY_MAX_EMPTY_RESPONSES),
            preferred_format=cfg.RELAY_PREFERRED_FORMAT,
            default_format=cfg.RELAY_DEFAULT_FORMAT,
        )


@dataclass(frozen=True)
class AccumulationOutcome:
    text: str
    decision: AccumulationDecision
    error: Optional[ASRError] = None
    detected_format: Optional[str] = None
    combined_size_bytes: int = 0
    conversion_error: Optional[ConversionError] = None

    @property
    def success(self) -> bool:
        return self.error is None

    def to_reply(self, size: int) -> TranscriptionReply:
        return TranscriptionReply(
            success=self.success,
            transcript=self.text,
            error=self.error.message if self.error is not None else None,
            error_kind=self.error.kind if self.error is not None else None,
            decision=self.decision,
            detected_format=self.detected_format,
            size=size,
        )


def reset(state: AccumulatorState) -> None:
    state.clear()


def handle(
    chunk: AudioChunk,
    state: AccumulatorState,
    config: AccumulationConfig,
    *,
    transcriber: ASRProvider,
    converter: Optional[FormatConverter] = None,
) -> AccumulationOutcome:
    if len(chunk) < config.min_chunk_bytes:
        logger.info("audio chunk too small (%d bytes), skipping", len(chunk))
        return AccumulationOutcome(text="", decision="too_small")

    combined = chunk if state.pending is None else state.pending.prepend_to(chunk)
    fallback_format = combined.declared_format or config.default_format
    audio_format = detect_audio_format(combined.data, default=fallback_format)
    logger.info(
        "transcribing %d bytes (carried=%d, format=%s)",
        len(combined),
        state.pending_size_bytes,
        audio_format,
    )

    def _failed(error: ASRError) -> AccumulationOutcome:
        logger.error(
            "transcription failed via %s (%s, %s): %s",
            error.provider_name,
            error.code,
            error.kind,
            error.message,
        )
        state.clear()
        return AccumulationOutcome(
            text="",
            decision="failed",
            error=error,
            detected_format=audio_format,
            combined_size_bytes=len(combined),
        )

    try:
        text = transcriber.transcribe(combined.data, audio_format).strip()
    except ASRError as e:
        return _failed(e)

    if text:
        state.clear()
        return AccumulationOutcome(
            text=text,
            decision="direct_ok",
            detected_format=audio_format,
            combined_size_bytes=len(combined),
        )

    conversion_error: Optional[ConversionError] = None
    if audio_format != config.preferred_format:
        converted: Optional[bytes] = None
        if converter is None:
            conversion_error = ConversionError("NO_CONVERTER", "no format converter configured")
        else:
            try:
                converted = converter.convert(combined.data, audio_format, config.preferred_format)
            except ConversionError as e:
                conversion_error = e
        if conversion_error is not None:
            logger.warning(
                "conversion %s -> %s failed (%s): %s",
                audio_format,
                config.preferred_format,
                conversion_error.code,
                conversion_error.message,
            )
        elif converted is not None:
            try:
                text = transcriber.transcribe(converted, config.preferred_format).strip()
            except ASRError as e:
                return _failed(e)
            if text:
                state.clear()
                return AccumulationOutcome(
                    text=text,
                    decision="converted_ok",
                    detected_format=audio_format,
                    combined_size_bytes=len(combined),
                )

    state.consecutive_empty_count += 1
    decision: AccumulationDecision
    if state.consecutive_empty_count >= config.max_empty_responses:
        logger.info(
            "too many empty responses (%d), resetting buffer",
            state.consecutive_empty_count,
        )
        state.clear()
        decision = "gave_up"
    elif len(combined) < config.max_buffer_bytes:
        state.carry(combined)
        logger.info(
            "no speech recognized (empty run=%d), carrying %d bytes forward",
            state.consecutive_empty_count,
            state.pending_size_bytes,
        )
        decision = "buffered"
    else:
        logger.info(
            "carried buffer would reach %d bytes (ceiling %d), dropping it",
            len(combined),
            config.max_buffer_bytes,
        )
        state.drop_pending()
        decision = "dropped_ceiling"

    return AccumulationOutcome(
        text="",
        decision=decision,
        detected_format=audio_format,
        combined_size_bytes=len(combined),
        conversion_error=conversion_error,
    )


class AccumulationSession:
    """Serializes handle/reset calls on one accumulator state."""

    def __init__(
        self,
        config: AccumulationConfig,
        *,
        transcriber: ASRProvider,
        converter: Optional[FormatConverter] = None,
        state: Optional[AccumulatorState] = None,
    ) -> None:
        self.config = config
        self._transcriber = transcriber
        self._converter = converter
        self._state = state or AccumulatorState()
        self._lock = threading.Lock()
        self.chunks_handled = 0
        self.bytes_received = 0

    def submit(self, chunk: AudioChunk) -> AccumulationOutcome:
        with self._lock:
            self.chunks_handled += 1
            self.bytes_received += len(chunk)
            return handle(
                chunk,
                self._state,
                self.config,
                transcriber=self._transcriber,
                converter=self._converter,
            )

    def reset(self) -> None:
        with self._lock:
            reset(self._state)

    def snapshot(self) -> AccumulatorState:
        with self._lock:
            return AccumulatorState(
                pending=self._state.pending,
                pending_size_bytes=self._state.pending_size_bytes,
                consecutive_empty_count=self._state.consecutive_empty_count,
            )
