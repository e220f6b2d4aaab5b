from __future__ import annotations

from collections import deque
from typing import Iterable, Optional, Union

from .base import ASRError, ASRProvider

ScriptedReply = Union[str, ASRError]

MAX_RECORDED_CALLS = 100


class MockASRProvider(ASRProvider):
    """Replays scripted replies, then falls back to a counter-based transcript."""

    def __init__(self, replies: Optional[Iterable[ScriptedReply]] = None) -> None:
        self._counter = 0
        self._replies: deque[ScriptedReply] = deque(replies or [])
        self.calls: deque[tuple[int, str]] = deque(maxlen=MAX_RECORDED_CALLS)

    def transcribe(self, data: bytes, audio_format: str) -> str:
        self._counter += 1
        self.calls.append((len(data), audio_format))
        if self._replies:
            reply = self._replies.popleft()
            if isinstance(reply, ASRError):
                raise reply
            return reply
        return f"(mock) simulated transcript for chunk {self._counter}."

    def name(self) -> str:
        return "mock"
