from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Literal

ASRErrorKind = Literal["transient", "permanent"]


class ASRError(RuntimeError):
    def __init__(
        self,
        code: str,
        message: str,
        provider_name: str,
        kind: ASRErrorKind = "transient",
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.provider_name = provider_name
        self.kind = kind

    @property
    def transient(self) -> bool:
        return self.kind == "transient"


class ConversionError(RuntimeError):
    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


class ASRProvider(ABC):
    @abstractmethod
    def transcribe(self, data: bytes, audio_format: str) -> str:
        """Return recognized text, or "" when no speech was recognized."""

    @abstractmethod
    def name(self) -> str: ...


class FormatConverter(ABC):
    @abstractmethod
    def convert(self, data: bytes, from_format_hint: str, to_format: str) -> bytes: ...

    @abstractmethod
    def name(self) -> str: ...
