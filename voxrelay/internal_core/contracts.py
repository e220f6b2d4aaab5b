from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

AccumulationDecision = Literal[
    "too_small",
    "direct_ok",
    "converted_ok",
    "buffered",
    "dropped_ceiling",
    "gave_up",
    "failed",
]


class TranscriptionReply(BaseModel):
    model_config = ConfigDict(extra="forbid")

    success: bool
    transcript: str = ""
    error: Optional[str] = None
    error_kind: Optional[Literal["transient", "permanent"]] = None
    decision: Optional[AccumulationDecision] = None
    detected_format: Optional[str] = None
    size: int = 0


class DirectTranscriptionReply(BaseModel):
    model_config = ConfigDict(extra="forbid")

    success: bool
    size: int = 0
    transcript: str = ""
    error: Optional[str] = None


class ResetReply(BaseModel):
    model_config = ConfigDict(extra="forbid")

    success: bool = True
    message: str = "Buffer reset"
    session_id: str


AuditEventType = Literal[
    "CHUNK_SKIPPED",
    "TRANSCRIPT_OK",
    "CONVERSION_FAILED",
    "EMPTY_BUFFERED",
    "EMPTY_DROPPED",
    "GAVE_UP",
    "ASR_FAILED",
    "RESET",
]


class AuditEvent(BaseModel):
    model_config = ConfigDict(extra="forbid")

    ts_iso: str
    session_id: str
    type: AuditEventType
    code: str
    detail: str
    duration_ms: Optional[int] = None


class SessionSnapshot(BaseModel):
    model_config = ConfigDict(extra="forbid")

    session_id: str
    created_at: float
    updated_at: float
    expires_at: float
    pending_size_bytes: int = Field(ge=0)
    pending_format: Optional[str] = None
    consecutive_empty_count: int = Field(ge=0)
    chunks_handled: int = Field(ge=0)
    bytes_received: int = Field(ge=0)
    audit_events: List[AuditEvent] = Field(default_factory=list)
