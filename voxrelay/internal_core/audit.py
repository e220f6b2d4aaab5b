from __future__ import annotations

import datetime as _dt
from typing import Optional

from .contracts import AuditEvent, AuditEventType
from .session_store import InMemorySessionStore

_DECISION_EVENTS: dict[str, tuple[AuditEventType, str]] = {
    "too_small": ("CHUNK_SKIPPED", "BELOW_MIN_CHUNK"),
    "direct_ok": ("TRANSCRIPT_OK", "DIRECT"),
    "converted_ok": ("TRANSCRIPT_OK", "CONVERTED"),
    "buffered": ("EMPTY_BUFFERED", "CARRIED_FORWARD"),
    "dropped_ceiling": ("EMPTY_DROPPED", "BUFFER_CEILING"),
    "gave_up": ("GAVE_UP", "MAX_EMPTY_RESPONSES"),
}


def _ts_iso() -> str:
    return _dt.datetime.now(_dt.timezone.utc).isoformat()


def _sanitize_detail(detail: str) -> str:
    # Never include transcript text or audio bytes in detail.
    detail = (detail or "").replace("\n", " ").strip()
    if len(detail) > 200:
        detail = detail[:200] + "..."
    return detail


def log_event(
    store: InMemorySessionStore,
    session_id: str,
    event_type: AuditEventType,
    code: str,
    detail: str,
    duration_ms: Optional[int] = None,
) -> None:
    event = AuditEvent(
        ts_iso=_ts_iso(),
        session_id=session_id,
        type=event_type,
        code=code,
        detail=_sanitize_detail(detail),
        duration_ms=duration_ms,
    )
    store.append_audit_event(session_id, event)


def log_outcome(
    store: InMemorySessionStore,
    session_id: str,
    outcome,
    duration_ms: Optional[int] = None,
) -> None:
    if outcome.conversion_error is not None:
        log_event(
            store,
            session_id,
            "CONVERSION_FAILED",
            outcome.conversion_error.code,
            outcome.conversion_error.message,
        )
    if outcome.error is not None:
        log_event(
            store,
            session_id,
            "ASR_FAILED",
            outcome.error.code,
            f"kind={outcome.error.kind} provider={outcome.error.provider_name} {outcome.error.message}",
            duration_ms=duration_ms,
        )
        return
    event_type, code = _DECISION_EVENTS[outcome.decision]
    log_event(
        store,
        session_id,
        event_type,
        code,
        f"format={outcome.detected_format or 'n/a'} bytes={outcome.combined_size_bytes}",
        duration_ms=duration_ms,
    )
