from __future__ import annotations

import time
from threading import RLock
from typing import Any, Callable, Dict, List

from .contracts import AuditEvent, SessionSnapshot

MAX_AUDIT_EVENTS = 200


class InMemorySessionStore:
    """Keeps one accumulator session per session id, expiring idle ones."""

    def __init__(self, ttl_seconds: int, session_factory: Callable[[], Any]):
        self._ttl_seconds = ttl_seconds
        self._session_factory = session_factory
        self._lock = RLock()
        self._sessions: Dict[str, Dict[str, Any]] = {}

    def _touch(self, session_id: str) -> None:
        now = time.time()
        session = self._sessions[session_id]
        session["updated_at"] = now
        session["expires_at"] = now + self._ttl_seconds

    def get_or_create(self, session_id: str) -> Any:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                now = time.time()
                session = {
                    "session_id": session_id,
                    "created_at": now,
                    "updated_at": now,
                    "expires_at": now + self._ttl_seconds,
                    "accumulator": self._session_factory(),
                    "audit_events": [],
                }
                self._sessions[session_id] = session
            self._touch(session_id)
            return session["accumulator"]

    def has_session(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._sessions

    def append_audit_event(self, session_id: str, event: AuditEvent) -> None:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return
            events: List[AuditEvent] = session["audit_events"]
            events.append(event)
            if len(events) > MAX_AUDIT_EVENTS:
                del events[: len(events) - MAX_AUDIT_EVENTS]
            self._touch(session_id)

    def get_snapshot(self, session_id: str) -> SessionSnapshot:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise KeyError(f"Unknown session_id: {session_id}")
            accumulator = session["accumulator"]
            state = accumulator.snapshot()
            return SessionSnapshot(
                session_id=session["session_id"],
                created_at=session["created_at"],
                updated_at=session["updated_at"],
                expires_at=session["expires_at"],
                pending_size_bytes=state.pending_size_bytes,
                pending_format=(state.pending.declared_format if state.pending is not None else None),
                consecutive_empty_count=state.consecutive_empty_count,
                chunks_handled=accumulator.chunks_handled,
                bytes_received=accumulator.bytes_received,
                audit_events=list(session["audit_events"]),
            )

    def cleanup_expired_sessions(self) -> int:
        now = time.time()
        with self._lock:
            expired = [sid for sid, session in self._sessions.items() if session["expires_at"] <= now]
            for session_id in expired:
                self._sessions.pop(session_id, None)
        return len(expired)
