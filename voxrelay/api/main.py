from __future__ import annotations

"""
HTTP and WebSocket surface for the voxrelay transcription relay.

Design intent:
- Keep API orchestration thin and typed.
- Delegate the carry-forward policy to voxrelay.asr.accumulator.
- Mirror policy outcomes as `{success, transcript, error}` JSON.
"""

import json
import logging
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Optional

from fastapi import FastAPI, HTTPException, Query, Request, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse

from voxrelay.asr.accumulator import AccumulationConfig, AccumulationSession, AudioChunk
from voxrelay.asr.provider_factory import build_converter, build_transcriber, close_providers
from voxrelay.internal_core import audit
from voxrelay.internal_core.asr.base import ASRError, ASRProvider, FormatConverter
from voxrelay.internal_core.audio_utils import (
    detect_audio_format,
    float32_to_pcm16,
    mime_to_format,
    pcm_to_wav,
)
from voxrelay.internal_core.config import ConfigurationError, RelayConfig, load_config
from voxrelay.internal_core.contracts import (
    DirectTranscriptionReply,
    ResetReply,
    SessionSnapshot,
    TranscriptionReply,
)
from voxrelay.internal_core.session_store import InMemorySessionStore

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    yield
    closed = close_providers()
    if hasattr(app.state, "relay_transcriber"):
        delattr(app.state, "relay_transcriber")
    logger.info("closed %d cached transcription client(s)", closed)


app = FastAPI(title="voxrelay transcription relay", lifespan=_lifespan)

_PCM_ENCODINGS = {"pcm_s16le", "pcm_f32le"}

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)


def _project_root() -> Path:
    # voxrelay/api/main.py -> api -> voxrelay -> project root
    return Path(__file__).resolve().parents[2]


def _get_config() -> RelayConfig:
    existing = getattr(app.state, "relay_config", None)
    if isinstance(existing, RelayConfig):
        return existing
    created = load_config()
    setattr(app.state, "relay_config", created)
    return created


def _get_transcriber() -> ASRProvider:
    existing = getattr(app.state, "relay_transcriber", None)
    if isinstance(existing, ASRProvider):
        return existing
    try:
        created = build_transcriber(_get_config())
    except ConfigurationError as exc:
        logger.error("transcriber unavailable: %s", exc)
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    setattr(app.state, "relay_transcriber", created)
    return created


def _get_converter() -> FormatConverter:
    existing = getattr(app.state, "relay_converter", None)
    if isinstance(existing, FormatConverter):
        return existing
    created = build_converter(_get_config(), _project_root())
    setattr(app.state, "relay_converter", created)
    return created


def _get_accumulation_config() -> AccumulationConfig:
    existing = getattr(app.state, "relay_accumulation_config", None)
    if isinstance(existing, AccumulationConfig):
        return existing
    created = AccumulationConfig.from_relay_config(_get_config())
    setattr(app.state, "relay_accumulation_config", created)
    return created


def _new_accumulation_session() -> AccumulationSession:
    return AccumulationSession(
        _get_accumulation_config(),
        transcriber=_get_transcriber(),
        converter=_get_converter(),
    )


def _get_session_store() -> InMemorySessionStore:
    existing = getattr(app.state, "relay_session_store", None)
    if isinstance(existing, InMemorySessionStore):
        return existing
    created = InMemorySessionStore(
        ttl_seconds=_get_config().RELAY_SESSION_TTL_SECONDS,
        session_factory=_new_accumulation_session,
    )
    setattr(app.state, "relay_session_store", created)
    return created


def _normalize_session_id(raw: Optional[str]) -> str:
    session_id = str(raw or "").strip()
    if not session_id:
        return "default"
    if len(session_id) > 128:
        raise HTTPException(status_code=400, detail="session_id must be at most 128 characters.")
    return session_id


def _declared_format(request: Request, format_hint: Optional[str]) -> Optional[str]:
    hint = str(format_hint or "").strip().lower()
    if hint:
        return hint
    return mime_to_format(request.headers.get("content-type"))


def _submit_chunk(session_id: str, chunk: AudioChunk) -> TranscriptionReply:
    store = _get_session_store()
    expired = store.cleanup_expired_sessions()
    if expired:
        logger.info("expired %d idle session(s)", expired)
    session = store.get_or_create(session_id)

    started = time.perf_counter()
    outcome = session.submit(chunk)
    duration_ms = int((time.perf_counter() - started) * 1000)
    audit.log_outcome(store, session_id, outcome, duration_ms=duration_ms)
    logger.info(
        "session=%s decision=%s format=%s bytes=%d duration_ms=%d",
        session_id,
        outcome.decision,
        outcome.detected_format,
        outcome.combined_size_bytes,
        duration_ms,
    )
    return outcome.to_reply(size=len(chunk))


def _wrap_socket_frame(frame: bytes, encoding: str, sample_rate: int, channels: int) -> bytes:
    if encoding == "pcm_f32le":
        return pcm_to_wav(float32_to_pcm16(frame), sample_rate=sample_rate, channels=channels)
    if encoding == "pcm_s16le":
        return pcm_to_wav(frame, sample_rate=sample_rate, channels=channels)
    return frame


@app.get("/healthz")
async def healthz() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/")
@app.get("/index.html")
async def capture_page() -> FileResponse:
    page = _get_config().capture_page_path(_project_root())
    if not page.exists() or not page.is_file():
        raise HTTPException(status_code=404, detail="Capture page not found.")
    return FileResponse(path=str(page), media_type="text/html")


@app.post("/audio", response_model=TranscriptionReply)
async def accumulate_audio(
    request: Request,
    session_id: str = Query(default="default"),
    audio_format: Optional[str] = Query(default=None, alias="format"),
) -> Any:
    normalized_session = _normalize_session_id(session_id)
    payload = await request.body()
    logger.info("received audio chunk: %d bytes (session=%s)", len(payload), normalized_session)

    chunk = AudioChunk(data=payload, declared_format=_declared_format(request, audio_format))
    reply = _submit_chunk(normalized_session, chunk)
    if reply.success:
        return reply
    status_code = 502 if reply.error_kind == "transient" else 422
    return JSONResponse(status_code=status_code, content=reply.model_dump(exclude_none=True))


@app.post("/transcribe", response_model=DirectTranscriptionReply)
async def transcribe_direct(
    request: Request,
    audio_format: Optional[str] = Query(default=None, alias="format"),
) -> Any:
    payload = await request.body()
    if not payload:
        raise HTTPException(status_code=400, detail="Audio body is empty.")
    logger.info("received complete audio data: %d bytes", len(payload))
    logger.debug("first bytes: %s", payload[:10].hex())

    cfg = _get_config()
    fallback = _declared_format(request, audio_format) or cfg.RELAY_DEFAULT_FORMAT
    detected = detect_audio_format(payload, default=fallback)
    transcriber = _get_transcriber()
    try:
        text = transcriber.transcribe(payload, detected)
    except ASRError as exc:
        logger.error("transcription error (%s): %s", exc.code, exc.message)
        reply = DirectTranscriptionReply(success=False, size=len(payload), error=exc.message)
        return JSONResponse(status_code=500, content=reply.model_dump(exclude_none=True))
    return DirectTranscriptionReply(success=True, size=len(payload), transcript=text)


@app.post("/reset", response_model=ResetReply)
async def reset_buffer(session_id: str = Query(default="default")) -> ResetReply:
    normalized_session = _normalize_session_id(session_id)
    store = _get_session_store()
    session = store.get_or_create(normalized_session)
    session.reset()
    audit.log_event(store, normalized_session, "RESET", "MANUAL_RESET", "buffer reset on request")
    logger.info("audio buffer reset (session=%s)", normalized_session)
    return ResetReply(session_id=normalized_session)


@app.get("/sessions/{session_id}", response_model=SessionSnapshot)
async def session_status(session_id: str) -> SessionSnapshot:
    normalized_session = _normalize_session_id(session_id)
    try:
        return _get_session_store().get_snapshot(normalized_session)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=f"Unknown session_id: {normalized_session}") from exc


@app.websocket("/ws/audio")
async def audio_socket(websocket: WebSocket) -> None:
    await websocket.accept()
    params = websocket.query_params
    try:
        session_id = _normalize_session_id(params.get("session_id"))
    except HTTPException as exc:
        await websocket.send_json({"type": "error", "detail": exc.detail})
        await websocket.close(code=1008)
        return
    transcribe = str(params.get("transcribe", "")).strip().lower() in {"1", "true", "yes", "on"}
    encoding = str(params.get("encoding", "container")).strip().lower()
    try:
        sample_rate = int(params.get("sample_rate", "16000"))
        channels = int(params.get("channels", "1"))
    except ValueError:
        await websocket.send_json({"type": "error", "detail": "invalid_sample_rate_or_channels"})
        await websocket.close(code=1008)
        return
    if sample_rate <= 0 or channels <= 0:
        await websocket.send_json({"type": "error", "detail": "invalid_sample_rate_or_channels"})
        await websocket.close(code=1008)
        return

    logger.info("socket client connected (session=%s transcribe=%s encoding=%s)", session_id, transcribe, encoding)
    chunks_received = 0
    bytes_received = 0

    while True:
        message = await websocket.receive()
        if message.get("type") == "websocket.disconnect":
            logger.info("socket client disconnected (session=%s)", session_id)
            return

        frame = message.get("bytes")
        if frame is not None:
            chunks_received += 1
            bytes_received += len(frame)
            logger.info("received audio chunk of size: %d bytes", len(frame))
            ack: dict[str, Any] = {
                "type": "ack_chunk",
                "session_id": session_id,
                "size": len(frame),
                "chunks_received": chunks_received,
                "bytes_received": bytes_received,
            }
            if transcribe:
                declared = "wav" if encoding in _PCM_ENCODINGS else None
                data = _wrap_socket_frame(frame, encoding, sample_rate, channels)
                try:
                    reply = _submit_chunk(session_id, AudioChunk(data=data, declared_format=declared))
                except HTTPException as exc:
                    await websocket.send_json({"type": "error", "detail": exc.detail})
                    continue
                ack.update(reply.model_dump(exclude_none=True))
                ack["type"] = "ack_chunk"
                ack["size"] = len(frame)
                ack["submitted_size"] = len(data)
            await websocket.send_json(ack)
            continue

        raw = message.get("text") or ""
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError:
            await websocket.send_json({"type": "error", "detail": "invalid_json"})
            continue
        message_type = str(payload.get("type", "")).strip().lower() if isinstance(payload, dict) else ""

        if message_type == "reset":
            store = _get_session_store()
            try:
                store.get_or_create(session_id).reset()
            except HTTPException as exc:
                await websocket.send_json({"type": "error", "detail": exc.detail})
                continue
            audit.log_event(store, session_id, "RESET", "SOCKET_RESET", "buffer reset over socket")
            await websocket.send_json({"type": "ack_reset", "session_id": session_id})
            continue

        if message_type == "stop":
            await websocket.send_json(
                {
                    "type": "ack_stop",
                    "session_id": session_id,
                    "chunks_received": chunks_received,
                    "bytes_received": bytes_received,
                }
            )
            await websocket.close()
            return

        await websocket.send_json({"type": "error", "detail": "unknown_message_type"})
