"""
API orchestration boundary for voxrelay.

Design intent:
- Expose thin, typed endpoints for chunked and one-shot transcription.
- Keep request validation explicit and failure modes predictable.
"""
