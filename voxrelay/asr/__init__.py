"""
Transcription policy boundary for voxrelay.

Design intent:
- Decide when to merge, retry, convert or discard incoming audio chunks.
- Keep provider-specific complexity out of API handlers.
"""
