"""
voxrelay package.

Design intent:
- Relay browser-captured audio chunks to a hosted transcription API.
- Keep the carry-forward retry policy independent from HTTP plumbing.
"""
