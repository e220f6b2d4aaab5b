from __future__ import annotations

import argparse
import logging
import sys

import uvicorn

from voxrelay.internal_core.audio_utils import ffmpeg_available
from voxrelay.internal_core.config import ConfigurationError, load_config, validate_config

logger = logging.getLogger("voxrelay.serve")

_API_KEY_HINTS = (
    "Please set your OpenAI API key as an environment variable before running the server:",
    "  export OPENAI_API_KEY=your_api_key  # For Linux/Mac",
    "  set OPENAI_API_KEY=your_api_key     # For Windows CMD",
    '  $env:OPENAI_API_KEY="your_api_key"  # For Windows PowerShell',
)


def main(argv: list[str] | None = None) -> None:
    cfg = load_config()
    parser = argparse.ArgumentParser(description="Run the voxrelay transcription relay server")
    parser.add_argument("--host", default=cfg.RELAY_HOST, help=f"Bind address (default: {cfg.RELAY_HOST})")
    parser.add_argument("--port", type=int, default=cfg.RELAY_PORT, help=f"Port (default: {cfg.RELAY_PORT})")
    parser.add_argument(
        "--log-level",
        default=cfg.RELAY_LOG_LEVEL,
        help=f"Logging level (default: {cfg.RELAY_LOG_LEVEL})",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=str(args.log_level).upper(),
        format="[%(asctime)s] %(levelname)s %(name)s: %(message)s",
    )

    try:
        validate_config(cfg)
    except ConfigurationError as exc:
        logger.error("ERROR: %s", exc)
        if not cfg.OPENAI_API_KEY:
            for line in _API_KEY_HINTS:
                logger.error(line)
        sys.exit(1)

    ok, reason = ffmpeg_available(cfg.RELAY_FFMPEG_BIN)
    if ok:
        logger.info("ffmpeg is available for audio conversion")
    else:
        logger.warning("ffmpeg is not installed or not in PATH (%s)", reason)
        logger.warning("audio conversion will not work, transcription may fail for non-WAV formats")

    logger.info("transcriber=%s preferred_format=%s", cfg.RELAY_TRANSCRIBER, cfg.RELAY_PREFERRED_FORMAT)
    logger.info("transcription relay running on http://%s:%d", args.host, args.port)
    uvicorn.run("voxrelay.api.main:app", host=args.host, port=args.port, log_level=str(args.log_level).lower())


if __name__ == "__main__":
    main()
