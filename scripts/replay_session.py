#!/usr/bin/env python3
"""
Session Replay Script
=====================

Standalone script to replay a recorded session against the realtime API.

This script:
    1. Loads settings (config.yaml + ZHIPU_REALTIME_URL / ZHIPU_API_KEY)
    2. Replays a JSON-lines event recording in live, vision or fc mode
    3. Writes every received event (audio/video redacted) to an output file
    4. Reports final client metrics

Usage:
    python scripts/replay_session.py files/Audio.ClientVad.Input
    python scripts/replay_session.py files/Video.ClientVad.Input --mode vision
    python scripts/replay_session.py files/Audio.ClientVad.FC.Input --mode fc
    python scripts/replay_session.py in.jsonl --output out.jsonl --config config.yaml
"""

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from glm_realtime.config import load_config, setup_logging
from glm_realtime.replay import (
    EventRecorder,
    read_events,
    replay_function_call,
    replay_live,
    replay_vision,
    summarize,
)
from glm_realtime.stream import RealtimeClient


logger = logging.getLogger(__name__)


async def run_replay(
    input_path: Path,
    output_path: Path,
    mode: str,
    config_path: str | None,
) -> int:
    """
    Run one replay.

    Returns:
        Number of events received (live and synthesized).
    """
    settings = load_config(config_path)
    setup_logging(settings)

    logger.info("=" * 60)
    logger.info(f"Replaying {input_path} ({mode} mode)")
    logger.info(f"Endpoint: {settings.connection.url}")
    logger.info(f"Output: {output_path}")
    logger.info("=" * 60)

    with open(output_path, "w", encoding="utf-8") as sink:
        # fc sessions end on the response.done after the function call answer
        recorder = EventRecorder(sink, done_after=3 if mode == "fc" else 1)
        client = RealtimeClient(settings, on_received=recorder)
        recorder.client = client

        try:
            if mode == "vision":
                await replay_vision(client, read_events(input_path))
            elif mode == "fc":
                await replay_function_call(client, read_events(input_path), recorder)
            else:
                await replay_live(client, read_events(input_path))
        finally:
            await client.close()

    logger.info("=" * 60)
    logger.info("FINAL SUMMARY")
    logger.info(summarize(client))
    logger.info("=" * 60)
    return len(recorder.received)


def main():
    parser = argparse.ArgumentParser(
        description="Replay a recorded event file against the realtime API"
    )
    parser.add_argument("input", type=Path, help="JSON-lines event recording")
    parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Where to write received events (default: <input>.Output)",
    )
    parser.add_argument(
        "--mode",
        choices=["live", "vision", "fc"],
        default="live",
        help=(
            "live: send over WebSocket; vision: batch frames to the vision model; "
            "fc: live with function call answers"
        ),
    )
    parser.add_argument("--config", type=str, default=None, help="Path to config.yaml")

    args = parser.parse_args()
    output = args.output or args.input.with_suffix(".Output")

    received = asyncio.run(run_replay(args.input, output, args.mode, args.config))

    sys.exit(0 if received > 0 else 1)


if __name__ == "__main__":
    main()
