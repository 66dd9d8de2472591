"""
Headless listener for the quote duet server.

Connects like the browser does, starts a conversation, prints each line and
acknowledges playback after roughly the time it would take to speak it.
Handy for exercising the turn protocol without a browser or TTS server.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Optional

import websockets

logger = logging.getLogger(__name__)

DEFAULT_URL = "ws://127.0.0.1:3000/websocket"
SECONDS_PER_CHAR = 0.12
MAX_SPEAKING_TIME = 8.0


def estimate_speaking_time(text: str) -> float:
    return min(MAX_SPEAKING_TIME, max(0.5, len(text) * SECONDS_PER_CHAR))


async def listen(url: str = DEFAULT_URL, *, speed: float = 1.0, max_messages: Optional[int] = None) -> int:
    """
    Run one conversation to completion and return the number of persona lines.

    The run ends with the first System message that follows a persona line,
    which is always the terminal notice.
    """
    persona_lines = 0
    received = 0
    async with websockets.connect(url) as websocket:
        await websocket.send(json.dumps({"type": "START_CONVERSATION"}))
        logger.info("Connected to %s, conversation requested", url)

        async for raw in websocket:
            if isinstance(raw, bytes):
                logger.warning("Received unexpected binary message")
                continue
            try:
                data = json.loads(raw)
            except json.JSONDecodeError:
                logger.error("Invalid JSON from server: %s", raw[:100])
                continue
            received += 1

            if "error" in data:
                logger.error("Server error: %s", data["error"])
                continue

            speaker = data.get("speaker", "?")
            text = data.get("text", "")
            print(f"[{speaker}] {text}", flush=True)

            if speaker == "System":
                if persona_lines:
                    break
                continue

            persona_lines += 1
            await asyncio.sleep(estimate_speaking_time(text) / max(speed, 0.01))
            await websocket.send(json.dumps({"type": "AUDIO_PLAYBACK_COMPLETE", "speaker": speaker}))

            if max_messages is not None and received >= max_messages:
                await websocket.send(json.dumps({"type": "STOP_CONVERSATION"}))
                max_messages = None

    return persona_lines


__all__ = ["DEFAULT_URL", "estimate_speaking_time", "listen"]
