"""
Single-slot wait for client-side audio playback.

The turn driver parks here after emitting a persona message until the
browser reports AUDIO_PLAYBACK_COMPLETE. Whichever of notify, timeout or
cancel happens first settles the wait; the others become no-ops.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

logger = logging.getLogger(__name__)


class PlaybackTimeout(Exception):
    """The client never acknowledged playback within the allotted time."""


class PlaybackCancelled(Exception):
    """The wait was force-resolved by a stop or a disconnect."""


class AcknowledgmentSlot:
    def __init__(self, name: str = "session") -> None:
        self.name = name
        self._future: Optional[asyncio.Future[None]] = None
        self._awaiting: Optional[str] = None

    @property
    def pending(self) -> bool:
        return self._future is not None and not self._future.done()

    async def wait(self, timeout: float, speaker: Optional[str] = None) -> None:
        """
        Suspend until the client acknowledges playback of ``speaker``'s line.

        Raises:
            PlaybackTimeout: no acknowledgment arrived within ``timeout`` seconds
            PlaybackCancelled: cancel() was called while waiting
            RuntimeError: another wait is already outstanding on this slot
        """
        if self.pending:
            raise RuntimeError("Playback acknowledgment already pending")

        loop = asyncio.get_running_loop()
        future: asyncio.Future[None] = loop.create_future()
        self._future = future
        self._awaiting = speaker
        timer = loop.call_later(timeout, self._expire, future, timeout)
        try:
            await future
        finally:
            timer.cancel()
            if self._future is future:
                self._future = None
                self._awaiting = None

    def _expire(self, future: asyncio.Future[None], timeout: float) -> None:
        if future.done():
            return
        logger.warning("%s: playback acknowledgment timed out after %.1fs", self.name, timeout)
        future.set_exception(PlaybackTimeout(f"no acknowledgment within {timeout}s"))

    def notify_complete(self, speaker: Optional[str] = None) -> bool:
        """
        Resolve the pending wait. Returns False when nothing was waiting.

        An ack naming a different speaker than the one awaited is stale
        (it belongs to a line whose wait already timed out) and is ignored.
        """
        future = self._future
        if future is None or future.done():
            logger.debug("%s: playback acknowledgment with no pending wait", self.name)
            return False
        if speaker is not None and self._awaiting is not None and speaker != self._awaiting:
            logger.debug(
                "%s: ignoring stale acknowledgment for %s while waiting on %s",
                self.name,
                speaker,
                self._awaiting,
            )
            return False
        future.set_result(None)
        return True

    def cancel(self, reason: str = "cancelled") -> bool:
        """Force-resolve the pending wait with PlaybackCancelled."""
        future = self._future
        if future is None or future.done():
            return False
        future.set_exception(PlaybackCancelled(reason))
        return True


__all__ = ["AcknowledgmentSlot", "PlaybackCancelled", "PlaybackTimeout"]
