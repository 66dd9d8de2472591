from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from .conversation import ConversationState, Sender, TurnDriver
from .playback import AcknowledgmentSlot

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class Session:
    """Everything that belongs to one websocket connection and nothing else."""

    session_id: str
    send: Sender
    state: ConversationState = field(default_factory=ConversationState)
    ack: AcknowledgmentSlot = field(default_factory=AcknowledgmentSlot)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    driver: Optional[TurnDriver] = None

    def __post_init__(self) -> None:
        self.ack.name = f"session {self.session_id}"


DriverFactory = Callable[[Session], TurnDriver]


class SessionRegistry:
    def __init__(self, driver_factory: DriverFactory) -> None:
        self._driver_factory = driver_factory
        self._sessions: Dict[str, Session] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._sessions)

    async def create(self, send: Sender) -> Session:
        session = Session(session_id=uuid.uuid4().hex, send=send)
        session.driver = self._driver_factory(session)
        async with self._lock:
            self._sessions[session.session_id] = session
        logger.info("Session %s opened (%d active)", session.session_id, len(self._sessions))
        return session

    async def get(self, session_id: str) -> Optional[Session]:
        async with self._lock:
            return self._sessions.get(session_id)

    async def remove(self, session_id: str) -> None:
        async with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is None:
            return
        if session.driver is not None:
            await session.driver.close()
        else:
            session.state.is_running = False
            session.ack.cancel("disconnected")
        logger.info("Session %s closed (%d active)", session_id, len(self._sessions))

    async def close_all(self) -> None:
        async with self._lock:
            session_ids = list(self._sessions)
        for session_id in session_ids:
            await self.remove(session_id)


__all__ = ["DriverFactory", "Session", "SessionRegistry"]
