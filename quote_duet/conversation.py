"""
Turn driver for one ALVA/Bob conversation.

Flow per session:
1. START resets the state, emits a System notice and Bob's scripted opener
2. The loop waits for the client to finish playing the last line
3. The active agent asks its LLM for the next quotation
4. The quotation is appended to history, sent and persisted
5. Back to 2 with the other persona, until the turn limit, a stop,
   a disconnect or an agent failure ends the run

Only the loop task and the start/stop/close calls touch the state, and all of
them run on the same event loop, so no locking is needed inside a session.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import random
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Awaitable, Callable, Dict, List, Mapping, Optional, Sequence

from .agents import BOB_OPENERS, Agent, AgentError
from .config import ConversationSettings
from .playback import PlaybackCancelled, PlaybackTimeout
from .schemas import ChatMessage, Speaker

if TYPE_CHECKING:
    from .sessions import Session
    from .storage import HistoryStore

logger = logging.getLogger(__name__)

Sender = Callable[[Dict[str, object]], Awaitable[None]]

FIRST_SPEAKER = Speaker.ALVA
OPENER_SPEAKER = Speaker.BOB

STARTING_TEXT = "Starting the conversation between ALVA and Bob..."
ALREADY_RUNNING_TEXT = "A conversation is already running for this client."
NOT_RUNNING_TEXT = "No conversation is currently running."
STOPPED_TEXT = "The conversation was stopped."
MAX_TURNS_TEXT = "The conversation has ended: max turns reached."
INTERNAL_ERROR_TEXT = "The conversation ended because of an internal error."


class DriverStatus(Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"
    FAILED = "failed"


def other_persona(speaker: Speaker) -> Speaker:
    return Speaker.BOB if speaker is Speaker.ALVA else Speaker.ALVA


@dataclass
class ConversationState:
    history: List[ChatMessage] = field(default_factory=list)
    is_running: bool = False
    turn_count: int = 0
    active_agent: Speaker = FIRST_SPEAKER
    status: DriverStatus = DriverStatus.IDLE

    def reset(self) -> None:
        self.history = []
        self.is_running = True
        self.turn_count = 0
        self.active_agent = FIRST_SPEAKER
        self.status = DriverStatus.RUNNING

    def agent_messages(self) -> List[ChatMessage]:
        return [message for message in self.history if message.speaker.is_persona]


class TurnDriver:
    """Alternates the two agents, pacing each turn on the client's playback."""

    def __init__(
        self,
        session: "Session",
        agents: Mapping[Speaker, Agent],
        *,
        settings: Optional[ConversationSettings] = None,
        openers: Sequence[str] = BOB_OPENERS,
        store: Optional["HistoryStore"] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        missing = {Speaker.ALVA, Speaker.BOB} - set(agents)
        if missing:
            raise ValueError(f"Missing agents for: {', '.join(sorted(s.value for s in missing))}")
        if not openers:
            raise ValueError("At least one opener line is required")
        self.session = session
        self.agents = dict(agents)
        self.settings = settings or ConversationSettings()
        self.openers = tuple(openers)
        self.store = store
        self._rng = rng or random.Random()
        self._task: Optional[asyncio.Task[None]] = None

    @property
    def state(self) -> ConversationState:
        return self.session.state

    @property
    def task(self) -> Optional[asyncio.Task[None]]:
        return self._task

    # ------------------------------------------------------------------
    # Client signals
    # ------------------------------------------------------------------

    async def start(self) -> None:
        state = self.state
        if state.is_running:
            logger.info("Session %s: start ignored, conversation already running", self.session.session_id)
            await self._emit_system(ALREADY_RUNNING_TEXT)
            return

        # A previous run may still be unwinding (e.g. a discarded late LLM reply).
        await self._cancel_task()

        logger.info("Session %s: starting new conversation", self.session.session_id)
        state.reset()
        await self._emit_system(STARTING_TEXT)

        opener = ChatMessage(speaker=OPENER_SPEAKER, text=self._rng.choice(self.openers))
        await self._emit(opener)

        self._task = asyncio.create_task(
            self._run(opener), name=f"conversation-{self.session.session_id}"
        )

    async def stop(self) -> None:
        state = self.state
        if not state.is_running:
            await self._emit_system(NOT_RUNNING_TEXT)
            return
        logger.info("Session %s: conversation stopped by client", self.session.session_id)
        state.is_running = False
        state.status = DriverStatus.STOPPED
        self.session.ack.cancel("stopped")
        await self._emit_system(STOPPED_TEXT)

    def notify_playback_complete(self, speaker: Optional[str] = None) -> bool:
        resolved = self.session.ack.notify_complete(speaker)
        if resolved:
            logger.debug("Session %s: playback complete for %s", self.session.session_id, speaker or "?")
        else:
            logger.debug("Session %s: ignoring unexpected playback ack", self.session.session_id)
        return resolved

    async def close(self) -> None:
        """Tear down after a disconnect; emits nothing."""
        state = self.state
        if state.is_running:
            state.is_running = False
            state.status = DriverStatus.STOPPED
        await self._cancel_task()
        self.session.ack.cancel("disconnected")

    # ------------------------------------------------------------------
    # Turn loop
    # ------------------------------------------------------------------

    async def _run(self, opener: ChatMessage) -> None:
        try:
            if not await self._await_playback(opener):
                return
            while True:
                await asyncio.sleep(self.settings.turn_delay)
                if not await self._play_turn():
                    return
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Session %s: conversation loop crashed", self.session.session_id)
            if self.state.is_running:
                await self._finish(DriverStatus.FAILED, INTERNAL_ERROR_TEXT)

    async def _play_turn(self) -> bool:
        """Run one turn. Returns False once the conversation is over."""
        state = self.state
        if not state.is_running:
            return False
        if state.turn_count >= self.settings.max_total_turns:
            logger.info("Session %s: max turns (%d) reached", self.session.session_id, state.turn_count)
            await self._finish(DriverStatus.STOPPED, MAX_TURNS_TEXT)
            return False

        state.turn_count += 1
        agent = self.agents[state.active_agent]
        logger.info(
            "Session %s: turn %d/%d, %s is speaking",
            self.session.session_id,
            state.turn_count,
            self.settings.max_total_turns,
            agent.name,
        )

        try:
            text = await agent.respond(list(state.history))
        except AgentError as exc:
            if not state.is_running:
                return False
            await self._finish(DriverStatus.FAILED, f"{agent.name} failed to respond: {exc.cause}")
            return False

        if not state.is_running:
            logger.info(
                "Session %s: discarding %s's reply that arrived after stop",
                self.session.session_id,
                agent.name,
            )
            return False

        message = ChatMessage(speaker=agent.speaker, text=text)
        await self._emit(message)
        if not await self._await_playback(message):
            return False

        state.active_agent = other_persona(state.active_agent)
        return True

    async def _await_playback(self, message: ChatMessage) -> bool:
        """Wait for the client to play ``message``. Returns whether to keep going."""
        try:
            await self.session.ack.wait(self.settings.ack_timeout, message.speaker.value)
        except PlaybackTimeout:
            logger.warning(
                "Session %s: no playback acknowledgment for %s, continuing",
                self.session.session_id,
                message.speaker.value,
            )
        except PlaybackCancelled as exc:
            logger.info("Session %s: playback wait cancelled (%s)", self.session.session_id, exc)
            return False
        return self.state.is_running

    async def _finish(self, status: DriverStatus, text: str) -> None:
        self.state.is_running = False
        self.state.status = status
        await self._emit_system(text)

    async def _cancel_task(self) -> None:
        task = self._task
        self._task = None
        if task is None or task.done() or task is asyncio.current_task():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    # ------------------------------------------------------------------
    # Emission
    # ------------------------------------------------------------------

    async def _emit_system(self, text: str) -> None:
        await self._emit(ChatMessage(speaker=Speaker.SYSTEM, text=text))

    async def _emit(self, message: ChatMessage) -> None:
        self.state.history.append(message)
        # Persist before sending so anything the client has seen is on disk.
        if self.store is not None:
            try:
                await self.store.append(self.session.session_id, message)
            except Exception as exc:
                logger.error("Session %s: failed to persist message: %s", self.session.session_id, exc)
        try:
            await self.session.send(message.to_wire())
        except Exception as exc:
            logger.warning("Session %s: failed to send message: %s", self.session.session_id, exc)


__all__ = [
    "ConversationState",
    "DriverStatus",
    "Sender",
    "TurnDriver",
    "other_persona",
]
