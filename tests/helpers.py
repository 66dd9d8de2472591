from __future__ import annotations

import asyncio
import random
from typing import Any, Callable, Dict, List, Optional, Sequence

from quote_duet.agents import Agent, default_personas
from quote_duet.config import ConversationSettings
from quote_duet.conversation import TurnDriver
from quote_duet.llm import LLMError, PromptTurn
from quote_duet.schemas import Speaker
from quote_duet.sessions import Session


class ScriptedGateway:
    """Gateway double: canned replies, optional failures and latency."""

    def __init__(
        self,
        replies: Optional[Sequence[str]] = None,
        *,
        prefix: str = "quote",
        fail_times: int = 0,
        delay: float = 0.0,
    ) -> None:
        self.replies = list(replies or [])
        self.prefix = prefix
        self.fail_times = fail_times
        self.delay = delay
        self.calls: List[List[PromptTurn]] = []

    async def generate(self, context: Sequence[PromptTurn]) -> str:
        self.calls.append(list(context))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_times > 0:
            self.fail_times -= 1
            raise LLMError("model unavailable")
        if self.replies:
            return self.replies.pop(0)
        return f"{self.prefix} {len(self.calls)}"


class Outbox:
    """Collects what the driver sends to the client."""

    def __init__(self) -> None:
        self.payloads: List[Dict[str, Any]] = []

    async def __call__(self, payload: Dict[str, Any]) -> None:
        self.payloads.append(payload)

    def texts(self, speaker: Optional[str] = None) -> List[str]:
        return [p["text"] for p in self.payloads if speaker is None or p["speaker"] == speaker]


def fast_settings(**overrides: Any) -> ConversationSettings:
    values: Dict[str, Any] = dict(
        max_turns_per_agent=2,
        ack_timeout=1.0,
        turn_delay=0.001,
        context_window=3,
        llm_max_attempts=3,
        llm_retry_delay=0.0,
    )
    values.update(overrides)
    return ConversationSettings(**values)


def make_driver(
    session: Session,
    alva: ScriptedGateway,
    bob: ScriptedGateway,
    *,
    settings: Optional[ConversationSettings] = None,
    store: Any = None,
    seed: int = 7,
) -> TurnDriver:
    settings = settings or fast_settings()
    gateways = {Speaker.ALVA: alva, Speaker.BOB: bob}
    agents = {
        speaker: Agent(
            persona,
            gateways[speaker],
            context_window=settings.context_window,
            max_attempts=settings.llm_max_attempts,
            retry_delay=settings.llm_retry_delay,
        )
        for speaker, persona in default_personas().items()
    }
    return TurnDriver(session, agents, settings=settings, store=store, rng=random.Random(seed))


def make_session(
    alva: ScriptedGateway,
    bob: ScriptedGateway,
    *,
    settings: Optional[ConversationSettings] = None,
    send: Optional[Callable[[Dict[str, Any]], Any]] = None,
    store: Any = None,
    session_id: str = "s1",
    seed: int = 7,
) -> Session:
    session = Session(session_id=session_id, send=send or Outbox())
    session.driver = make_driver(session, alva, bob, settings=settings, store=store, seed=seed)
    return session


async def auto_ack(session: Session, acked_at: List[int]) -> None:
    """Acknowledge every playback wait, recording how many persona lines existed."""
    while True:
        if session.ack.pending:
            acked_at.append(len(session.state.agent_messages()))
            session.driver.notify_playback_complete()
        await asyncio.sleep(0.001)


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.001)
