from __future__ import annotations

import contextlib
import json
import logging
from typing import Any, AsyncIterator, Dict, Mapping, Optional

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import ValidationError

from .agents import Agent, default_personas
from .config import Settings
from .conversation import TurnDriver
from .llm import LLMGateway, create_gateway
from .schemas import ClientMessage, HistoryResponse, Speaker, TTSRequest
from .sessions import Session, SessionRegistry
from .storage import HistoryStore
from .tts import StyleBertVits2Relay, TTSError

logger = logging.getLogger(__name__)

_PLAIN_TEXT_COMMANDS = {"START_CONVERSATION", "STOP_CONVERSATION", "AUDIO_PLAYBACK_COMPLETE"}


def parse_client_message(raw: str) -> ClientMessage:
    """
    Decode one websocket frame from the browser.

    Accepts the JSON envelope and, for older clients, the bare command name.

    Raises:
        ValueError: the frame is neither
    """
    stripped = raw.strip()
    if stripped in _PLAIN_TEXT_COMMANDS:
        return ClientMessage(type=stripped)
    try:
        payload = json.loads(stripped)
    except json.JSONDecodeError as exc:
        raise ValueError("Invalid JSON") from exc
    if not isinstance(payload, dict):
        raise ValueError("Expected a JSON object")
    try:
        return ClientMessage.model_validate(payload)
    except ValidationError as exc:
        if payload.get("type") not in _PLAIN_TEXT_COMMANDS:
            raise ValueError(f"Unknown message type: {payload.get('type')!r}") from exc
        raise ValueError(f"Invalid message: {exc.errors()[0]['msg']}") from exc


async def dispatch_client_message(session: Session, message: ClientMessage) -> None:
    driver = session.driver
    if driver is None:
        raise RuntimeError(f"Session {session.session_id} has no driver")
    if message.type == "START_CONVERSATION":
        await driver.start()
    elif message.type == "STOP_CONVERSATION":
        await driver.stop()
    elif message.type == "AUDIO_PLAYBACK_COMPLETE":
        driver.notify_playback_complete(message.speaker)


def create_app(
    settings: Optional[Settings] = None,
    *,
    gateways: Optional[Mapping[Speaker, LLMGateway]] = None,
    store: Optional[HistoryStore] = None,
    relay: Optional[StyleBertVits2Relay] = None,
) -> FastAPI:
    """Build the FastAPI app. Collaborators default to what ``settings`` describes."""

    settings = settings or Settings.from_env()
    conversation_settings = settings.conversation
    personas = default_personas(settings.alva_provider, settings.bob_provider)

    if gateways is None:
        gateways = {
            speaker: create_gateway(persona.provider, settings)
            for speaker, persona in personas.items()
        }
        logger.info(
            "LLM providers: ALVA=%s Bob=%s", settings.alva_provider, settings.bob_provider
        )
    if store is None and settings.history_db_path is not None:
        store = HistoryStore(settings.history_db_path)
    relay = relay or StyleBertVits2Relay(settings.tts)

    agents = {
        speaker: Agent(
            persona,
            gateways[speaker],
            context_window=conversation_settings.context_window,
            max_attempts=conversation_settings.llm_max_attempts,
            retry_delay=conversation_settings.llm_retry_delay,
        )
        for speaker, persona in personas.items()
    }

    def build_driver(session: Session) -> TurnDriver:
        return TurnDriver(session, agents, settings=conversation_settings, store=store)

    registry = SessionRegistry(build_driver)

    @contextlib.asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        yield
        await registry.close_all()

    app = FastAPI(title="Quote Duet", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.settings = settings
    app.state.registry = registry
    app.state.store = store
    app.state.relay = relay

    @app.get("/health")
    async def health() -> JSONResponse:
        return JSONResponse({"ok": True, "sessions": len(registry)})

    @app.get("/websocket")
    async def websocket_upgrade_required() -> JSONResponse:
        return JSONResponse({"error": "Expected Upgrade: websocket"}, status_code=426)

    @app.get("/api/sessions/{session_id}/history", response_model=HistoryResponse)
    async def session_history(session_id: str) -> HistoryResponse:
        if store is None:
            raise HTTPException(status_code=404, detail="History persistence is disabled")
        messages = await store.list(session_id)
        if not messages:
            raise HTTPException(status_code=404, detail="Session not found")
        return HistoryResponse(session_id=session_id, messages=messages)

    @app.post("/api/tts")
    async def text_to_speech(request: TTSRequest) -> Response:
        try:
            audio = await relay.synthesize(request)
        except TTSError as exc:
            return JSONResponse({"error": str(exc)}, status_code=exc.status_code)
        return Response(
            content=audio,
            media_type="audio/wav",
            headers={"Content-Length": str(len(audio))},
        )

    @app.websocket("/websocket")
    async def conversation_ws(websocket: WebSocket) -> None:
        await websocket.accept()

        async def send(payload: Dict[str, Any]) -> None:
            await websocket.send_json(payload)

        session = await registry.create(send)
        try:
            while True:
                frame = await websocket.receive()
                if frame["type"] == "websocket.disconnect":
                    raise WebSocketDisconnect(frame.get("code", 1000))
                raw = frame.get("text")
                if raw is None:
                    logger.warning("Session %s: ignoring binary frame", session.session_id)
                    continue
                logger.debug("Session %s received: %s", session.session_id, raw[:100])
                try:
                    message = parse_client_message(raw)
                except ValueError as exc:
                    logger.warning("Session %s: ignoring malformed message: %s", session.session_id, exc)
                    await websocket.send_json({"error": str(exc)})
                    continue
                try:
                    await dispatch_client_message(session, message)
                except Exception:
                    logger.error(
                        "Session %s: error processing %s", session.session_id, message.type, exc_info=True
                    )
                    await websocket.send_json({"error": "Error processing message"})
        except WebSocketDisconnect as exc:
            logger.info("Session %s: websocket closed (code=%s)", session.session_id, exc.code)
        finally:
            await registry.remove(session.session_id)

    return app


__all__ = ["create_app", "dispatch_client_message", "parse_client_message"]
