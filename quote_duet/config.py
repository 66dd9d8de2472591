"""Configuration helpers for the quote duet server."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 3000
DEFAULT_GEMINI_MODEL = "gemini-2.0-flash"
DEFAULT_OLLAMA_ENDPOINT = "http://localhost:11434/api/chat"
DEFAULT_OLLAMA_MODEL = "gemma3:12b-it-qat"


@dataclass
class ConversationSettings:
    """Knobs for the turn driver and the agents it calls."""

    max_turns_per_agent: int = 10
    ack_timeout: float = 30.0
    turn_delay: float = 0.1
    # None feeds the full history to the model.
    context_window: Optional[int] = 3
    llm_max_attempts: int = 3
    llm_retry_delay: float = 1.0

    @property
    def max_total_turns(self) -> int:
        return 2 * self.max_turns_per_agent


@dataclass
class TTSSettings:
    server_url: Optional[str] = None
    api_key: Optional[str] = None
    client_id: Optional[str] = None

    def access_headers(self) -> Mapping[str, str]:
        """Return Cloudflare Access headers when both halves are configured."""
        if not (self.client_id and self.api_key):
            return {}
        return {
            "CF-Access-Client-Id": self.client_id,
            "CF-Access-Client-Secret": self.api_key,
        }


@dataclass
class Settings:
    """
    Resolved configuration for one server process.

    Loaded from environment variables at startup; see from_env() for the
    complete list. Tests construct it directly.
    """

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    alva_provider: str = "dummy"
    bob_provider: str = "dummy"
    gemini_api_key: Optional[str] = None
    gemini_model: str = DEFAULT_GEMINI_MODEL
    ollama_endpoint: str = DEFAULT_OLLAMA_ENDPOINT
    ollama_model: str = DEFAULT_OLLAMA_MODEL
    history_db_path: Optional[Path] = None
    conversation: ConversationSettings = field(default_factory=ConversationSettings)
    tts: TTSSettings = field(default_factory=TTSSettings)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Construct a configuration object based on environment variables."""

        env = os.environ if environ is None else environ
        gemini_api_key = _read_str(env, "GEMINI_API_KEY")
        default_provider = "gemini" if gemini_api_key else "dummy"

        context_window = _read_int(env, "CONTEXT_WINDOW", 3, minimum=0)
        conversation = ConversationSettings(
            max_turns_per_agent=_read_int(env, "MAX_TURNS_PER_AGENT", 10),
            ack_timeout=_read_float(env, "AUDIO_PLAYBACK_TIMEOUT", 30.0),
            turn_delay=_read_float(env, "TURN_DELAY", 0.1),
            context_window=context_window if context_window > 0 else None,
            llm_max_attempts=_read_int(env, "LLM_MAX_ATTEMPTS", 3),
            llm_retry_delay=_read_float(env, "LLM_RETRY_DELAY", 1.0),
        )
        tts = TTSSettings(
            server_url=_read_str(env, "STYLEBERTVITS2_SERVER_URL"),
            api_key=_read_str(env, "STYLEBERTVITS2_API_KEY"),
            client_id=_read_str(env, "STYLEBERTVITS2_CLIENT_ID"),
        )
        db_path = _read_str(env, "HISTORY_DB_PATH")
        return cls(
            host=env.get("QUOTE_DUET_HOST", DEFAULT_HOST),
            port=_read_int(env, "QUOTE_DUET_PORT", DEFAULT_PORT),
            alva_provider=env.get("ALVA_PROVIDER", default_provider).strip().lower(),
            bob_provider=env.get("BOB_PROVIDER", default_provider).strip().lower(),
            gemini_api_key=gemini_api_key,
            gemini_model=env.get("GEMINI_MODEL", DEFAULT_GEMINI_MODEL),
            ollama_endpoint=env.get("OLLAMA_ENDPOINT", DEFAULT_OLLAMA_ENDPOINT),
            ollama_model=env.get("OLLAMA_MODEL", DEFAULT_OLLAMA_MODEL),
            history_db_path=Path(db_path).expanduser() if db_path else None,
            conversation=conversation,
            tts=tts,
        )


def _read_str(env: Mapping[str, str], name: str) -> Optional[str]:
    value = env.get(name)
    if value is None or not value.strip():
        return None
    return value.strip()


def _read_int(env: Mapping[str, str], name: str, default: int, minimum: Optional[int] = None) -> int:
    raw = _read_str(env, name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc
    if minimum is not None and value < minimum:
        raise ValueError(f"{name} must be at least {minimum}, got {value}")
    return value


def _read_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = _read_str(env, name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc


__all__ = ["ConversationSettings", "Settings", "TTSSettings"]
