from __future__ import annotations

from pathlib import Path

import pytest

from quote_duet.config import ConversationSettings, Settings, TTSSettings


def test_defaults_without_environment() -> None:
    settings = Settings.from_env({})

    assert settings.host == "127.0.0.1"
    assert settings.port == 3000
    assert settings.alva_provider == "dummy"
    assert settings.bob_provider == "dummy"
    assert settings.history_db_path is None
    assert settings.conversation == ConversationSettings()
    assert settings.conversation.max_total_turns == 20
    assert settings.conversation.ack_timeout == 30.0
    assert settings.conversation.context_window == 3


def test_gemini_becomes_default_provider_with_key() -> None:
    settings = Settings.from_env({"GEMINI_API_KEY": "secret", "BOB_PROVIDER": "Ollama"})

    assert settings.gemini_api_key == "secret"
    assert settings.alva_provider == "gemini"
    assert settings.bob_provider == "ollama"


def test_conversation_knobs_from_environment() -> None:
    settings = Settings.from_env(
        {
            "MAX_TURNS_PER_AGENT": "4",
            "AUDIO_PLAYBACK_TIMEOUT": "12.5",
            "TURN_DELAY": "0.2",
            "CONTEXT_WINDOW": "0",
            "LLM_MAX_ATTEMPTS": "5",
            "HISTORY_DB_PATH": "/tmp/duet/history.sqlite3",
            "QUOTE_DUET_PORT": "8080",
        }
    )

    conversation = settings.conversation
    assert conversation.max_total_turns == 8
    assert conversation.ack_timeout == 12.5
    assert conversation.turn_delay == 0.2
    assert conversation.context_window is None
    assert conversation.llm_max_attempts == 5
    assert settings.history_db_path == Path("/tmp/duet/history.sqlite3")
    assert settings.port == 8080


def test_invalid_number_names_the_variable() -> None:
    with pytest.raises(ValueError, match="MAX_TURNS_PER_AGENT"):
        Settings.from_env({"MAX_TURNS_PER_AGENT": "ten"})
    with pytest.raises(ValueError, match="AUDIO_PLAYBACK_TIMEOUT"):
        Settings.from_env({"AUDIO_PLAYBACK_TIMEOUT": "soon"})


def test_negative_context_window_is_rejected() -> None:
    with pytest.raises(ValueError, match="CONTEXT_WINDOW"):
        Settings.from_env({"CONTEXT_WINDOW": "-3"})


def test_access_headers_need_both_halves() -> None:
    assert TTSSettings(api_key="secret").access_headers() == {}
    assert TTSSettings(api_key="secret", client_id="id").access_headers() == {
        "CF-Access-Client-Id": "id",
        "CF-Access-Client-Secret": "secret",
    }
