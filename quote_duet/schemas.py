from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class _Model(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class Speaker(str, Enum):
    ALVA = "ALVA"
    BOB = "Bob"
    SYSTEM = "System"
    USER = "User"

    @property
    def is_persona(self) -> bool:
        return self in (Speaker.ALVA, Speaker.BOB)


class ChatMessage(_Model):
    """One line of the conversation as stored in history and sent to clients."""

    model_config = ConfigDict(frozen=True)

    speaker: Speaker
    text: str
    timestamp: datetime = Field(default_factory=_utc_now)

    def to_wire(self) -> dict:
        return self.model_dump(mode="json")


class ClientMessage(_Model):
    type: Literal["START_CONVERSATION", "STOP_CONVERSATION", "AUDIO_PLAYBACK_COMPLETE"]
    speaker: Optional[str] = None


class TTSRequest(_Model):
    message: str = Field(min_length=1)
    select_language: Literal["ja", "en", "zh"] = Field(
        validation_alias=AliasChoices("selectLanguage", "languageSelection"),
        serialization_alias="selectLanguage",
    )
    model_id: Optional[int] = Field(default=None, alias="stylebertvits2ModelId", ge=0)
    speaker_id: Optional[int] = Field(default=None, alias="stylebertvits2SpeakerId", ge=0)
    server_url: Optional[str] = Field(default=None, alias="stylebertvits2ServerUrl")
    api_key: Optional[str] = Field(default=None, alias="stylebertvits2ApiKey")
    style: Optional[str] = Field(default=None, alias="stylebertvits2Style")
    sdp_ratio: Optional[float] = Field(default=None, alias="stylebertvits2SdpRatio", ge=0, le=1)
    noise: Optional[float] = Field(default=None, alias="stylebertvits2Noise", ge=0, le=1)
    noise_w: Optional[float] = Field(default=None, alias="stylebertvits2NoiseW", ge=0, le=2)
    length: Optional[float] = Field(default=None, alias="stylebertvits2Length", ge=0.1, le=5)
    auto_split: Optional[bool] = Field(default=None, alias="stylebertvits2AutoSplit")
    split_interval: Optional[float] = Field(default=None, alias="stylebertvits2SplitInterval", gt=0)
    assist_text_weight: Optional[float] = Field(
        default=None, alias="stylebertvits2AssistTextWeight", ge=0, le=1
    )
    style_weight: Optional[float] = Field(default=None, alias="stylebertvits2StyleWeight", ge=0, le=1)

    @property
    def language_code(self) -> str:
        return {"ja": "JP", "en": "EN", "zh": "ZH"}.get(self.select_language, "EN")


class HistoryResponse(_Model):
    session_id: str = Field(alias="sessionId")
    messages: list[ChatMessage] = Field(default_factory=list)


__all__ = [
    "ChatMessage",
    "ClientMessage",
    "HistoryResponse",
    "Speaker",
    "TTSRequest",
]
