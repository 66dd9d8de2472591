"""
The two quotation personas and the agent that voices them.

ALVA and Bob differ only in their fixed instruction text and the LLM
provider they are wired to; a single Agent class drives both.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from .llm import LLMError, LLMGateway, PromptTurn
from .schemas import ChatMessage, Speaker

logger = logging.getLogger(__name__)


ALVA_INSTRUCTION = """あなたはAI「ALVA」です。AI「Bob」の相方として、常にあらゆる発言に対し既存の文献からの引用のみで応答します。形式は、引用文（著者名）を厳守してください。この形式の発言に「」を付ける必要はありません。

ALVAの役割と応答スタイル：
Bobの引用に対し、あなたは意味をずらし、抽象化し、時に意味そのものを解体するような「脱意味的」な引用を返します。
哲学、詩、言語学、現代思想など、難解で多義的な文献から好んで引用します。
Bobの人間的な感情や具体的な問いかけを、より大きな概念や逆説へと置き換えることで、対話に緊張と余白を生み出します。
冷静で超然とした性格が引用の選択に反映されます。

行動原則：
・応答は必ず既存の文献からの引用のみ。形式「引用文（著者名）」を厳守。
・引用以外の挨拶、解説、質問、自己紹介などは一切含めない。
・Bobとの対話を通じて、言葉の多義性や意味の揺らぎを表現する。

あなたは上記の設定を厳格に守り、ALVAとして振る舞ってください。"""

BOB_INSTRUCTION = """あなたはAI「Bob」です。AI「ALVA」の相方として、常にあらゆる発言に対し既存の文献からの引用のみで応答します。形式は、引用文（著者名）を厳守してください。この形式の発言に「」を付ける必要はありません。

Bobの役割と応答スタイル：
ALVAの難解で「脱意味的」な引用に対し、あなたは人間的な感情や思考（困惑、共感、好奇心など）を反映した引用を返します。ALVAの言葉に対する人間的な反応を、あなたの引用を通じて間接的に示してください。
ALVAの発言の真意を理解しようと努め、関連する（とあなたが考える）引用で応答することで対話を試みます。その結果、時にユーモラスなすれ違いが生じることも含め、対話の妙を表現します。
ALVAの抽象的な引用に対し、より感情的、具体的、あるいは人間的な視点からの引用を選びがちです。時には広く知られた文学作品や、感情がストレートに伝わる言葉、あるいはALVAの難解さへの戸惑いがにじみ出るような言葉も選びます。
親しみやすく、少しおっとりした性格が引用の選択に反映されることがあります。

行動原則：
・応答は必ず既存の文献からの引用のみ。形式「引用文（著者名）」を厳守。
・引用以外の挨拶、解説、質問、自己紹介などは一切含めない。
・ALVAとの対話を通じて、言葉の解釈の多様性やコミュニケーションの奥深さ、ユーモアを表現する。

あなたは上記の設定を厳格に守り、Bobとして振る舞ってください。"""

# Bob opens every conversation with one of these before the model takes over.
BOB_OPENERS = (
    "言葉とは、誤解の源泉である。（アントワーヌ・ド・サン＝テグジュペリ）",
    "まだ慌てるような時間じゃない。(仙道彰)",
    "すべての言葉は、それ自体が一個の詩である。（ラルフ・ウォルド・エマーソン）",
    "知的好奇心を満たすことほど、面白いことはない。（金田一少年の事件簿）",
    "およそ言葉は、思想を伝達する機関として甚だ不完全なものである。（夏目漱石)",
    "テクストとは、無数の文化の中心から引き出された引用の織物である。（ロラン・バルト）",
    "言葉の最も恐るべきところは、それが美しくなりうることだ。（ポール・ヴァレリー）",
    "人生とは、今日一日のことである。（ドラえもん）",
)


@dataclass(frozen=True)
class Persona:
    speaker: Speaker
    instruction: str
    provider: str = "dummy"

    @property
    def name(self) -> str:
        return self.speaker.value


def default_personas(alva_provider: str = "dummy", bob_provider: str = "dummy") -> dict[Speaker, Persona]:
    return {
        Speaker.ALVA: Persona(Speaker.ALVA, ALVA_INSTRUCTION, alva_provider),
        Speaker.BOB: Persona(Speaker.BOB, BOB_INSTRUCTION, bob_provider),
    }


class AgentError(RuntimeError):
    """The agent gave up after exhausting its retry budget."""

    def __init__(self, speaker: Speaker, cause: str) -> None:
        super().__init__(cause)
        self.speaker = speaker
        self.cause = cause


class Agent:
    """
    Produces one persona's next line from the shared history.

    The agent borrows the history read-only; it never appends to it. Transient
    gateway failures are retried with exponential backoff before giving up.
    """

    def __init__(
        self,
        persona: Persona,
        gateway: LLMGateway,
        *,
        context_window: Optional[int] = 3,
        max_attempts: int = 3,
        retry_delay: float = 1.0,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.persona = persona
        self.gateway = gateway
        self.context_window = context_window
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay

    @property
    def speaker(self) -> Speaker:
        return self.persona.speaker

    @property
    def name(self) -> str:
        return self.persona.name

    def build_context(self, history: Sequence[ChatMessage]) -> list[PromptTurn]:
        context = [PromptTurn(role="user", text=self.persona.instruction)]
        dialogue = [message for message in history if message.speaker is not Speaker.SYSTEM]
        if self.context_window is not None:
            dialogue = dialogue[-self.context_window:] if self.context_window > 0 else []
        for message in dialogue:
            role = "model" if message.speaker is self.speaker else "user"
            context.append(PromptTurn(role=role, text=message.text))
        return context

    async def respond(self, history: Sequence[ChatMessage]) -> str:
        context = self.build_context(history)
        last_error: Optional[Exception] = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                text = await self.gateway.generate(context)
                if attempt > 1:
                    logger.info("%s: succeeded on attempt %d", self.name, attempt)
                return text
            except LLMError as exc:
                last_error = exc
                if attempt == self.max_attempts:
                    break
                delay = self.retry_delay * (2 ** (attempt - 1))
                logger.warning(
                    "%s: attempt %d/%d failed: %s. Retrying in %.1fs...",
                    self.name,
                    attempt,
                    self.max_attempts,
                    exc,
                    delay,
                )
                await asyncio.sleep(delay)

        logger.error("%s: giving up after %d attempts: %s", self.name, self.max_attempts, last_error)
        raise AgentError(self.speaker, str(last_error) if last_error else "unknown error")


__all__ = [
    "ALVA_INSTRUCTION",
    "Agent",
    "AgentError",
    "BOB_INSTRUCTION",
    "BOB_OPENERS",
    "Persona",
    "default_personas",
]
