"""Announcement and chat phrases.

Generated text is advisory: every call may fail or be slow, and callers treat
``None`` as "keep the last announcement".
"""

from __future__ import annotations

import logging
from typing import Optional, Protocol, Sequence

from langchain.chat_models import init_chat_model

logger = logging.getLogger(__name__)

LANGUAGES = ('vi', 'en')

WELCOME = {
    'vi': "Mời bà con cô bác cùng tham gia...",
    'en': "Welcome everyone, get your tickets ready...",
}
NEW_GAME = {
    'vi': "Bắt đầu ván mới nào!",
    'en': "New game starting!",
}
EXHAUSTED = {
    'vi': "Hết số rồi! Kiểm tra vé nào!",
    'en': "All numbers called! Check for Bingo!",
}
WIN_CRY = "KINH! KINH! KINH! BINGO!!!"


def fixed_phrase(table: dict, language: str) -> str:
    return table.get(language, table['en'])


def plain_call(number: int, language: str) -> str:
    """Line used until (or instead of) a generated one arrives."""
    if language == 'vi':
        return f"Số {number}!"
    return f"Number {number}!"


class PhraseService(Protocol):
    def generate(self, number: int, language: str) -> Optional[str]: ...

    def generate_chat(self, history: Sequence[int]) -> Optional[str]: ...


class StaticPhraseService:
    """No generation. Used when no model is configured, and in tests."""

    def generate(self, number, language):
        return None

    def generate_chat(self, history):
        return None


class LangChainPhraseService:
    """Ask a langchain chat model for a rhyming call or a line of crowd chatter."""

    def __init__(self, model_id: str):
        self.model_id = model_id
        self._model = None

    def _get_model(self):
        if self._model is None:
            self._model = init_chat_model(self.model_id)
        return self._model

    def _ask(self, prompt: str) -> Optional[str]:
        reply = self._get_model().invoke(prompt)
        content = getattr(reply, 'content', reply)
        if isinstance(content, list):
            content = ''.join(part if isinstance(part, str) else part.get('text', '') for part in content)
        text = str(content or '').strip().strip('"')
        return text or None

    def generate(self, number: int, language: str) -> Optional[str]:
        if language == 'vi':
            prompt = (
                f"Bạn là người hô lô tô hội chợ. Viết một câu hô vần vui nhộn, ngắn (tối đa 2 dòng) "
                f"cho số {number}, kết thúc bằng chính con số đó. Chỉ trả lời câu hô."
            )
        else:
            prompt = (
                f"You are a lively lottery caller at a street fair. Write a short, fun rhyming call "
                f"(at most 2 lines) for the number {number}, ending with the number itself. Reply with the call only."
            )
        try:
            return self._ask(prompt)
        except Exception as exc:
            logger.warning(f"[phrase-failed] number={number} error={exc!r}")
            return None

    def generate_chat(self, history: Sequence[int]) -> Optional[str]:
        recent = ', '.join(str(n) for n in list(history)[-5:])
        prompt = (
            "Bạn là một người chơi lô tô trong phòng chat. Các số vừa gọi: "
            f"{recent}. Viết một tin nhắn chat ngắn (dưới 12 từ), tự nhiên, vui vẻ. Chỉ trả lời tin nhắn."
        )
        try:
            return self._ask(prompt)
        except Exception as exc:
            logger.warning(f"[chat-phrase-failed] error={exc!r}")
            return None


def build_phrase_service(model_id: Optional[str]) -> PhraseService:
    if not model_id:
        return StaticPhraseService()
    return LangChainPhraseService(model_id)
