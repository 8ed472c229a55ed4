import logging
import random
import threading
import uuid
from collections import deque
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from loto.errors import ValidationError
from . import protocol

logger = logging.getLogger(__name__)

TEXT_MAX_LEN = 200
SYSTEM_SENDER = 'System'

BOT_NAMES = ['Lan Anh', 'Minh Tuấn', 'Kevin', 'Sarah', 'Bác Ba', 'Cô Tư', 'Hùng Gaming', 'LotoKing']
BOT_FALLBACKS = ["Cố lên!", "Sắp trúng rồi", "Hô to lên!", "Số đẹp", "Waiting for 13...", "Bingo soon!"]


@dataclass(frozen=True)
class ChatMessage:
    id: str
    sender: str
    text: str
    is_system: bool = False

    @classmethod
    def from_wire(cls, data: dict) -> 'ChatMessage':
        """Build from a message already loaded by ``protocol.parse_message``."""
        return cls(id=data['id'], sender=data['sender'], text=normalize_text(data['text']),
                   is_system=bool(data.get('is_system', False)))

    def to_dict(self):
        return {'id': self.id, 'sender': self.sender, 'text': self.text, 'is_system': self.is_system}


def normalize_text(text) -> str:
    text = str(text or '').strip()
    if not text:
        raise ValidationError("Chat text is required")
    return text[:TEXT_MAX_LEN]


def new_message(sender: str, text: str, is_system: bool = False) -> ChatMessage:
    return ChatMessage(id=uuid.uuid4().hex, sender=sender, text=normalize_text(text), is_system=is_system)


def system_message(text: str) -> ChatMessage:
    return new_message(SYSTEM_SENDER, text, is_system=True)


class ChatLog:
    """Arrival-ordered chat messages, keeping the most recent ``limit``."""

    def __init__(self, limit: int = 40):
        if limit < 1:
            raise ValueError(f"chat log limit must be at least 1, got {limit}")
        self.limit = limit
        self._messages: deque = deque(maxlen=limit)
        self._ids: set[str] = set()

    def __len__(self):
        return len(self._messages)

    def append(self, message: ChatMessage) -> bool:
        """Append unless the id is already in the log. Returns whether it was added."""
        if message.id in self._ids:
            return False
        if len(self._messages) == self.limit:
            self._ids.discard(self._messages[0].id)
        self._messages.append(message)
        self._ids.add(message.id)
        return True

    def messages(self) -> list:
        return list(self._messages)


class ChatRelay:
    """Chat over the host's star: every message passes through this node once."""

    def __init__(self, log: ChatLog, broadcaster: protocol.Broadcaster, lock=None):
        self.log = log
        self.broadcaster = broadcaster
        self.lock = lock or threading.RLock()

    def relay(self, message: ChatMessage) -> bool:
        """Append a locally authored message and send it to every peer."""
        with self.lock:
            if not self.log.append(message):
                return False
            self.broadcaster.broadcast(protocol.chat_message(message))
            return True

    def receive(self, message: ChatMessage, origin) -> bool:
        """Append a peer's message and pass it on to every other peer."""
        with self.lock:
            if not self.log.append(message):
                logger.debug(f"[chat-duplicate] id={message.id}")
                return False
            self.broadcaster.broadcast(protocol.chat_message(message), exclude=origin)
            return True

    def post(self, sender: str, text: str, is_system: bool = False) -> ChatMessage:
        message = new_message(sender, text, is_system=is_system)
        self.relay(message)
        return message

    def notice(self, text: str) -> ChatMessage:
        """Post a system line, such as a peer joining or leaving."""
        message = system_message(text)
        self.relay(message)
        return message


class BotChatter:
    """Simulated crowd chatter posted by the host while a game is under way."""

    def __init__(self, relay: ChatRelay, history: Callable[[], Sequence[int]], phrases,
                 spawn: Callable, rng: Optional[random.Random] = None):
        self.relay = relay
        self.history = history
        self.phrases = phrases
        self.spawn = spawn
        self.rng = rng or random.Random()

    def tick(self) -> None:
        history = list(self.history())
        if not history or self.rng.random() <= 0.6:
            return
        sender = self.rng.choice(BOT_NAMES)
        fallback = self.rng.choice(BOT_FALLBACKS)
        if self.rng.random() > 0.7:
            self.spawn(self._post_generated, sender, fallback, history)
            return
        self.relay.post(sender, fallback)

    def _post_generated(self, sender: str, fallback: str, history: list) -> None:
        text = self.phrases.generate_chat(history) or fallback
        self.relay.post(sender, text)
