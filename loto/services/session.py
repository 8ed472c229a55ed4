import logging
import random
import string
import threading
from typing import Callable, Optional

from loto.errors import RejectedError, SessionMismatchError, ValidationError
from . import protocol
from .chat import BotChatter, ChatLog, ChatMessage, ChatRelay, system_message
from .game import Game
from .phrases import PhraseService, build_phrase_service
from .registry import Channel, PeerClient, PeerRegistry
from .scheduler import RepeatingTask

logger = logging.getLogger(__name__)


def generate_session_code(length=6):
    """Short code players type in to find this host."""
    return ''.join(random.choices(string.ascii_uppercase + string.digits, k=length))


def _run_inline(fn, *args):
    fn(*args)


def _timers_disabled(fn, *args):
    logger.info(f"[timer-disabled] {getattr(fn, '__qualname__', fn)} not scheduled in testing")


class HostSession:
    """Everything the host process owns for one session.

    All state changes happen under ``self.lock``, so Socket.IO handler
    threads, timer tasks and HTTP requests are applied one at a time.
    """

    def __init__(self, code: Optional[str] = None, language: str = 'vi', interval_ms: int = 6000,
                 chat_limit: int = 40, phrases: Optional[PhraseService] = None,
                 spawn: Optional[Callable] = None, timer_spawn: Optional[Callable] = None,
                 sleep: Optional[Callable] = None, bots_enabled: bool = False,
                 bot_interval_sec: float = 4, code_length: int = 6,
                 rng: Optional[random.Random] = None):
        if spawn is None:
            from loto import socketio
            spawn = socketio.start_background_task
        timer_spawn = timer_spawn or spawn
        self.code = (code or generate_session_code(code_length)).upper()
        self.lock = threading.RLock()
        self.phrases = phrases or build_phrase_service(None)
        self.registry = PeerRegistry()
        self.broadcaster = protocol.Broadcaster(self.registry, on_drop=self._peer_dropped)
        self.game = Game(emit=self.broadcaster.broadcast, language=language, phrases=self.phrases,
                         interval_ms=interval_ms, spawn=spawn, timer_spawn=timer_spawn, sleep=sleep,
                         lock=self.lock, rng=rng)
        self.chat = ChatRelay(ChatLog(chat_limit), self.broadcaster, lock=self.lock)
        self.chat.log.append(system_message(f"Chào mừng bạn đến phòng chơi {self.code}!"))
        self.bots = None
        if bots_enabled:
            chatter = BotChatter(self.chat, lambda: self.game.snapshot().called_numbers,
                                 self.phrases, spawn=spawn, rng=rng)
            self.bots = RepeatingTask('bot-chat', chatter.tick, bot_interval_sec,
                                      spawn=timer_spawn, sleep=sleep, lock=self.lock)
            self.bots.start()

    @classmethod
    def from_config(cls, config) -> 'HostSession':
        testing = bool(config.get('TESTING'))
        kwargs = {}
        if testing:
            kwargs['spawn'] = _run_inline
            if not config.get('ENABLE_SCHEDULER_IN_TESTS'):
                kwargs['timer_spawn'] = _timers_disabled
        return cls(
            code=config.get('SESSION_CODE'),
            language=config.get('LANGUAGE', 'vi'),
            interval_ms=int(config.get('AUTO_DRAW_INTERVAL_MS', 6000)),
            chat_limit=int(config.get('CHAT_LOG_LIMIT', 40)),
            phrases=build_phrase_service(None if testing else config.get('PHRASE_MODEL')),
            bots_enabled=bool(int(config.get('CHAT_BOTS_ENABLED', 0))),
            bot_interval_sec=int(config.get('BOT_CHAT_INTERVAL_SEC', 4)),
            code_length=int(config.get('SESSION_CODE_LENGTH', 6)),
            **kwargs,
        )

    # ---- Peer lifecycle ----

    def connect(self, channel: Channel) -> None:
        with self.lock:
            self.registry.connect(channel)

    def join(self, channel: Channel, name: str, code: Optional[str] = None) -> PeerClient:
        """Open a peer's channel and bring it up to date with one snapshot."""
        if code is not None and str(code).strip().upper() != self.code:
            raise SessionMismatchError(details={'session_code': code})
        name = (name or '').strip()[:64] or 'Guest'
        with self.lock:
            existing = self.registry.get(channel.id)
            rejoin = existing is not None and existing.open
            peer = self.registry.join(channel, name)
            # Built inside send so the snapshot is the state at send time
            delivered = self.broadcaster.send(channel, lambda: protocol.sync_state(self.game.snapshot()))
            if delivered and not rejoin:
                self.chat.notice(f"{name} joined")
            return peer

    def leave(self, channel) -> Optional[PeerClient]:
        with self.lock:
            peer = self.registry.leave(channel)
            if peer is not None:
                self._announce_leave(peer)
            return peer

    def _peer_dropped(self, peer: PeerClient) -> None:
        self._announce_leave(peer)

    def _announce_leave(self, peer: PeerClient) -> None:
        self.chat.notice(f"{peer.name or 'Guest'} left")

    def receive(self, channel: Channel, payload) -> ChatMessage:
        """Handle a message a peer sent to the host. Peers may only chat."""
        message = protocol.parse_message(payload)
        if message['type'] != protocol.CHAT_MESSAGE:
            raise RejectedError("Only the host changes the game", code='not_host',
                                details={'type': message['type']})
        chat = ChatMessage.from_wire(message)
        with self.lock:
            peer = self.registry.get(channel.id)
            if peer is None or not peer.open:
                raise RejectedError("Join the session before chatting", code='not_joined')
            self.chat.receive(chat, origin=channel)
        return chat

    # ---- Host controls ----

    def draw(self) -> Optional[int]:
        return self.game.draw()

    def start_automatic(self, interval_ms: Optional[int] = None) -> bool:
        return self.game.start_automatic(interval_ms)

    def stop_automatic(self) -> bool:
        return self.game.stop_automatic()

    def reset(self) -> None:
        self.game.reset()

    def say(self, sender: str, text: str) -> ChatMessage:
        if not (sender or '').strip():
            raise ValidationError("Sender is required")
        return self.chat.post(sender.strip()[:64], text)

    def shutdown(self) -> None:
        with self.lock:
            self.game.stop_automatic()
            if self.bots is not None:
                self.bots.stop()

    def state(self) -> dict:
        with self.lock:
            payload = self.game.snapshot().to_dict()
            payload.update({
                'session_code': self.code,
                'language': self.game.language,
                'automatic': self.game.automatic,
                'interval_ms': self.game.interval_ms,
                'peers': len(self.registry.peers()),
            })
            return payload

    def peers(self) -> list:
        with self.lock:
            return [peer.to_dict() for peer in self.registry.peers()]

    def chat_messages(self) -> list:
        with self.lock:
            return [message.to_dict() for message in self.chat.log.messages()]
