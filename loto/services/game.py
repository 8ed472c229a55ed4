"""The authoritative draw sequence, owned by the host.

Every mutation commits locally and hands exactly one protocol message to
``emit`` inside the same critical section, so the broadcast order is the
commit order.
"""

import logging
import random
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from . import phrases as phrase_text
from . import protocol
from .phrases import PhraseService, StaticPhraseService
from .scheduler import RepeatingTask
from .ticket import POOL_MAX, POOL_MIN

logger = logging.getLogger(__name__)

POOL = tuple(range(POOL_MIN, POOL_MAX + 1))


class Status(str, Enum):
    IDLE = 'idle'
    RUNNING = 'running'
    STOPPED = 'stopped'
    EXHAUSTED = 'exhausted'


@dataclass(frozen=True)
class GameSnapshot:
    called_numbers: tuple
    current_number: Optional[int]
    current_announcement: str
    status: Status

    def to_dict(self):
        return {
            'called_numbers': list(self.called_numbers),
            'current_number': self.current_number,
            'current_announcement': self.current_announcement,
            'status': self.status.value,
            'remaining': len(POOL) - len(self.called_numbers),
        }


class Game:
    def __init__(self, emit: Callable[[dict], object], language: str = 'vi',
                 phrases: Optional[PhraseService] = None, interval_ms: int = 6000,
                 spawn: Optional[Callable] = None, timer_spawn: Optional[Callable] = None,
                 sleep: Optional[Callable] = None, lock=None, rng: Optional[random.Random] = None):
        if spawn is None:
            from loto import socketio
            spawn = socketio.start_background_task
        self.emit = emit
        self.language = language
        self.phrases = phrases or StaticPhraseService()
        self.lock = lock or threading.RLock()
        self.rng = rng or random.Random()
        self._spawn = spawn
        self.called_numbers: list[int] = []
        self.current_number: Optional[int] = None
        self.current_announcement = phrase_text.fixed_phrase(phrase_text.WELCOME, language)
        self.status = Status.IDLE
        # Bumped by every draw and reset; late phrases for an older value are dropped
        self._sequence = 0
        self._terminal_sent = False
        self._auto = RepeatingTask('auto-draw', self._auto_draw, interval_ms / 1000.0,
                                   spawn=timer_spawn or spawn, sleep=sleep, lock=self.lock)

    @property
    def automatic(self) -> bool:
        return self._auto.running

    @property
    def interval_ms(self) -> int:
        return int(self._auto.interval_s * 1000)

    def snapshot(self) -> GameSnapshot:
        with self.lock:
            return GameSnapshot(
                called_numbers=tuple(self.called_numbers),
                current_number=self.current_number,
                current_announcement=self.current_announcement,
                status=self.status,
            )

    def draw(self) -> Optional[int]:
        """Call one number not yet drawn.

        Returns ``None`` once all numbers are out: the first such call stops
        the automatic cycle and broadcasts the closing announcement.
        """
        with self.lock:
            remaining = [n for n in POOL if n not in self.called_numbers]
            if not remaining:
                self._finish()
                return None

            number = self.rng.choice(remaining)
            self.called_numbers.append(number)
            self.current_number = number
            self.current_announcement = phrase_text.plain_call(number, self.language)
            self._sequence += 1
            sequence = self._sequence
            if len(self.called_numbers) == len(POOL):
                self.status = Status.EXHAUSTED
            elif self.status == Status.IDLE:
                self.status = Status.STOPPED
            self.emit(protocol.call_number(number, self.current_announcement, self.called_numbers))
            logger.info(f"[draw] number={number} called={len(self.called_numbers)} status={self.status.value}")
            self._spawn(self._fetch_phrase, number, sequence)
        return number

    def _finish(self) -> None:
        self._auto.stop()
        self.status = Status.EXHAUSTED
        if self._terminal_sent:
            logger.info("[draw-rejected] all numbers called")
            return
        self._terminal_sent = True
        self.current_announcement = phrase_text.fixed_phrase(phrase_text.EXHAUSTED, self.language)
        self.emit(protocol.call_number(None, self.current_announcement, self.called_numbers))
        logger.info("[exhausted] all numbers called")

    def _auto_draw(self) -> None:
        self.draw()

    def _fetch_phrase(self, number: int, sequence: int) -> None:
        try:
            text = self.phrases.generate(number, self.language)
        except Exception as exc:
            logger.warning(f"[phrase-failed] number={number} error={exc!r}")
            return
        if not text:
            return
        with self.lock:
            if sequence != self._sequence or self._terminal_sent:
                logger.debug(f"[phrase-stale] number={number}")
                return
            self.current_announcement = text
            self.emit(protocol.announcement(number, text))

    def start_automatic(self, interval_ms: Optional[int] = None) -> bool:
        """Draw now and then every interval.

        False if already running or exhausted, or when the immediate draw takes
        the last number: no timer is armed then.
        """
        if interval_ms is not None and interval_ms <= 0:
            raise ValueError("interval must be positive")
        with self.lock:
            if self.status == Status.EXHAUSTED or self._auto.running:
                return False
            self.status = Status.RUNNING
            if self.draw() is None or self.status == Status.EXHAUSTED:
                return False
            self._auto.start(interval_ms / 1000.0 if interval_ms else None)
            return True

    def stop_automatic(self) -> bool:
        with self.lock:
            if not self._auto.stop():
                return False
            if self.status == Status.RUNNING:
                self.status = Status.STOPPED
            return True

    def reset(self) -> None:
        with self.lock:
            # Stop first so no pending tick lands on the cleared state
            self._auto.stop()
            self.called_numbers = []
            self.current_number = None
            self.current_announcement = phrase_text.fixed_phrase(phrase_text.NEW_GAME, self.language)
            self.status = Status.IDLE
            self._sequence += 1
            self._terminal_sent = False
            self.emit(protocol.reset_game())
            logger.info("[reset] game cleared")
