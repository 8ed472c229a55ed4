import logging
import threading
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class RepeatingTask:
    """Run ``action`` every ``interval_s`` seconds on a background task.

    - ``start`` is a no-op while already running
    - ``stop`` is a no-op while stopped
    - Each start gets a fresh generation; a worker whose generation is stale
      exits without firing. The check and the action run under ``lock``, so
      once ``stop`` returns no further action fires.
    """

    def __init__(self, name: str, action: Callable[[], None], interval_s: float,
                 spawn: Optional[Callable] = None, sleep: Optional[Callable[[float], None]] = None,
                 lock=None):
        if spawn is None or sleep is None:
            from loto import socketio
            spawn = spawn or socketio.start_background_task
            sleep = sleep or socketio.sleep
        self.name = name
        self.action = action
        self.interval_s = interval_s
        self._spawn = spawn
        self._sleep = sleep
        self._lock = lock or threading.RLock()
        self._generation = 0
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def start(self, interval_s: Optional[float] = None) -> bool:
        with self._lock:
            if self._running:
                logger.info(f"[timer-skip] task={self.name} already running")
                return False
            if interval_s is not None:
                self.interval_s = interval_s
            if self.interval_s <= 0:
                raise ValueError("interval must be positive")
            self._generation += 1
            self._running = True
            generation = self._generation
            interval = self.interval_s
        logger.info(f"[timer-set] task={self.name} generation={generation} interval={interval}s")
        self._spawn(self._worker, generation, interval)
        return True

    def stop(self) -> bool:
        with self._lock:
            if not self._running:
                return False
            self._generation += 1
            self._running = False
        logger.info(f"[timer-stop] task={self.name}")
        return True

    def _worker(self, generation: int, interval: float) -> None:
        while True:
            self._sleep(interval)
            with self._lock:
                if generation != self._generation:
                    logger.debug(f"[timer-abort] task={self.name} generation={generation} stale")
                    return
                logger.debug(f"[timer-fire] task={self.name} generation={generation}")
                try:
                    self.action()
                except Exception:
                    logger.exception(f"[timer-error] task={self.name}")
