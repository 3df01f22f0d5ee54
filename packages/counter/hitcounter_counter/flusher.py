"""Background write-back loop for batched persistence."""

from __future__ import annotations

import logging
import random
import threading
from typing import Callable

_logger = logging.getLogger("hitcounter.flusher")


class Flusher:
    """Calls ``tick`` every ``interval_s`` seconds on a daemon thread.

    ``tick`` returns False when a pass failed; consecutive failures back off
    exponentially up to ``backoff_cap_s``.
    """

    def __init__(
        self,
        tick: Callable[[], bool],
        interval_s: float = 1.0,
        backoff_cap_s: float = 30.0,
        name: str = "hitcounter-flusher",
    ) -> None:
        self.interval_s = max(0.01, float(interval_s))
        self.backoff_cap_s = max(self.interval_s, float(backoff_cap_s))
        self._tick = tick
        self._name = name
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._failures = 0

    @property
    def running(self) -> bool:
        return bool(self._thread and self._thread.is_alive())

    def next_delay(self) -> float:
        if self._failures == 0:
            return self.interval_s
        delay = min(self.backoff_cap_s, self.interval_s * (2 ** (self._failures - 1)))
        return delay + random.uniform(0.0, 0.15)

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name=self._name, daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def _run(self) -> None:
        while not self._stop.wait(self.next_delay()):
            try:
                ok = bool(self._tick())
            except Exception:
                _logger.exception("flush tick crashed", extra={"event": "flush_tick_crashed"})
                ok = False
            self._failures = 0 if ok else self._failures + 1
