"""Cancellable repeating task used for the live elapsed-time display."""
from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

logger = logging.getLogger(__name__)

TIMER_UPDATE_INTERVAL = 0.05


class Ticker:
    """Calls ``callback`` every ``interval`` seconds on a daemon thread.

    Use it as a context manager: entering starts the thread and leaving
    cancels it and waits for the thread to exit, so no tick fires afterwards.
    """

    def __init__(
        self,
        callback: Callable[[], None],
        interval: float = TIMER_UPDATE_INTERVAL,
        name: str = "latency-ticker",
    ) -> None:
        if interval <= 0:
            raise ValueError("Ticker interval must be greater than zero seconds.")
        self.callback = callback
        self.interval = interval
        self.name = name
        self.ticks = 0
        self._stopped = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def active(self) -> bool:
        return self._thread is not None and not self._stopped.is_set()

    def start(self) -> "Ticker":
        if self._thread is not None:
            raise RuntimeError("Ticker already started")
        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self._thread.start()
        return self

    def cancel(self) -> None:
        self._stopped.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join()

    def _run(self) -> None:
        while not self._stopped.wait(self.interval):
            try:
                self.callback()
            except Exception:  # noqa: BLE001 - keep ticking after a failed refresh
                logger.exception("Ticker %s callback failed", self.name)
            self.ticks += 1

    def __enter__(self) -> "Ticker":
        return self.start()

    def __exit__(self, *exc_info: object) -> None:
        self.cancel()
