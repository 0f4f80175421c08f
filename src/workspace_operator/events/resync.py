"""Periodic redelivery of unfinished workspace requests."""
from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

LOGGER = logging.getLogger(__name__)


class ResyncLoop:
    """Background thread invoking ``resync`` every ``period_seconds``.

    Readiness is only observed by polling, so requests waiting on their
    services advance through this loop rather than through change events.
    """

    def __init__(self, resync: Callable[[], int], period_seconds: float) -> None:
        self._resync = resync
        self._period = period_seconds
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            LOGGER.debug("Resync loop already running")
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="resync-loop", daemon=True)
        self._thread.start()
        LOGGER.info("Resync loop started", extra={"period_seconds": self._period})

    def stop(self) -> None:
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=5)
        LOGGER.info("Resync loop stopped")

    def run_once(self) -> None:
        try:
            delivered = self._resync()
            LOGGER.debug("Resync delivered requests", extra={"delivered": delivered})
        except Exception as exc:
            LOGGER.exception("Resync pass failed", exc_info=exc)

    def _run(self) -> None:
        while not self._stop_event.wait(self._period):
            self.run_once()


__all__ = ["ResyncLoop"]
