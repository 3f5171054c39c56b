from __future__ import annotations

import logging
import os
import threading
import time
from contextlib import contextmanager
from typing import Callable, Iterator, Optional

from shared.schemas.pressure_schema import ShutdownState
from src.pressure.errors import DrainRejection
from src.pressure.ledger.memory_ledger import MemoryLedger
from src.pressure.log_config import flush_logging

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FORCED = 1


class ShutdownCoordinator:
    """
    running --(begin_drain)--> draining --(server_stopped | deadline)--> terminated

    When the deadline fires the process is ended with exit_fn(1) regardless of
    in-flight work. That is an abrupt cancellation: a burn in progress is not
    interrupted and produces no partial response.
    """

    def __init__(
        self,
        ledger: MemoryLedger,
        drain_deadline_s: float,
        exit_fn: Callable[[int], None] = os._exit,
    ):
        self._ledger = ledger
        self._deadline_s = drain_deadline_s
        self._exit_fn = exit_fn
        self._cond = threading.Condition()
        self._state = ShutdownState.RUNNING
        self._in_flight = 0
        self._drained = False
        self._forced = False
        self._deadline_at: Optional[float] = None
        self._timer: Optional[threading.Timer] = None

    @property
    def state(self) -> ShutdownState:
        return self._state

    @property
    def in_flight(self) -> int:
        return self._in_flight

    @contextmanager
    def track(self) -> Iterator[None]:
        with self._cond:
            if self._state is not ShutdownState.RUNNING:
                raise DrainRejection()
            self._in_flight += 1
        try:
            yield
        finally:
            with self._cond:
                self._in_flight -= 1
                self._cond.notify_all()

    def begin_drain(self) -> None:
        with self._cond:
            if self._state is not ShutdownState.RUNNING:
                return
            self._state = ShutdownState.DRAINING
            self._deadline_at = time.monotonic() + self._deadline_s
            self._timer = threading.Timer(self._deadline_s, self._force_terminate)
            self._timer.daemon = True
            self._timer.start()
            in_flight = self._in_flight
        logger.info(
            "Termination requested, draining %d in-flight request(s), deadline %.1fs",
            in_flight, self._deadline_s,
        )

    def server_stopped(self) -> int:
        """Called once the HTTP server stopped listening. Returns the process exit code."""
        self.begin_drain()
        logger.info("HTTP server closed")

        with self._cond:
            remaining = max(0.0, self._deadline_at - time.monotonic())
            done = self._cond.wait_for(lambda: self._in_flight == 0 or self._forced, timeout=remaining)
            if self._forced or not done:
                return EXIT_FORCED
            self._drained = True
            if self._timer is not None:
                self._timer.cancel()

        self._ledger.release()
        with self._cond:
            self._state = ShutdownState.TERMINATED
        logger.info("Drain complete, exiting")
        return EXIT_OK

    def _force_terminate(self) -> None:
        with self._cond:
            if self._drained or self._forced:
                return
            self._forced = True
            self._state = ShutdownState.TERMINATED
            in_flight = self._in_flight
            self._cond.notify_all()
        logger.error("Forced shutdown after %.1fs drain deadline, %d request(s) abandoned", self._deadline_s, in_flight)
        flush_logging()
        self._exit_fn(EXIT_FORCED)
