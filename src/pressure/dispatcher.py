from __future__ import annotations

import logging
import threading
import time
from typing import Optional

from shared.schemas.pressure_schema import PressureMode, PressureRequest, PressureSummary
from src.pressure.burner.cpu_burner import CpuBurner
from src.pressure.config import Settings
from src.pressure.errors import ResourceCeilingExceeded, ValidationError
from src.pressure.ledger.memory_ledger import MemoryLedger
from src.pressure.shutdown.coordinator import ShutdownCoordinator
from src.pressure.stats import ProcessStats

logger = logging.getLogger(__name__)


class PressureDispatcher:
    def __init__(
        self,
        ledger: MemoryLedger,
        burner: CpuBurner,
        coordinator: ShutdownCoordinator,
        settings: Settings,
        stats: ProcessStats,
    ):
        self.ledger = ledger
        self.burner = burner
        self.coordinator = coordinator
        self.settings = settings
        self.stats = stats
        # bounds how many burns compete for the GIL with the event loop serving /health
        self._slots = threading.BoundedSemaphore(settings.max_concurrent_pressure)

    def build_request(
        self,
        mode: Optional[str] = None,
        duration_ms: Optional[int] = None,
        chunk_count: Optional[int] = None,
    ) -> PressureRequest:
        try:
            parsed = PressureMode((mode or PressureMode.COMBINED.value).lower())
        except ValueError:
            modes = ", ".join(m.value for m in PressureMode)
            raise ValidationError(f"mode must be one of: {modes}")

        return PressureRequest(
            mode=parsed,
            duration_ms=self.settings.default_duration_ms if duration_ms is None else duration_ms,
            chunk_count=self.settings.default_chunks if chunk_count is None else chunk_count,
        )

    def validate(self, req: PressureRequest) -> None:
        if req.duration_ms < 0:
            raise ValidationError(f"duration must not be negative, got {req.duration_ms}")
        if req.duration_ms > self.settings.max_duration_ms:
            raise ResourceCeilingExceeded("duration", req.duration_ms, self.settings.max_duration_ms)
        if req.chunk_count < 0:
            raise ValidationError(f"chunks must not be negative, got {req.chunk_count}")
        if req.chunk_count > self.settings.max_chunks:
            raise ResourceCeilingExceeded("chunks", req.chunk_count, self.settings.max_chunks)

    def dispatch(self, req: PressureRequest) -> PressureSummary:
        """Apply the requested pressure on the calling thread, then summarize it.

        Waits for a free pressure slot first; admission is checked once the slot is held.
        """
        self.validate(req)

        with self._slots, self.coordinator.track():
            logger.info(
                "Stress test initiated: mode=%s duration=%dms chunks=%d",
                req.mode.value, req.duration_ms, req.chunk_count,
            )
            start = time.monotonic_ns()
            burn = None
            if req.mode.uses_memory:
                self.ledger.grow(self.settings.chunk_bytes, req.chunk_count)
            if req.mode.uses_cpu:
                burn = self.burner.run(req.duration_ms, self.settings.yield_every_ops)
            elapsed_ms = (time.monotonic_ns() - start) // 1_000_000

        return PressureSummary(
            mode=req.mode,
            duration_ms=elapsed_ms,
            chunk_count=req.chunk_count if req.mode.uses_memory else 0,
            reserved_bytes=self.ledger.total_bytes(),
            process=self.stats.snapshot(),
            burn=burn,
        )
