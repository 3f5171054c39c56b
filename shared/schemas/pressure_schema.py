from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional
import time


class PressureMode(str, Enum):
    CPU = "cpu"
    MEMORY = "memory"
    COMBINED = "combined"

    @property
    def uses_memory(self) -> bool:
        return self in (PressureMode.MEMORY, PressureMode.COMBINED)

    @property
    def uses_cpu(self) -> bool:
        return self in (PressureMode.CPU, PressureMode.COMBINED)


class ShutdownState(str, Enum):
    RUNNING = "running"
    DRAINING = "draining"
    TERMINATED = "terminated"


@dataclass(frozen=True)
class PressureRequest:
    mode: PressureMode
    duration_ms: int
    chunk_count: int


@dataclass
class MemoryBlock:
    seq: int
    payload: bytearray
    created_at: float = field(default_factory=time.time)

    @property
    def size(self) -> int:
        return len(self.payload)


@dataclass(frozen=True)
class BurnResult:
    elapsed_ms: int
    # no meaning beyond "the loop ran"; kept finite by the burner
    work_counter: float


@dataclass(frozen=True)
class ReleaseResult:
    freed_bytes: int       # measured heap delta, best-effort
    released_bytes: int    # exact ledger bookkeeping
    released_blocks: int


@dataclass(frozen=True)
class ProcessSnapshot:
    heap_used_bytes: int
    heap_total_bytes: int
    uptime_seconds: float


@dataclass(frozen=True)
class PressureSummary:
    mode: PressureMode
    duration_ms: int
    chunk_count: int
    reserved_bytes: int
    process: ProcessSnapshot
    burn: Optional[BurnResult] = None
