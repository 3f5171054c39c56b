import time

import psutil

from shared.schemas.pressure_schema import ProcessSnapshot

MB = 1024 * 1024


def to_mb(n_bytes: int) -> float:
    return round(n_bytes / MB, 2)


class ProcessStats:
    """Ambient statistics of the current process, read through psutil.

    heap used is the resident set size, heap total the virtual memory size.
    """

    def __init__(self, process: psutil.Process = None):
        self._process = process or psutil.Process()
        self._started_at = self._process.create_time()

    def heap_used(self) -> int:
        return self._process.memory_info().rss

    def snapshot(self) -> ProcessSnapshot:
        info = self._process.memory_info()
        return ProcessSnapshot(
            heap_used_bytes=info.rss,
            heap_total_bytes=info.vms,
            uptime_seconds=round(max(0.0, time.time() - self._started_at), 3),
        )
