from __future__ import annotations

import gc
import logging
import threading
from typing import Callable, List

from shared.schemas.pressure_schema import MemoryBlock, ReleaseResult
from src.pressure.errors import ResourceCeilingExceeded, ValidationError

logger = logging.getLogger(__name__)

PAGE_SIZE = 4096


def _stamp(block: bytearray, tag: bytes) -> None:
    # touch every page so the allocation is resident, not just reserved
    n = len(tag)
    for offset in range(0, len(block), PAGE_SIZE):
        end = min(offset + n, len(block))
        block[offset:end] = tag[: end - offset]


class MemoryLedger:
    """
    Owns the synthetic memory reservation of the process.

    Blocks are only appended by grow() and only dropped, all at once, by
    release(). Every mutation happens under one lock, so a reader never sees a
    half-grown or half-cleared ledger.
    """

    def __init__(self, measure: Callable[[], int], max_total_bytes: int = 0):
        self._measure = measure
        self._max_total_bytes = max_total_bytes
        self._lock = threading.Lock()
        self._blocks: List[MemoryBlock] = []
        self._total_bytes = 0
        self._next_seq = 0

    def grow(self, chunk_bytes: int, chunk_count: int) -> int:
        if chunk_bytes <= 0:
            raise ValidationError(f"chunk_bytes must be positive, got {chunk_bytes}")
        if chunk_count < 0:
            raise ValidationError(f"chunk_count must not be negative, got {chunk_count}")

        with self._lock:
            if chunk_count == 0:
                return self._total_bytes

            wanted = self._total_bytes + chunk_bytes * chunk_count
            if self._max_total_bytes and wanted > self._max_total_bytes:
                raise ResourceCeilingExceeded("reservation_bytes", wanted, self._max_total_bytes)

            for _ in range(chunk_count):
                seq = self._next_seq
                self._next_seq += 1
                payload = bytearray(chunk_bytes)
                _stamp(payload, f"stress-{seq}-".encode("ascii"))
                self._blocks.append(MemoryBlock(seq=seq, payload=payload))
                self._total_bytes += chunk_bytes

            total = self._total_bytes

        logger.debug("ledger grew by %d x %d bytes, total=%d", chunk_count, chunk_bytes, total)
        return total

    def release(self) -> ReleaseResult:
        """Drop every block. freed_bytes is a measured estimate, never negative."""
        with self._lock:
            blocks, self._blocks = self._blocks, []
            released_bytes, self._total_bytes = self._total_bytes, 0

        if not blocks:
            return ReleaseResult(freed_bytes=0, released_bytes=0, released_blocks=0)

        # the swapped-out list still holds the blocks here
        before = self._measure()
        released_blocks = len(blocks)
        del blocks
        gc.collect()
        after = self._measure()

        freed = max(0, before - after)
        logger.info(
            "ledger released %d blocks (%d bytes), measured %d bytes freed",
            released_blocks, released_bytes, freed,
        )
        return ReleaseResult(freed_bytes=freed, released_bytes=released_bytes, released_blocks=released_blocks)

    def total_bytes(self) -> int:
        return self._total_bytes

    def block_count(self) -> int:
        return len(self._blocks)
