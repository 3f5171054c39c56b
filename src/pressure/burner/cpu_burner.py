import random
import time

from shared.schemas.pressure_schema import BurnResult
from src.pressure.errors import ResourceCeilingExceeded, ValidationError

NS_PER_MS = 1_000_000
COUNTER_MODULUS = 1e9


class CpuBurner:
    """
    Busy-computes for a bounded wall-clock duration.

    Every `yield_every_ops` operations the loop checks the clock and sleeps for
    `yield_delay_s` (0 by default), which releases the GIL so threads serving
    health checks keep running. A burn already in the loop is not preemptible.
    """

    def __init__(self, max_duration_ms: int, yield_delay_s: float = 0.0):
        self.max_duration_ms = max_duration_ms
        self.yield_delay_s = yield_delay_s

    def validate(self, duration_ms: int) -> None:
        if duration_ms < 0:
            raise ValidationError(f"duration must not be negative, got {duration_ms}")
        if duration_ms > self.max_duration_ms:
            raise ResourceCeilingExceeded("duration", duration_ms, self.max_duration_ms)

    def run(self, duration_ms: int, yield_every_ops: int) -> BurnResult:
        self.validate(duration_ms)
        if yield_every_ops <= 0:
            raise ValidationError(f"yield_every_ops must be positive, got {yield_every_ops}")

        rnd = random.random
        start = time.monotonic_ns()
        deadline = start + duration_ms * NS_PER_MS
        counter = 0.0

        now = start
        while now < deadline:
            for _ in range(yield_every_ops):
                counter += rnd() * rnd()
            counter %= COUNTER_MODULUS
            time.sleep(self.yield_delay_s)
            now = time.monotonic_ns()

        return BurnResult(elapsed_ms=(now - start) // NS_PER_MS, work_counter=counter)
