from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Tuple


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


def _env_list(name: str, default: str) -> Tuple[str, ...]:
    raw = os.getenv(name, default)
    return tuple(x.strip() for x in raw.split(",") if x.strip())


@dataclass(frozen=True)
class Settings:
    host: str = "0.0.0.0"
    port: int = 8080
    app_env: str = "production"

    max_duration_ms: int = 10000
    default_duration_ms: int = 3000
    max_chunks: int = 100
    default_chunks: int = 10
    chunk_bytes: int = 1_000_000
    max_reservation_bytes: int = 0    # 0 = no total ceiling
    yield_every_ops: int = 10000
    max_concurrent_pressure: int = 8

    drain_deadline_ms: int = 30000

    log_level: str = "INFO"
    log_dir: str = ""
    cors_origins: Tuple[str, ...] = field(default_factory=lambda: ("*",))

    def __post_init__(self) -> None:
        if not 0 < self.port < 65536:
            raise ValueError(f"PORT out of range: {self.port}")
        if self.max_duration_ms < 0 or not 0 <= self.default_duration_ms <= self.max_duration_ms:
            raise ValueError("DEFAULT_DURATION_MS must be within [0, MAX_DURATION_MS]")
        if self.max_chunks < 0 or not 0 <= self.default_chunks <= self.max_chunks:
            raise ValueError("DEFAULT_CHUNKS must be within [0, MAX_CHUNKS]")
        if self.chunk_bytes <= 0:
            raise ValueError("CHUNK_BYTES must be positive")
        if self.max_reservation_bytes < 0:
            raise ValueError("MAX_RESERVATION_BYTES must not be negative")
        if self.yield_every_ops <= 0:
            raise ValueError("YIELD_EVERY_OPS must be positive")
        if self.max_concurrent_pressure <= 0:
            raise ValueError("MAX_CONCURRENT_PRESSURE must be positive")
        if self.drain_deadline_ms < 0:
            raise ValueError("DRAIN_DEADLINE_MS must not be negative")

    @property
    def development(self) -> bool:
        return self.app_env.lower() == "development"

    @property
    def drain_deadline_s(self) -> float:
        return self.drain_deadline_ms / 1000.0

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            host=os.getenv("HOST", "0.0.0.0"),
            port=_env_int("PORT", 8080),
            app_env=os.getenv("APP_ENV", "production"),
            max_duration_ms=_env_int("MAX_DURATION_MS", 10000),
            default_duration_ms=_env_int("DEFAULT_DURATION_MS", 3000),
            max_chunks=_env_int("MAX_CHUNKS", 100),
            default_chunks=_env_int("DEFAULT_CHUNKS", 10),
            chunk_bytes=_env_int("CHUNK_BYTES", 1_000_000),
            max_reservation_bytes=_env_int("MAX_RESERVATION_BYTES", 0),
            yield_every_ops=_env_int("YIELD_EVERY_OPS", 10000),
            max_concurrent_pressure=_env_int("MAX_CONCURRENT_PRESSURE", 8),
            drain_deadline_ms=_env_int("DRAIN_DEADLINE_MS", 30000),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            log_dir=os.getenv("LOG_DIR", ""),
            cors_origins=_env_list("CORS_ORIGINS", "*"),
        )
