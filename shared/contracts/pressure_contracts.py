from pydantic import BaseModel, Field
from typing import Optional


class MemoryStats(BaseModel):
    heapUsedMB: float
    heapTotalMB: float


class HealthResponse(BaseModel):
    status: str = "healthy"
    state: str
    inFlight: int = 0
    timestamp: str                 # ISO 8601, UTC
    uptimeSeconds: float
    memory: MemoryStats


class StressResponse(BaseModel):
    message: str = "Stress test completed"
    mode: str
    durationMs: int
    chunks: int
    memoryUsedMB: float
    totalMemoryStoredMB: float
    reservedBytes: int
    result: Optional[int] = Field(None, description="rounded work counter, null for memory-only runs")


class ClearResponse(BaseModel):
    message: str = "Memory cleared"
    freedMB: float = Field(..., description="measured heap delta, an estimate")
    releasedMB: float = Field(..., description="bytes the ledger dropped")


class ErrorResponse(BaseModel):
    error: str
    message: str
