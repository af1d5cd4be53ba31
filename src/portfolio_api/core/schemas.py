"""
Pydantic models for API boundaries and structured outputs.
Why: contract-first design; the metrics payload keeps a stable shape.
"""

from typing import Dict, List, Optional

from pydantic import BaseModel


class Uptime(BaseModel):
    ms: int
    formatted: str


class RequestCounts(BaseModel):
    total: int
    per_minute: int
    by_method: Dict[str, int]
    by_status_code: Dict[str, int]
    by_endpoint: Dict[str, int]


class ResponseTimeStats(BaseModel):
    min: int
    max: int
    avg: int
    median: int
    p95: int
    p99: int


class EndpointStats(BaseModel):
    endpoint: str
    count: int
    avg_response_time: int
    max_response_time: int
    p95: int


class Performance(BaseModel):
    response_time: ResponseTimeStats
    slowest_endpoints: List[EndpointStats]


class RecentError(BaseModel):
    type: str
    message: str
    endpoint: str
    timestamp: str
    stack: Optional[str] = None


class ErrorSummary(BaseModel):
    total: int
    rate: str
    by_type: Dict[str, int]
    recent: List[RecentError]


class SlowQueryOut(BaseModel):
    query: str
    duration_ms: int
    collection: str
    timestamp: str


class Database(BaseModel):
    slow_queries: List[SlowQueryOut]


class Memory(BaseModel):
    rss_mb: int
    vms_mb: int
    percent: float


class SystemInfo(BaseModel):
    platform: str
    python_version: str
    cpu_user_seconds: float
    cpu_system_seconds: float


class MetricsSnapshot(BaseModel):
    uptime: Uptime
    requests: RequestCounts
    performance: Performance
    errors: ErrorSummary
    database: Database
    memory: Memory
    system: SystemInfo


class MetricsResponse(BaseModel):
    success: bool = True
    metrics: MetricsSnapshot


class HealthResponse(BaseModel):
    success: bool = True
    status: str
    timestamp: str
    uptime: float
    memory: Memory


class VersionResponse(BaseModel):
    success: bool = True
    name: str
    version: str
    timestamp: str
