"""
Recipe Manager Media Backend — Monitoring Service
==================================================

What:  In-process counters and gauges for requests and uploads.
Why:   Feeds /health/detailed and /metrics without an external metrics stack.
How:   Plain counters plus a bounded deque of recent response times.

Thread Safety:
    Updated from the event loop only (middleware and async services), so no
    locking. Counters are per-process; each worker reports its own numbers.
"""

import os
import platform
import time
from collections import deque
from datetime import datetime, timezone
from typing import Any, Deque, Dict

from app import __version__
from app.config import settings

# Average response time above which the service reports degraded
RESPONSE_TIME_THRESHOLD_MS = 2000


class MonitoringService:
    """Request and upload counters for a single process."""

    MAX_RESPONSE_TIMES = 1000

    def __init__(self) -> None:
        self.started_at = time.time()
        self.reset()

    def reset(self) -> None:
        self.request_count = 0
        self.error_count = 0
        self.response_times: Deque[float] = deque(maxlen=self.MAX_RESPONSE_TIMES)
        self.uploads_processed = 0
        self.uploads_failed = 0
        self.files_deleted = 0
        self.files_swept = 0

    def record_request(self, duration_ms: float, status_code: int) -> None:
        self.request_count += 1
        if status_code >= 400:
            self.error_count += 1
        self.response_times.append(duration_ms)

    def record_upload(self, success: bool) -> None:
        if success:
            self.uploads_processed += 1
        else:
            self.uploads_failed += 1

    def record_deleted(self, count: int) -> None:
        self.files_deleted += count

    def record_swept(self, count: int) -> None:
        self.files_swept += count

    @property
    def average_response_time(self) -> float:
        if not self.response_times:
            return 0.0
        return sum(self.response_times) / len(self.response_times)

    @property
    def error_rate(self) -> float:
        """Percentage of requests answered with status >= 400."""
        if not self.request_count:
            return 0.0
        return self.error_count / self.request_count * 100

    def uptime_seconds(self) -> float:
        return round(time.time() - self.started_at, 2)

    def get_metrics(self) -> Dict[str, Any]:
        return {
            "api": {
                "requestCount": self.request_count,
                "errorRate": round(self.error_rate, 2),
                "avgResponseTime": round(self.average_response_time, 2),
            },
            "uploads": {
                "processed": self.uploads_processed,
                "failed": self.uploads_failed,
                "filesDeleted": self.files_deleted,
                "filesSwept": self.files_swept,
            },
            "uptime": self.uptime_seconds(),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    def get_health_status(self, storage_writable: bool) -> Dict[str, Any]:
        """
        Aggregate health from individual checks.

        healthy:   every check passes
        degraded:  storage is writable but a softer check fails
        unhealthy: storage is not writable
        """
        checks = {
            "storage": storage_writable,
            "responseTime": self.average_response_time < RESPONSE_TIME_THRESHOLD_MS,
        }
        if not checks["storage"]:
            status = "unhealthy"
        elif all(checks.values()):
            status = "healthy"
        else:
            status = "degraded"
        return {"status": status, "checks": checks, "metrics": self.get_metrics()}

    def get_system_info(self) -> Dict[str, Any]:
        return {
            "python": {
                "version": platform.python_version(),
                "implementation": platform.python_implementation(),
                "platform": platform.system().lower(),
                "arch": platform.machine(),
            },
            "environment": settings.environment,
            "version": __version__,
            "pid": os.getpid(),
            "startTime": datetime.fromtimestamp(self.started_at, tz=timezone.utc).isoformat(),
        }
