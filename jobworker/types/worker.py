"""
Configuration and statistics types for workers and the supervisor.
"""

from typing import Any

from pydantic import BaseModel, Field

from jobworker.constants import (
    DEFAULT_HEALTH_CHECK_INTERVAL_MS,
    DEFAULT_MAX_RESTART_ATTEMPTS,
    DEFAULT_REDELIVERY_DELAY_SECONDS,
    DEFAULT_RESTART_GRACE_MS,
    WorkerState,
)


class WorkerConfig(BaseModel):
    """Configuration of a single queue worker."""

    queue_name: str = Field(min_length=1)
    concurrency: int = Field(default=1, ge=1)
    poll_interval_ms: int = Field(default=5_000, gt=0)
    max_retries: int = Field(default=3, ge=0)
    visibility_timeout_s: int = Field(default=300, ge=1)
    redelivery_delay_s: int = Field(default=DEFAULT_REDELIVERY_DELAY_SECONDS, ge=1)

    @property
    def poll_interval_seconds(self) -> float:
        return self.poll_interval_ms / 1000


class SupervisorConfig(BaseModel):
    """Configuration of the worker supervisor."""

    auto_start: bool = True
    health_check_interval_ms: int = Field(default=DEFAULT_HEALTH_CHECK_INTERVAL_MS, gt=0)
    restart_on_error: bool = True
    max_restart_attempts: int = Field(default=DEFAULT_MAX_RESTART_ATTEMPTS, ge=0)
    restart_grace_ms: int = Field(default=DEFAULT_RESTART_GRACE_MS, ge=0)

    @property
    def health_check_interval_seconds(self) -> float:
        return self.health_check_interval_ms / 1000

    @property
    def restart_grace_seconds(self) -> float:
        return self.restart_grace_ms / 1000


class WorkerStats(BaseModel):
    """Point-in-time statistics of a queue worker."""

    queue_name: str
    state: WorkerState
    is_running: bool
    registered_processors: list[str]
    in_flight: int
    config: WorkerConfig


class SupervisorStats(BaseModel):
    """Point-in-time statistics of the supervisor and its workers."""

    total_workers: int
    running_workers: int
    workers: list[WorkerStats]
    health_check_active: bool
    restart_attempts: dict[str, int]
    config: SupervisorConfig

    def to_log_fields(self) -> dict[str, Any]:
        """Compact representation for a single log line."""
        return {
            "total_workers": self.total_workers,
            "running_workers": self.running_workers,
            "stopped": [w.queue_name for w in self.workers if not w.is_running],
        }
