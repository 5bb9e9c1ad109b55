"""
Type definitions for the job workers.
Contains input/output type definitions for all functions, grouped by module.
"""

from jobworker.types.job import (
    Delivery,
    JobEnvelope,
)
from jobworker.types.worker import (
    SupervisorConfig,
    SupervisorStats,
    WorkerConfig,
    WorkerStats,
)

__all__ = [
    # Job types
    "JobEnvelope",
    "Delivery",
    # Worker types
    "WorkerConfig",
    "SupervisorConfig",
    "WorkerStats",
    "SupervisorStats",
]
