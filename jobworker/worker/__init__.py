"""
Worker module.
Contains the queue worker, the supervisor, and the processor contract.
"""

from jobworker.worker.processors import FunctionProcessor, JobProcessor, ProcessorRegistry
from jobworker.worker.queue_worker import QueueWorker
from jobworker.worker.supervisor import (
    DuplicateWorkerError,
    WorkerNotFoundError,
    WorkerSupervisor,
)

__all__ = [
    "JobProcessor",
    "FunctionProcessor",
    "ProcessorRegistry",
    "QueueWorker",
    "WorkerSupervisor",
    "WorkerNotFoundError",
    "DuplicateWorkerError",
]
