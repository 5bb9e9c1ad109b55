"""
Queue module.
Contains the queue service contract and its implementations.
"""

from jobworker.queue.base import QueueService
from jobworker.queue.memory import InMemoryQueueService
from jobworker.queue.pgmq import PgmqQueueService

__all__ = [
    "QueueService",
    "InMemoryQueueService",
    "PgmqQueueService",
]
