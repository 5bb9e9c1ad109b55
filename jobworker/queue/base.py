"""
Queue service contract consumed by the workers.

The queue service owns storage and visibility: a dequeued message stays
invisible to other consumers until it is acked, nacked, or its visibility
timeout expires, after which it is redelivered automatically.
"""

from abc import ABC, abstractmethod

from jobworker.types.job import Delivery, JobEnvelope


class QueueService(ABC):
    """Enqueue/dequeue/ack/nack primitives of a message-queue service."""

    @abstractmethod
    async def create_queue(self, queue_name: str) -> None:
        """Create ``queue_name`` if it does not exist yet."""

    @abstractmethod
    async def enqueue(self, queue_name: str, envelope: JobEnvelope) -> int:
        """Store a new message and return its id."""

    @abstractmethod
    async def dequeue(self, queue_name: str, visibility_timeout: int) -> Delivery | None:
        """
        Lease the next visible message for ``visibility_timeout`` seconds.

        Returns ``None`` promptly when no message is available.
        """

    @abstractmethod
    async def ack(self, queue_name: str, message_id: int) -> None:
        """Permanently remove a message."""

    @abstractmethod
    async def nack(self, queue_name: str, message_id: int, redelivery_delay: int) -> None:
        """Return a message to the queue, invisible for ``redelivery_delay`` seconds."""
