"""
In-process queue service.

Implements the visibility-timeout protocol against a clock function, which
makes redelivery timing reproducible in tests (pass a manual clock) and lets
the worker process run without a database (``QUEUE_BACKEND=memory``).
"""

import itertools
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

from jobworker.queue.base import QueueService
from jobworker.types.job import Delivery, JobEnvelope

logger = logging.getLogger(__name__)


@dataclass
class _StoredMessage:
    message_id: int
    envelope: JobEnvelope
    visible_at: float
    read_count: int = 0


class InMemoryQueueService(QueueService):
    """
    Queue service backed by dictionaries.

    Visible messages are leased in enqueue order. Settling an unknown or
    already settled message id is a no-op.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._queues: dict[str, dict[int, _StoredMessage]] = {}
        self._ids = itertools.count(1)

    async def create_queue(self, queue_name: str) -> None:
        self._queues.setdefault(queue_name, {})

    async def enqueue(self, queue_name: str, envelope: JobEnvelope) -> int:
        message_id = next(self._ids)
        self._queue(queue_name)[message_id] = _StoredMessage(
            message_id=message_id,
            envelope=envelope,
            visible_at=self._clock(),
        )
        return message_id

    async def dequeue(self, queue_name: str, visibility_timeout: int) -> Delivery | None:
        now = self._clock()
        for message in self._queue(queue_name).values():
            if message.visible_at <= now:
                message.visible_at = now + visibility_timeout
                message.read_count += 1
                return Delivery(
                    message_id=message.message_id,
                    envelope=message.envelope,
                    delivery_count=message.read_count,
                )
        return None

    async def ack(self, queue_name: str, message_id: int) -> None:
        if self._queue(queue_name).pop(message_id, None) is None:
            logger.debug(
                "Ack for unknown message",
                extra={"queue": queue_name, "message_id": message_id},
            )

    async def nack(self, queue_name: str, message_id: int, redelivery_delay: int) -> None:
        message = self._queue(queue_name).get(message_id)
        if message is None:
            logger.debug(
                "Nack for unknown message",
                extra={"queue": queue_name, "message_id": message_id},
            )
            return
        message.visible_at = self._clock() + redelivery_delay

    def depth(self, queue_name: str) -> int:
        """Number of messages in a queue, leased or not."""
        return len(self._queues.get(queue_name, {}))

    def _queue(self, queue_name: str) -> dict[int, _StoredMessage]:
        return self._queues.setdefault(queue_name, {})
