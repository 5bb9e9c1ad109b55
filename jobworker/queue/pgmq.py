"""
PostgreSQL queue service backed by the pgmq extension.

pgmq keeps each queue in its own table and implements visibility timeouts
natively: ``pgmq.read`` leases a message and increments its ``read_ct``,
``pgmq.set_vt`` pushes its visibility forward (our nack), and
``pgmq.delete``/``pgmq.archive`` remove it (our ack).
"""

import logging
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from typing import Any

from pydantic import ValidationError
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from jobworker.db.connection import get_session_context
from jobworker.queue.base import QueueService
from jobworker.types.job import Delivery, JobEnvelope

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]


class PgmqQueueService(QueueService):
    """
    Queue service using pgmq SQL functions.

    Every operation runs in its own short transaction, so a lease taken by
    ``dequeue`` is visible to other consumers as soon as the call returns.
    """

    def __init__(
        self,
        session_factory: SessionFactory = get_session_context,
        archive_on_ack: bool = False,
    ):
        """
        Initialize the queue service.

        Args:
            session_factory: Returns an async context manager yielding a
                session that commits on exit.
            archive_on_ack: Move acked messages to the pgmq archive table
                instead of deleting them.
        """
        self._session_factory = session_factory
        self._archive_on_ack = archive_on_ack

    async def create_queue(self, queue_name: str) -> None:
        async with self._session_factory() as session:
            await session.execute(
                text("SELECT pgmq.create(:queue_name)"),
                {"queue_name": queue_name},
            )
        logger.info("Queue ready", extra={"queue": queue_name})

    async def enqueue(self, queue_name: str, envelope: JobEnvelope) -> int:
        async with self._session_factory() as session:
            result = await session.execute(
                text("SELECT * FROM pgmq.send(:queue_name, CAST(:message AS jsonb))"),
                {"queue_name": queue_name, "message": envelope.model_dump_json()},
            )
            return int(result.scalar_one())

    async def dequeue(self, queue_name: str, visibility_timeout: int) -> Delivery | None:
        async with self._session_factory() as session:
            result = await session.execute(
                text(
                    "SELECT msg_id, read_ct, message "
                    "FROM pgmq.read(:queue_name, CAST(:vt AS integer), 1)"
                ),
                {"queue_name": queue_name, "vt": visibility_timeout},
            )
            row = result.first()

        if row is None:
            return None

        message_id, read_count, message = row
        try:
            envelope = _parse_envelope(message)
        except ValidationError as e:
            # A malformed body cannot become valid on redelivery
            logger.error(
                "Dropping malformed message",
                extra={"queue": queue_name, "message_id": message_id, "error": str(e)},
            )
            await self.ack(queue_name, message_id)
            return None

        return Delivery(
            message_id=int(message_id),
            envelope=envelope,
            delivery_count=int(read_count),
        )

    async def ack(self, queue_name: str, message_id: int) -> None:
        function = "pgmq.archive" if self._archive_on_ack else "pgmq.delete"
        async with self._session_factory() as session:
            await session.execute(
                text(f"SELECT {function}(:queue_name, CAST(:msg_id AS bigint))"),
                {"queue_name": queue_name, "msg_id": message_id},
            )

    async def nack(self, queue_name: str, message_id: int, redelivery_delay: int) -> None:
        async with self._session_factory() as session:
            await session.execute(
                text("SELECT pgmq.set_vt(:queue_name, CAST(:msg_id AS bigint), CAST(:vt AS integer))"),
                {"queue_name": queue_name, "msg_id": message_id, "vt": redelivery_delay},
            )


def _parse_envelope(message: Any) -> JobEnvelope:
    # asyncpg decodes jsonb through SQLAlchemy's codec; raw strings are still accepted
    if isinstance(message, (str, bytes)):
        return JobEnvelope.model_validate_json(message)
    return JobEnvelope.model_validate(message)
