"""
Queue worker: polls one named queue and settles every delivery.

The worker leases messages from the queue service, dispatches them to the
processor registered for their job type, and acks or nacks them according to
the outcome. Delivery is at-least-once: a message whose lease expires before it
is settled is redelivered by the queue service.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any

from jobworker.constants import SPAN_PROCESS_JOB, JobOutcome, WorkerState
from jobworker.observability.logging import log_context
from jobworker.observability.metrics import MetricsCollector, get_metrics
from jobworker.observability.tracing import get_tracer
from jobworker.queue.base import QueueService
from jobworker.types.job import Delivery
from jobworker.types.worker import WorkerConfig, WorkerStats
from jobworker.worker.processors import JobProcessor, maybe_await

logger = logging.getLogger(__name__)

# Type alias for the timer used between poll cycles
Sleep = Callable[[float], Awaitable[Any]]


class QueueWorker:
    """
    Worker bound to a single queue.

    Features:
    - Fixed-delay polling: wait ``poll_interval``, run one cycle, repeat
    - ``concurrency`` fetch-and-process attempts per cycle, isolated from each other
    - Permanent failures (unroutable, invalid, exhausted) are acked and logged
    - Transient failures are nacked with a flat redelivery delay
    - Graceful stop: the in-flight cycle drains before the worker is stopped
    """

    def __init__(
        self,
        config: WorkerConfig,
        queue: QueueService,
        sleep: Sleep = asyncio.sleep,
        metrics: MetricsCollector | None = None,
    ):
        """
        Initialize the worker.

        Args:
            config: Queue name, concurrency and retry settings.
            queue: The queue service to consume from.
            sleep: Timer awaited between poll cycles.
            metrics: Metrics collector. Defaults to the process collector.
        """
        self.config = config
        self._queue = queue
        self._sleep = sleep
        self._metrics = metrics or get_metrics()

        self._processors: dict[str, JobProcessor] = {}
        self._state = WorkerState.STOPPED
        self._poll_task: asyncio.Task | None = None
        self._idle = False
        self._in_flight = 0

    @property
    def name(self) -> str:
        return self.config.queue_name

    @property
    def state(self) -> WorkerState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is WorkerState.RUNNING

    def register_processor(self, job_type: str, processor: JobProcessor) -> None:
        """
        Register the processor for a job type.

        A later registration for the same job type replaces the earlier one.
        """
        if job_type in self._processors:
            logger.warning(
                "Replacing processor",
                extra={"queue": self.name, "job_type": job_type},
            )
        self._processors[job_type] = processor
        logger.info(
            "Processor registered",
            extra={"queue": self.name, "job_type": job_type},
        )

    async def start(self) -> None:
        """Start polling. Calling start on a running worker does nothing."""
        if self._state is WorkerState.RUNNING:
            logger.warning("Worker already running", extra={"queue": self.name})
            return
        if self._state is not WorkerState.STOPPED:
            raise RuntimeError(f"Worker {self.name} is {self._state}, cannot start")

        self._set_state(WorkerState.STARTING)
        self._poll_task = asyncio.create_task(self._poll_loop(), name=f"poll-{self.name}")
        self._poll_task.add_done_callback(self._on_poll_loop_done)
        self._set_state(WorkerState.RUNNING)

        logger.info(
            "Worker started",
            extra={
                "queue": self.name,
                "concurrency": self.config.concurrency,
                "poll_interval_ms": self.config.poll_interval_ms,
            },
        )

    async def stop(self) -> None:
        """
        Stop polling.

        Cancels the wait for the next cycle; a cycle already in progress runs
        to completion before this returns.
        """
        if self._state is WorkerState.RUNNING:
            self._set_state(WorkerState.STOPPING)
            if self._poll_task is not None and self._idle:
                self._poll_task.cancel()
        elif self._state is not WorkerState.STOPPING:
            return

        task = self._poll_task
        if task is not None:
            if self._in_flight:
                logger.info(
                    f"Waiting for {self._in_flight} jobs to complete",
                    extra={"queue": self.name},
                )
            await asyncio.wait({task})

        self._poll_task = None
        self._set_state(WorkerState.STOPPED)
        logger.info("Worker stopped", extra={"queue": self.name})

    async def run_once(self) -> None:
        """
        Run a single poll cycle.

        Starts ``concurrency`` fetch-and-process attempts and returns once all
        of them have settled, successfully or not.
        """
        results = await asyncio.gather(
            *(self._process_next_job() for _ in range(self.config.concurrency)),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, Exception):
                logger.error(
                    "Unhandled error in job slot",
                    exc_info=result,
                    extra={"queue": self.name},
                )
        self._metrics.record_poll_cycle(self.name)

    def get_stats(self) -> WorkerStats:
        return WorkerStats(
            queue_name=self.name,
            state=self._state,
            is_running=self.is_running,
            registered_processors=list(self._processors),
            in_flight=self._in_flight,
            config=self.config,
        )

    async def _poll_loop(self) -> None:
        while self._state is WorkerState.RUNNING:
            self._idle = True
            try:
                await self._sleep(self.config.poll_interval_seconds)
            finally:
                self._idle = False

            if self._state is not WorkerState.RUNNING:
                break

            try:
                await self.run_once()
            except Exception as e:
                logger.exception(
                    f"Error in poll cycle: {e}",
                    extra={"queue": self.name},
                )

    def _on_poll_loop_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.critical(
                "Worker poll loop crashed",
                exc_info=exc,
                extra={"queue": self.name},
            )
            self._poll_task = None
            self._set_state(WorkerState.STOPPED)

    async def _process_next_job(self) -> None:
        """Fetch one message and process it. Never raises."""
        try:
            delivery = await self._queue.dequeue(self.name, self.config.visibility_timeout_s)
        except Exception:
            logger.exception("Failed to dequeue job", extra={"queue": self.name})
            return

        if delivery is None:
            return

        self._metrics.record_dequeued(self.name)
        self._in_flight += 1
        try:
            with log_context(
                queue=self.name,
                message_id=delivery.message_id,
                job_type=delivery.job_type,
            ):
                await self._handle_delivery(delivery)
        except Exception:
            # Settlement failed; the lease expires and the message is redelivered
            logger.exception(
                "Failed to settle job",
                extra={"queue": self.name, "message_id": delivery.message_id},
            )
        finally:
            self._in_flight -= 1

    async def _handle_delivery(self, delivery: Delivery) -> None:
        processor = self._processors.get(delivery.job_type)
        if processor is None:
            logger.error(
                "No processor registered for job type",
                extra={"job_type": delivery.job_type},
            )
            await self._drop(delivery, JobOutcome.DROPPED_UNROUTABLE)
            return

        if not await self._is_valid(processor, delivery):
            logger.error("Invalid job payload", extra={"job_type": delivery.job_type})
            await self._drop(delivery, JobOutcome.DROPPED_INVALID)
            return

        logger.info(
            "Processing job",
            extra={"delivery_count": delivery.delivery_count},
        )

        start_time = time.monotonic()
        try:
            with get_tracer().start_as_current_span(SPAN_PROCESS_JOB) as span:
                span.set_attribute("queue", self.name)
                span.set_attribute("job_type", delivery.job_type)
                span.set_attribute("message_id", delivery.message_id)
                span.set_attribute("delivery_count", delivery.delivery_count)

                result = await processor.process(delivery.payload)

        except Exception as e:
            self._record_duration(delivery, "failed", start_time)
            await self._run_hook(processor, "on_error", e, delivery.payload)
            await self._settle_failure(delivery, e)
            return

        self._record_duration(delivery, "succeeded", start_time)
        await self._run_hook(processor, "on_success", result, delivery.payload)
        await self._queue.ack(self.name, delivery.message_id)
        self._metrics.record_settled(self.name, delivery.job_type, JobOutcome.SUCCEEDED)

        logger.info(
            "Job completed successfully",
            extra={"duration": f"{time.monotonic() - start_time:.2f}s"},
        )

    async def _is_valid(self, processor: JobProcessor, delivery: Delivery) -> bool:
        validate = getattr(processor, "validate", None)
        if validate is None:
            return True
        try:
            return bool(await maybe_await(validate(delivery.payload)))
        except Exception:
            logger.exception("Payload validation raised")
            return False

    async def _run_hook(self, processor: JobProcessor, hook_name: str, *args: Any) -> None:
        """Run an optional hook; its failure never changes how the job is settled."""
        hook = getattr(processor, hook_name, None)
        if hook is None:
            return
        try:
            await maybe_await(hook(*args))
        except Exception:
            logger.exception("Processor hook failed", extra={"hook": hook_name})
            self._metrics.record_hook_failure(self.name, hook_name)

    async def _settle_failure(self, delivery: Delivery, error: Exception) -> None:
        if delivery.is_final_attempt(self.config.max_retries):
            await self._drop(delivery, JobOutcome.DROPPED_EXHAUSTED)
            logger.error(
                "Job dropped after maximum attempts",
                exc_info=error,
                extra={
                    "attempts": delivery.delivery_count,
                    "max_retries": self.config.max_retries,
                },
            )
            return

        await self._queue.nack(
            self.name,
            delivery.message_id,
            self.config.redelivery_delay_s,
        )
        self._metrics.record_settled(self.name, delivery.job_type, JobOutcome.RETRIED)
        logger.warning(
            "Job failed, scheduled for retry",
            extra={
                "attempts": delivery.delivery_count,
                "redelivery_delay_s": self.config.redelivery_delay_s,
                "error": str(error),
            },
        )

    async def _drop(self, delivery: Delivery, outcome: JobOutcome) -> None:
        await self._queue.ack(self.name, delivery.message_id)
        self._metrics.record_settled(self.name, delivery.job_type, outcome)

    def _record_duration(self, delivery: Delivery, status: str, start_time: float) -> None:
        self._metrics.record_job_duration(
            self.name,
            delivery.job_type,
            status,
            time.monotonic() - start_time,
        )

    def _set_state(self, state: WorkerState) -> None:
        self._state = state
        self._metrics.set_worker_running(self.name, state is WorkerState.RUNNING)
