"""
Pytest configuration and shared fixtures.
"""

import asyncio
import os
from collections.abc import AsyncGenerator
from typing import Any

import pytest
import pytest_asyncio
from prometheus_client import CollectorRegistry

from jobworker.observability.metrics import MetricsCollector
from jobworker.queue.memory import InMemoryQueueService
from jobworker.types.job import JobEnvelope
from jobworker.types.worker import SupervisorConfig, WorkerConfig
from jobworker.worker.queue_worker import QueueWorker
from jobworker.worker.supervisor import WorkerSupervisor

# Test database URL - only the pgmq integration tests use it
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL")

TEST_QUEUE = "calculo_fiscal"


class ManualClock:
    """Clock for the in-memory queue that only moves when told to."""

    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ControlledSleep:
    """
    Timer double for workers and the supervisor.

    Zero-length sleeps only yield to the event loop. Any other sleep blocks
    until ``release()`` (or ``fail()``) is called.
    """

    def __init__(self, events: list[tuple[Any, ...]] | None = None):
        self.calls: list[float] = []
        self.events = events if events is not None else []
        self._waiters: list[asyncio.Future] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        self.events.append(("sleep", seconds))
        if seconds <= 0:
            await asyncio.sleep(0)
            return
        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        await waiter

    @property
    def waiting(self) -> int:
        return sum(1 for waiter in self._waiters if not waiter.done())

    def release(self) -> None:
        waiters, self._waiters = self._waiters, []
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(None)

    def fail(self, error: Exception) -> None:
        waiters, self._waiters = self._waiters, []
        for waiter in waiters:
            if not waiter.done():
                waiter.set_exception(error)


class RecordingQueue(InMemoryQueueService):
    """In-memory queue that records every settlement."""

    def __init__(self, clock: ManualClock, events: list[tuple[Any, ...]]):
        super().__init__(clock=clock)
        self.events = events
        self.acks: list[int] = []
        self.nacks: list[tuple[int, int]] = []
        self.dequeue_calls = 0

    async def dequeue(self, queue_name: str, visibility_timeout: int):
        self.dequeue_calls += 1
        return await super().dequeue(queue_name, visibility_timeout)

    async def ack(self, queue_name: str, message_id: int) -> None:
        self.acks.append(message_id)
        self.events.append(("ack", message_id))
        await super().ack(queue_name, message_id)

    async def nack(self, queue_name: str, message_id: int, redelivery_delay: int) -> None:
        self.nacks.append((message_id, redelivery_delay))
        self.events.append(("nack", message_id))
        await super().nack(queue_name, message_id, redelivery_delay)


class StubProcessor:
    """Processor that records its calls and fails on demand."""

    def __init__(self, error: Exception | None = None, result: Any = "ok"):
        self.error = error
        self.result = result
        self.payloads: list[dict[str, Any]] = []

    async def process(self, payload: dict[str, Any]) -> Any:
        self.payloads.append(payload)
        if self.error is not None:
            raise self.error
        return self.result


class BlockingProcessor:
    """Processor that waits on an event before finishing."""

    def __init__(self):
        self.started = asyncio.Event()
        self.finish = asyncio.Event()
        self.active = 0
        self.max_active = 0

    async def process(self, payload: dict[str, Any]) -> dict[str, Any]:
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        self.started.set()
        try:
            await self.finish.wait()
        finally:
            self.active -= 1
        return payload


async def run_until(predicate, attempts: int = 200) -> None:
    """Yield to the event loop until ``predicate()`` holds."""
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition not reached")


@pytest.fixture
def events() -> list[tuple[Any, ...]]:
    """Ordered log shared by the queue and timer doubles."""
    return []


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def queue(clock: ManualClock, events: list[tuple[Any, ...]]) -> RecordingQueue:
    return RecordingQueue(clock, events)


@pytest.fixture
def metrics() -> MetricsCollector:
    """Metrics collector on a private registry."""
    return MetricsCollector(registry=CollectorRegistry())


@pytest.fixture
def worker_sleep(events: list[tuple[Any, ...]]) -> ControlledSleep:
    return ControlledSleep(events)


@pytest.fixture
def supervisor_sleep() -> ControlledSleep:
    return ControlledSleep()


@pytest.fixture
def worker_config() -> WorkerConfig:
    return WorkerConfig(
        queue_name=TEST_QUEUE,
        concurrency=1,
        poll_interval_ms=1_000,
        max_retries=3,
        visibility_timeout_s=30,
    )


@pytest_asyncio.fixture
async def worker(
    worker_config: WorkerConfig,
    queue: RecordingQueue,
    worker_sleep: ControlledSleep,
    metrics: MetricsCollector,
) -> AsyncGenerator[QueueWorker]:
    worker = QueueWorker(worker_config, queue, sleep=worker_sleep, metrics=metrics)

    yield worker

    await worker.stop()


@pytest_asyncio.fixture
async def supervisor(
    queue: RecordingQueue,
    supervisor_sleep: ControlledSleep,
    metrics: MetricsCollector,
) -> AsyncGenerator[WorkerSupervisor]:
    supervisor = WorkerSupervisor(
        queue,
        SupervisorConfig(
            health_check_interval_ms=30_000,
            max_restart_attempts=3,
            restart_grace_ms=0,
        ),
        sleep=supervisor_sleep,
        metrics=metrics,
    )

    yield supervisor

    await supervisor.stop_all()


@pytest.fixture
def make_envelope():
    """Build envelopes with a default job type."""
    def _make(job_type: str = "calculo_fiscal", **payload: Any) -> JobEnvelope:
        return JobEnvelope(job_type=job_type, payload=payload)
    return _make
