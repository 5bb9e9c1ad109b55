"""
Worker supervisor.

Owns the queue workers of a process as a unit: starts and stops them together,
checks their health on a fixed interval, and restarts workers that stopped
unexpectedly, up to a bounded number of attempts.
"""

import asyncio
import logging

from jobworker.observability.metrics import MetricsCollector, get_metrics
from jobworker.queue.base import QueueService
from jobworker.types.worker import SupervisorConfig, SupervisorStats, WorkerConfig
from jobworker.worker.processors import JobProcessor
from jobworker.worker.queue_worker import QueueWorker, Sleep

logger = logging.getLogger(__name__)


class WorkerNotFoundError(KeyError):
    """No worker is registered for the given queue."""


class DuplicateWorkerError(ValueError):
    """A worker is already registered for the given queue."""


class WorkerSupervisor:
    """
    Supervisor for a set of queue workers, one per queue.

    Features:
    - All-settled start/stop: one failing worker never blocks the others
    - Periodic health check on its own timer
    - Bounded automatic restarts per worker; the counter resets after a
      successful restart
    """

    def __init__(
        self,
        queue: QueueService,
        config: SupervisorConfig | None = None,
        sleep: Sleep = asyncio.sleep,
        metrics: MetricsCollector | None = None,
    ):
        """
        Initialize the supervisor.

        Args:
            queue: Queue service shared by the workers it creates.
            config: Health check and restart settings.
            sleep: Timer used for the health check interval and restart grace.
            metrics: Metrics collector. Defaults to the process collector.
        """
        self.config = config or SupervisorConfig()
        self._queue = queue
        self._sleep = sleep
        self._metrics = metrics or get_metrics()

        self._workers: dict[str, QueueWorker] = {}
        self._restart_attempts: dict[str, int] = {}
        self._abandoned: set[str] = set()
        self._health_check_task: asyncio.Task | None = None

    def __contains__(self, queue_name: object) -> bool:
        return queue_name in self._workers

    @property
    def worker_names(self) -> list[str]:
        return list(self._workers)

    @property
    def restart_attempts(self) -> dict[str, int]:
        return dict(self._restart_attempts)

    @property
    def health_check_active(self) -> bool:
        return self._health_check_task is not None and not self._health_check_task.done()

    def add_worker(self, worker: QueueWorker) -> QueueWorker:
        """Register an existing worker under its queue name."""
        if worker.name in self._workers:
            raise DuplicateWorkerError(f"Worker for queue {worker.name} already registered")
        self._workers[worker.name] = worker
        return worker

    def create_worker(self, config: WorkerConfig, sleep: Sleep = asyncio.sleep) -> QueueWorker:
        """Create a worker for ``config.queue_name`` and register it."""
        worker = QueueWorker(config, self._queue, sleep=sleep, metrics=self._metrics)
        return self.add_worker(worker)

    def get_worker(self, queue_name: str) -> QueueWorker:
        try:
            return self._workers[queue_name]
        except KeyError:
            raise WorkerNotFoundError(queue_name) from None

    def register_processor(self, queue_name: str, job_type: str, processor: JobProcessor) -> None:
        """Register a processor for ``job_type`` on the worker of ``queue_name``."""
        self.get_worker(queue_name).register_processor(job_type, processor)

    async def start_all(self) -> None:
        """Start every worker, then start the health check."""
        logger.info("Starting all workers", extra={"count": len(self._workers)})

        results = await asyncio.gather(
            *(self._start_worker(worker) for worker in self._workers.values()),
            return_exceptions=True,
        )
        failed = [
            name
            for name, result in zip(self._workers, results)
            if isinstance(result, Exception)
        ]

        self._start_health_check()

        logger.info(
            "Worker startup finished",
            extra={**self.get_stats().to_log_fields(), "failed": failed},
        )

    async def stop_all(self) -> None:
        """Stop the health check, then stop every worker, draining in-flight jobs."""
        logger.info("Stopping all workers", extra={"count": len(self._workers)})

        await self._stop_health_check()

        await asyncio.gather(
            *(self._stop_worker(worker) for worker in self._workers.values()),
            return_exceptions=True,
        )

        logger.info("All workers stopped")

    async def restart_worker(self, queue_name: str) -> None:
        """
        Stop a worker, wait the grace period, and start it again.

        Resets the worker's restart counter when the restart succeeds.

        Raises:
            WorkerNotFoundError: If no worker is registered for the queue.
        """
        worker = self.get_worker(queue_name)
        logger.info("Restarting worker", extra={"queue": queue_name})

        try:
            await worker.stop()
            await self._sleep(self.config.restart_grace_seconds)
            await worker.start()
        except Exception:
            logger.exception("Failed to restart worker", extra={"queue": queue_name})
            raise

        self._restart_attempts.pop(queue_name, None)
        self._abandoned.discard(queue_name)
        logger.info("Worker restarted", extra={"queue": queue_name})

    async def check_health(self) -> None:
        """
        Run one health check pass.

        Restarts each worker that is not running while it has restart attempts
        left; once the attempts are exhausted the worker is left stopped.
        Restarts run concurrently, so a worker still draining a long job does
        not hold back the others.
        """
        if not self.config.restart_on_error:
            return

        unhealthy = [name for name, worker in self._workers.items() if not worker.is_running]
        await asyncio.gather(
            *(self._recover_worker(name) for name in unhealthy),
            return_exceptions=True,
        )

    async def _recover_worker(self, name: str) -> None:
        attempts = self._restart_attempts.get(name, 0)
        if attempts >= self.config.max_restart_attempts:
            if name not in self._abandoned:
                self._abandoned.add(name)
                logger.critical(
                    "Worker failed after maximum restart attempts, manual intervention required",
                    extra={"queue": name, "attempts": attempts},
                )
            return

        logger.warning(
            "Worker not running, attempting restart",
            extra={
                "queue": name,
                "attempt": attempts + 1,
                "max_attempts": self.config.max_restart_attempts,
            },
        )
        self._restart_attempts[name] = attempts + 1
        self._metrics.record_restart(name)

        try:
            await self.restart_worker(name)
        except Exception:
            logger.error("Automatic restart failed", extra={"queue": name})

    def get_stats(self) -> SupervisorStats:
        workers = [worker.get_stats() for worker in self._workers.values()]
        return SupervisorStats(
            total_workers=len(workers),
            running_workers=sum(1 for w in workers if w.is_running),
            workers=workers,
            health_check_active=self.health_check_active,
            restart_attempts=self.restart_attempts,
            config=self.config,
        )

    async def _start_worker(self, worker: QueueWorker) -> None:
        try:
            await worker.start()
        except Exception:
            logger.exception("Failed to start worker", extra={"queue": worker.name})
            raise

    async def _stop_worker(self, worker: QueueWorker) -> None:
        try:
            await worker.stop()
        except Exception:
            logger.exception("Failed to stop worker", extra={"queue": worker.name})
            raise

    def _start_health_check(self) -> None:
        if self.health_check_active:
            return
        self._health_check_task = asyncio.create_task(
            self._health_check_loop(), name="worker-health-check"
        )
        logger.info(
            "Health check started",
            extra={"interval_ms": self.config.health_check_interval_ms},
        )

    async def _stop_health_check(self) -> None:
        task = self._health_check_task
        if task is None:
            return
        self._health_check_task = None
        task.cancel()
        await asyncio.wait({task})

    async def _health_check_loop(self) -> None:
        while True:
            try:
                await self._sleep(self.config.health_check_interval_seconds)
                await self.check_health()
            except Exception as e:
                logger.exception(f"Error in health check loop: {e}")
