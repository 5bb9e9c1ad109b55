"""
Worker process entry point.

Builds one supervisor for the lifetime of the process, starts its workers, and
stops them gracefully on SIGTERM/SIGINT so in-flight jobs can finish instead
of being abandoned mid-lease.
"""

import asyncio
import logging
import signal
from collections.abc import Iterable

from jobworker.config import Settings, get_settings
from jobworker.db import close_db, get_engine, init_db
from jobworker.observability.logging import setup_logging
from jobworker.observability.metrics import setup_metrics
from jobworker.observability.tracing import instrument_sqlalchemy, setup_tracing
from jobworker.queue import InMemoryQueueService, PgmqQueueService, QueueService
from jobworker.types.worker import SupervisorConfig
from jobworker.worker.handlers import builtin_processors
from jobworker.worker.presets import worker_configs
from jobworker.worker.processors import ProcessorRegistry
from jobworker.worker.supervisor import WorkerSupervisor

logger = logging.getLogger(__name__)


def bootstrap(
    queue: QueueService,
    settings: Settings | None = None,
    registries: Iterable[ProcessorRegistry] = (builtin_processors,),
) -> WorkerSupervisor:
    """
    Construct the supervisor of this process.

    Creates one worker per enabled queue and registers every processor
    declared in ``registries`` on the worker of its queue.

    Args:
        queue: Queue service the workers consume from.
        settings: Application settings. Defaults to the environment.
        registries: Processor declarations to apply.

    Returns:
        The supervisor, with no worker started yet.
    """
    settings = settings or get_settings()

    supervisor = WorkerSupervisor(
        queue,
        SupervisorConfig(
            auto_start=settings.supervisor_auto_start,
            health_check_interval_ms=settings.supervisor_health_check_interval_ms,
            restart_on_error=settings.supervisor_restart_on_error,
            max_restart_attempts=settings.supervisor_max_restart_attempts,
            restart_grace_ms=settings.supervisor_restart_grace_ms,
        ),
    )

    for config in worker_configs(settings.enabled_queues, settings.worker_redelivery_delay_seconds):
        supervisor.create_worker(config)

    for registry in registries:
        for queue_name, job_type, processor in registry:
            if queue_name not in supervisor:
                logger.warning(
                    "Skipping processor for disabled queue",
                    extra={"queue": queue_name, "job_type": job_type},
                )
                continue
            supervisor.register_processor(queue_name, job_type, processor)

    logger.info(
        "Supervisor initialized",
        extra={"workers": supervisor.worker_names},
    )
    return supervisor


async def create_queue_service(settings: Settings) -> QueueService:
    """Create the queue service selected by ``settings.queue_backend``."""
    if settings.queue_backend == "memory":
        logger.warning("Using in-memory queue backend, messages are not durable")
        return InMemoryQueueService()

    if settings.queue_backend != "pgmq":
        raise ValueError(f"Unknown queue backend: {settings.queue_backend}")

    await init_db()
    if settings.otel_enabled:
        instrument_sqlalchemy(get_engine())
    return PgmqQueueService(archive_on_ack=settings.pgmq_archive_on_ack)


async def run_async() -> None:
    """Run the worker process asynchronously."""
    settings = get_settings()

    setup_logging()
    setup_metrics(settings.prometheus_port if settings.metrics_enabled else None)
    if settings.otel_enabled:
        setup_tracing()

    queue = await create_queue_service(settings)
    supervisor = bootstrap(queue, settings)

    for queue_name in supervisor.worker_names:
        await queue.create_queue(queue_name)

    # Handle shutdown signals
    shutdown = asyncio.Event()
    loop = asyncio.get_running_loop()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, _on_signal, sig, shutdown)

    try:
        if supervisor.config.auto_start:
            await supervisor.start_all()
        else:
            logger.info("Auto start disabled, workers idle until started")
        await shutdown.wait()
    finally:
        await supervisor.stop_all()
        await close_db()


def _on_signal(sig: signal.Signals, shutdown: asyncio.Event) -> None:
    logger.info("Received shutdown signal, stopping workers", extra={"signal": sig.name})
    shutdown.set()


def run() -> None:
    """Run the worker process."""
    asyncio.run(run_async())


if __name__ == "__main__":
    run()
