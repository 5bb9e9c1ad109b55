"""
Application constants.
Centralized location for all constant values used across the application.
"""

from enum import StrEnum


class WorkerState(StrEnum):
    """
    Queue worker lifecycle states.

    State transitions:
    - STOPPED -> STARTING (start called)
    - STARTING -> RUNNING (poll loop scheduled)
    - RUNNING -> STOPPING (stop called)
    - STOPPING -> STOPPED (in-flight batch drained)
    - RUNNING -> STOPPED (poll loop crashed)
    """

    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


class JobOutcome(StrEnum):
    """How a single delivery was settled against the queue service."""

    SUCCEEDED = "succeeded"
    RETRIED = "retried"
    DROPPED_UNROUTABLE = "dropped_unroutable"
    DROPPED_INVALID = "dropped_invalid"
    DROPPED_EXHAUSTED = "dropped_exhausted"


class QueueName(StrEnum):
    """Application queues consumed by the worker process."""

    CALCULO_FISCAL = "calculo_fiscal"
    PROCESSAMENTO_DOCUMENTOS = "processamento_documentos"
    NOTIFICACOES = "notificacoes"
    INTEGRACOES_EXTERNAS = "integracoes_externas"
    GERACAO_RELATORIOS = "geracao_relatorios"


# Default values
DEFAULT_REDELIVERY_DELAY_SECONDS = 60
DEFAULT_HEALTH_CHECK_INTERVAL_MS = 30_000
DEFAULT_MAX_RESTART_ATTEMPTS = 3
DEFAULT_RESTART_GRACE_MS = 1_000

# Metrics names
METRIC_MESSAGES_DEQUEUED = "queue_messages_dequeued_total"
METRIC_JOBS_SETTLED = "jobs_settled_total"
METRIC_JOB_DURATION = "job_duration_seconds"
METRIC_HOOK_FAILURES = "processor_hook_failures_total"
METRIC_POLL_CYCLES = "worker_poll_cycles_total"
METRIC_WORKER_RESTARTS = "worker_restarts_total"
METRIC_WORKERS_RUNNING = "workers_running"

# Trace span names
SPAN_PROCESS_JOB = "process_job"
