"""
Worker settings for the application queues.

Long-running work (documents, reports) polls less often with fewer slots and
longer leases; notifications poll often with more slots and short leases.
"""

from jobworker.constants import QueueName
from jobworker.types.worker import WorkerConfig

WORKER_PRESETS: dict[QueueName, WorkerConfig] = {
    QueueName.CALCULO_FISCAL: WorkerConfig(
        queue_name=QueueName.CALCULO_FISCAL,
        concurrency=2,
        poll_interval_ms=5_000,
        max_retries=3,
        visibility_timeout_s=300,
    ),
    QueueName.PROCESSAMENTO_DOCUMENTOS: WorkerConfig(
        queue_name=QueueName.PROCESSAMENTO_DOCUMENTOS,
        concurrency=1,
        poll_interval_ms=10_000,
        max_retries=2,
        visibility_timeout_s=600,
    ),
    QueueName.NOTIFICACOES: WorkerConfig(
        queue_name=QueueName.NOTIFICACOES,
        concurrency=5,
        poll_interval_ms=2_000,
        max_retries=5,
        visibility_timeout_s=60,
    ),
    QueueName.INTEGRACOES_EXTERNAS: WorkerConfig(
        queue_name=QueueName.INTEGRACOES_EXTERNAS,
        concurrency=3,
        poll_interval_ms=5_000,
        max_retries=3,
        visibility_timeout_s=180,
    ),
    QueueName.GERACAO_RELATORIOS: WorkerConfig(
        queue_name=QueueName.GERACAO_RELATORIOS,
        concurrency=1,
        poll_interval_ms=15_000,
        max_retries=2,
        visibility_timeout_s=900,
    ),
}


def worker_configs(enabled_queues: list[str], redelivery_delay_s: int) -> list[WorkerConfig]:
    """
    Build the configs of the enabled queues.

    Raises:
        ValueError: If an enabled queue has no preset.
    """
    configs = []
    for queue_name in enabled_queues:
        try:
            preset = WORKER_PRESETS[QueueName(queue_name)]
        except ValueError:
            raise ValueError(f"Unknown queue: {queue_name}") from None
        configs.append(
            WorkerConfig.model_validate(
                {**preset.model_dump(), "redelivery_delay_s": redelivery_delay_s}
            )
        )
    return configs
