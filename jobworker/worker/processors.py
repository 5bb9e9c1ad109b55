"""
Job processor contract and registry.

A processor handles one job type. Only ``process`` is required; ``validate``,
``on_success`` and ``on_error`` are optional and may be sync or async.
Processors must be idempotent - a job may be processed more than once when a
lease expires mid-execution.
"""

import inspect
import logging
from collections.abc import Awaitable, Callable, Iterator
from typing import Any, Protocol, runtime_checkable

logger = logging.getLogger(__name__)

# Type alias for processor functions
ProcessFunction = Callable[[dict[str, Any]], Awaitable[Any]]


@runtime_checkable
class JobProcessor(Protocol):
    """
    Contract a caller implements per job type.

    Optional hooks, looked up by name when present:

    - ``validate(payload) -> bool``: False drops the job without processing.
    - ``on_success(result, payload)``: runs after ``process`` succeeds.
    - ``on_error(error, payload)``: runs after ``process`` raises.
    """

    async def process(self, payload: dict[str, Any]) -> Any:
        ...


class FunctionProcessor:
    """
    Adapts a plain async function into a JobProcessor.

    Example:
        async def send_receipt(payload):
            ...

        worker.register_processor("send_receipt", FunctionProcessor(send_receipt))
    """

    def __init__(
        self,
        func: ProcessFunction,
        validate: Callable[[dict[str, Any]], bool] | None = None,
    ):
        self._func = func
        if validate is not None:
            self.validate = validate

    async def process(self, payload: dict[str, Any]) -> Any:
        return await self._func(payload)

    def __repr__(self) -> str:
        return f"FunctionProcessor({self._func.__qualname__})"


async def maybe_await(value: Any) -> Any:
    """Resolve values returned by hooks that may be sync or async."""
    if inspect.isawaitable(value):
        return await value
    return value


class ProcessorRegistry:
    """
    Declarations of which processor handles which job type on which queue.

    Business modules declare their processors here; the bootstrap applies the
    registry to the supervisor once its workers exist.
    """

    def __init__(self) -> None:
        self._entries: dict[tuple[str, str], JobProcessor] = {}

    def register(self, queue_name: str, job_type: str, processor: JobProcessor) -> None:
        """
        Register ``processor`` for ``job_type`` on ``queue_name``.

        A later registration for the same pair replaces the earlier one.
        """
        key = (queue_name, job_type)
        if key in self._entries:
            logger.warning(
                "Replacing registered processor",
                extra={"queue": queue_name, "job_type": job_type},
            )
        self._entries[key] = processor

    def processor(
        self,
        queue_name: str,
        job_type: str,
        validate: Callable[[dict[str, Any]], bool] | None = None,
    ) -> Callable[[ProcessFunction], ProcessFunction]:
        """
        Decorator to register an async function as a processor.

        Args:
            queue_name: The queue whose worker runs the function.
            job_type: The job type the function processes.
            validate: Optional payload check.

        Returns:
            Decorator function.

        Example:
            @registry.processor("notificacoes", "notificacao")
            async def send_notification(payload):
                ...
        """
        def decorator(func: ProcessFunction) -> ProcessFunction:
            self.register(queue_name, job_type, FunctionProcessor(func, validate=validate))
            return func
        return decorator

    def get(self, queue_name: str, job_type: str) -> JobProcessor | None:
        return self._entries.get((queue_name, job_type))

    def __iter__(self) -> Iterator[tuple[str, str, JobProcessor]]:
        for (queue_name, job_type), processor in self._entries.items():
            yield queue_name, job_type, processor

    def __len__(self) -> int:
        return len(self._entries)
