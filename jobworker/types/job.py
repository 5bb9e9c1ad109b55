"""
Job-related type definitions shared by the queue adapters and the worker.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator

# Keys of a flat producer message that belong to the envelope, not the payload
_ENVELOPE_KEYS = ("job_type", "type", "enqueued_at", "timestamp")


class JobEnvelope(BaseModel):
    """
    The typed unit of work stored in a queue.

    ``job_type`` selects the processor; ``payload`` is opaque to the worker.
    Producers may also publish flat messages such as
    ``{"type": "calculo_fiscal", "empresaId": "...", "timestamp": "..."}``;
    those are folded into the same shape.
    """

    model_config = ConfigDict(frozen=True)

    job_type: str = Field(
        min_length=1,
        validation_alias=AliasChoices("job_type", "type"),
    )
    payload: dict[str, Any] = Field(default_factory=dict)
    enqueued_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        validation_alias=AliasChoices("enqueued_at", "timestamp"),
    )

    @model_validator(mode="before")
    @classmethod
    def fold_flat_message(cls, data: Any) -> Any:
        """Move the fields of a flat message into ``payload``."""
        if not isinstance(data, dict) or "payload" in data:
            return data
        folded = {key: data[key] for key in _ENVELOPE_KEYS if key in data}
        folded["payload"] = {
            key: value for key, value in data.items() if key not in _ENVELOPE_KEYS
        }
        return folded


@dataclass
class Delivery:
    """
    A single dequeue result.

    Owned by the worker that dequeued it until it is acked or nacked.
    """

    message_id: int
    envelope: JobEnvelope
    delivery_count: int

    @property
    def job_type(self) -> str:
        return self.envelope.job_type

    @property
    def payload(self) -> dict[str, Any]:
        return self.envelope.payload

    def is_final_attempt(self, max_retries: int) -> bool:
        """Check whether a failure of this delivery exhausts the retries."""
        return self.delivery_count >= max_retries
