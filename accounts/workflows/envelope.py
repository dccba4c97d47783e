"""Task envelope: the payload plus tracing metadata for background jobs.

``job_id`` is always fresh; ``request_id`` and ``user_id`` are copied from
the caller's context at dispatch time so the worker can log against the
request that caused the job.
"""
import uuid
from dataclasses import asdict, dataclass, field
from typing import Any

from accounts.core.context import CallContext

TASK_EMAIL = "email.send"
TASK_CLEANUP = "cleanup.expired"


@dataclass
class TaskMetadata:
    job_id: str
    request_id: str | None = None
    user_id: str | None = None

    @classmethod
    def from_context(cls, ctx: CallContext) -> "TaskMetadata":
        return cls(job_id=str(uuid.uuid4()), request_id=ctx.request_id, user_id=ctx.user_id)

    def log_fields(self) -> dict[str, str]:
        return {k: v for k, v in asdict(self).items() if v}


@dataclass
class TaskEnvelope:
    metadata: TaskMetadata
    payload: dict[str, Any] = field(default_factory=dict)


def wrap_payload(metadata: TaskMetadata, payload: Any) -> TaskEnvelope:
    if hasattr(payload, "__dataclass_fields__"):
        payload = asdict(payload)
    return TaskEnvelope(metadata=metadata, payload=dict(payload or {}))


def unwrap_payload(envelope: TaskEnvelope | dict[str, Any] | None) -> tuple[TaskMetadata, dict[str, Any]]:
    """Accept an envelope or its JSON form; scheduled jobs may carry none."""
    if envelope is None:
        return TaskMetadata(job_id=str(uuid.uuid4())), {}
    if isinstance(envelope, TaskEnvelope):
        return envelope.metadata, envelope.payload
    meta = envelope.get("metadata") or {}
    metadata = TaskMetadata(
        job_id=meta.get("job_id") or str(uuid.uuid4()),
        request_id=meta.get("request_id"),
        user_id=meta.get("user_id"),
    )
    return metadata, dict(envelope.get("payload") or {})
