"""Fire-and-forget task dispatch onto Temporal.

Dispatch always happens after the owning transaction committed. A broker
that is down or slow must not turn a committed operation into a failure,
so enqueue errors go to the reporting sink and are otherwise swallowed.
"""
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Protocol

from accounts.config import Settings, settings
from accounts.core.context import CallContext
from accounts.core.logging import trace_logger
from accounts.core.reporting import capture_error
from accounts.workflows.envelope import TASK_CLEANUP, TASK_EMAIL, TaskMetadata, wrap_payload

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TaskOptions:
    max_retry: int
    timeout: timedelta
    retention: timedelta


def task_options(task_type: str, config: Settings = settings) -> TaskOptions:
    if task_type == TASK_EMAIL:
        return TaskOptions(
            max_retry=config.email_max_retry,
            timeout=timedelta(seconds=config.email_timeout_seconds),
            retention=timedelta(seconds=config.email_retention_seconds),
        )
    if task_type == TASK_CLEANUP:
        # No retries: the next scheduled tick is the retry.
        return TaskOptions(
            max_retry=0,
            timeout=timedelta(minutes=10),
            retention=timedelta(seconds=config.cleanup_interval_seconds),
        )
    raise ValueError(f"Unknown task type: {task_type}")


class WorkflowStarter(Protocol):
    """The slice of ``temporalio.client.Client`` the dispatcher needs."""

    async def start_workflow(self, workflow: Any, arg: Any, **kwargs: Any) -> Any:
        ...


class TaskDispatcher:
    def __init__(
        self,
        client: WorkflowStarter,
        config: Settings = settings,
        reporter=capture_error,
    ) -> None:
        self._client = client
        self._config = config
        self._reporter = reporter

    async def dispatch(self, ctx: CallContext, task_type: str, payload: Any) -> None:
        metadata = TaskMetadata.from_context(ctx)
        log = trace_logger(logger, metadata.log_fields())
        try:
            options = task_options(task_type, self._config)
            envelope = wrap_payload(metadata, payload)
            await self._client.start_workflow(
                task_type,
                envelope,
                id=f"{task_type}-{metadata.job_id}",
                task_queue=self._config.temporal_task_queue,
                execution_timeout=options.retention,
                rpc_timeout=self._rpc_timeout(ctx),
            )
        except Exception as exc:
            log.warning("failed to enqueue %s task", task_type)
            self._reporter(exc, {"task_type": task_type, **metadata.log_fields()})
            return
        log.info("enqueued %s task", task_type)

    def _rpc_timeout(self, ctx: CallContext) -> timedelta:
        seconds = self._config.dispatch_timeout_seconds
        remaining = ctx.remaining()
        # An exhausted caller deadline still gets a short attempt at the broker.
        if remaining is not None and remaining > 0:
            seconds = min(seconds, remaining)
        return timedelta(seconds=seconds)
