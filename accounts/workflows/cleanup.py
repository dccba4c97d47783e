"""Periodic cleanup of dead tokens and overdue accounts.

Runs the four purges in a fixed order. The first failure aborts the rest
of the run and is reported; the job is idempotent, so the next scheduled
tick doubles as the retry.
"""
import logging
from dataclasses import dataclass
from datetime import timedelta

from temporalio import activity, workflow
from temporalio.common import RetryPolicy

with workflow.unsafe.imports_passed_through():
    from accounts.config import Settings
    from accounts.core.logging import trace_logger
    from accounts.core.reporting import capture_error
    from accounts.tokens.store import AuthTokenStore, SingleUseTokenStore
    from accounts.users.store import UserStore
    from accounts.workflows.dispatcher import task_options
    from accounts.workflows.envelope import TASK_CLEANUP, TaskMetadata, unwrap_payload

logger = logging.getLogger(__name__)

CLEANUP_SCHEDULE_ID = "accounts-cleanup"


@dataclass
class CleanupStores:
    auth_tokens: AuthTokenStore
    password_resets: SingleUseTokenStore
    email_verifications: SingleUseTokenStore
    users: UserStore


@dataclass
class CleanupResult:
    auth_tokens_deleted: int = 0
    password_resets_deleted: int = 0
    email_verifications_deleted: int = 0
    users_deleted: int = 0


async def run_cleanup(stores: CleanupStores, metadata: TaskMetadata | None = None) -> CleanupResult:
    metadata = metadata or unwrap_payload(None)[0]
    log = trace_logger(logger, metadata.log_fields())
    log.info("starting token cleanup")

    result = CleanupResult()
    steps = (
        ("auth_tokens_deleted", "auth tokens", stores.auth_tokens.purge_expired_or_consumed),
        ("password_resets_deleted", "password reset tokens", stores.password_resets.purge_expired_or_consumed),
        ("email_verifications_deleted", "email verification tokens", stores.email_verifications.purge_expired_or_consumed),
        ("users_deleted", "scheduled users", stores.users.purge_overdue),
    )
    for attr, label, purge in steps:
        try:
            setattr(result, attr, await purge())
        except Exception:
            log.error("failed to clean up %s", label)
            raise

    log.info(
        "cleanup completed: auth_tokens=%d password_resets=%d email_verifications=%d users=%d",
        result.auth_tokens_deleted,
        result.password_resets_deleted,
        result.email_verifications_deleted,
        result.users_deleted,
    )
    return result


class CleanupActivities:
    def __init__(self, stores: CleanupStores, reporter=capture_error) -> None:
        self._stores = stores
        self._reporter = reporter

    @activity.defn(name="cleanup_expired")
    async def cleanup_expired(self) -> CleanupResult:
        metadata = unwrap_payload(None)[0]
        try:
            return await run_cleanup(self._stores, metadata)
        except Exception as exc:
            self._reporter(exc, {"task_type": TASK_CLEANUP, **metadata.log_fields()})
            raise


@workflow.defn(name=TASK_CLEANUP)
class CleanupWorkflow:
    @workflow.run
    async def run(self) -> CleanupResult:
        options = task_options(TASK_CLEANUP)
        return await workflow.execute_activity_method(
            CleanupActivities.cleanup_expired,
            start_to_close_timeout=options.timeout,
            retry_policy=RetryPolicy(maximum_attempts=options.max_retry + 1),
        )


async def ensure_cleanup_schedule(client, config: Settings) -> None:
    """Create the periodic cleanup schedule unless it already exists."""
    from temporalio.client import (
        Schedule,
        ScheduleActionStartWorkflow,
        ScheduleAlreadyRunningError,
        ScheduleIntervalSpec,
        ScheduleOverlapPolicy,
        SchedulePolicy,
        ScheduleSpec,
    )

    try:
        await client.create_schedule(
            CLEANUP_SCHEDULE_ID,
            Schedule(
                action=ScheduleActionStartWorkflow(
                    CleanupWorkflow.run,
                    id=TASK_CLEANUP,
                    task_queue=config.temporal_task_queue,
                ),
                spec=ScheduleSpec(
                    intervals=[ScheduleIntervalSpec(every=timedelta(seconds=config.cleanup_interval_seconds))]
                ),
                policy=SchedulePolicy(overlap=ScheduleOverlapPolicy.SKIP),
            ),
        )
    except ScheduleAlreadyRunningError:
        logger.info("cleanup schedule %s already exists", CLEANUP_SCHEDULE_ID)
        return
    logger.info("registered cleanup schedule every %ss", config.cleanup_interval_seconds)
