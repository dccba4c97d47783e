"""Temporal worker entrypoint. Run with: python -m accounts.workflows.worker"""
import asyncio
import logging

from temporalio.worker import Worker

from accounts.config import settings
from accounts.container import build_stores, connect_temporal
from accounts.core.logging import configure_logging
from accounts.core.reporting import init_sentry
from accounts.db.session import async_session_factory, engine
from accounts.emails.registry import get_sender
from accounts.workflows.cleanup import CleanupActivities, CleanupWorkflow, ensure_cleanup_schedule
from accounts.workflows.send_email import EmailActivities, SendEmailWorkflow

logger = logging.getLogger(__name__)


async def main() -> None:
    configure_logging(settings.log_level)
    init_sentry(settings, server_name="worker")

    client = await connect_temporal(settings)
    sender = get_sender(settings)
    stores = build_stores(async_session_factory)

    email_activities = EmailActivities(sender)
    cleanup_activities = CleanupActivities(stores.for_cleanup())

    worker = Worker(
        client,
        task_queue=settings.temporal_task_queue,
        workflows=[SendEmailWorkflow, CleanupWorkflow],
        activities=[
            email_activities.send_email,
            cleanup_activities.cleanup_expired,
        ],
    )

    await ensure_cleanup_schedule(client, settings)
    logger.info("worker started on task queue: %s", settings.temporal_task_queue)
    try:
        await worker.run()
    finally:
        await sender.close()
        await engine.dispose()
        logger.info("worker shutdown complete")


if __name__ == "__main__":
    asyncio.run(main())
