"""Email task: render a named template and hand it to the configured sender.

The activity raising is the "retry me" signal; Temporal retries it up to
``email_max_retry`` times within the retention window.
"""
import logging
from dataclasses import dataclass, field
from typing import Any

from temporalio import activity, workflow
from temporalio.common import RetryPolicy
from temporalio.exceptions import ApplicationError

with workflow.unsafe.imports_passed_through():
    from jinja2 import TemplateError

    from accounts.core.logging import trace_logger
    from accounts.emails.base import EmailSender, Message
    from accounts.emails.templates import EmailTemplates
    from accounts.workflows.dispatcher import task_options
    from accounts.workflows.envelope import TASK_EMAIL, TaskEnvelope, unwrap_payload

logger = logging.getLogger(__name__)


@dataclass
class EmailPayload:
    to: str
    subject: str
    template: str
    data: dict[str, Any] = field(default_factory=dict)


class EmailActivities:
    def __init__(self, sender: EmailSender, templates: EmailTemplates | None = None) -> None:
        self._sender = sender
        self._templates = templates or EmailTemplates()

    @activity.defn(name="send_email")
    async def send_email(self, envelope: TaskEnvelope) -> None:
        metadata, data = unwrap_payload(envelope)
        log = trace_logger(logger, metadata.log_fields())
        try:
            payload = EmailPayload(**data)
            html = self._templates.render(payload.template, payload.subject, payload.data)
        except (TypeError, TemplateError) as exc:
            # A broken payload or template will not fix itself on retry.
            log.error("cannot render email: %s", exc)
            raise ApplicationError(f"cannot render email: {exc}", non_retryable=True) from exc

        log.info("sending %s email to %s", payload.template, payload.to)
        try:
            await self._sender.send(
                Message(to=payload.to, subject=payload.subject, body=html, is_html=True)
            )
        except Exception:
            log.exception("failed to send %s email to %s", payload.template, payload.to)
            raise
        log.info("%s email sent to %s via %s", payload.template, payload.to, self._sender.sender_name)


@workflow.defn(name=TASK_EMAIL)
class SendEmailWorkflow:
    @workflow.run
    async def run(self, envelope: TaskEnvelope) -> None:
        options = task_options(TASK_EMAIL)
        await workflow.execute_activity_method(
            EmailActivities.send_email,
            envelope,
            start_to_close_timeout=options.timeout,
            retry_policy=RetryPolicy(maximum_attempts=options.max_retry + 1),
        )
