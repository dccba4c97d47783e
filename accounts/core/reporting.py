"""Error-reporting sink for failures nobody is waiting on (dispatch, cleanup)."""
import logging
from typing import Any, Mapping

import sentry_sdk

from accounts.config import Settings

logger = logging.getLogger(__name__)


def init_sentry(config: Settings, server_name: str) -> None:
    if not config.sentry_dsn:
        logger.info("sentry disabled: no DSN configured")
        return
    sentry_sdk.init(
        dsn=config.sentry_dsn,
        environment=config.environment,
        server_name=server_name,
        traces_sample_rate=config.sentry_traces_sample_rate,
        attach_stacktrace=True,
    )


def capture_error(exc: BaseException, extras: Mapping[str, Any] | None = None) -> None:
    extras = dict(extras or {})
    logger.error("captured error: %s", exc, exc_info=exc, extra={
        k: v for k, v in extras.items() if k in ("request_id", "user_id", "job_id")
    })
    with sentry_sdk.new_scope() as scope:
        for key, value in extras.items():
            scope.set_extra(key, value)
        sentry_sdk.capture_exception(exc)
