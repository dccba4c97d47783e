import logging
import sys
from typing import Any, Mapping

TRACE_FIELDS = ("request_id", "user_id", "job_id")


class TraceFormatter(logging.Formatter):
    """Plain text line followed by any trace identifiers as key=value pairs."""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        pairs = [
            f"{name}={getattr(record, name)}"
            for name in TRACE_FIELDS
            if getattr(record, name, None)
        ]
        if pairs:
            line = f"{line} {' '.join(pairs)}"
        return line


class TraceLoggerAdapter(logging.LoggerAdapter):
    """Stamps request/user/job identifiers onto every record."""

    def process(self, msg: Any, kwargs: Any) -> tuple[Any, Any]:
        extra = dict(self.extra or {})
        extra.update(kwargs.get("extra") or {})
        kwargs["extra"] = extra
        return msg, kwargs


def trace_logger(logger: logging.Logger, fields: Mapping[str, Any]) -> TraceLoggerAdapter:
    return TraceLoggerAdapter(logger, {k: v for k, v in fields.items() if v})


def configure_logging(level: str = "INFO") -> None:
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        TraceFormatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
    )
    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(level.upper())
    # Temporal's SDK is chatty at INFO.
    logging.getLogger("temporalio").setLevel(logging.WARNING)
