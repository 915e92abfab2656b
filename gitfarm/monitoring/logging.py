"""
Structured Logging Configuration

structlog on top of stdlib logging. Library modules log through
``logging.getLogger``; the runner and the HTTP layer use ``get_logger`` for
key/value events. Both end up in the same renderer, JSON in production.
"""

import logging
import re
import sys
import time
import uuid
from typing import Any, Dict

import structlog

from gitfarm.config import settings

# OAuth, PAT and fine-grained GitHub token formats
_TOKEN_RE = re.compile(r"\b(gh[oprsu]_[A-Za-z0-9]{10,}|github_pat_[A-Za-z0-9_]{20,})\b")

_QUIET_PATHS = ("/health", "/metrics")


def redact_tokens(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Mask GitHub access tokens in any string value of the event."""
    for key, value in event_dict.items():
        if isinstance(value, str) and ("gh" in value or "github_pat_" in value):
            event_dict[key] = _TOKEN_RE.sub("[REDACTED]", value)
    return event_dict


def setup_logging() -> None:
    """Configure structlog and route stdlib records through the same renderer."""
    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        redact_tokens,
    ]

    if settings.log_format == "json":
        renderer = structlog.processors.JSONRenderer()
        shared_processors.append(structlog.processors.format_exc_info)
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    structlog.configure(
        processors=shared_processors + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    ))
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(log_level)

    # httpx logs every request URL at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.INFO)
    logging.getLogger("celery").setLevel(logging.INFO)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


class RequestLoggingMiddleware:
    """
    ASGI middleware that binds a request id and the acting user to the
    logging context and emits one ``request_completed`` event per request.
    Probe and metrics scrapes are logged at debug level only.
    """

    def __init__(self, app):
        self.app = app
        self.logger = get_logger("gitfarm.requests")

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = dict(scope.get("headers") or [])
        request_id = headers.get(b"x-request-id", b"").decode() or uuid.uuid4().hex
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            user_id=headers.get(b"x-user-id", b"").decode() or None,
        )

        start_time = time.monotonic()
        status_code = 500

        async def send_wrapper(message):
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
                message["headers"] = list(message.get("headers", [])) + [
                    (b"x-request-id", request_id.encode())
                ]
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            path = scope["path"]
            log = self.logger.debug if path.startswith(_QUIET_PATHS) else self.logger.info
            log(
                "request_completed",
                method=scope["method"],
                path=path,
                status_code=status_code,
                duration_ms=round((time.monotonic() - start_time) * 1000, 2),
            )
            structlog.contextvars.clear_contextvars()
