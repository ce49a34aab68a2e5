"""structlog setup and log context for the API and the worker.

Every event carries whatever context is bound for the current request or
task:
- request_id: set by RequestIDMiddleware, forwarded to the tasks a request arms
- path / method: API requests only
- task_name / task_id / page_id: Celery tasks only

Usage:
    from pagegen.logging import configure_logging, get_logger

    configure_logging()  # once per process
    logger = get_logger(__name__)
    logger.info("queue.enqueued", page_id=42)

In a task:
    configure_task_logging(request_id=request_id, task_name="process_queued_page",
                           task_id=self.request.id, page_id=page_id)
    ...
    clear_task_context()
"""

import logging
import sys
from contextvars import ContextVar
from typing import Any

import structlog

_CONTEXT: dict[str, ContextVar[Any]] = {
    name: ContextVar(name, default=None)
    for name in ("request_id", "path", "method", "task_name", "task_id", "page_id")
}

_REQUEST_KEYS = ("request_id", "path", "method")
_TASK_KEYS = ("request_id", "task_name", "task_id", "page_id")

# Loggers that are chatty at INFO
_QUIET_LOGGERS = ("httpx", "httpcore", "uvicorn.access", "PIL", "celery.app.trace")


def add_request_context(logger: logging.Logger, method_name: str, event_dict: dict) -> dict:
    """structlog processor: add bound context; explicit event keys win."""
    for key, var in _CONTEXT.items():
        value = var.get()
        if value is not None:
            event_dict.setdefault(key, value)
    return event_dict


def configure_logging(json_format: bool = True, level: int = logging.INFO) -> None:
    """Route structlog and stdlib logging through one formatter on stdout.

    Args:
        json_format: JSON lines when True, the dev console renderer otherwise.
        level: Root log level.
    """
    shared_processors = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        add_request_context,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    structlog.configure(
        processors=[*shared_processors, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    renderer = (
        structlog.processors.JSONRenderer() if json_format else structlog.dev.ConsoleRenderer()
    )
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def _reset(keys: tuple[str, ...]) -> None:
    for key in keys:
        _CONTEXT[key].set(None)


def set_request_context(
    request_id: str | None,
    path: str | None = None,
    method: str | None = None,
) -> None:
    """Bind request context. path and method are left untouched when None."""
    _CONTEXT["request_id"].set(request_id)
    if path is not None:
        _CONTEXT["path"].set(path)
    if method is not None:
        _CONTEXT["method"].set(method)


def clear_request_context() -> None:
    _reset(_REQUEST_KEYS)


def get_request_id() -> str | None:
    return _CONTEXT["request_id"].get()


def configure_task_logging(
    request_id: str | None = None,
    task_name: str | None = None,
    task_id: str | None = None,
    page_id: int | None = None,
) -> None:
    """Bind task context at the start of a Celery task.

    Args:
        request_id: Id of the request (or task) that armed this one.
        task_name: Registered task name.
        task_id: Celery task id (self.request.id).
        page_id: Page the task works on.
    """
    values = {
        "request_id": request_id,
        "task_name": task_name,
        "task_id": task_id,
        "page_id": page_id,
    }
    for key in _TASK_KEYS:
        _CONTEXT[key].set(values[key])


def clear_task_context() -> None:
    _reset(_TASK_KEYS)
