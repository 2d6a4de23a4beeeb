"""Structured logging via structlog.

Both structlog loggers and plain ``logging.getLogger(__name__)`` loggers
(used throughout the runner package) end up in one stdout handler whose
ProcessorFormatter runs the same processor chain, so every line carries
a level, an ISO timestamp and the current request / scan IDs.

  debug=True   coloured ConsoleRenderer for local development
  debug=False  JSONRenderer, one object per line

``request_id`` comes from app.core.middleware and ``scan_id`` from the
orchestrator's ContextVar in runner.engine.types.
"""

from __future__ import annotations

import logging
import sys

import structlog

from app.core.middleware import get_request_id
from runner.engine.types import get_scan_id

_HANDLER_NAME = "scan-service-stdout"

# Third-party loggers that are noisy at DEBUG.
_QUIET_LOGGERS = ("httpx", "httpcore", "aiosqlite", "sqlalchemy.engine")


def _inject_context_vars(
    logger: logging.Logger,
    method: str,
    event_dict: dict,
) -> dict:
    """Structlog processor: add request_id and scan_id when they are set."""
    for key, value in (("request_id", get_request_id()), ("scan_id", get_scan_id())):
        if value:
            event_dict[key] = value
    return event_dict


def _shared_processors() -> list:
    return [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        _inject_context_vars,
        structlog.processors.StackInfoRenderer(),
    ]


def configure_structlog(debug: bool = True) -> None:
    """Configure structlog and the stdlib root logger.

    Called from create_app(); calling it again replaces the handler it
    installed previously instead of adding a second one.
    """
    renderer = structlog.dev.ConsoleRenderer() if debug else structlog.processors.JSONRenderer()
    shared = _shared_processors()

    structlog.configure(
        processors=shared + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.format_exc_info,
            renderer,
        ],
    )
    handler = logging.StreamHandler(sys.stdout)
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    for existing in list(root.handlers):
        if existing.get_name() == _HANDLER_NAME:
            root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(logging.DEBUG if debug else logging.INFO)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
