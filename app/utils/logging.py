"""structlog configuration shared by the whole service."""

from __future__ import annotations

import logging
import sys

import structlog

from app.config import settings

_configured = False


def setup_logging(level: str | None = None, json_logs: bool | None = None) -> None:
    """Configure stdlib logging and structlog processors.

    Safe to call more than once; later calls only adjust the level.
    """
    global _configured

    level_name = (level or settings.scn_log_level).upper()
    numeric = getattr(logging, level_name, logging.INFO)
    use_json = settings.scn_log_json if json_logs is None else json_logs

    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=numeric)
    logging.getLogger().setLevel(numeric)
    # paramiko is chatty at INFO (banner, auth attempts)
    logging.getLogger("paramiko").setLevel(max(numeric, logging.WARNING))

    if _configured:
        return

    renderer = (
        structlog.processors.JSONRenderer()
        if use_json
        else structlog.dev.ConsoleRenderer(colors=False)
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            renderer,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    _configured = True


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
