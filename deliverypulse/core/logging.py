"""Log setup for collection runs: structlog events rendered through stdlib handlers."""

from __future__ import annotations

import logging
import logging.config
import os

import structlog

# Transport libraries log every request at INFO
_QUIET_LOGGERS = ("httpx", "httpcore")


def _build_renderer(log_format: str) -> structlog.types.Processor:
    if log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=False)


def setup_logging(level: str | None = None) -> None:
    """Route ``deliverypulse.*`` events to stderr, leaving stdout to the summary.

    *level* comes from ``--debug``; without it ``DELIVERYPULSE_LOG_LEVEL``
    applies (INFO by default). ``DELIVERYPULSE_LOG_FORMAT=json`` switches to
    one JSON object per line for log shippers.
    """
    log_level = (level or os.environ.get("DELIVERYPULSE_LOG_LEVEL") or "INFO").upper()
    renderer = _build_renderer(os.environ.get("DELIVERYPULSE_LOG_FORMAT", "console").lower())

    pre_chain: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.format_exc_info,
    ]

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    loggers: dict[str, dict[str, str]] = {"deliverypulse": {"level": log_level}}
    loggers.update({name: {"level": "WARNING"} for name in _QUIET_LOGGERS})

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "events": {
                    "()": structlog.stdlib.ProcessorFormatter,
                    "foreign_pre_chain": pre_chain,
                    "processors": [
                        structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                        renderer,
                    ],
                },
            },
            "handlers": {
                "stderr": {
                    "class": "logging.StreamHandler",
                    "stream": "ext://sys.stderr",
                    "formatter": "events",
                },
            },
            "root": {"handlers": ["stderr"], "level": log_level},
            "loggers": loggers,
        }
    )
