"""Logging for the depaudit CLI: structlog rendered through stdlib logging on stderr."""

from __future__ import annotations

import logging
import os
import sys

import structlog

# Libraries that log every request at INFO.
_QUIET_LOGGERS = ("httpx", "httpcore")


def setup_logging(verbose: bool = False) -> None:
    """Configure structlog and the ``depaudit`` stdlib logger.

    Environment variables:
        DEPAUDIT_LOG_LEVEL   level when not ``verbose`` (default: INFO)
        DEPAUDIT_LOG_FORMAT  console | json (default: console)

    Records go to stderr so ``audit --json`` output on stdout stays parseable.
    Calling this again replaces the previous handler.
    """
    level = "DEBUG" if verbose else os.environ.get("DEPAUDIT_LOG_LEVEL", "INFO").upper()
    as_json = os.environ.get("DEPAUDIT_LOG_FORMAT", "console").lower() == "json"

    pre_chain: list[structlog.types.Processor] = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
    ]
    if as_json:
        pre_chain.append(structlog.processors.TimeStamper(fmt="iso", utc=True))
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[
            *pre_chain,
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )
    logger = logging.getLogger("depaudit")
    logger.handlers[:] = [handler]
    logger.setLevel(level)
    logger.propagate = False
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def is_debug_enabled(name: str = "depaudit") -> bool:
    """True when DEBUG records for *name* would be emitted."""
    return logging.getLogger(name).isEnabledFor(logging.DEBUG)
