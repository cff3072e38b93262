"""Logging configuration for testnet-deploy.

Structured logs go to stderr so progress lines on stdout stay readable in
CI job output. Under CI (``CI`` set in the environment) logs default to JSON
for log collection; interactive runs get the console renderer.

The deployment target is bound once per run with :func:`bind_target` and
attached to every event from then on.
"""

import logging
import os
import sys
from collections.abc import Mapping

import structlog


def wants_json(environ: Mapping[str, str] | None = None) -> bool:
    """Whether logs should default to JSON (running under CI)."""
    environ = os.environ if environ is None else environ
    return environ.get("CI", "").strip().lower() not in ("", "0", "false", "no")


def configure_logging(level: str = "info", json_output: bool | None = None) -> None:
    """Configure logging for the application.

    Args:
        level: Log level (debug, info, warning, error, critical)
        json_output: Force JSON (True) or console (False) output; None picks
            JSON under CI.
    """
    if json_output is None:
        json_output = wants_json()
    log_level = getattr(logging, level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(log_level)

    logging.basicConfig(
        level=log_level,
        handlers=[handler],
        format="%(message)s",
        force=True,
    )

    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]

    if json_output:
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def bind_target(name: str, version: str) -> None:
    """Attach the release being deployed to all subsequent log events."""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(target=name, version=version)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structlog logger instance."""
    return structlog.get_logger(name)
