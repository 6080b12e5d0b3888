# src/worldlog/core/logging.py
"""Structured logging configuration for worldlog.

Uses structlog for structured, key/value logging. Cache bookkeeping and
compaction byte lengths are emitted at DEBUG, purge progress at INFO.
Every worldlog event carries the emitting logger name and a "component"
field naming its subpackage (compaction, purge, storage, ...).

Architecture:
    This module configures BOTH structlog and stdlib logging to emit
    consistent output (JSON or console). ProcessorFormatter routes stdlib
    log records through structlog's processor chain, so SQLAlchemy and
    other stdlib loggers render the same way as worldlog's own events.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.stdlib import ProcessorFormatter

# Third-party loggers that are excessively verbose at DEBUG level.
# Kept at WARNING even when worldlog runs in DEBUG mode.
_NOISY_LOGGERS: tuple[str, ...] = (
    # SQLAlchemy - emits every statement and pool checkout
    "sqlalchemy",
    "sqlalchemy.engine",
    "sqlalchemy.pool",
    # Dynaconf - loader internals
    "dynaconf",
)


def _remove_internal_fields(
    logger: logging.Logger | None,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Remove internal structlog fields from output.

    ProcessorFormatter always adds _record and _from_structlog when
    processing records. KeyError here would indicate a broken integration.
    """
    del event_dict["_record"]
    del event_dict["_from_structlog"]
    return event_dict


def _add_component(
    logger: logging.Logger | None,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Tag worldlog events with the subsystem that emitted them.

    "worldlog.purge.queue" becomes component="purge", so purge progress and
    compaction bookkeeping can be filtered apart. Third-party records are
    left untagged.
    """
    package, _, rest = event_dict.get("logger", "").partition(".")
    if package == "worldlog" and rest:
        event_dict["component"] = rest.partition(".")[0]
    return event_dict


def configure_logging(
    *,
    json_output: bool = False,
    level: str = "INFO",
) -> None:
    """Configure structlog and stdlib logging for worldlog.

    Args:
        json_output: If True, output JSON. If False, human-readable.
        level: Log level (DEBUG, INFO, WARNING, ERROR).
    """
    log_level = getattr(logging, level.upper())

    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.stdlib.add_logger_name,
        _add_component,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
    ]

    if json_output:
        final_processors: list[Any] = [
            _remove_internal_fields,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        final_processors = [
            _remove_internal_fields,
            structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()),
        ]

    structlog.configure(
        processors=[*shared_processors, ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        # Disabled so tests can reconfigure logging without stale loggers
        cache_logger_on_first_use=False,
    )

    # Logs go to stderr so CLI output on stdout stays clean
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        ProcessorFormatter(
            processors=final_processors,
            foreign_pre_chain=shared_processors,
        )
    )

    root = logging.getLogger()
    root.handlers = []
    root.addHandler(handler)
    root.setLevel(log_level)

    # Never make noisy loggers less restrictive than the root level
    noisy_level = max(log_level, logging.WARNING)
    for logger_name in _NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(noisy_level)

