"""
observability/logger.py — structured logging for the scheduling engine

Every engine event is a dotted name plus key/value fields:

    placement.drop.start  task_id=…  start=2025-07-14T14:00:00  duration_minutes=45
    optimistic.rollback   state=timeline  operation=place  error_type=PersistenceError
    clock.tick            now=2025-07-14T09:31:00

Two context layers are merged into every line while they are bound:

    view           set by a view's mount(), cleared by its unmount()
    drag_task_id   set for the duration of one drop resolution

Fields may be passed as datetimes, dates, enums or Task objects; they are
rendered to plain JSON values before output, so call sites never format
them by hand.

Output goes to a rotating JSON file (<log_dir>/prodspace.log) and, when
logging.console_output is on, to stderr, so stdout stays free for the
rendered timeline.
"""

from __future__ import annotations

import logging
import logging.handlers
import sys
from datetime import date, datetime
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, MutableMapping, Optional

import structlog

if TYPE_CHECKING:
    from prodspace.config.settings import LoggingConfig

LOG_FILE = "prodspace.log"

_VIEW_KEYS = ("view", "user_id")
_DRAG_KEY = "drag_task_id"


# ─────────────────────────────────────────────────────────────────────────────
# Processors
# ─────────────────────────────────────────────────────────────────────────────

def render_domain_values(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Turn instants, enums and tasks into JSON-friendly values."""
    for key, value in list(event_dict.items()):
        if isinstance(value, datetime):
            event_dict[key] = value.isoformat(timespec="seconds")
        elif isinstance(value, date):
            event_dict[key] = value.isoformat()
        elif isinstance(value, Enum):
            event_dict[key] = value.value
        elif key == "task" and hasattr(value, "id"):
            event_dict.pop("task")
            event_dict.setdefault("task_id", value.id)
    return event_dict


# ─────────────────────────────────────────────────────────────────────────────
# Setup
# ─────────────────────────────────────────────────────────────────────────────

def setup_logging(config: Optional["LoggingConfig"] = None, level: Optional[str] = None) -> Path:
    """
    Configure structlog on top of stdlib logging from the `logging:` config
    section. level overrides config.level (the CLI's --log-level).

    Returns the path of the log file.
    """
    from prodspace.config.settings import LoggingConfig

    config = config or LoggingConfig()
    numeric_level = getattr(logging, (level or config.level).upper(), logging.INFO)

    log_dir = Path(config.log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILE

    handlers: list[logging.Handler] = [
        logging.handlers.RotatingFileHandler(
            filename=log_file,
            maxBytes=config.max_file_size_mb * 1024 * 1024,
            backupCount=config.backup_count,
            encoding="utf-8",
        )
    ]
    if config.console_output:
        handlers.append(logging.StreamHandler(sys.stderr))

    logging.basicConfig(format="%(message)s", level=numeric_level, handlers=handlers, force=True)

    pre_chain: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        render_domain_values,
        structlog.processors.format_exc_info,
    ]
    structlog.configure(
        processors=pre_chain + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    file_formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.JSONRenderer(),
        ],
        foreign_pre_chain=pre_chain,
    )
    handlers[0].setFormatter(file_formatter)
    if config.console_output:
        console_renderer = (
            structlog.processors.JSONRenderer()
            if config.json_format
            else structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())
        )
        handlers[1].setFormatter(structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                console_renderer,
            ],
            foreign_pre_chain=pre_chain,
        ))
    return log_file


def get_logger(name: str = "prodspace", **initial_values: Any) -> structlog.stdlib.BoundLogger:
    logger = structlog.get_logger(name)
    if initial_values:
        logger = logger.bind(**initial_values)
    return logger


# ─────────────────────────────────────────────────────────────────────────────
# Context
# ─────────────────────────────────────────────────────────────────────────────

def bind_view(view: str, user_id: Optional[str] = None) -> None:
    """Tag every following line in this async context with the mounted view."""
    values: dict[str, Any] = {"view": view}
    if user_id:
        values["user_id"] = user_id
    structlog.contextvars.bind_contextvars(**values)


def clear_view() -> None:
    structlog.contextvars.unbind_contextvars(*_VIEW_KEYS)


def bind_drag(task_id: Any) -> None:
    """Tag every line of the current drop resolution with the dragged task."""
    structlog.contextvars.bind_contextvars(**{_DRAG_KEY: task_id})


def clear_drag() -> None:
    structlog.contextvars.unbind_contextvars(_DRAG_KEY)
