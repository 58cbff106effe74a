"""structlog over stdlib logging, emitted from a background thread.

Every record (ours, uvicorn's, httpx's) is rendered by the same
ProcessorFormatter; handlers sit behind a QueueListener so the event
loop never blocks on stream I/O.
"""

from __future__ import annotations

import atexit
import copy
import logging
import logging.config
import queue
import sys
from datetime import datetime, timezone
from logging.handlers import QueueHandler, QueueListener
from typing import Any, Optional

import structlog

from streamfinder.infrastructure.config.schema import AppConfig

log = structlog.get_logger(__name__)

# Third-party loggers pinned regardless of the configured level.
_LIBRARY_LEVELS: dict[str, str] = {
    "httpx": "WARNING",
    "httpcore": "WARNING",
    "hpack": "WARNING",
}

_SECRET_FIELDS = frozenset({"password", "admin_password", "x_admin_pass"})
_MAX_URL_CHARS = 300

_listener: Optional[QueueListener] = None


def _redact_secrets(_: Any, __: Any, event_dict: dict[str, Any]) -> dict[str, Any]:
    for field in _SECRET_FIELDS.intersection(event_dict):
        event_dict[field] = "***"
    return event_dict


def _shorten_urls(_: Any, __: Any, event_dict: dict[str, Any]) -> dict[str, Any]:
    # data: and signed CDN URLs can run to kilobytes.
    for field in ("url", "embed_url", "target"):
        value = event_dict.get(field)
        if isinstance(value, str) and len(value) > _MAX_URL_CHARS:
            event_dict[field] = value[:_MAX_URL_CHARS] + "..."
    return event_dict


def _drop_color_message(_: Any, __: Any, event_dict: dict[str, Any]) -> dict[str, Any]:
    event_dict.pop("color_message", None)
    return event_dict


def _stamp_record_time(_: Any, __: Any, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Use the stdlib record's creation time, not the listener's format time."""
    record = event_dict.get("_record")
    if isinstance(record, logging.LogRecord):
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        event_dict["timestamp"] = created.isoformat().replace("+00:00", "Z")
    return event_dict


def _foreign_pre_chain() -> list[structlog.typing.Processor]:
    return [
        _drop_color_message,
        structlog.contextvars.merge_contextvars,
        _stamp_record_time,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
    ]


def _formatter_processors(config: AppConfig) -> list[structlog.typing.Processor]:
    renderer: structlog.typing.Processor
    if config.log_format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()
    return [structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer]


def build_logging_config(config: AppConfig) -> dict[str, Any]:
    """dictConfig for uvicorn's own startup, before the queue takes over."""
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "structlog": {
                "()": structlog.stdlib.ProcessorFormatter,
                "foreign_pre_chain": _foreign_pre_chain(),
                "processors": _formatter_processors(config),
            }
        },
        "handlers": {
            "default": {
                "class": "logging.StreamHandler",
                "formatter": "structlog",
                "stream": "ext://sys.stderr",
            },
            "access": {
                "class": "logging.StreamHandler",
                "formatter": "structlog",
                "stream": "ext://sys.stdout",
            },
        },
        "loggers": {
            "uvicorn": {
                "handlers": ["default"],
                "level": config.log_level,
                "propagate": False,
            },
            "uvicorn.error": {"level": config.log_level},
            "uvicorn.access": {
                "handlers": ["access"],
                "level": config.log_level,
                "propagate": False,
            },
            **{name: {"level": level} for name, level in _LIBRARY_LEVELS.items()},
        },
        "root": {"handlers": ["default"], "level": config.log_level},
    }


class _DictMsgQueueHandler(QueueHandler):
    """Queues records untouched; the default prepare() would stringify msg."""

    def prepare(self, record: logging.LogRecord) -> logging.LogRecord:
        return copy.copy(record)


class _MaxLevelFilter(logging.Filter):
    def __init__(self, max_level: int) -> None:
        super().__init__()
        self._max = max_level

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno <= self._max


def _stop_listener() -> None:
    global _listener
    if _listener is not None:
        try:
            _listener.stop()
        finally:
            _listener = None


def _start_listener(config: AppConfig) -> None:
    """Warnings and below go to stdout, errors to stderr."""
    global _listener
    _stop_listener()

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=_foreign_pre_chain(),
        processors=_formatter_processors(config),
    )
    stdout = logging.StreamHandler(stream=sys.stdout)
    stdout.setFormatter(formatter)
    stdout.addFilter(_MaxLevelFilter(logging.WARNING))
    stderr = logging.StreamHandler(stream=sys.stderr)
    stderr.setFormatter(formatter)
    stderr.setLevel(logging.ERROR)

    records: queue.Queue[logging.LogRecord] = queue.Queue()
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(_DictMsgQueueHandler(records))
    root.setLevel(config.log_level)

    for name in list(logging.root.manager.loggerDict):
        logger = logging.getLogger(name)
        logger.handlers.clear()
        logger.propagate = True
        logger.setLevel(_LIBRARY_LEVELS.get(name.split(".")[0], config.log_level))

    _listener = QueueListener(records, stdout, stderr, respect_handler_level=True)
    _listener.start()
    atexit.register(_stop_listener)


def configure_logging(config: AppConfig) -> dict[str, Any]:
    """Configure structlog and stdlib logging; return uvicorn's log_config."""
    structlog.configure(
        processors=[
            _drop_color_message,
            structlog.contextvars.merge_contextvars,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            _redact_secrets,
            _shorten_urls,
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    log_config = build_logging_config(config)
    logging.config.dictConfig(log_config)
    _start_listener(config)

    log.info(
        "logging_configured", log_format=config.log_format, log_level=config.log_level
    )
    return log_config
