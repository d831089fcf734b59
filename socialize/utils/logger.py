"""
Logging setup shared by the Socialize API, the publish worker and the scheduler.

Modules obtain loggers through ``get_logger(__name__)``. Entrypoints call
``setup_logging`` once with values from settings. Code that works on behalf of
a tenant or an upload can wrap itself in ``log_context(...)`` so every record
emitted inside carries those ids, which the JSON formatter writes out as fields.
"""

import copy
import json
import logging
import logging.handlers
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional

PLAIN_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s%(context_suffix)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

_context: ContextVar[Dict[str, str]] = ContextVar("log_context", default={})


@contextmanager
def log_context(**fields):
    """Attach ids such as tenant_id, upload_id or job_id to records logged inside the block."""
    merged = {**_context.get(), **{k: str(v) for k, v in fields.items() if v is not None}}
    token = _context.set(merged)
    try:
        yield
    finally:
        _context.reset(token)


class ContextFilter(logging.Filter):
    """Copies the active log_context onto each record."""

    def filter(self, record):
        fields = _context.get()
        for key, value in fields.items():
            if not hasattr(record, key):
                setattr(record, key, value)
        record.context_suffix = (
            " [" + " ".join(f"{k}={v}" for k, v in sorted(fields.items())) + "]" if fields else ""
        )
        return True


class ColoredFormatter(logging.Formatter):
    """Console formatter that colors the level name."""

    LEVEL_COLORS = {
        'DEBUG': '\033[36m',
        'INFO': '\033[32m',
        'WARNING': '\033[33m',
        'ERROR': '\033[31m',
        'CRITICAL': '\033[35m',
    }
    RESET = '\033[0m'

    def format(self, record):
        # handlers share the record object
        record = copy.copy(record)
        color = self.LEVEL_COLORS.get(record.levelname)
        if color:
            record.levelname = f"{color}{record.levelname}{self.RESET}"
        return super().format(record)


# attributes every LogRecord has; anything else came in through extra= or log_context
_STANDARD_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {
    'message', 'asctime', 'context_suffix', 'taskName',
}


class JSONFormatter(logging.Formatter):
    """One JSON object per line, for log shippers."""

    def format(self, record):
        entry = {
            'timestamp': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'location': f"{record.module}.{record.funcName}:{record.lineno}",
        }
        entry.update(
            (key, value) for key, value in vars(record).items() if key not in _STANDARD_RECORD_ATTRS
        )
        if record.exc_info:
            entry['exception'] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


def _make_handler(handler: logging.Handler, level: int, json_format: bool,
                  plain: Optional[logging.Formatter] = None) -> logging.Handler:
    handler.setLevel(level)
    handler.addFilter(ContextFilter())
    handler.setFormatter(JSONFormatter() if json_format else plain or logging.Formatter(PLAIN_FORMAT, DATE_FORMAT))
    return handler


def setup_logging(level: str = 'INFO',
                  console: bool = True,
                  file: bool = False,
                  json_format: bool = False,
                  log_dir: str = 'logs',
                  log_file: str = 'socialize.log',
                  error_file: str = 'socialize-error.log',
                  max_file_size: int = 10 * 1024 * 1024,
                  backup_count: int = 5) -> None:
    """
    Configure the root logger. Safe to call more than once; existing handlers are replaced.

    Args:
        level: Logging level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        console: Log to stdout
        file: Also write rotating files under ``log_dir``
        json_format: Emit JSON lines instead of plain text
        log_file: Name of the main log file
        error_file: Name of the file that only receives ERROR and above
        max_file_size: Bytes before a file is rotated
        backup_count: Rotated files to keep
    """
    level_value = logging.getLevelName(level.upper())
    if not isinstance(level_value, int):
        raise ValueError(f"Unknown log level: {level}")

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(level_value)

    if console:
        root.addHandler(_make_handler(
            logging.StreamHandler(sys.stdout), level_value, json_format,
            plain=ColoredFormatter(PLAIN_FORMAT, DATE_FORMAT),
        ))

    if file:
        directory = Path(log_dir)
        directory.mkdir(parents=True, exist_ok=True)
        rotating = dict(maxBytes=max_file_size, backupCount=backup_count, encoding='utf-8')
        root.addHandler(_make_handler(
            logging.handlers.RotatingFileHandler(directory / log_file, **rotating),
            level_value, json_format,
        ))
        root.addHandler(_make_handler(
            logging.handlers.RotatingFileHandler(directory / error_file, **rotating),
            logging.ERROR, json_format,
            plain=logging.Formatter(PLAIN_FORMAT + '\n%(pathname)s:%(lineno)d', DATE_FORMAT),
        ))

    # uvicorn access lines duplicate the request middleware
    logging.getLogger("uvicorn.access").setLevel(max(level_value, logging.WARNING))
    logging.getLogger("aiokafka").setLevel(max(level_value, logging.INFO))


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def log_database_operation(logger: logging.Logger, operation: str, table: str,
                           record_id: str = None, **extra):
    """Debug line for a write against ``table``."""
    suffix = f" (ID: {record_id})" if record_id else ""
    logger.debug(f"DB {operation} on {table}{suffix}", extra=extra)


def log_kafka_message(logger: logging.Logger, action: str, topic: str,
                      message_id: str = None, **extra):
    suffix = f" (job: {message_id})" if message_id else ""
    logger.info(f"Kafka {action} on {topic}{suffix}", extra=extra)


def log_publish_operation(logger: logging.Logger, operation: str,
                          upload_id: str, platform_type: str, **extra):
    """Info line for a step of the publish pipeline; failures are logged at WARNING."""
    level = logging.WARNING if operation == "FAILED" else logging.INFO
    logger.log(level, f"Publish {operation} for upload {upload_id} via {platform_type}",
               extra={"upload_id": upload_id, "platform_type": platform_type, **extra})
