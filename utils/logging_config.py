"""
Logging configuration for llm-evals.

Every record under the ``llm_evals`` logger tree goes to:
- the console (colored when attached to a terminal)
- ``llm_evals.log``: rotating, human-readable, one line per record
- ``llm_evals.json.log``: rotating, one JSON object per record
- ``llm_evals.error.log``: ERROR and above only

Records emitted inside ``log_context(...)`` carry the active run's
context: the text logs show its run id and the JSON log has a ``run``
object. Ad-hoc fields passed as ``extra={"extra_data": {...}}`` land
under ``data`` in the JSON log.

Usage:
    setup_logging(level="INFO", log_dir=config.LOG_DIR)

    with log_context(run_id=run_id, eval="math-basic", model="gpt-4o-mini"):
        logger.info("Starting evaluation")
"""

import json
import logging
import logging.handlers
import sys
import traceback
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

ROOT_LOGGER_NAME = "llm_evals"

TEXT_FORMAT = "%(asctime)s | %(levelname)-8s | %(run_id)s | %(name)s | %(message)s"
ERROR_FORMAT = "%(asctime)s | %(levelname)s | %(run_id)s | %(name)s | %(module)s:%(lineno)d\n%(message)s\n---"

_run_context: ContextVar[Dict[str, Any]] = ContextVar("llm_evals_run_context", default={})


@contextmanager
def log_context(**fields: Any) -> Iterator[Dict[str, Any]]:
    """Attach run fields to every record logged in this context.

    Nested contexts add to (and may override) the outer fields. Asyncio
    tasks started inside the block inherit the context.
    """
    merged = {**_run_context.get(), **fields}
    token = _run_context.set(merged)
    try:
        yield merged
    finally:
        _run_context.reset(token)


def current_log_context() -> Dict[str, Any]:
    return dict(_run_context.get())


class RunContextFilter(logging.Filter):
    """Stamp ``run_id`` and ``run_context`` onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        context = _run_context.get()
        record.run_context = dict(context)
        record.run_id = context.get("run_id", "-")
        return True


class StructuredFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        run = getattr(record, "run_context", None)
        if run:
            log_data["run"] = run
        if hasattr(record, "extra_data"):
            log_data["data"] = record.extra_data
        if record.exc_info and record.exc_info[0] is not None:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": traceback.format_exception(*record.exc_info),
            }
        return json.dumps(log_data, default=str)


class ColoredFormatter(logging.Formatter):
    """Level names colored with ANSI codes."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        # Copy so file handlers sharing the record keep the plain level name
        record = logging.makeLogRecord(record.__dict__)
        color = self.COLORS.get(record.levelname, "")
        record.levelname = f"{color}{record.levelname}{self.RESET}"
        return super().format(record)


def _rotating_handler(
    path: Path,
    level: int,
    formatter: logging.Formatter,
    max_bytes: int,
    backup_count: int,
) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
    )
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def setup_logging(
    level: str = "INFO",
    log_dir: Optional[Path] = None,
    console: bool = True,
    json_logs: bool = True,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
) -> logging.Logger:
    """
    Configure the ``llm_evals`` logger tree. Safe to call more than once;
    previous handlers are replaced.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        log_dir: Directory for log files
        console: Also log to stderr
        json_logs: Write the JSON structured log
        max_bytes: Max size per log file before rotation
        backup_count: Rotated files to keep

    Returns:
        The ``llm_evals`` root logger
    """
    log_dir = Path(log_dir) if log_dir else Path.home() / ".llm_evals" / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    for handler in list(root_logger.handlers):
        handler.close()
    root_logger.handlers.clear()

    handlers = []
    if console:
        console_handler = logging.StreamHandler(sys.stderr)
        formatter_class = ColoredFormatter if sys.stderr.isatty() else logging.Formatter
        console_handler.setFormatter(formatter_class(TEXT_FORMAT, datefmt="%H:%M:%S"))
        handlers.append(console_handler)

    handlers.append(
        _rotating_handler(
            log_dir / "llm_evals.log",
            logging.DEBUG,
            logging.Formatter(TEXT_FORMAT),
            max_bytes,
            backup_count,
        )
    )
    if json_logs:
        handlers.append(
            _rotating_handler(
                log_dir / "llm_evals.json.log",
                logging.DEBUG,
                StructuredFormatter(),
                max_bytes,
                backup_count,
            )
        )
    handlers.append(
        _rotating_handler(
            log_dir / "llm_evals.error.log",
            logging.ERROR,
            logging.Formatter(ERROR_FORMAT),
            max_bytes,
            backup_count,
        )
    )

    # Filters on handlers also see records propagated from child loggers
    context_filter = RunContextFilter()
    for handler in handlers:
        handler.addFilter(context_filter)
        root_logger.addHandler(handler)

    return root_logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the project root logger."""
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")
