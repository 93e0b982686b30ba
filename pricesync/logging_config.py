"""Structured logging configuration.

Console output is plain text; ``logs/`` receives JSON lines. Sync runs log
through ``get_logger`` with ``run_id``/``run_kind`` context, and those
records are also copied to ``logs/sync.log``.
"""

import logging
import sys
from datetime import datetime, timezone
from pathlib import Path

from pythonjsonlogger import jsonlogger

from pricesync.config import settings

SERVICE_NAME = "pricesync"
RUN_FIELDS = ("run_id", "run_kind")


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """JSON lines with UTC timestamp, origin and run context."""

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)

        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["service"] = SERVICE_NAME
        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record["source"] = f"{record.module}.{record.funcName}:{record.lineno}"
        for name in RUN_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                log_record[name] = value


class RunRecordFilter(logging.Filter):
    """Pass only records logged with a run context."""

    def filter(self, record):
        return getattr(record, "run_id", None) is not None


def _json_handler(path: Path, level: int) -> logging.Handler:
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(CustomJsonFormatter("%(timestamp)s %(level)s %(name)s %(message)s"))
    return handler


def setup_logging(base_dir: str | Path | None = None):
    """Configure root logging.

    Args:
        base_dir: Directory that gets the logs/ folder. Falls back to
                  settings.log_dir, then the working directory.
    """
    logs_dir = Path(base_dir or settings.log_dir or Path.cwd()) / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, settings.log_level.upper()))
    root_logger.handlers.clear()

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))
    root_logger.addHandler(console)

    root_logger.addHandler(_json_handler(logs_dir / "app.log", logging.DEBUG))
    root_logger.addHandler(_json_handler(logs_dir / "error.log", logging.ERROR))

    runs = _json_handler(logs_dir / "sync.log", logging.INFO)
    runs.addFilter(RunRecordFilter())
    root_logger.addHandler(runs)

    # uvicorn access lines duplicate the request metrics
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    return root_logger


class LoggerAdapter(logging.LoggerAdapter):
    """Merges the adapter's context into each record's ``extra``."""

    def process(self, msg, kwargs):
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs


def get_logger(name: str, **context) -> LoggerAdapter:
    """
    Logger carrying context fields on every record.

    Example:
        log = get_logger(__name__, run_id=run.run_id, run_kind="download")
    """
    return LoggerAdapter(logging.getLogger(name), context)
