"""Structured logging for the catalog cache.

Console output stays human-readable; ``app.log`` and ``error.log`` are JSON
lines so scrape failures can be filtered by route and url.
"""

import logging
import sys
from datetime import datetime, timezone
from pathlib import Path

from pythonjsonlogger import jsonlogger

from catalog_cache.config import settings

SERVICE_NAME = "catalog_cache"

# Context keys promoted to top-level JSON fields when present on a record
CONTEXT_FIELDS = ("component", "route", "url", "entity", "slug")


class CatalogJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter carrying service, source location and scrape context."""

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)

        log_record["timestamp"] = datetime.fromtimestamp(record.created, timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = SERVICE_NAME
        log_record["source"] = f"{record.module}.{record.funcName}:{record.lineno}"

        for key in CONTEXT_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                log_record[key] = str(value)


def _file_handler(path: Path, level: int, formatter: logging.Formatter) -> logging.Handler:
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def setup_logging(log_dir: str | Path | None = None, log_level: str | None = None) -> logging.Logger:
    """Install console and JSON file handlers on the root logger.

    Args:
        log_dir: Directory for ``app.log`` and ``error.log``. Defaults to
                 ``settings.log_dir``.
        log_level: Overrides ``settings.log_level`` when given.
    """
    target = Path(log_dir or settings.log_dir)
    target.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, (log_level or settings.log_level).upper(), logging.INFO))
    root_logger.handlers.clear()

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))
    root_logger.addHandler(console)

    json_formatter = CatalogJsonFormatter("%(timestamp)s %(level)s %(name)s %(message)s")
    root_logger.addHandler(_file_handler(target / "app.log", logging.DEBUG, json_formatter))
    root_logger.addHandler(_file_handler(target / "error.log", logging.ERROR, json_formatter))

    # Browser and driver chatter
    for noisy in ("sqlalchemy.engine", "asyncio", "apscheduler.executors.default"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    return root_logger


class ContextAdapter(logging.LoggerAdapter):
    """Merges bound context into each call's ``extra``; per-call keys win."""

    def process(self, msg, kwargs):
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs


def get_logger(name: str, **context) -> ContextAdapter:
    """
    Logger bound to context fields such as ``component="scraper"``.

    Extra keys listed in ``CONTEXT_FIELDS`` show up as their own JSON fields.
    """
    return ContextAdapter(logging.getLogger(name), context)
