"""Structured logging configuration.

Records about a single case carry its id as ``case_id`` (see
:func:`case_logger`), so one case can be followed through the queue,
the extraction and QC in either output format.
"""

import json
import logging
import sys
from typing import Any, Dict, MutableMapping, Tuple

from ..config.settings import settings

TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class JSONFormatter(logging.Formatter):
    """Format logs as JSON."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if hasattr(record, "case_id"):
            log_data["case_id"] = record.case_id  # type: ignore[attr-defined]
        if hasattr(record, "case_status"):
            log_data["case_status"] = record.case_status  # type: ignore[attr-defined]
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_data)


class CaseTextFormatter(logging.Formatter):
    """Plain-text lines; case records get a ``[case_id]`` prefix."""

    def __init__(self) -> None:
        super().__init__(TEXT_FORMAT)

    def formatMessage(self, record: logging.LogRecord) -> str:
        line = super().formatMessage(record)
        case_id = getattr(record, "case_id", None)
        if case_id is None:
            return line
        prefix = f"{record.name} - {record.levelname} - "
        return line.replace(prefix, f"{prefix}[{case_id}] ", 1)


class CaseLoggerAdapter(logging.LoggerAdapter):
    """Adds the case id to every record; explicit ``extra`` keys win."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        kwargs["extra"] = {**self.extra, **(kwargs.get("extra") or {})}
        return msg, kwargs


def case_logger(logger: logging.Logger, case_id: str) -> CaseLoggerAdapter:
    return CaseLoggerAdapter(logger, {"case_id": case_id})


def get_logger(name: str) -> logging.Logger:
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        if settings.log_format == "json":
            handler.setFormatter(JSONFormatter())
        else:
            handler.setFormatter(CaseTextFormatter())
        logger.addHandler(handler)
        logger.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))
    return logger
