"""
Structured JSON logging for loyalty_tokens.

Every record carries the service name, the deployment environment and its
source location, so contract activity can be shipped to a log aggregator
as-is.

Usage:
    from loyalty_tokens.core.logging_config import setup_logging

    logger = setup_logging(level="DEBUG", log_file="/var/log/loyalty.json")
    logger.info("Credential minted", extra={"token_id": 1})
"""

import logging
import logging.handlers
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from pythonjsonlogger import jsonlogger

DEFAULT_FORMAT = "%(timestamp)s %(level)s %(name)s %(message)s"


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter that stamps service, environment and source fields."""

    def __init__(
        self,
        environment: str = "production",
        service_name: str = "loyalty_tokens",
        fmt: str = DEFAULT_FORMAT,
    ):
        super().__init__(fmt=fmt)
        self.environment = environment
        self.service_name = service_name

    def add_fields(
        self,
        log_record: Dict[str, Any],
        record: logging.LogRecord,
        message_dict: Dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)
        if not log_record.get("timestamp"):
            log_record["timestamp"] = datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat()
        if not log_record.get("level"):
            log_record["level"] = record.levelname.lower()
        log_record["service"] = self.service_name
        log_record["environment"] = self.environment
        log_record["source"] = {
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }


def setup_logging(
    name: str = "loyalty_tokens",
    log_file: Optional[str] = None,
    level: str = "INFO",
    environment: str = "production",
    enable_console: bool = True,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
) -> logging.Logger:
    """
    Attach JSON handlers to a logger, replacing any it already has.

    Args:
        name: Logger name; its first dotted part becomes the ``service`` field
        log_file: Rotating JSON log file (optional)
        level: Level name applied to the logger and its handlers
        environment: Value of the ``environment`` field
        enable_console: Whether to log to stderr
        max_bytes: Size at which the log file rotates
        backup_count: Rotated files to keep

    Returns:
        The configured logger
    """
    numeric_level = getattr(logging, level.upper())
    logger = logging.getLogger(name)
    logger.setLevel(numeric_level)
    logger.handlers = []

    formatter = CustomJsonFormatter(environment=environment, service_name=name.split(".")[0])
    handlers: list[logging.Handler] = []

    if enable_console:
        handlers.append(logging.StreamHandler(sys.stderr))

    if log_file:
        try:
            Path(log_file).parent.mkdir(parents=True, exist_ok=True)
            handlers.append(
                logging.handlers.RotatingFileHandler(
                    log_file, maxBytes=max_bytes, backupCount=backup_count
                )
            )
        except OSError as exc:
            logger.warning("Log file %s unavailable: %s", log_file, exc)

    for handler in handlers:
        handler.setLevel(numeric_level)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger


def get_logger(name: str, log_file: Optional[str] = None, level: str = "INFO") -> logging.Logger:
    """Return ``name``'s logger, configuring it first if it has no handlers."""
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger
    return setup_logging(name=name, log_file=log_file, level=level)
