"""Logging for the approval service.

``configure_logging`` installs the handlers for the ``approvalflow`` logger
tree from ``Settings``. Module loggers (``logging.getLogger(__name__)``)
propagate to it. Audit records written by the request middleware carry their
details in ``record.audit``; ``AuditFormatter`` appends them as JSON so the
principal, path and status end up in the log line.
"""

import json
import logging
import logging.handlers
import os
from typing import Optional

from approvalflow.core.config import Settings

LOG_FORMAT = "%(asctime)s [%(levelname)s] [%(name)s] %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"

# Third-party loggers that are too chatty at INFO
NOISY_LOGGERS = ("httpx", "httpcore", "sqlalchemy.engine")


class AuditFormatter(logging.Formatter):
    """Formatter that appends ``record.audit`` as a JSON object."""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        audit = getattr(record, "audit", None)
        if audit:
            line = f"{line} {json.dumps(audit, default=str, sort_keys=True)}"
        return line


def setup_logger(
    name: str,
    log_dir: str = "./logs",
    level: str = "INFO",
    file_logging: bool = False,
    console_logging: bool = True,
    formatter: Optional[logging.Formatter] = None,
    max_bytes: int = 10485760,  # 10MB
    backup_count: int = 5,
) -> logging.Logger:
    """Attach console and rotating file handlers to a logger.

    Calling it again for the same name only updates the level.

    Raises:
        ValueError: If ``level`` is not a logging level name
    """
    logger = logging.getLogger(name)

    level_upper = level.upper()
    if not isinstance(logging.getLevelName(level_upper), int):
        raise ValueError(
            f"Invalid log level: {level}. "
            f"Must be one of: DEBUG, INFO, WARNING, ERROR, CRITICAL"
        )
    logger.setLevel(level_upper)

    if logger.handlers:
        return logger

    formatter = formatter or AuditFormatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    if file_logging:
        os.makedirs(log_dir, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            os.path.join(log_dir, f"{name}.log"),
            maxBytes=max_bytes,
            backupCount=backup_count,
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    if console_logging:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    return logger


def configure_logging(settings: Settings) -> logging.Logger:
    """Set up the ``approvalflow`` logger tree from application settings."""
    logger = setup_logger(
        "approvalflow",
        log_dir=settings.log_dir,
        level=settings.log_level,
        file_logging=settings.log_to_file,
    )

    # Audit lines go to their own file next to the application log
    audit_logger = logging.getLogger("approvalflow.audit")
    if settings.log_to_file and not audit_logger.handlers:
        audit_handler = logging.handlers.RotatingFileHandler(
            os.path.join(settings.log_dir, "audit.log"),
            maxBytes=10485760,
            backupCount=5,
        )
        audit_handler.setFormatter(AuditFormatter(LOG_FORMAT, datefmt=DATE_FORMAT))
        audit_logger.addHandler(audit_handler)

    if not settings.debug:
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    return logger
