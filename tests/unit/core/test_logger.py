"""Tests for logging setup."""

import json
import logging
import logging.handlers

import pytest

from approvalflow.core.config import Settings
from approvalflow.core.logger import AuditFormatter, configure_logging, setup_logger


def make_record(**extra):
    record = logging.LogRecord("approvalflow.audit", logging.INFO, __file__, 1, "POST /api/x -> 201", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestAuditFormatter:
    def test_appends_audit_details(self):
        line = AuditFormatter("%(message)s").format(make_record(audit={"username": "checker1", "status_code": 201}))

        message, _, payload = line.partition(" {")
        assert message == "POST /api/x -> 201"
        assert json.loads("{" + payload) == {"status_code": 201, "username": "checker1"}

    def test_plain_records_unchanged(self):
        assert AuditFormatter("%(message)s").format(make_record()) == "POST /api/x -> 201"


class TestSetupLogger:
    def test_handlers_and_level(self, tmp_path):
        logger = setup_logger("approvalflow-test.setup", log_dir=str(tmp_path), level="debug", file_logging=True)
        try:
            assert logger.level == logging.DEBUG
            kinds = {type(h) for h in logger.handlers}
            assert kinds == {logging.handlers.RotatingFileHandler, logging.StreamHandler}
            assert (tmp_path / "approvalflow-test.setup.log").exists()

            # Second call keeps the handlers and only changes the level
            assert setup_logger("approvalflow-test.setup", level="WARNING").handlers == logger.handlers
            assert logger.level == logging.WARNING
        finally:
            for handler in list(logger.handlers):
                logger.removeHandler(handler)
                handler.close()

    def test_invalid_level(self):
        with pytest.raises(ValueError):
            setup_logger("approvalflow-test.invalid", level="LOUD")


def test_configure_logging_writes_audit_file(tmp_path):
    settings = Settings(_env_file=None, log_dir=str(tmp_path), log_to_file=True)
    loggers = [logging.getLogger("approvalflow"), logging.getLogger("approvalflow.audit")]
    existing = {logger.name: list(logger.handlers) for logger in loggers}

    configure_logging(settings)
    added = {
        logger.name: [h for h in logger.handlers if h not in existing[logger.name]]
        for logger in loggers
    }
    try:
        audit_handlers = added["approvalflow.audit"]
        assert len(audit_handlers) == 1
        logging.getLogger("approvalflow.audit").warning(
            "GET /api/tasks -> 401", extra={"audit": {"path": "/api/tasks"}}
        )
        audit_handlers[0].flush()
        assert '"path": "/api/tasks"' in (tmp_path / "audit.log").read_text()
        assert logging.getLogger("httpx").level == logging.WARNING
    finally:
        for logger in loggers:
            for handler in added[logger.name]:
                logger.removeHandler(handler)
                handler.close()
