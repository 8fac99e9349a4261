"""
Tests for structured logging: JSON lines carry the execution context and any
extra_fields attached by the caller.
"""
import io
import json
import logging

import pytest

from core.execution_context import client_context
from core.logging import ExecutionContextFilter, JSONFormatter, setup_logging


def _record(message="saved", **extra):
    record = logging.LogRecord("storage", logging.WARNING, __file__, 10, message, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:
    def test_server_context_by_default(self):
        line = json.loads(JSONFormatter().format(_record()))

        assert line["context"] == "server"
        assert line["message"] == "saved"
        assert line["level"] == "WARNING"

    def test_client_context_inside_storage_client(self):
        with client_context():
            line = json.loads(JSONFormatter().format(_record()))
        assert line["context"] == "client"

    def test_extra_fields_are_merged(self):
        record = _record(extra_fields={"operation": "save assessment", "error_code": "STORE_UNAVAILABLE"})
        line = json.loads(JSONFormatter().format(record))

        assert line["operation"] == "save assessment"
        assert line["error_code"] == "STORE_UNAVAILABLE"


class TestExecutionContextFilter:
    def test_stamps_context_when_record_is_emitted(self):
        record = _record()
        with client_context():
            ExecutionContextFilter().filter(record)

        # Formatting later, outside the block, keeps the emitting context
        assert json.loads(JSONFormatter().format(record))["context"] == "client"


class TestSetupLogging:
    @pytest.fixture(autouse=True)
    def restore_root_handlers(self):
        root = logging.getLogger()
        handlers, level = list(root.handlers), root.level
        yield
        root.handlers[:] = handlers
        root.setLevel(level)

    def test_repeated_setup_keeps_one_handler(self):
        stream = io.StringIO()
        setup_logging(stream)
        root = setup_logging(stream)

        assert len(root.handlers) == 1

    def test_noisy_libraries_quietened(self):
        setup_logging(io.StringIO())
        assert logging.getLogger("httpx").level == logging.WARNING
        assert logging.getLogger("redis").level == logging.WARNING
