"""Tests for logging configuration.

Covers credential redaction in messages and extra fields, and the two
output formats installed by setup_logging.
"""

from __future__ import annotations

import io
import json
import logging
import sys
from collections.abc import Iterator

import pytest

from boxpublisher.logging_config import (
    BLOCKED_FIELDS,
    JsonFormatter,
    SimpleFormatter,
    record_fields,
    redact,
    setup_logging,
)


def _record(msg: str = "test", level: int = logging.INFO, name: str = "test") -> logging.LogRecord:
    return logging.LogRecord(
        name=name,
        level=level,
        pathname="test.py",
        lineno=10,
        msg=msg,
        args=(),
        exc_info=None,
    )


@pytest.fixture
def restore_root_logger() -> Iterator[None]:
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


class TestRedact:
    """Free-form text redaction."""

    def test_sas_query_removed(self) -> None:
        result = redact(
            "GET https://acct.blob.core.windows.net/boxes/demo.box?sv=2021&sig=abc%2Bdef failed"
        )
        assert result == "GET https://acct.blob.core.windows.net/boxes/demo.box failed"

    def test_shared_key_redacted(self) -> None:
        result = redact("Authorization: SharedKey mystorage:dGhpcyBpcyBzaWc=")
        assert "dGhpcyBpcyBzaWc=" not in result
        assert "SharedKey [REDACTED]" in result

    def test_connection_string_key_redacted(self) -> None:
        result = redact("AccountName=acct;AccountKey=c2VjcmV0a2V5==;EndpointSuffix=x")
        assert "c2VjcmV0a2V5" not in result
        assert "AccountKey=[REDACTED]" in result

    def test_access_key_assignment_redacted(self) -> None:
        assert redact("loaded access_key=c2VjcmV0a2V5 from env") == (
            "loaded access_key=[REDACTED] from env"
        )
        assert "c2VjcmV0" not in redact("{'account_key': 'c2VjcmV0'}")

    def test_bare_sig_redacted(self) -> None:
        assert redact("token sig=abc%2Bdef") == "token sig=[REDACTED]"

    def test_safe_text_unchanged(self) -> None:
        text = "Adding vmware_desktop 1.0.0 box to manifest"
        assert redact(text) == text


class TestRecordFields:
    """Filtering of extra= fields."""

    def test_standard_attributes_excluded(self) -> None:
        assert record_fields(_record()) == {}

    def test_scalars_preserved(self) -> None:
        record = _record()
        record.stage = "uploaded"
        record.blocks = 42
        record.ratio = 0.5
        record.error_code = None
        assert record_fields(record) == {
            "stage": "uploaded",
            "blocks": 42,
            "ratio": 0.5,
            "error_code": None,
        }

    def test_blocked_fields_dropped(self) -> None:
        assert "access_key" in BLOCKED_FIELDS
        record = _record()
        record.access_key = "c2VjcmV0"
        record.storage_account_key = "c2VjcmV0"
        record.Authorization = "SharedKey acct:abc="
        record.container = "boxes"
        assert record_fields(record) == {"container": "boxes"}

    def test_payload_fields_redacted(self) -> None:
        record = _record()
        record.body = "<BlockList/>"
        record.data = b"\x00"
        record.headers = {"x-ms-version": "2021"}
        assert record_fields(record) == {
            "body": "[REDACTED]",
            "data": "[REDACTED]",
            "headers": "[REDACTED]",
        }

    def test_error_text_redacted(self) -> None:
        record = _record()
        record.error = "upload https://acct.blob.core.windows.net/c/m.json?sig=abc failed"
        assert record_fields(record)["error"] == (
            "upload https://acct.blob.core.windows.net/c/m.json failed"
        )


class TestJsonFormatter:
    def test_contains_required_fields(self) -> None:
        parsed = json.loads(JsonFormatter().format(_record("hello world", name="mylogger")))
        assert parsed["level"] == "INFO"
        assert parsed["logger"] == "mylogger"
        assert parsed["msg"] == "hello world"
        assert parsed["ts"].endswith("+00:00")

    def test_extra_fields_filtered(self) -> None:
        record = _record()
        record.stage = "manifest_merged"
        record.access_key = "secret123"
        parsed = json.loads(JsonFormatter().format(record))
        assert parsed["stage"] == "manifest_merged"
        assert "access_key" not in parsed

    def test_exception_included(self) -> None:
        try:
            raise ValueError("AccountKey=c2VjcmV0")
        except ValueError:
            record = logging.LogRecord(
                "test", logging.ERROR, "test.py", 1, "boom", (), exc_info=sys.exc_info()
            )
        parsed = json.loads(JsonFormatter().format(record))
        assert "ValueError" in parsed["exc"]
        assert "c2VjcmV0" not in parsed["exc"]


class TestSimpleFormatter:
    def test_basic_format(self) -> None:
        output = SimpleFormatter().format(_record("hello"))
        assert output == "INFO     test: hello"

    def test_extra_fields_appended(self) -> None:
        record = _record("message")
        record.blocks = 3
        assert SimpleFormatter().format(record).endswith("| blocks=3")


@pytest.mark.usefixtures("restore_root_logger")
class TestSetupLogging:
    def test_setup_logging_json(self) -> None:
        stream = io.StringIO()
        setup_logging(json_format=True, stream=stream)

        logging.getLogger("test_json").info("test message", extra={"container": "boxes"})

        parsed = json.loads(stream.getvalue().strip())
        assert parsed["msg"] == "test message"
        assert parsed["container"] == "boxes"

    def test_setup_logging_simple(self) -> None:
        stream = io.StringIO()
        setup_logging(json_format=False, stream=stream)

        logging.getLogger("test_simple").info("simple test")

        output = stream.getvalue()
        assert "simple test" in output
        with pytest.raises(json.JSONDecodeError):
            json.loads(output.strip())

    def test_setup_logging_level(self) -> None:
        stream = io.StringIO()
        setup_logging(level=logging.WARNING, json_format=False, stream=stream)

        logger = logging.getLogger("test_level")
        logger.info("info message")
        logger.warning("warning message")

        output = stream.getvalue()
        assert "info message" not in output
        assert "warning message" in output

    def test_sdk_logger_quieted(self) -> None:
        setup_logging(stream=io.StringIO())
        assert logging.getLogger("azure").level == logging.WARNING
