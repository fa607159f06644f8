import logging

from bridge.core.logging import RedactionFilter
from bridge.core.security import preview_text, redact_secrets


def test_redact_secrets():
    text = "key sk-abcdef123456 header Bearer tok.en-1 wallet 0x" + "ab" * 32
    redacted = redact_secrets(text)
    assert "sk-abcdef123456" not in redacted
    assert "tok.en-1" not in redacted
    assert "ab" * 32 not in redacted
    assert "Bearer ***" in redacted


def test_preview_text():
    assert preview_text("hello\n  world") == "hello world"
    assert preview_text("x" * 120) == "x" * 100 + "..."


def test_redaction_filter_keeps_numeric_args():
    record = logging.LogRecord(
        "bridge", logging.INFO, __file__, 1, "%d record(s) for %s", (3, "sk-secret999"), None
    )
    assert RedactionFilter().filter(record)
    assert record.getMessage() == "3 record(s) for sk-***"
