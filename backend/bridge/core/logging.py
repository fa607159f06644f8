from __future__ import annotations

import logging

from bridge.core.security import redact_secrets


class RedactionFilter(logging.Filter):
    """Log filter that redacts sensitive data before output."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = redact_secrets(str(record.msg))
        if isinstance(record.args, tuple):
            # Numeric arguments are left alone for %d style placeholders.
            record.args = tuple(
                redact_secrets(str(arg)) if isinstance(arg, (str, BaseException)) else arg
                for arg in record.args
            )
        return True


def setup_logging(level: str) -> None:
    """Configure bridge logging with secret redaction."""

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    root = logging.getLogger()
    for handler in root.handlers:
        if not any(isinstance(item, RedactionFilter) for item in handler.filters):
            handler.addFilter(RedactionFilter())
    # httpx logs every request line including query strings.
    logging.getLogger("httpx").setLevel(logging.WARNING)
