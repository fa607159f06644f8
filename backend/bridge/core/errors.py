from __future__ import annotations

from typing import Sequence


class StartupError(RuntimeError):
    """Raised for failures that must stop the bridge process."""


class TransportUnavailable(StartupError):
    """Raised when every messaging connection strategy failed."""

    def __init__(self, errors: Sequence[tuple[str, BaseException]]) -> None:
        self.errors = list(errors)
        if self.errors:
            detail = "; ".join(f"{name}: {exc}" for name, exc in self.errors)
        else:
            detail = "no connection strategies configured"
        super().__init__(f"Messaging client initialization failed ({detail})")


class MessageStreamAborted(StartupError):
    """Raised when the inbound message stream exhausted its retry budget."""

    def __init__(self, attempts: int, last_error: BaseException | None = None) -> None:
        self.attempts = attempts
        self.last_error = last_error
        reason = f": {last_error}" if last_error else ""
        super().__init__(f"Message stream aborted after {attempts} attempts{reason}")
