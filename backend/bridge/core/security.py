from __future__ import annotations

import re

SECRET_PATTERN = re.compile(r"(sk-[A-Za-z0-9]{6,})")
BEARER_PATTERN = re.compile(r"(Bearer\s+)[A-Za-z0-9._~+/=-]+")
PRIVATE_KEY_PATTERN = re.compile(r"\b0x[0-9a-fA-F]{64}\b")


def redact_secrets(text: str) -> str:
    """Redact API keys, bearer tokens and raw private keys from a string."""

    text = SECRET_PATTERN.sub("sk-***", text)
    text = BEARER_PATTERN.sub(r"\1***", text)
    return PRIVATE_KEY_PATTERN.sub("0x***", text)


def preview_text(text: str, max_length: int = 100) -> str:
    """Return a single-line preview of text clamped to max_length."""

    cleaned = " ".join(text.split())
    if len(cleaned) > max_length:
        cleaned = cleaned[:max_length] + "..."
    return cleaned
