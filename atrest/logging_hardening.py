"""Logging Hardening and Redaction.

This module provides filters to prevent key material (default secrets,
raw 256-bit keys) from appearing in application logs.
"""
import logging
import re

# 64 hex chars is the textual form of a raw AES-256 key.
SECRET_PATTERNS = [
    (re.compile(r'(ATREST_DEFAULT_KEY\s*[=:]\s*)\S+'), r'\1[REDACTED]'),
    (re.compile(r'("default_key":\s*")[^"]*(")'), r'\1[REDACTED]\2'),
    (re.compile(r'((?:secret|key)=)[A-Za-z0-9_\-+/=]{32,}'), r'\1[REDACTED]'),
    (re.compile(r'(?<![0-9a-fA-F])[0-9a-fA-F]{64}(?![0-9a-fA-F])'), '[REDACTED_KEY]'),
]


def redact_string(text: str) -> str:
    """Redact key-like patterns from a string."""
    for pattern, replacement in SECRET_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


class SecretRedactionFilter(logging.Filter):
    """Filter that redacts secret-like patterns from log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = redact_string(record.msg)

        # Also redact arguments if they are strings
        if record.args and isinstance(record.args, tuple):
            record.args = tuple(
                redact_string(arg) if isinstance(arg, str) else arg
                for arg in record.args
            )

        return True


def setup_logging_redaction() -> None:
    """Apply the SecretRedactionFilter to all existing loggers."""
    redact_filter = SecretRedactionFilter()

    root_logger = logging.getLogger()

    # Remove existing filters if any (to avoid duplicates)
    for f in root_logger.filters[:]:
        if isinstance(f, SecretRedactionFilter):
            root_logger.removeFilter(f)

    root_logger.addFilter(redact_filter)

    # Logger filters don't propagate, so attach to every known logger too
    for name in list(logging.root.manager.loggerDict):
        logger = logging.getLogger(name)
        for f in logger.filters[:]:
            if isinstance(f, SecretRedactionFilter):
                logger.removeFilter(f)
        logger.addFilter(redact_filter)

    logging.getLogger(__name__).info("Logging redaction filters active.")
