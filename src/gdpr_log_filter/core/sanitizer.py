"""
Error message sanitization.

Strips credentials, connection strings, sensitive paths and internal
addresses from error text before it is written to the audit trail.
"""

import re
from typing import List, Tuple

from .defaults import MASK_SECRET

MAX_MESSAGE_LENGTH = 500

_SENSITIVE_PATTERNS: List[Tuple["re.Pattern[str]", str]] = [
    # Database credentials
    (re.compile(r"password=\S+", re.I), "password=***"),
    (re.compile(r"pwd=\S+", re.I), "pwd=***"),
    (re.compile(r"pass=\S+", re.I), "pass=***"),
    # Hosts
    (re.compile(r"host=[\w.-]+", re.I), "host=***"),
    (re.compile(r"server=[\w.-]+", re.I), "server=***"),
    (re.compile(r"hostname=[\w.-]+", re.I), "hostname=***"),
    # User credentials
    (re.compile(r"user=\S+", re.I), "user=***"),
    (re.compile(r"username=\S+", re.I), "username=***"),
    (re.compile(r"uid=\S+", re.I), "uid=***"),
    # API keys and tokens
    (re.compile(r"api[_-]?key[=:]\s*\S+", re.I), "api_key=***"),
    (re.compile(r"token[=:]\s*\S+", re.I), "token=***"),
    (re.compile(r"bearer\s+\S+", re.I), "bearer ***"),
    (re.compile(r"sk_\w+", re.I), "sk_***"),
    (re.compile(r"pk_\w+", re.I), "pk_***"),
    # File paths
    (re.compile(r"/[\w/.-]*/(config|secret|private|key)[\w/.-]*", re.I), r"/***/\1/***"),
    (re.compile(r"[a-zA-Z]:\\[\w\\.-]*\\(config|secret|private|key)[\w\\.-]*", re.I), r"C:\\***\\\1\\***"),
    # Connection strings
    (re.compile(r"redis://[^@]*@[\w.-]+:\d+", re.I), "redis://***:***@***:***"),
    (re.compile(r"mysql://[^@]*@[\w.-]+:\d+", re.I), "mysql://***:***@***:***"),
    (re.compile(r"postgresql://[^@]*@[\w.-]+:\d+", re.I), "postgresql://***:***@***:***"),
    # Secrets
    (re.compile(r"secret[_-]?key[=:\s]+\S+", re.I), "secret_key=***"),
    (re.compile(r"jwt[_-]?secret[=:\s]+\S+", re.I), "jwt_secret=***"),
    (re.compile(r"\bsuper_secret_\w+", re.I), MASK_SECRET),
    (re.compile(r"\b[a-z_]*secret[a-z_]*[=:\s]+[\w-]{10,}", re.I), "secret=***"),
    (re.compile(r"\b[a-z_]*key[a-z_]*[=:\s]+[\w-]{10,}", re.I), "key=***"),
    # Internal IPv4 ranges
    (
        re.compile(
            r"\b(?:10\.\d{1,3}\.\d{1,3}\.\d{1,3}"
            r"|172\.(?:1[6-9]|2\d|3[01])\.\d{1,3}\.\d{1,3}"
            r"|192\.168\.\d{1,3}\.\d{1,3})\b"
        ),
        "***.***.***",
    ),
]


class SecuritySanitizer:
    """Removes sensitive fragments from error messages."""

    @staticmethod
    def sanitize_error_message(message: str) -> str:
        """
        Sanitize an error message to prevent information disclosure.

        Args:
            message: The original error message

        Returns:
            The sanitized message, truncated to 500 characters
        """
        sanitized = str(message)
        for pattern, replacement in _SENSITIVE_PATTERNS:
            sanitized = pattern.sub(replacement, sanitized)

        if len(sanitized) > MAX_MESSAGE_LENGTH:
            return sanitized[:MAX_MESSAGE_LENGTH] + "... (truncated for security)"

        return sanitized


def sanitize_error_message(message: str) -> str:
    """Convenience wrapper around SecuritySanitizer.sanitize_error_message."""
    return SecuritySanitizer.sanitize_error_message(message)
