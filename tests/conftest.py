"""
Pytest configuration and shared fixtures.

Contains common test fixtures and setup for all test modules.
"""

from typing import Any, Callable, Dict, Generator, List

import pytest

from gdpr_log_filter.config import reload_settings
from gdpr_log_filter.core.patterns import PatternValidator
from gdpr_log_filter.core.rate_limit import RateLimitStore


@pytest.fixture(autouse=True)
def isolate_shared_state() -> Generator[None, None, None]:
    """Clear process-wide rate limit counters and the pattern cache around each test."""
    RateLimitStore.shared().clear_all()
    PatternValidator.default().clear_cache()
    yield
    RateLimitStore.shared().clear_all()
    PatternValidator.default().clear_cache()
    reload_settings()


@pytest.fixture
def audit_events() -> List[Dict[str, Any]]:
    """Collected audit events as dicts."""
    return []


@pytest.fixture
def audit_logger(audit_events: List[Dict[str, Any]]) -> Callable[[str, Any, Any], None]:
    """Audit callable appending to audit_events."""

    def logger(path: str, original: Any, masked: Any) -> None:
        audit_events.append({"path": path, "original": original, "masked": masked})

    return logger


@pytest.fixture
def ssn_patterns() -> Dict[str, str]:
    return {r"/\d{3}-\d{2}-\d{4}/": "[SSN]"}


@pytest.fixture
def email_patterns() -> Dict[str, str]:
    return {r"/[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}/": "[EMAIL]"}


@pytest.fixture
def sensitive_context() -> Dict[str, Any]:
    """Context with sensitive data for masking tests."""
    return {
        "user": {
            "ssn": "123-45-6789",
            "name": "John",
            "email": "john.doe@example.com",
        },
        "request": {
            "id": "req-1",
            "headers": {"authorization": "Bearer abc"},
        },
        "age": 25,
    }
