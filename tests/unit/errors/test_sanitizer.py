"""
Tests for error message sanitization.
"""

import pytest

from gdpr_log_filter.core.sanitizer import SecuritySanitizer, sanitize_error_message


class TestSanitizer:
    """Test removal of sensitive fragments."""

    @pytest.mark.parametrize(
        "message, leaked",
        [
            ("connect failed password=s3cr3t!", "s3cr3t!"),
            ("host=db.internal.example refused", "db.internal.example"),
            ("auth as user=admin failed", "admin"),
            ("Authorization: Bearer eyJhbGciOi", "eyJhbGciOi"),
            ("using sk_live_abcdef123", "abcdef123"),
            ("redis://app:pw@cache.local:6379 timeout", "cache.local"),
            ("postgresql://u:p@10.1.2.3:5432 down", "10.1.2.3"),
            ("cannot read /etc/app/secret/key.pem", "key.pem"),
            ("peer 192.168.0.12 reset", "192.168.0.12"),
            ("api_key=ABCDEF1234567890", "ABCDEF1234567890"),
        ],
    )
    def test_sensitive_fragments_removed(self, message: str, leaked: str) -> None:
        assert leaked not in sanitize_error_message(message)

    def test_plain_message_unchanged(self) -> None:
        assert sanitize_error_message("Division by zero") == "Division by zero"

    def test_public_ip_kept(self) -> None:
        assert "8.8.8.8" in sanitize_error_message("resolver 8.8.8.8 slow")

    def test_truncation(self) -> None:
        result = SecuritySanitizer.sanitize_error_message("x" * 600)
        assert result == "x" * 500 + "... (truncated for security)"

    def test_non_string_input(self) -> None:
        assert sanitize_error_message(KeyError("missing")) == "'missing'"  # type: ignore[arg-type]
