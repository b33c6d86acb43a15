"""
Structured audit context models.

Carry operation type, outcome, timing, retry attempt and error details
alongside an audit event, so a trail can be correlated and analysed without
ever holding the values being masked.
"""

import secrets
import traceback
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..core.sanitizer import sanitize_error_message

STATUS_SUCCESS = "success"
STATUS_FAILED = "failed"
STATUS_RECOVERED = "recovered"
STATUS_SKIPPED = "skipped"

OP_REGEX = "regex"
OP_FIELD_PATH = "field_path"
OP_CALLBACK = "callback"
OP_DATA_TYPE = "data_type"
OP_JSON = "json"
OP_CONDITIONAL = "conditional"
OP_SERIALIZED = "serialized"


class ErrorContext(BaseModel):
    """Error details for an audit entry; messages are sanitized unless asked otherwise."""

    model_config = ConfigDict(frozen=True)

    error_type: str = Field(description="Exception class or error category")
    message: str = Field(description="Sanitized error message")
    code: int = 0
    file: Optional[str] = None
    line: Optional[int] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_exception(cls, exc: BaseException, include_sensitive: bool = False) -> "ErrorContext":
        """
        Capture an exception.

        Args:
            exc: The exception
            include_sensitive: Keep the raw message, origin and the last five
                traceback entries
        """
        message = str(exc) if include_sensitive else sanitize_error_message(str(exc))
        code = getattr(exc, "errno", None) or 0

        file = line = None
        metadata: Dict[str, Any] = {}
        if include_sensitive and exc.__traceback__ is not None:
            frames = traceback.extract_tb(exc.__traceback__)
            file, line = frames[-1].filename, frames[-1].lineno
            metadata["trace"] = [f"{frame.filename}:{frame.lineno} {frame.name}" for frame in frames[-5:]]

        return cls(
            error_type=type(exc).__name__,
            message=message,
            code=code if isinstance(code, int) else 0,
            file=file,
            line=line,
            metadata=metadata,
        )

    @classmethod
    def create(cls, error_type: str, message: str, metadata: Optional[Dict[str, Any]] = None) -> "ErrorContext":
        return cls(error_type=error_type, message=sanitize_error_message(message), metadata=metadata or {})

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"error_type": self.error_type, "message": self.message, "code": self.code}
        if self.file is not None:
            data["file"] = self.file
        if self.line is not None:
            data["line"] = self.line
        if self.metadata:
            data["metadata"] = self.metadata
        return data


class AuditContext(BaseModel):
    """Outcome and timing of one masking operation."""

    model_config = ConfigDict(frozen=True)

    operation_type: str
    status: str = STATUS_SUCCESS
    correlation_id: Optional[str] = None
    attempt_number: int = Field(default=1, ge=1)
    duration_ms: float = Field(default=0.0, ge=0.0)
    error: Optional[ErrorContext] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def success(
        cls, operation_type: str, duration_ms: float = 0.0, metadata: Optional[Dict[str, Any]] = None
    ) -> "AuditContext":
        return cls(operation_type=operation_type, duration_ms=duration_ms, metadata=metadata or {})

    @classmethod
    def failed(
        cls,
        operation_type: str,
        error: ErrorContext,
        attempt_number: int = 1,
        duration_ms: float = 0.0,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> "AuditContext":
        return cls(
            operation_type=operation_type,
            status=STATUS_FAILED,
            attempt_number=attempt_number,
            duration_ms=duration_ms,
            error=error,
            metadata=metadata or {},
        )

    @classmethod
    def recovered(
        cls,
        operation_type: str,
        attempt_number: int,
        duration_ms: float = 0.0,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> "AuditContext":
        return cls(
            operation_type=operation_type,
            status=STATUS_RECOVERED,
            attempt_number=attempt_number,
            duration_ms=duration_ms,
            metadata=metadata or {},
        )

    @classmethod
    def skipped(
        cls, operation_type: str, reason: str, metadata: Optional[Dict[str, Any]] = None
    ) -> "AuditContext":
        return cls(
            operation_type=operation_type,
            status=STATUS_SKIPPED,
            metadata={**(metadata or {}), "skip_reason": reason},
        )

    @staticmethod
    def generate_correlation_id() -> str:
        """16 hex characters from a CSPRNG."""
        return secrets.token_hex(8)

    def with_correlation_id(self, correlation_id: str) -> "AuditContext":
        return self.model_copy(update={"correlation_id": correlation_id})

    def with_metadata(self, metadata: Dict[str, Any]) -> "AuditContext":
        return self.model_copy(update={"metadata": {**self.metadata, **metadata}})

    @property
    def is_success(self) -> bool:
        return self.status in (STATUS_SUCCESS, STATUS_RECOVERED)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "operation_type": self.operation_type,
            "status": self.status,
            "attempt_number": self.attempt_number,
            "duration_ms": round(self.duration_ms, 3),
        }
        if self.correlation_id is not None:
            data["correlation_id"] = self.correlation_id
        if self.error is not None:
            data["error"] = self.error.to_dict()
        if self.metadata:
            data["metadata"] = self.metadata
        return data
