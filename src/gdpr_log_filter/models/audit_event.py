"""
Audit event model.

One event is produced per masking decision. Synthetic paths carry
diagnostics instead of per-field data.
"""

import time
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

# Reserved synthetic paths
CONDITIONAL_SKIP = "conditional_skip"
CONDITIONAL_ERROR = "conditional_error"
JSON_MASKED = "json_masked"
JSON_ENCODE_ERROR = "json_encode_error"
PREG_REPLACE_ERROR = "preg_replace_error"
PREG_REPLACE_BATCH_ERROR = "preg_replace_batch_error"
RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"
MAX_DEPTH_REACHED = "max_depth_reached"

SYNTHETIC_PATHS = frozenset(
    {
        CONDITIONAL_SKIP,
        CONDITIONAL_ERROR,
        JSON_MASKED,
        JSON_ENCODE_ERROR,
        PREG_REPLACE_ERROR,
        PREG_REPLACE_BATCH_ERROR,
        RATE_LIMIT_EXCEEDED,
        MAX_DEPTH_REACHED,
    }
)


class AuditEvent(BaseModel):
    """A single redaction decision."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    path: str = Field(description="Dotted field path or synthetic event name")
    original: Any = Field(default=None, description="Value before masking")
    masked: Any = Field(default=None, description="Value after masking")
    timestamp: Optional[int] = Field(default_factory=lambda: int(time.time()))

    @property
    def is_synthetic(self) -> bool:
        return self.path in SYNTHETIC_PATHS or self.path.endswith("_callback_error")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "original": self.original,
            "masked": self.masked,
            "timestamp": self.timestamp,
        }
