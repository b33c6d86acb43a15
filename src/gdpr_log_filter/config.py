"""
Engine-wide default settings.

Uses Pydantic Settings for environment variable handling and validation.
Per-processor configuration lives in ``models.masking_config.MaskingConfig``;
these settings only supply its defaults.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

FAILURE_MODES = ("fail_open", "fail_closed", "fail_safe")
RATE_LIMIT_PROFILES = ("strict", "default", "relaxed", "testing")
DATA_TYPE_TAGS = (
    "NULL", "null", "boolean", "bool", "integer", "int", "double", "float",
    "string", "str", "array", "object", "resource",
)


class EngineSettings(BaseSettings):
    """Default values for masking processors."""

    max_depth: int = Field(default=100, ge=1, le=100, description="Maximum recursion depth for nested context")
    failure_mode: str = Field(default="fail_open", description="Policy for values that cannot be masked")
    audit_rate_limit_profile: Optional[str] = Field(
        default=None,
        description="Rate limit preset applied to the audit logger (None disables wrapping)",
    )
    rate_limit_cleanup_interval: int = Field(
        default=300,
        ge=60,
        le=604800,
        description="Seconds between global rate limiter sweeps",
    )
    chunk_size: int = Field(default=1000, ge=1, description="Items per chunk when walking large containers")
    log_level: str = Field(default="INFO", description="Log level used by configure_logging")

    @field_validator("failure_mode")
    def validate_failure_mode(cls, v: str) -> str:
        """Only the three named failure policies are accepted."""
        v = v.lower()
        if v not in FAILURE_MODES:
            raise ValueError(f"failure_mode must be one of {FAILURE_MODES}")
        return v

    @field_validator("audit_rate_limit_profile")
    def validate_profile(cls, v: Optional[str]) -> Optional[str]:
        if v is None or v == "":
            return None
        if v not in RATE_LIMIT_PROFILES:
            raise ValueError(f"audit_rate_limit_profile must be one of {RATE_LIMIT_PROFILES}")
        return v

    model_config = SettingsConfigDict(env_prefix="GDPR_FILTER_", case_sensitive=False)


@lru_cache()
def get_settings() -> EngineSettings:
    """Get cached settings instance with environment overrides."""
    return EngineSettings()


def reload_settings() -> EngineSettings:
    """Reload settings (clears cache)."""
    get_settings.cache_clear()
    return get_settings()
