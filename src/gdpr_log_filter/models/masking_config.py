"""
Aggregate masking configuration.

Validated as a whole at construction. Every problem surfaces as a
ConfigurationError naming the offending parameter; pydantic's own
ValidationError never escapes.
"""

from enum import Enum
from typing import Any, Callable, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from ..config import DATA_TYPE_TAGS, FAILURE_MODES, RATE_LIMIT_PROFILES, get_settings
from ..core.exceptions import ConfigurationError
from .field_mask import Callback, FieldMaskConfig, parse_field_mask_config

# Each nesting level costs several stack frames; walks must fit the default recursion limit
MAX_DEPTH_LIMIT = 100


class MaskingConfig(BaseModel):
    """
    Everything a MaskingOrchestrator needs.

    ``patterns`` is an ordered mapping of delimited regex to replacement and
    is applied as a chain. ``field_paths`` and ``custom_callbacks`` are keyed
    by dotted path; a callback always wins over a field-path entry for the
    same path. ``mask_serialized`` adds a per-value pass over Python object
    dumps found in messages.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    patterns: Dict[str, str] = Field(default_factory=dict)
    field_paths: Dict[str, FieldMaskConfig] = Field(default_factory=dict)
    custom_callbacks: Dict[str, Callable[[Any], Any]] = Field(default_factory=dict)
    data_type_masks: Dict[str, str] = Field(default_factory=dict)
    conditional_rules: Dict[str, Callable[..., Any]] = Field(default_factory=dict)
    max_depth: int = Field(default_factory=lambda: get_settings().max_depth)
    audit_logger: Optional[Callable[..., Any]] = None
    audit_rate_limit_profile: Optional[str] = Field(default_factory=lambda: get_settings().audit_rate_limit_profile)
    failure_mode: str = Field(default_factory=lambda: get_settings().failure_mode)
    mask_serialized: bool = Field(default=False, description="Also mask values inside repr/pprint dumps in messages")

    def __init__(self, **data: Any) -> None:
        try:
            super().__init__(**data)
        except ValidationError as e:
            first = e.errors()[0]
            parameter = ".".join(str(part) for part in first["loc"]) or "config"
            raise ConfigurationError.for_parameter(parameter, first.get("input"), first["msg"]) from e

    @model_validator(mode="before")
    @classmethod
    def split_callback_paths(cls, data: Any) -> Any:
        """Move Callback field-path entries into the callback table."""
        if not isinstance(data, dict):
            return data

        field_paths = data.get("field_paths") or {}
        if not isinstance(field_paths, dict):
            raise ConfigurationError.for_parameter("field_paths", field_paths, "must be a mapping")

        raw_callbacks = data.get("custom_callbacks") or {}
        if not isinstance(raw_callbacks, dict):
            raise ConfigurationError.for_parameter("custom_callbacks", raw_callbacks, "must be a mapping")

        parsed: Dict[str, Any] = {}
        callbacks = dict(raw_callbacks)
        for path, raw in field_paths.items():
            if not isinstance(path, str) or path.strip() == "":
                raise ConfigurationError.for_parameter("field_paths", path, "paths must be non-empty strings")
            entry = parse_field_mask_config(raw)
            if isinstance(entry, Callback):
                callbacks.setdefault(path, entry.func)
            else:
                parsed[path] = entry

        return {**data, "field_paths": parsed, "custom_callbacks": callbacks}

    @field_validator("patterns", mode="before")
    @classmethod
    def validate_patterns(cls, v: Any) -> Any:
        if v is None:
            return {}
        if not isinstance(v, dict):
            raise ConfigurationError.for_parameter("patterns", v, "must be a mapping of regex to replacement")
        for pattern, replacement in v.items():
            if not isinstance(pattern, str) or pattern == "":
                raise ConfigurationError.for_parameter("patterns", pattern, "patterns must be non-empty strings")
            if not isinstance(replacement, str):
                raise ConfigurationError.for_parameter(
                    "patterns", pattern, "replacement must be a string"
                )
        return v

    @field_validator("custom_callbacks", mode="before")
    @classmethod
    def validate_callbacks(cls, v: Any) -> Any:
        if v is None:
            return {}
        for path, func in v.items():
            if not isinstance(path, str) or path.strip() == "":
                raise ConfigurationError.for_parameter("custom_callbacks", path, "paths must be non-empty strings")
            if not callable(func):
                raise ConfigurationError.for_parameter("custom_callbacks", path, "callback must be callable")
        return v

    @field_validator("data_type_masks", mode="before")
    @classmethod
    def validate_data_type_masks(cls, v: Any) -> Any:
        if v is None:
            return {}
        if not isinstance(v, dict):
            raise ConfigurationError.for_parameter("data_type_masks", v, "must be a mapping of type to mask token")
        for tag, token in v.items():
            if tag not in DATA_TYPE_TAGS:
                raise ConfigurationError.for_parameter(
                    "data_type_masks", tag, f"type must be one of {list(DATA_TYPE_TAGS)}"
                )
            if not isinstance(token, str) or token.strip() == "":
                raise ConfigurationError.for_parameter("data_type_masks", tag, "mask token must be a non-empty string")
        return v

    @field_validator("conditional_rules", mode="before")
    @classmethod
    def validate_rules(cls, v: Any) -> Any:
        if v is None:
            return {}
        if not isinstance(v, dict):
            raise ConfigurationError.for_parameter("conditional_rules", v, "must be a mapping of name to rule")
        for name, rule in v.items():
            if not isinstance(name, str) or name.strip() == "":
                raise ConfigurationError.for_parameter("conditional_rules", name, "rule names must be non-empty")
            if not callable(rule):
                raise ConfigurationError.for_parameter("conditional_rules", name, "rule must be callable")
        return v

    @field_validator("max_depth", mode="before")
    @classmethod
    def validate_max_depth(cls, v: Any) -> Any:
        if isinstance(v, bool) or not isinstance(v, int):
            raise ConfigurationError.for_parameter("max_depth", v, "must be an integer")
        if v < 1 or v > MAX_DEPTH_LIMIT:
            raise ConfigurationError.for_parameter("max_depth", v, f"must be between 1 and {MAX_DEPTH_LIMIT}")
        return v

    @field_validator("audit_logger", mode="before")
    @classmethod
    def validate_audit_logger(cls, v: Any) -> Any:
        if v is not None and not callable(v):
            raise ConfigurationError.for_parameter("audit_logger", v, "must be callable or None")
        return v

    @field_validator("audit_rate_limit_profile", mode="before")
    @classmethod
    def validate_profile(cls, v: Any) -> Any:
        if v is None or v == "":
            return None
        if v not in RATE_LIMIT_PROFILES:
            raise ConfigurationError.for_parameter(
                "audit_rate_limit_profile", v, f"must be one of {list(RATE_LIMIT_PROFILES)}"
            )
        return v

    @field_validator("failure_mode", mode="before")
    @classmethod
    def validate_failure_mode(cls, v: Any) -> Any:
        if isinstance(v, Enum):
            v = v.value
        if not isinstance(v, str) or v.lower() not in FAILURE_MODES:
            raise ConfigurationError.for_parameter("failure_mode", v, f"must be one of {list(FAILURE_MODES)}")
        return v.lower()

    def with_audit_logger(self, audit_logger: Optional[Callable[..., Any]]) -> "MaskingConfig":
        """Copy of this config with a different audit logger."""
        return self.model_copy(update={"audit_logger": audit_logger})
