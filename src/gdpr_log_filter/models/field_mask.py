"""
Field-path masking configurations.

Each configured dotted path maps to one of five variants, discriminated by
``kind``:

- ``mask_regex``: run the processor's pattern chain against the value
- ``remove``: delete the key
- ``replace``: substitute a literal
- ``regex_mask``: apply a single pattern of its own
- ``callback``: hand the value to a user function
"""

from typing import Any, Callable, Dict, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..core.exceptions import ConfigurationError

MASK_MASKED = "***MASKED***"


class UseProcessorPatterns(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["mask_regex"] = "mask_regex"

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind}


class Remove(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["remove"] = "remove"

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind}


class Replace(BaseModel):
    """Replace the value with a literal string."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["replace"] = "replace"
    replacement: str = Field(description="Literal replacement value")

    @field_validator("replacement")
    def validate_replacement(cls, v: str) -> str:
        if v == "":
            raise ValueError("replacement must not be empty")
        return v

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "replacement": self.replacement}


class RegexMask(BaseModel):
    """Apply one ad hoc pattern to the value."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["regex_mask"] = "regex_mask"
    pattern: str = Field(min_length=1, description="Delimited regex, e.g. /\\d+/")
    replacement: str = Field(default=MASK_MASKED)

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "pattern": self.pattern, "replacement": self.replacement}


class Callback(BaseModel):
    """Delegate masking of the value to ``func``."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    kind: Literal["callback"] = "callback"
    func: Callable[[Any], Any]

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "func": getattr(self.func, "__name__", repr(self.func))}


FieldMaskConfig = Union[UseProcessorPatterns, Remove, Replace, RegexMask, Callback]

_VARIANTS = {
    "mask_regex": UseProcessorPatterns,
    "remove": Remove,
    "replace": Replace,
    "regex_mask": RegexMask,
    "callback": Callback,
}


def _build(variant: type, **kwargs: Any) -> Any:
    try:
        return variant(**kwargs)
    except ValidationError as e:
        errors = "; ".join(err["msg"] for err in e.errors())
        raise ConfigurationError(
            f"Invalid {variant.__name__} field mask: {errors}",
            details={"kind": variant.__name__, "errors": errors},
        ) from e


def use_processor_patterns() -> UseProcessorPatterns:
    return UseProcessorPatterns()


def remove() -> Remove:
    return Remove()


def replace(value: Any) -> Replace:
    """
    Build a Replace config.

    Raises:
        ConfigurationError: If value is None or empty
    """
    if value is None:
        raise ConfigurationError("Replace field mask requires a non-null replacement")
    return _build(Replace, replacement=str(value))


def regex_mask(pattern: str, replacement: str = MASK_MASKED) -> RegexMask:
    return _build(RegexMask, pattern=pattern, replacement=replacement)


def callback(func: Callable[[Any], Any]) -> Callback:
    if not callable(func):
        raise ConfigurationError("Callback field mask requires a callable")
    return _build(Callback, func=func)


def parse_field_mask_config(raw: Any) -> FieldMaskConfig:
    """
    Normalize one field-path table entry.

    Args:
        raw: A variant instance, a legacy string (treated as Replace), or a
            dict with a ``kind`` key

    Raises:
        ConfigurationError: For unknown kinds or invalid parameters
    """
    if isinstance(raw, tuple(_VARIANTS.values())):
        return raw
    if isinstance(raw, str):
        return replace(raw)
    if isinstance(raw, dict):
        kind = raw.get("kind")
        variant = _VARIANTS.get(kind)
        if variant is None:
            raise ConfigurationError.for_parameter("kind", kind, f"must be one of {sorted(_VARIANTS)}")
        if variant is Replace and raw.get("replacement") is None:
            raise ConfigurationError("Replace field mask requires a non-null replacement")
        return _build(variant, **raw)
    raise ConfigurationError.for_parameter(
        "field_mask", raw, "must be a field mask config, a replacement string or a dict with 'kind'"
    )
