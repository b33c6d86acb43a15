"""
Regex pattern validation with ReDoS screening and caching.

Patterns are written in PCRE delimited form (``/body/flags``) and compiled
with the standard ``re`` module after a small syntax translation. A pattern
is rejected when it does not parse, when it uses recursion constructs, when
it carries an out-of-range code point escape, or when it matches one of the
classic catastrophic-backtracking shapes.
"""

import re
import threading
from dataclasses import dataclass
from typing import Dict, Iterable, Mapping, Optional, Union

import structlog

from .exceptions import PatternValidationError

logger = structlog.get_logger(__name__)

MAX_CODE_POINT = 0x10FFFF

_BRACKET_DELIMITERS = {"(": ")", "[": "]", "{": "}", "<": ">"}

_FLAG_MAP = {
    "i": re.IGNORECASE,
    "m": re.MULTILINE,
    "s": re.DOTALL,
    "x": re.VERBOSE,
    "u": 0,
    "D": 0,
}

# Recursion and subroutine calls
_RECURSION_PATTERNS = [
    re.compile(r"\(\?R\)"),
    re.compile(r"\(\?[+-]?\d+\)"),
    re.compile(r"\(\?&\w+\)"),
    re.compile(r"\(\?P>\w+\)"),
    re.compile(r"\\g<\w+>"),
    re.compile(r"\\g'\w+'"),
]

_DANGEROUS_PATTERNS = [
    # Nested quantifiers
    re.compile(r"\([^)]*\+[^)]*\)\+"),  # (a+)+
    re.compile(r"\([^)]*\*[^)]*\)\*"),  # (a*)*
    re.compile(r"\([^)]*\+[^)]*\)\*"),  # (a+)*
    re.compile(r"\([^)]*\*[^)]*\)\+"),  # (a*)+
    # Quantified alternation
    re.compile(r"\([^|)]*\|[^|)]*\)\*"),  # (a|a)*
    re.compile(r"\([^|)]*\|[^|)]*\)\+"),  # (a|a)+
    re.compile(r"\(\([^)]*\+[^)]*\)[^)]*\)\+"),  # ((a+)...)+
    # Quantified character classes inside quantified groups
    re.compile(r"\[[^\]]*\]\*\*"),  # [a-z]**
    re.compile(r"\[[^\]]*\]\+\+"),  # [a-z]++
    re.compile(r"\([^)]*\[[^\]]*\][^)]*\)\*"),  # ([a-z])*
    re.compile(r"\([^)]*\[[^\]]*\][^)]*\)\+"),  # ([a-z])+
    # Lookaround followed by a quantified group
    re.compile(r"\(\?=[^)]*\)\([^)]*\)\+"),
    re.compile(r"\(\?<[^)]*\)\([^)]*\)\+"),
    # Stacked quantifiers
    re.compile(r"\\w\+\*"),
    re.compile(r"\\w\*\+"),
    re.compile(r"\.\*\*"),
    re.compile(r"\.\+\+"),
    re.compile(r"\(\.\*\)\+"),
    re.compile(r"\(\.\+\)\*"),
    re.compile(r"\(\?.*\*.*\+"),
    re.compile(r"\(.*\*.*\).*\*"),
    # Identical or expanding alternations
    re.compile(r"\(\.\*\s*\|\s*\.\*\)"),
    re.compile(r"\(\.\+\s*\|\s*\.\+\)"),
    re.compile(r"\([a-zA-Z0-9]+(\s*\|\s*[a-zA-Z0-9]+){2,}\)\*"),
    re.compile(r"\([a-zA-Z0-9]+(\s*\|\s*[a-zA-Z0-9]+){2,}\)\+"),
]

_CODE_POINT_ESCAPE = re.compile(r"\\x\{([0-9A-Fa-f]+)\}")


@dataclass(frozen=True)
class DelimitedPattern:
    """A PCRE-style pattern split into body and flags."""

    source: str
    body: str
    flags: str


def split_delimited(pattern: str) -> Optional[DelimitedPattern]:
    """
    Split ``/body/flags`` into its parts.

    Returns None when the delimiters or flags are malformed.
    """
    if len(pattern) < 3:
        return None

    opener = pattern[0]
    if opener.isalnum() or opener == "\\" or opener.isspace():
        return None

    closer = _BRACKET_DELIMITERS.get(opener, opener)
    end = pattern.rfind(closer)
    if end <= 0:
        return None

    body = pattern[1:end]
    flags = pattern[end + 1:]
    if body == "" or any(flag not in _FLAG_MAP for flag in flags):
        return None

    return DelimitedPattern(source=pattern, body=body, flags=flags)


def translate_body(body: str) -> str:
    """
    Translate PCRE-only syntax into its ``re`` equivalent.

    Raises:
        ValueError: When a code point escape is out of range
    """
    out = []
    i = 0
    length = len(body)
    while i < length:
        char = body[i]
        if char == "\\" and i + 1 < length:
            nxt = body[i + 1]
            if nxt == "x" and i + 2 < length and body[i + 2] == "{":
                match = _CODE_POINT_ESCAPE.match(body, i)
                if match is None:
                    raise ValueError("Malformed code point escape")
                code_point = int(match.group(1), 16)
                if code_point > MAX_CODE_POINT:
                    raise ValueError(f"Code point {match.group(1)} exceeds U+10FFFF")
                out.append(re.escape(chr(code_point)))
                i = match.end()
                continue
            if nxt == "z":
                out.append(r"\Z")
            elif nxt == "h":
                out.append(r"[ \t]")
            elif nxt == "k" and i + 2 < length and body[i + 2] == "<":
                close = body.find(">", i + 3)
                if close == -1:
                    raise ValueError("Unterminated named back-reference")
                out.append(f"(?P={body[i + 3:close]})")
                i = close + 1
                continue
            else:
                out.append(body[i:i + 2])
            i += 2
            continue

        if body.startswith("(?<", i) and i + 3 < length and body[i + 3] not in "=!":
            out.append("(?P<")
            i += 3
            continue

        out.append(char)
        i += 1

    return "".join(out)


def translate_replacement(replacement: str) -> str:
    """
    Convert a PCRE replacement (``$1``, ``${1}``, ``\\1``) to a ``re`` template.

    Backslashes that do not introduce a group reference are literal.
    """
    out = []
    i = 0
    length = len(replacement)
    while i < length:
        char = replacement[i]
        if char == "$":
            match = re.match(r"\$(\d{1,2})|\$\{(\d{1,2})\}", replacement[i:])
            if match:
                out.append(f"\\g<{match.group(1) or match.group(2)}>")
                i += match.end()
                continue
        elif char == "\\":
            match = re.match(r"\\(\d{1,2})", replacement[i:])
            if match:
                out.append(f"\\g<{match.group(1)}>")
                i += match.end()
                continue
            out.append("\\\\")
            i += 1
            continue
        out.append(char)
        i += 1
    return "".join(out)


def has_dangerous_pattern(pattern: str) -> bool:
    """Check whether a pattern contains recursion or catastrophic-backtracking shapes."""
    if any(p.search(pattern) for p in _RECURSION_PATTERNS):
        return True
    return any(p.search(pattern) for p in _DANGEROUS_PATTERNS)


class PatternValidator:
    """
    Validates regex patterns for safety and correctness.

    Results are cached per exact pattern string. The cache and the compiled
    pattern table are guarded by a lock so one validator can be shared by
    concurrent orchestrators.
    """

    _default: Optional["PatternValidator"] = None
    _default_lock = threading.Lock()

    def __init__(self) -> None:
        self._valid_cache: Dict[str, bool] = {}
        self._compiled: Dict[str, "re.Pattern[str]"] = {}
        self._lock = threading.RLock()

    @classmethod
    def default(cls) -> "PatternValidator":
        """Get or create the shared validator instance."""
        with cls._default_lock:
            if cls._default is None:
                cls._default = cls()
            return cls._default

    def is_valid(self, pattern: str) -> bool:
        """Validate that a regex pattern is safe and well-formed."""
        with self._lock:
            cached = self._valid_cache.get(pattern)
            if cached is not None:
                return cached

            valid = self._check(pattern)
            self._valid_cache[pattern] = valid
            return valid

    def _check(self, pattern: str) -> bool:
        if not isinstance(pattern, str):
            return False

        parts = split_delimited(pattern)
        if parts is None:
            return False

        if has_dangerous_pattern(pattern):
            logger.warning("Rejected potentially dangerous regex pattern", pattern_length=len(pattern))
            return False

        try:
            compiled = re.compile(translate_body(parts.body), self._flags(parts.flags))
        except (re.error, ValueError, OverflowError) as e:
            logger.debug("Regex pattern failed to compile", error=str(e))
            return False

        self._compiled[pattern] = compiled
        return True

    @staticmethod
    def _flags(flags: str) -> int:
        value = 0
        for flag in flags:
            value |= _FLAG_MAP[flag]
        return value

    def compile(self, pattern: str) -> "re.Pattern[str]":
        """
        Get the compiled form of a validated pattern.

        Raises:
            PatternValidationError: If the pattern is invalid or unsafe
        """
        with self._lock:
            if not self.is_valid(pattern):
                raise PatternValidationError(pattern)
            compiled = self._compiled.get(pattern)
            if compiled is None:
                parts = split_delimited(pattern)
                if parts is None:
                    raise PatternValidationError(pattern)
                compiled = re.compile(translate_body(parts.body), self._flags(parts.flags))
                self._compiled[pattern] = compiled
            return compiled

    def cache_patterns(self, patterns: Union[Mapping[str, str], Iterable[str]]) -> None:
        """Pre-validate patterns so later lookups hit the cache."""
        for pattern in patterns:
            self.is_valid(pattern)

    def validate_all(self, patterns: Union[Mapping[str, str], Iterable[str]]) -> None:
        """
        Validate all patterns before use.

        Args:
            patterns: Pattern table (keys are patterns) or iterable of patterns

        Raises:
            PatternValidationError: Naming the first invalid or unsafe pattern
        """
        for pattern in patterns:
            if not self.is_valid(pattern):
                raise PatternValidationError(pattern)

    def get_cache(self) -> Dict[str, bool]:
        """Get a snapshot of the validity cache."""
        with self._lock:
            return dict(self._valid_cache)

    def clear_cache(self) -> None:
        """Clear the validity and compiled caches (useful for testing)."""
        with self._lock:
            self._valid_cache.clear()
            self._compiled.clear()
