"""
Masking of Python object dumps embedded in log messages.

Covers the text ``repr()`` and ``pprint`` produce for dicts (quoted
``'key': 'value'`` pairs) and for dataclasses, namedtuples and similar
constructor-style reprs (``name='value'`` pairs). Each quoted value goes
through the string masker on its own, so anchored patterns can match a
whole value even when the surrounding message would not.
"""

import re
from typing import Callable, Optional

import structlog

from .audit import AuditLogger, emit_audit

logger = structlog.get_logger(__name__)

StringMasker = Callable[[str], str]

# Body of a quoted repr string: anything but the quote, a backslash or a newline, or an escape
_QUOTED_BODY = r"(?P<value>(?:(?!(?P=vq))[^\\\n]|\\.)*)"

_DICT_REPR_HINT = re.compile(r"\{\s*(['\"])\w+\1\s*:")
_DICT_PAIR = re.compile(
    r"(?P<kq>['\"])(?P<key>\w+)(?P=kq)(?P<sep>\s*:\s*)(?P<vq>['\"])" + _QUOTED_BODY + r"(?P=vq)"
)

_OBJECT_REPR_HINT = re.compile(r"\b\w+\(\s*[A-Za-z_]\w*=")
_KEYWORD_PAIR = re.compile(r"(?<![\w.])(?P<key>[A-Za-z_]\w*)(?P<sep>=)(?P<vq>['\"])" + _QUOTED_BODY + r"(?P=vq)")

DICT_REPR = "dict_repr"
OBJECT_REPR = "object_repr"


class SerializedDataProcessor:
    """
    Masks quoted values inside repr/pprint dumps.

    Args:
        string_masker: Applied to each quoted value
        audit_logger: Optional audit callable; events use ``dict_repr.<key>``
            and ``object_repr.<key>`` paths
    """

    def __init__(self, string_masker: StringMasker, audit_logger: Optional[AuditLogger] = None) -> None:
        self.string_masker = string_masker
        self.audit_logger = audit_logger

    def set_audit_logger(self, audit_logger: Optional[AuditLogger]) -> None:
        self.audit_logger = audit_logger

    def process(self, message: str) -> str:
        if not message:
            return message

        if _DICT_REPR_HINT.search(message):
            message = _DICT_PAIR.sub(lambda m: self._mask_pair(m, DICT_REPR, m.group("kq")), message)
        if _OBJECT_REPR_HINT.search(message):
            message = _KEYWORD_PAIR.sub(lambda m: self._mask_pair(m, OBJECT_REPR, ""), message)
        return message

    def _mask_pair(self, match: "re.Match[str]", kind: str, key_quote: str) -> str:
        value = match.group("value")
        masked = self.string_masker(value)
        if masked == value:
            return match.group(0)

        quote = match.group("vq")
        key = match.group("key")
        emit_audit(self.audit_logger, f"{kind}.{key}", value, masked)
        logger.debug("Serialized value masked", kind=kind, key=key)

        escaped = re.sub(r"(?<!\\)" + quote, "\\\\" + quote, masked)
        return f"{key_quote}{key}{key_quote}{match.group('sep')}{quote}{escaped}{quote}"
