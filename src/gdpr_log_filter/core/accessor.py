"""
Dotted-path access into context trees.

Writes copy every container on the path being written, so the tree handed
to the accessor is never modified and untouched branches are shared.
"""

from typing import Any, List, Optional, Tuple

_MISSING = object()


def _split(path: str) -> List[str]:
    return path.split(".")


def _child(container: Any, segment: str) -> Tuple[Any, Any]:
    """Resolve one path segment. Returns (key, value) or (None, _MISSING)."""
    if isinstance(container, dict):
        if segment in container:
            return segment, container[segment]
        if segment.lstrip("-").isdigit() and int(segment) in container:
            return int(segment), container[int(segment)]
        return None, _MISSING
    if isinstance(container, list) and segment.isdigit():
        index = int(segment)
        if index < len(container):
            return index, container[index]
    return None, _MISSING


def _shallow_copy(container: Any) -> Any:
    if isinstance(container, dict):
        return dict(container)
    if isinstance(container, (list, tuple)):
        return list(container)
    return container


class DotAccessor:
    """has/get/set/delete by dotted path; digit segments index lists."""

    def __init__(self, data: Any) -> None:
        self._data = data

    def _resolve(self, path: str) -> Any:
        node = self._data
        for segment in _split(path):
            _, node = _child(node, segment)
            if node is _MISSING:
                return _MISSING
        return node

    def has(self, path: str) -> bool:
        return self._resolve(path) is not _MISSING

    def get(self, path: str, default: Any = None) -> Any:
        value = self._resolve(path)
        return default if value is _MISSING else value

    def _copy_path(self, segments: List[str], create: bool) -> Optional[Tuple[Any, str]]:
        """Copy the containers along ``segments[:-1]``; return (parent copy, last segment)."""
        root = _shallow_copy(self._data)
        if not isinstance(root, (dict, list)):
            if not create:
                return None
            root = {}
        self._data = root

        parent = root
        for segment in segments[:-1]:
            key, node = _child(parent, segment)
            if node is _MISSING or not isinstance(node, (dict, list, tuple)):
                if not create:
                    return None
                if isinstance(parent, list):
                    return None
                key, node = segment, {}
            node = _shallow_copy(node)
            parent[key] = node
            parent = node
        return parent, segments[-1]

    def set(self, path: str, value: Any) -> None:
        target = self._copy_path(_split(path), create=True)
        if target is None:
            return
        parent, last = target
        key, existing = _child(parent, last)
        if existing is _MISSING:
            if isinstance(parent, list):
                return
            key = last
        parent[key] = value

    def delete(self, path: str) -> None:
        if not self.has(path):
            return
        target = self._copy_path(_split(path), create=False)
        if target is None:
            return
        parent, last = target
        key, _ = _child(parent, last)
        del parent[key]

    def all(self) -> Any:
        return self._data
