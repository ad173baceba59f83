"""Topic trie supporting single-level and multi-level wildcards."""

from __future__ import annotations

from typing import Any, Generic, TypeVar

from kvikpy.errors import InvalidArgumentError

V = TypeVar("V")

_MISSING: Any = object()


class _Node:
    __slots__ = ("children", "value")

    def __init__(self) -> None:
        self.children: dict[str, _Node] = {}
        self.value: Any = _MISSING

    @property
    def has_value(self) -> bool:
        return self.value is not _MISSING


class WildcardTrie(Generic[V]):
    """Maps topic patterns to values and finds the patterns matching a topic.

    A single-level wildcard matches exactly one level; a multi-level wildcard
    matches one or more remaining levels.
    """

    def __init__(self, separator: str, single_wildcard: str, multi_wildcard: str) -> None:
        if not separator or not single_wildcard or not multi_wildcard:
            raise InvalidArgumentError("separator and wildcards must not be empty")
        if len({separator, single_wildcard, multi_wildcard}) != 3:
            raise InvalidArgumentError("separator and wildcards must differ")
        self._sep = separator
        self._single = single_wildcard
        self._multi = multi_wildcard
        self._root = _Node()
        self._count = 0

    def _levels(self, key: str) -> list[str]:
        return key.split(self._sep)

    def _lookup(self, key: str) -> _Node | None:
        node: _Node | None = self._root
        for level in self._levels(key):
            node = node.children.get(level)
            if node is None:
                return None
        return node

    def insert(self, key: str, value: V) -> None:
        """Insert or overwrite the value stored under ``key``."""
        node = self._root
        for level in self._levels(key):
            node = node.children.setdefault(level, _Node())
        if not node.has_value:
            self._count += 1
        node.value = value

    def remove(self, key: str) -> bool:
        """Remove the value stored under exactly ``key``; False if absent."""
        path: list[tuple[_Node, str]] = []
        node = self._root
        for level in self._levels(key):
            child = node.children.get(level)
            if child is None:
                return False
            path.append((node, level))
            node = child
        if not node.has_value:
            return False
        node.value = _MISSING
        self._count -= 1
        for parent, level in reversed(path):
            child = parent.children[level]
            if child.has_value or child.children:
                break
            del parent.children[level]
        return True

    def find(self, key: str) -> dict[str, V]:
        """Return every stored pattern matching topic ``key`` with its value."""
        found: dict[str, V] = {}
        self._collect(self._root, self._levels(key), 0, [], found)
        return found

    def _collect(
        self,
        node: _Node,
        levels: list[str],
        depth: int,
        path: list[str],
        found: dict[str, V],
    ) -> None:
        if depth == len(levels):
            if node.has_value:
                found[self._sep.join(path)] = node.value
            return
        for name in dict.fromkeys((levels[depth], self._single)):
            child = node.children.get(name)
            if child is not None:
                path.append(name)
                self._collect(child, levels, depth + 1, path, found)
                path.pop()
        multi = node.children.get(self._multi)
        if multi is not None and multi.has_value:
            found[self._sep.join([*path, self._multi])] = multi.value

    def clear(self) -> None:
        """Remove all entries."""
        self._root = _Node()
        self._count = 0

    def items(self) -> list[tuple[str, V]]:
        """Snapshot of all stored (pattern, value) pairs."""
        result: list[tuple[str, V]] = []
        stack: list[tuple[_Node, list[str]]] = [(self._root, [])]
        while stack:
            node, path = stack.pop()
            if node.has_value and path:
                result.append((self._sep.join(path), node.value))
            for name, child in reversed(list(node.children.items())):
                stack.append((child, [*path, name]))
        return result

    def __getitem__(self, key: str) -> V:
        node = self._lookup(key)
        if node is None or not node.has_value:
            raise KeyError(key)
        return node.value

    def __setitem__(self, key: str, value: V) -> None:
        self.insert(key, value)

    def __bool__(self) -> bool:
        return self._count > 0

    def __len__(self) -> int:
        return self._count