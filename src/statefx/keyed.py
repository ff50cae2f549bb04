"""KeyedCache — one cached instance per ordered tuple of arbitrary values.

Used to index state families: every argument position narrows to a nested
dict, and the terminal node holds the instance. The empty tuple is the root
node itself, so the default family member is found without any traversal.

Hashable key items are compared by equality (1 and 1.0 collide, as they do
for dict keys); unhashable items such as lists or dicts are keyed by identity.
"""

from __future__ import annotations

from typing import Callable, Generic, Hashable, Iterator, TypeVar

V = TypeVar("V")

_UNSET = object()


class _IdentityKey:
    """Wraps an unhashable key item so it can sit in a dict by identity."""

    __slots__ = ("item",)

    def __init__(self, item: object) -> None:
        self.item = item

    def __hash__(self) -> int:
        return id(self.item)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, _IdentityKey) and other.item is self.item


def _slot_key(item: object) -> Hashable:
    try:
        hash(item)
    except TypeError:
        return _IdentityKey(item)
    return item


class _Node:
    __slots__ = ("children", "value")

    def __init__(self) -> None:
        self.children: dict[Hashable, _Node] = {}
        self.value: object = _UNSET


class KeyedCache(Generic[V]):
    """Prefix trie from key tuples to cached values."""

    def __init__(self) -> None:
        self._root = _Node()
        # creation order, for values()
        self._nodes: list[_Node] = []

    def _find(self, key: tuple, create: bool) -> _Node | None:
        node = self._root
        for item in key:
            slot = _slot_key(item)
            child = node.children.get(slot)
            if child is None:
                if not create:
                    return None
                child = node.children[slot] = _Node()
            node = child
        return node

    def get_or_add(self, key: tuple, factory: Callable[[tuple], V]) -> V:
        """Return the value stored for key, creating it with factory(key) once."""
        node = self._find(key, create=True)
        if node.value is _UNSET:
            node.value = factory(key)
            self._nodes.append(node)
        return node.value  # type: ignore[return-value]

    def get(self, key: tuple, default: V | None = None) -> V | None:
        node = self._find(key, create=False)
        if node is None or node.value is _UNSET:
            return default
        return node.value  # type: ignore[return-value]

    def delete(self, key: tuple) -> None:
        """Forget the value for key. Intermediate trie nodes are kept."""
        node = self._find(key, create=False)
        if node is None or node.value is _UNSET:
            return
        node.value = _UNSET
        self._nodes.remove(node)

    def values(self) -> Iterator[V]:
        for node in list(self._nodes):
            if node.value is not _UNSET:
                yield node.value  # type: ignore[misc]

    def clear(self) -> None:
        self._root = _Node()
        self._nodes.clear()

    def __contains__(self, key: tuple) -> bool:
        node = self._find(key, create=False)
        return node is not None and node.value is not _UNSET

    def __len__(self) -> int:
        return len(self._nodes)
