"""Bounded in-memory LRU cache with optional TTL for signing keys."""

from __future__ import annotations

import time
from typing import Callable

from .errors import ConfigError


class _Node:
    """Entry in the cache's recency list."""

    __slots__ = ("key", "value", "last_accessed", "prev", "next")

    def __init__(self, key: str, value: str, last_accessed: float) -> None:
        self.key = key
        self.value = value
        self.last_accessed = last_accessed
        self.prev: _Node | None = None
        self.next: _Node | None = None


def _is_positive_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


class LRUCache:
    """Least recently used cache of string values with an optional TTL.

    A dict maps keys to nodes of a doubly linked list kept in recency
    order (head side = most recently used). Sentinel head and tail nodes
    mean insertion and removal never special-case the list ends, so get,
    set, has, delete and eviction are all O(1).

    The TTL is measured from the last access, not from insertion: every
    successful ``get`` or repeated ``set`` restarts the clock.
    """

    def __init__(
        self,
        max_size: int,
        ttl: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Create a cache.

        Args:
            max_size: Maximum number of entries. Must be a positive integer.
            ttl: Optional time-to-live in seconds. ``None`` keeps entries
                until they are evicted for space.
            clock: Time source returning seconds.

        Raises:
            ConfigError: If max_size or ttl is not a positive integer.
        """
        if not _is_positive_int(max_size):
            raise ConfigError("max_size must be a positive integer")
        if ttl is not None and not _is_positive_int(ttl):
            raise ConfigError("ttl must be a positive integer (if specified)")

        self._max_size = max_size
        self._ttl = ttl
        self._clock = clock
        self._nodes: dict[str, _Node] = {}

        self._head = _Node("", "", 0.0)
        self._tail = _Node("", "", 0.0)
        self._head.next = self._tail
        self._tail.prev = self._head

    @property
    def max_size(self) -> int:
        return self._max_size

    @property
    def ttl(self) -> int | None:
        return self._ttl

    def get(self, key: str) -> str | None:
        """Return the cached value and mark it most recently used.

        Returns None if the key is absent or its entry has expired; an
        expired entry is removed.
        """
        node = self._nodes.get(key)
        if node is None:
            return None
        now = self._clock()
        if self._is_expired(node, now):
            self._remove(node)
            return None
        node.last_accessed = now
        self._move_to_front(node)
        return node.value

    def set(self, key: str, value: str) -> None:
        """Cache a value, evicting the least recently used entry if full.

        If the key is already cached only its recency and timestamp are
        refreshed. The stored value is NOT replaced: the first value cached
        for a key stays authoritative for as long as the entry lives, which
        keeps the PEM served for a given kid stable.
        """
        now = self._clock()
        existing = self._nodes.get(key)
        if existing is not None:
            existing.last_accessed = now
            self._move_to_front(existing)
            return

        node = _Node(key, value, now)
        self._nodes[key] = node
        self._add_to_front(node)

        if len(self._nodes) > self._max_size:
            self._evict_least_recently_used()

    def has(self, key: str) -> bool:
        """Check whether a live entry exists without touching its recency."""
        node = self._nodes.get(key)
        if node is None:
            return False
        if self._is_expired(node, self._clock()):
            self._remove(node)
            return False
        return True

    def delete(self, key: str) -> bool:
        """Remove a key. Returns True if it was present."""
        node = self._nodes.get(key)
        if node is None:
            return False
        self._remove(node)
        return True

    def clear(self) -> None:
        """Clear all cached entries."""
        self._nodes.clear()
        self._head.next = self._tail
        self._tail.prev = self._head

    def size(self) -> int:
        """Return the number of stored entries."""
        return len(self._nodes)

    def stats(self) -> dict[str, int]:
        """Return ``{"size": ..., "max_size": ...}`` for monitoring."""
        return {"size": len(self._nodes), "max_size": self._max_size}

    def keys(self) -> list[str]:
        """Return the cached keys, most recently used first."""
        result = []
        node = self._head.next
        while node is not None and node is not self._tail:
            result.append(node.key)
            node = node.next
        return result

    def __len__(self) -> int:
        return len(self._nodes)

    # ------------------------------------------------------------------
    # Linked list maintenance
    # ------------------------------------------------------------------

    def _is_expired(self, node: _Node, now: float) -> bool:
        return self._ttl is not None and now - node.last_accessed > self._ttl

    def _remove(self, node: _Node) -> None:
        self._unlink(node)
        del self._nodes[node.key]

    def _unlink(self, node: _Node) -> None:
        if node.prev is not None:
            node.prev.next = node.next
        if node.next is not None:
            node.next.prev = node.prev
        node.prev = None
        node.next = None

    def _add_to_front(self, node: _Node) -> None:
        first = self._head.next
        node.prev = self._head
        node.next = first
        if first is not None:
            first.prev = node
        self._head.next = node

    def _move_to_front(self, node: _Node) -> None:
        self._unlink(node)
        self._add_to_front(node)

    def _evict_least_recently_used(self) -> None:
        lru = self._tail.prev
        if lru is not None and lru is not self._head:
            self._remove(lru)
