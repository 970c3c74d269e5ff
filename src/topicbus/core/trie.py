# src/core/trie.py
from __future__ import annotations

import threading
from collections import deque
from typing import Deque, Dict, List, Optional, Sequence, Set, Tuple

from topicbus.core.contracts import Handler

STAR = "*"   # exactly one word
HASH = "#"   # zero or more words


def split_pattern(pattern: str) -> List[str]:
    """Pattern segments, empty ones included ("a..b" -> ["a", "", "b"])."""
    return pattern.split(".")


def split_topic(topic: str) -> Tuple[str, ...]:
    """Topic words, empty segments dropped ("a..b" -> ("a", "b"))."""
    return tuple(w for w in topic.split(".") if w)


class HandlerGuard:
    """
    Mutual exclusion for one handler callable. Every HandlerEntry wrapping the same
    callable shares one guard, so a function subscribed on several patterns still
    never runs concurrently with itself. Re-entry from the thread already inside it
    raises RuntimeError instead of deadlocking.
    """

    __slots__ = ("name", "_lock", "_owner")

    def __init__(self, name: str):
        self.name = name
        self._lock = threading.Lock()
        self._owner: Optional[int] = None

    def __enter__(self):
        me = threading.get_ident()
        if self._owner == me:
            raise RuntimeError(f"handler {self.name} re-entered from its own thread")
        self._lock.acquire()
        self._owner = me
        return self

    def __exit__(self, exc_type, exc, tb):
        self._owner = None
        self._lock.release()
        return False


class HandlerEntry:
    """A registered handler and the guard it runs under."""

    __slots__ = ("fn", "name", "guard")

    def __init__(self, fn: Handler, guard: Optional[HandlerGuard] = None):
        self.fn = fn
        self.name = getattr(fn, "__name__", type(fn).__name__)
        self.guard = guard if guard is not None else HandlerGuard(self.name)

    def __call__(self, message, meta):
        with self.guard:
            return self.fn(message, meta)

    def __repr__(self) -> str:
        return f"HandlerEntry({self.name})"


class TrieNode:
    __slots__ = ("id", "children", "handlers")

    def __init__(self, node_id: int):
        self.id = node_id
        self.children: Dict[str, TrieNode] = {}
        self.handlers: List[HandlerEntry] = []

    def __repr__(self) -> str:
        return f"TrieNode(id={self.id}, children={sorted(self.children)}, handlers={len(self.handlers)})"


class TopicTrie:
    """
    Segment tree of subscription patterns.

    - add(pattern) creates missing nodes along the path and returns the terminal node
    - match(words) returns every handler-bearing node reachable under wildcard rules,
      each node at most once, in breadth-first discovery order

    The tree only grows; nodes keep their id for the life of the trie.
    """

    def __init__(self) -> None:
        self.root = TrieNode(0)
        self.next_id = 0

    def __len__(self) -> int:
        return self.next_id + 1

    @property
    def node_count(self) -> int:
        return len(self)

    def add(self, pattern: str) -> TrieNode:
        cursor = self.root
        for seg in split_pattern(pattern):
            nxt = cursor.children.get(seg)
            if nxt is None:
                self.next_id += 1
                nxt = TrieNode(self.next_id)
                cursor.children[seg] = nxt
            cursor = nxt
        return cursor

    def match(self, words: Sequence[str]) -> List[TrieNode]:
        n = len(words)
        routes: Deque[Tuple[TrieNode, int]] = deque([(self.root, 0)])
        queued: Set[Tuple[int, int]] = {(self.root.id, 0)}
        seen: Set[int] = set()
        found: List[TrieNode] = []

        while routes:
            node, i = routes.popleft()
            kids = node.children

            if i == n:
                if node.handlers and node.id not in seen:
                    seen.add(node.id)
                    found.append(node)
            else:
                lit = kids.get(words[i])
                if lit is not None:
                    _push(routes, queued, lit, i + 1)
                star = kids.get(STAR)
                if star is not None:
                    _push(routes, queued, star, i + 1)

            # "#" may swallow 0..remaining words, terminal or not
            hsh = kids.get(HASH)
            if hsh is not None:
                for j in range(i, n + 1):
                    _push(routes, queued, hsh, j)

        return found


def _push(routes: Deque[Tuple[TrieNode, int]], queued: Set[Tuple[int, int]], node: TrieNode, i: int) -> None:
    # identical (node, index) states expand identically; queue each once
    key = (node.id, i)
    if key not in queued:
        queued.add(key)
        routes.append((node, i))
