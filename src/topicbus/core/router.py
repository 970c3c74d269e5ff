# src/core/router.py
from __future__ import annotations

import copy
import threading
from typing import Any, Callable, Dict, List, Optional

from topicbus.core import log
from topicbus.core.contracts import Handler, Meta
from topicbus.core.metrics import Timer, gauge_set, inc, observe_hist
from topicbus.core.trie import HandlerEntry, HandlerGuard, TopicTrie, TrieNode, split_topic

_MISSING = object()


class Router:
    """
    Synchronous topic router over a TopicTrie.

    subscribe("metrics.#", fn) registers fn(message, meta); emit("metrics.changed", msg)
    calls every matching handler on the calling thread and returns their results:
    matched nodes in breadth-first discovery order, handlers of one node in
    registration order. The first handler exception aborts the emit and propagates.
    """

    def __init__(
        self,
        name: str = "router",
        *,
        default_factory: Optional[Callable[[], Any]] = None,
        copy_message: Callable[[Any], Any] = copy.copy,
        message_type: Optional[Callable[[Any], Any]] = None,
    ):
        self.name = name
        self.l = log.get(name)
        self.trie = TopicTrie()
        self._default_factory = default_factory
        self._copy = copy_message
        self._message_type = message_type
        # guards trie mutation; traversal takes it too so it never sees a half-built path
        self._lock = threading.RLock()
        # one guard per handler callable, shared by all of its subscriptions
        self._guards: Dict[Any, HandlerGuard] = {}

    # ---------------- subscribe ----------------
    def subscribe(self, pattern: str, handler: Handler) -> "Router":
        if not callable(handler):
            raise TypeError(f"handler for {pattern!r} is not callable: {handler!r}")
        with self._lock:
            entry = HandlerEntry(handler, self._guard_for(handler))
            node = self.trie.add(pattern)
            node.handlers.append(entry)
            nodes = len(self.trie)
        self.l.info("subscribed pattern=%s fn=%s node=%d", pattern, entry.name, node.id)
        inc("router_subscribe_total", 1, router=self.name)
        gauge_set("router_nodes", float(nodes), router=self.name)
        return self

    on = subscribe

    def _guard_for(self, fn: Handler) -> HandlerGuard:
        try:
            key: Any = fn
            hash(key)
        except TypeError:
            # unhashable callable objects: the trie keeps them alive, so id() stays unique
            key = ("id", id(fn))
        guard = self._guards.get(key)
        if guard is None:
            guard = HandlerGuard(getattr(fn, "__name__", type(fn).__name__))
            self._guards[key] = guard
        return guard

    def handler_count(self) -> int:
        with self._lock:
            total = 0
            stack = [self.trie.root]
            while stack:
                node = stack.pop()
                total += len(node.handlers)
                stack.extend(node.children.values())
            return total

    # ---------------- match ----------------
    def match(self, topic: str) -> List[TrieNode]:
        """Nodes that emit(topic) would dispatch to, in dispatch order."""
        with self._lock:
            return self.trie.match(split_topic(topic))

    # ---------------- emit ----------------
    def emit(self, topic: str, message: Any = _MISSING) -> List[Any]:
        if message is _MISSING:
            message = self._default_factory() if self._default_factory is not None else None
        return self.emit_message(topic, message)

    def emit_from(self, topic: str, value: Any) -> List[Any]:
        """Convert value with the router's message_type (if any), then emit it."""
        message = self._message_type(value) if self._message_type is not None else value
        return self.emit_message(topic, message)

    def emit_message(self, topic: str, message: Any) -> List[Any]:
        words = split_topic(topic)
        with self._lock:
            nodes = self.trie.match(words)
            entries = [e for node in nodes for e in list(node.handlers)]

        inc("router_emit_total", 1, router=self.name)
        observe_hist("router_match_nodes", float(len(nodes)), router=self.name)
        if not entries:
            self.l.debug("no match topic=%s", topic)
            return []

        meta = Meta(topic=topic, words=words)
        results: List[Any] = []
        with Timer("router_emit_ms", router=self.name):
            for entry in entries:
                try:
                    results.append(entry(self._copy(message), meta))
                except Exception:
                    inc("router_handler_errors_total", 1, router=self.name, fn=entry.name)
                    self.l.debug("handler failed topic=%s fn=%s", topic, entry.name)
                    raise
        self.l.debug("emit topic=%s nodes=%d handlers=%d", topic, len(nodes), len(entries))
        return results
