
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Tuple

__all__ = [
    "Meta",
    "Event",
    "Handler",
]


# --------- Per-emit metadata ---------
@dataclass(frozen=True, slots=True)
class Meta:
    """Read-only context handed to every handler for one emit call."""
    topic: str                   # exact string passed to emit
    words: Tuple[str, ...]       # topic split on ".", empty segments dropped


# handler(message, meta) -> result
Handler = Callable[[Any, Meta], Any]


# --------- Lightweight bus wrapper (for InProcEventBus) ---------
@dataclass(slots=True)
class Event:
    """Simple bus envelope: a topic and its payload (data)."""
    topic: str
    data: Any = None

    @property
    def payload(self) -> Any:
        return self.data
