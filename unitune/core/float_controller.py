"""
Float Controller - execution markers for resolution, caching and batching.

A float is a named event with attached data. Collection is off by default
(zero overhead in production) and switched on in tests, which then assert on
what actually ran:

    >>> with FloatContext() as fc:
    ...     await client.resolve(url)
    ...     assert fc.count_floats("resolution.attempt") == 3
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import UTC, datetime
import logging
from typing import Any

logger = logging.getLogger(__name__)


@dataclass
class FloatEvent:
    """Single float event."""

    name: str
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


class FloatController:
    """
    Collects float events. One global instance per process.

    Query with an exact name or a ``prefix.*`` pattern.
    """

    _instance: FloatController | None = None

    def __init__(self, enabled: bool = False):
        self.enabled = enabled
        self._floats: list[FloatEvent] = []
        self._floats_by_name: dict[str, list[FloatEvent]] = defaultdict(list)

    @classmethod
    def get_instance(cls) -> FloatController:
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def float(self, event_name: str, **data: Any) -> FloatEvent | None:
        """Record an event if collection is enabled."""
        if not self.enabled:
            return None

        event = FloatEvent(name=event_name, data=data)
        self._floats.append(event)
        self._floats_by_name[event_name].append(event)
        logger.debug(f"FLOAT[{event_name}] {data if data else ''}")
        return event

    def has_float(self, name: str) -> bool:
        return name in self._floats_by_name

    def get_floats(self, pattern: str | None = None) -> list[FloatEvent]:
        if pattern is None:
            return self._floats.copy()
        if pattern.endswith("*"):
            prefix = pattern[:-1]
            return [event for event in self._floats if event.name.startswith(prefix)]
        return self._floats_by_name.get(pattern, []).copy()

    def count_floats(self, pattern: str | None = None) -> int:
        return len(self.get_floats(pattern))

    def clear(self) -> None:
        self._floats.clear()
        self._floats_by_name.clear()

    def __repr__(self) -> str:
        return f"FloatController(enabled={self.enabled}, floats={len(self._floats)})"


def float_event(event_name: str, **data: Any) -> FloatEvent | None:
    """Emit a float event on the global controller."""
    return FloatController.get_instance().float(event_name, **data)


class FloatContext:
    """Enable and reset float collection for the duration of a block."""

    def __init__(self, enabled: bool = True):
        self.enabled = enabled
        self.fc = FloatController.get_instance()
        self._old_enabled = self.fc.enabled

    def __enter__(self) -> FloatController:
        self.fc.enabled = self.enabled
        self.fc.clear()
        return self.fc

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.fc.enabled = self._old_enabled
        return False


__all__ = ["FloatContext", "FloatController", "FloatEvent", "float_event"]
