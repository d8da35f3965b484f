"""In-memory event log mirroring the notifications each component emits."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Event:
    name: str
    timestamp: int
    data: dict[str, Any] = field(default_factory=dict)


class EventLog:
    def __init__(self, source: str) -> None:
        self.source = source
        self._events: list[Event] = []

    def emit(self, name: str, timestamp: int, **data: Any) -> Event:
        event = Event(name=name, timestamp=timestamp, data=data)
        self._events.append(event)
        logger.info("[%s] %s %s", self.source, name, data)
        return event

    def all(self, name: str | None = None) -> list[Event]:
        if name is None:
            return list(self._events)
        return [event for event in self._events if event.name == name]

    def __len__(self) -> int:
        return len(self._events)
