"""
Bounded, thread-safe event feed shown at the bottom of the dashboard.
"""

import logging
import threading
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

DEFAULT_CAPACITY = 100

logger = logging.getLogger(__name__)


class EventLevel(Enum):
    """Severity of a dashboard event"""

    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"

    @classmethod
    def parse(cls, value: "EventLevel | str") -> "EventLevel":
        if isinstance(value, cls):
            return value
        text = str(value).strip().lower()
        if text == "warn":
            return cls.WARNING
        return cls(text)


_LOG_LEVELS = {
    EventLevel.INFO: logging.INFO,
    EventLevel.SUCCESS: logging.INFO,
    EventLevel.WARNING: logging.WARNING,
    EventLevel.ERROR: logging.ERROR,
}


@dataclass(frozen=True)
class Event:
    """A single timestamped message. Never mutated after creation."""

    level: EventLevel
    message: str
    timestamp: datetime = field(default_factory=datetime.now)

    def format_time(self) -> str:
        return self.timestamp.strftime("%H:%M:%S")


class EventLog:
    """Append-only FIFO of events with a fixed capacity"""

    def __init__(
        self,
        capacity: int = DEFAULT_CAPACITY,
        on_append: Callable[[Event], None] | None = None,
    ):
        if capacity < 1:
            raise ValueError("EventLog capacity must be at least 1")
        self.capacity = capacity
        self.on_append = on_append
        self._events: deque[Event] = deque(maxlen=capacity)
        self._lock = threading.Lock()
        self.total_appended = 0

    def append(self, level: EventLevel | str, message: str) -> Event:
        """Append an event, evicting the oldest one when full."""
        event = Event(level=EventLevel.parse(level), message=str(message))
        with self._lock:
            self._events.append(event)
            self.total_appended += 1

        logger.log(_LOG_LEVELS[event.level], "[%s] %s", event.level.value, event.message)

        if self.on_append is not None:
            try:
                self.on_append(event)
            except Exception as e:
                logger.debug(f"Event hook error: {e}")
        return event

    def info(self, message: str) -> Event:
        return self.append(EventLevel.INFO, message)

    def success(self, message: str) -> Event:
        return self.append(EventLevel.SUCCESS, message)

    def warning(self, message: str) -> Event:
        return self.append(EventLevel.WARNING, message)

    def error(self, message: str) -> Event:
        return self.append(EventLevel.ERROR, message)

    def recent(self, n: int | None = None) -> list[Event]:
        """Return up to the last ``n`` events, oldest first."""
        with self._lock:
            events = list(self._events)
        if n is None:
            return events
        if n <= 0:
            return []
        return events[-n:]

    def clear(self) -> None:
        """Drop all retained events"""
        with self._lock:
            self._events.clear()

    def count(self, level: EventLevel | str) -> int:
        """Number of retained events at ``level``."""
        wanted = EventLevel.parse(level)
        return sum(1 for e in self.recent() if e.level is wanted)

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)
