"""
In-process telemetry

Sessions and the discovery service record what happened (events) and how
long it took (metrics) into a bounded recorder. Nothing leaves the process;
the CLI and tests read the records back.
"""
import time
from collections import Counter, deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, List, Optional

DEFAULT_CAPACITY = 1000


@dataclass(frozen=True)
class Metric:
    """Measured value, e.g. scan duration in seconds"""
    name: str
    value: float
    recorded_at: float = field(default_factory=time.time)
    tags: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class Event:
    """Something that happened to a session or a scan"""
    name: str
    recorded_at: float = field(default_factory=time.time)
    attributes: Dict[str, Any] = field(default_factory=dict)

    def __getitem__(self, key: str) -> Any:
        return self.attributes[key]


class Telemetry:
    """
    Recorder owned by one service or session.

    Keeps the newest `capacity` events and metrics; per-name event counts
    survive eviction.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        self._metrics: Deque[Metric] = deque(maxlen=capacity)
        self._events: Deque[Event] = deque(maxlen=capacity)
        self._counts: Counter = Counter()

    def record_metric(self, name: str, value: float, tags: Optional[Dict[str, str]] = None) -> None:
        self._metrics.append(Metric(name=name, value=value, tags=tags or {}))

    def record_event(self, name: str, attributes: Optional[Dict[str, Any]] = None) -> None:
        self._events.append(Event(name=name, attributes=attributes or {}))
        self._counts[name] += 1

    def get_metrics(self, name: Optional[str] = None) -> List[Metric]:
        return [m for m in self._metrics if name is None or m.name == name]

    def get_events(self, name: Optional[str] = None) -> List[Event]:
        """Retained events, oldest first, optionally filtered by name"""
        return [e for e in self._events if name is None or e.name == name]

    def count(self, name: str) -> int:
        """Number of events recorded under name, including evicted ones"""
        return self._counts[name]

    def clear(self) -> None:
        self._metrics.clear()
        self._events.clear()
        self._counts.clear()
