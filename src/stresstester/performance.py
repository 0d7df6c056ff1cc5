"""Latency statistics collected while a run talks to the service."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Generic, TypeVar

from .request_info import RequestInfo, RequestKind

__all__ = ["PerformanceDataCollector", "PerformanceGroup", "PerformanceSeries"]

K = TypeVar("K", bound=RequestKind)


@dataclass(slots=True)
class PerformanceSeries:
    """Elapsed-time samples, in seconds, for one label."""

    label: str
    values: list[float] = field(default_factory=list)

    def append(self, value: float) -> None:
        self.values.append(value)

    @property
    def count(self) -> int:
        return len(self.values)

    @property
    def average(self) -> float | None:
        if not self.values:
            return None
        return sum(self.values) / len(self.values)

    @property
    def maximum(self) -> float | None:
        return max(self.values) if self.values else None

    def summary(self) -> Dict[str, Any]:
        return {"count": self.count, "average": self.average, "maximum": self.maximum}

    def __str__(self) -> str:
        average = self.average if self.average is not None else 0.0
        maximum = self.maximum if self.maximum is not None else 0.0
        return f"{self.label} - avg: {average}, max: {maximum}, count: {self.count}"


@dataclass(slots=True)
class PerformanceGroup(Generic[K]):
    """Series keyed by category, reported under a common title."""

    title: str
    data: Dict[K, PerformanceSeries] = field(default_factory=dict)

    def append(self, value: float, category: K) -> None:
        series = self.data.get(category)
        if series is None:
            series = self.data[category] = PerformanceSeries(label=category.value)
        series.append(value)

    def summary(self) -> Dict[str, Dict[str, Any]]:
        return {category.value: series.summary() for category, series in self.data.items()}

    def __str__(self) -> str:
        lines = [f"{self.title}:"]
        lines.extend(f"  {series}" for series in self.data.values())
        return "\n".join(lines)


class PerformanceDataCollector:
    """Request listener that aggregates response and deserialization times.

    Listening can be paused so warm-up requests stay out of the statistics;
    tree-walk timings are always recorded.
    """

    def __init__(self) -> None:
        self.listening = True
        self.response_time: PerformanceGroup[RequestKind] = PerformanceGroup("Service response time")
        self.deserialization_time: PerformanceGroup[RequestKind] = PerformanceGroup(
            "Syntax tree deserialization time"
        )
        self.tree_walk_time = PerformanceSeries(label="Syntax tree walk time")

    def stop_listening(self) -> None:
        self.listening = False

    def resume_listening(self) -> None:
        self.listening = True

    def received_response(self, request: RequestInfo, seconds: float) -> None:
        if not self.listening:
            return
        self.response_time.append(seconds, request.kind)

    def deserialized_tree(self, request: RequestInfo, seconds: float) -> None:
        if not self.listening:
            return
        self.deserialization_time.append(seconds, request.kind)

    def finished_tree_walk(self, seconds: float) -> None:
        self.tree_walk_time.append(seconds)

    def summary(self) -> Dict[str, Any]:
        return {
            "response_time": self.response_time.summary(),
            "deserialization_time": self.deserialization_time.summary(),
            "tree_walk_time": self.tree_walk_time.summary(),
        }

    def __str__(self) -> str:
        return "\n".join(
            str(part) for part in (self.response_time, self.deserialization_time, self.tree_walk_time)
        )
