from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class FlockMetrics:
    tick: int
    population: int
    average_speed: float
    average_neighbors: float
    compactness: float
    neighbor_checks: int
    kills: int
    respawns: int
    generation: int
    tick_duration_ms: float = 0.0


@dataclass(slots=True)
class StatsSample:
    time_ms: float
    average_speed: float
    average_neighbors: float
    compactness: float
