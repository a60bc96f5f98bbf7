from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .metrics import FlockMetrics


@dataclass(slots=True)
class Snapshot:
    tick: int
    mode: str
    metrics: FlockMetrics
    agents: List[Dict[str, Any]]
    world: "SnapshotWorld"
    metadata: "SnapshotMetadata"
    scene: "SnapshotScene"


@dataclass(slots=True)
class SnapshotWorld:
    width: float
    height: float


@dataclass(slots=True)
class SnapshotMetadata:
    frame_ms: float
    seed: int
    config_version: str
    selected_id: Optional[int]


@dataclass(slots=True)
class SnapshotScene:
    obstacles: List[Dict[str, Any]]
    predator: Optional[Dict[str, float]]
    fear_points: List[Dict[str, float]]
    roaming_predators: List[Dict[str, float]]
    kill_count: int
    generation: int
