from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from pygame.math import Vector2

from .agent import Species


class ObstacleKind(str, Enum):
    STATIC = "static"
    DRIFT = "drift"
    REPEL = "repel"


@dataclass(slots=True)
class Obstacle:
    position: Vector2
    radius: float
    kind: ObstacleKind = ObstacleKind.STATIC
    velocity: Vector2 = field(default_factory=Vector2)


@dataclass(slots=True)
class FearPoint:
    x: float
    y: float
    time_ms: float


@dataclass(slots=True)
class PendingRespawn:
    species: Species
    respawn_at_ms: float


@dataclass(slots=True)
class RoamingPredator:
    position: Vector2
    velocity: Vector2


@dataclass(slots=True)
class PredatorState:
    pointer: Optional[Vector2] = None
    position: Optional[Vector2] = None
    fear_points: deque[FearPoint] = field(default_factory=deque)
    kill_count: int = 0

    def clear(self) -> None:
        self.position = None
        self.fear_points.clear()
