from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import NamedTuple

from pygame.math import Vector2


class Species(str, Enum):
    BLUE = "blue"
    RED = "red"


@dataclass(slots=True)
class Genes:
    separation: float = 1.5
    alignment: float = 1.0
    cohesion: float = 1.0
    max_speed: float = 4.0
    radius: float = 80.0


class TrailPoint(NamedTuple):
    x: float
    y: float
    time_ms: float


@dataclass(slots=True)
class Boid:
    id: int
    position: Vector2
    velocity: Vector2
    species: Species = Species.BLUE
    acceleration: Vector2 = field(default_factory=Vector2)
    genes: Genes = field(default_factory=Genes)
    fitness: float = 50.0
    neighbor_count: int = 0
    panic_ms: float = 0.0
    trail: deque[TrailPoint] = field(default_factory=deque)
    last_trail_ms: float = float("-inf")
    alive: bool = True

    @property
    def panicking(self) -> bool:
        return self.panic_ms > 0.0

    def apply_force(self, force: Vector2) -> None:
        self.acceleration += force
