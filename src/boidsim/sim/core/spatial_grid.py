from __future__ import annotations

import math
from typing import TYPE_CHECKING, Iterable, List

if TYPE_CHECKING:
    from .agent import Boid


class SpatialGrid:
    """Uniform grid over the world, rebuilt every tick.

    Buckets live in a flat arena addressed by ``cell_x * rows + cell_y``.
    Positions outside the world are clamped to the nearest edge cell; the
    distance filter still uses true positions. Queries scan the 3x3 block
    around the agent's cell, so radii larger than ``cell_size`` under-count.
    """

    def __init__(self, cell_size: float, width: float, height: float) -> None:
        self._cells: List[List["Boid"]] = []
        self._active_keys: List[int] = []
        self._cell_size = 0.0
        self._width = 0.0
        self._height = 0.0
        self._cols = 0
        self._rows = 0
        self.query_count = 0
        self.candidate_count = 0
        self.resize(cell_size, width, height)

    @property
    def cell_size(self) -> float:
        return self._cell_size

    @property
    def dimensions(self) -> tuple[int, int]:
        return self._cols, self._rows

    def resize(self, cell_size: float, width: float, height: float) -> bool:
        if cell_size <= 0:
            raise ValueError(f"cell_size must be positive, got {cell_size}")
        if cell_size == self._cell_size and width == self._width and height == self._height:
            return False
        self._cell_size = cell_size
        self._width = width
        self._height = height
        self._cols = max(1, int(math.ceil(width / cell_size)))
        self._rows = max(1, int(math.ceil(height / cell_size)))
        # Entries from the old geometry are dropped, not rebucketed.
        self._cells = [[] for _ in range(self._cols * self._rows)]
        self._active_keys.clear()
        return True

    def clear(self) -> None:
        cells = self._cells
        for key in self._active_keys:
            cells[key].clear()
        self._active_keys.clear()
        self.query_count = 0
        self.candidate_count = 0

    def insert(self, agent: "Boid") -> None:
        cx, cy = self.cell_of(agent.position.x, agent.position.y)
        key = cx * self._rows + cy
        bucket = self._cells[key]
        if not bucket:
            self._active_keys.append(key)
        bucket.append(agent)

    def insert_all(self, agents: Iterable["Boid"]) -> None:
        for agent in agents:
            self.insert(agent)

    def cell_of(self, x: float, y: float) -> tuple[int, int]:
        cx = int(x // self._cell_size)
        cy = int(y // self._cell_size)
        if cx < 0:
            cx = 0
        elif cx >= self._cols:
            cx = self._cols - 1
        if cy < 0:
            cy = 0
        elif cy >= self._rows:
            cy = self._rows - 1
        return cx, cy

    def query_neighbors(self, agent: "Boid", radius: float) -> List["Boid"]:
        self.query_count += 1
        neighbors: List["Boid"] = []
        base_x, base_y = self.cell_of(agent.position.x, agent.position.y)
        radius_sq = radius * radius
        pos_x = agent.position.x
        pos_y = agent.position.y
        cells = self._cells
        cols = self._cols
        rows = self._rows
        candidates = 0

        for dx in (-1, 0, 1):
            cx = base_x + dx
            if cx < 0 or cx >= cols:
                continue
            for dy in (-1, 0, 1):
                cy = base_y + dy
                if cy < 0 or cy >= rows:
                    continue
                bucket = cells[cx * rows + cy]
                for other in bucket:
                    if other is agent:
                        continue
                    candidates += 1
                    offset_x = other.position.x - pos_x
                    offset_y = other.position.y - pos_y
                    if offset_x * offset_x + offset_y * offset_y < radius_sq:
                        neighbors.append(other)

        self.candidate_count += candidates
        return neighbors

    def query_neighbors_wrapped(self, agent: "Boid", radius: float) -> List["Boid"]:
        """Neighbors on a torus: wrapped cell indices and minimum-image deltas.

        Exact only while ``radius`` is at most half the smaller world
        dimension and no larger than ``cell_size``.
        """
        self.query_count += 1
        neighbors: List["Boid"] = []
        base_x, base_y = self.cell_of(agent.position.x, agent.position.y)
        radius_sq = radius * radius
        pos_x = agent.position.x
        pos_y = agent.position.y
        width = self._width
        height = self._height
        half_w = width * 0.5
        half_h = height * 0.5
        cells = self._cells
        cols = self._cols
        rows = self._rows
        visited: List[int] = []
        candidates = 0

        for dx in (-1, 0, 1):
            cx = (base_x + dx) % cols
            for dy in (-1, 0, 1):
                cy = (base_y + dy) % rows
                key = cx * rows + cy
                # Grids narrower than three cells would revisit buckets.
                if key in visited:
                    continue
                visited.append(key)
                for other in cells[key]:
                    if other is agent:
                        continue
                    candidates += 1
                    offset_x = other.position.x - pos_x
                    offset_y = other.position.y - pos_y
                    if abs(offset_x) > half_w:
                        offset_x = offset_x - width if offset_x > 0 else offset_x + width
                    if abs(offset_y) > half_h:
                        offset_y = offset_y - height if offset_y > 0 else offset_y + height
                    if offset_x * offset_x + offset_y * offset_y < radius_sq:
                        neighbors.append(other)

        self.candidate_count += candidates
        return neighbors


def brute_force_neighbors(agent: "Boid", agents: Iterable["Boid"], radius: float) -> List["Boid"]:
    radius_sq = radius * radius
    pos_x = agent.position.x
    pos_y = agent.position.y
    neighbors: List["Boid"] = []
    for other in agents:
        if other is agent:
            continue
        offset_x = other.position.x - pos_x
        offset_y = other.position.y - pos_y
        if offset_x * offset_x + offset_y * offset_y < radius_sq:
            neighbors.append(other)
    return neighbors
