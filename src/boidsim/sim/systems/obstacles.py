from __future__ import annotations

from typing import TYPE_CHECKING

from pygame.math import Vector2

from ..core.entities import Obstacle, ObstacleKind
from ..core.modes import FlockMode
from ..utils.math2d import _clamp_value

if TYPE_CHECKING:
    from ..core.flock import Flock


def make_obstacle(flock: Flock, x: float, y: float, radius: float, kind: ObstacleKind) -> Obstacle:
    velocity = Vector2()
    if kind == ObstacleKind.DRIFT:
        drift = flock._config.obstacles.drift_speed
        velocity.update(flock._rng.next_range(-drift, drift), flock._rng.next_range(-drift, drift))
    return Obstacle(position=Vector2(x, y), radius=radius, kind=kind, velocity=velocity)


def make_follow_obstacle(flock: Flock) -> Obstacle:
    config = flock._config
    return Obstacle(
        position=Vector2(config.world_width / 2, config.world_height / 2),
        radius=config.obstacles.follow_radius,
    )


def advance_obstacles(flock: Flock) -> None:
    width = flock._config.world_width
    height = flock._config.world_height
    for obstacle in flock.obstacles:
        if obstacle.kind != ObstacleKind.DRIFT:
            continue
        pos = obstacle.position
        vel = obstacle.velocity
        pos.update(pos.x + vel.x, pos.y + vel.y)
        radius = obstacle.radius
        if pos.x < radius or pos.x > width - radius:
            vel.x *= -1
        if pos.y < radius or pos.y > height - radius:
            vel.y *= -1
        pos.x = _clamp_value(pos.x, radius, width - radius)
        pos.y = _clamp_value(pos.y, radius, height - radius)

    follower = flock.follow_obstacle
    pointer = flock.predator.pointer
    if follower is not None and pointer is not None and flock.mode == FlockMode.PAINTER:
        follower.position = follower.position.lerp(pointer, flock._config.obstacles.follow_lerp)


def generate_maze(flock: Flock) -> None:
    config = flock._config
    maze = config.obstacles
    flock.obstacles.clear()
    spacing = maze.maze_spacing
    x = spacing
    while x < config.world_width - spacing:
        y = spacing
        while y < config.world_height - spacing:
            if flock._rng.next_chance(maze.maze_fill):
                flock.obstacles.append(Obstacle(position=Vector2(x, y), radius=maze.maze_radius))
            y += spacing
        x += spacing
