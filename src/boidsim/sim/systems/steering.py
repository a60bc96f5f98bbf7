from __future__ import annotations

import math
from typing import TYPE_CHECKING, List, Sequence, Tuple

from pygame.math import Vector2

from ..core.agent import Boid
from ..core.config import VisionMode
from ..core.entities import ObstacleKind
from ..utils.math2d import _angle_between, _clamp_length, _safe_normalize_xy, _with_length

if TYPE_CHECKING:
    from ..core.flock import Flock


def separation(
    agent: Boid, neighbors: Sequence[Boid], desired_distance: float, max_speed: float, max_force: float
) -> Vector2:
    steer_x = 0.0
    steer_y = 0.0
    count = 0
    pos = agent.position
    for other in neighbors:
        offset_x = pos.x - other.position.x
        offset_y = pos.y - other.position.y
        dist = math.hypot(offset_x, offset_y)
        # Coincident pairs carry no direction.
        if dist <= 0.0 or dist >= desired_distance:
            continue
        inv = 1.0 / (dist * dist)
        steer_x += offset_x * inv
        steer_y += offset_y * inv
        count += 1
    if count == 0:
        return Vector2()
    steer = Vector2(steer_x / count, steer_y / count)
    steer = _with_length(steer, max_speed) - agent.velocity
    return _clamp_length(steer, max_force)


def alignment(agent: Boid, neighbors: Sequence[Boid], max_speed: float, max_force: float) -> Vector2:
    if not neighbors:
        return Vector2()
    avg_x = 0.0
    avg_y = 0.0
    for other in neighbors:
        avg_x += other.velocity.x
        avg_y += other.velocity.y
    count = len(neighbors)
    desired = _with_length(Vector2(avg_x / count, avg_y / count), max_speed)
    return _clamp_length(desired - agent.velocity, max_force)


def cohesion(agent: Boid, neighbors: Sequence[Boid], max_speed: float, max_force: float) -> Vector2:
    if not neighbors:
        return Vector2()
    center_x = 0.0
    center_y = 0.0
    for other in neighbors:
        center_x += other.position.x
        center_y += other.position.y
    count = len(neighbors)
    return seek(agent, Vector2(center_x / count, center_y / count), max_speed, max_force)


def seek(agent: Boid, target: Vector2, max_speed: float, max_force: float) -> Vector2:
    desired = _with_length(target - agent.position, max_speed)
    return _clamp_length(desired - agent.velocity, max_force)


def within_cone(agent: Boid, neighbors: Sequence[Boid], half_angle: float) -> List[Boid]:
    # A boid at rest has no heading and keeps its full neighborhood.
    if agent.velocity.length_squared() < 1e-12:
        return list(neighbors)
    kept: List[Boid] = []
    for other in neighbors:
        to_other = other.position - agent.position
        if abs(_angle_between(agent.velocity, to_other)) < half_angle:
            kept.append(other)
    return kept


def split_species(agent: Boid, neighbors: Sequence[Boid]) -> Tuple[List[Boid], List[Boid]]:
    same: List[Boid] = []
    other_species: List[Boid] = []
    for other in neighbors:
        if other.species == agent.species:
            same.append(other)
        else:
            other_species.append(other)
    return same, other_species


def flee(
    agent: Boid,
    threat: Vector2,
    radius: float,
    max_speed: float,
    max_force: float,
    speed_multiplier: float,
    force_multiplier: float,
) -> Tuple[Vector2, float]:
    """Steer away from ``threat`` when inside ``radius``; also returns the distance."""
    offset = agent.position - threat
    dist = offset.length()
    if dist >= radius:
        return Vector2(), dist
    desired = _with_length(offset, max_speed * speed_multiplier)
    return _clamp_length(desired - agent.velocity, max_force * force_multiplier), dist


def avoid_obstacles(flock: Flock, agent: Boid, radius: float) -> Vector2:
    config = flock._config.obstacles
    weight = flock.params.separation_weight
    steer_x = 0.0
    steer_y = 0.0
    pos = agent.position
    for obstacle in flock.obstacles:
        offset_x = pos.x - obstacle.position.x
        offset_y = pos.y - obstacle.position.y
        dist = math.hypot(offset_x, offset_y)
        if dist >= obstacle.radius + radius:
            continue
        away = _safe_normalize_xy(offset_x, offset_y)
        falloff = 1.0 / max(dist - obstacle.radius, 1.0)
        multiplier = config.repel_multiplier if obstacle.kind == ObstacleKind.REPEL else config.default_multiplier
        scale = falloff * weight * multiplier
        steer_x += away.x * scale
        steer_y += away.y * scale
    return _clamp_length(Vector2(steer_x, steer_y), flock._config.max_force * config.force_multiplier)


def avoid_fear_trail(flock: Flock, agent: Boid) -> Vector2:
    predator = flock._config.predator
    radius_sq = predator.fear_point_radius * predator.fear_point_radius
    magnitude = flock._config.max_force * predator.fear_point_force_scale
    now = flock.now_ms
    steer_x = 0.0
    steer_y = 0.0
    pos = agent.position
    for point in flock.predator.fear_points:
        if now - point.time_ms > predator.fear_point_lifetime_ms:
            continue
        offset_x = pos.x - point.x
        offset_y = pos.y - point.y
        if offset_x * offset_x + offset_y * offset_y >= radius_sq:
            continue
        away = _safe_normalize_xy(offset_x, offset_y)
        steer_x += away.x * magnitude
        steer_y += away.y * magnitude
    return Vector2(steer_x, steer_y)


def apply_flocking(flock: Flock, agent: Boid, neighbors: Sequence[Boid]) -> None:
    """Accumulate the three flocking forces (and inter-species spacing) into ``agent``."""
    config = flock._config
    params = flock.params
    radius = flock.perception_radius_for(agent)
    max_speed = flock.max_speed_for(agent)
    max_force = config.max_force

    if params.vision_mode == VisionMode.CONE:
        neighbors = within_cone(agent, neighbors, math.radians(config.cone_half_angle_deg))

    if params.two_species:
        same, other_species = split_species(agent, neighbors)
    else:
        same, other_species = list(neighbors), []

    agent.neighbor_count = len(neighbors)

    sep_weight, ali_weight, coh_weight = flock.weights_for(agent)
    desired_distance = radius * config.separation_fraction

    sep = separation(agent, same, desired_distance, max_speed, max_force)
    ali = alignment(agent, same, max_speed, max_force)
    coh = cohesion(agent, same, max_speed, max_force)
    agent.apply_force(sep * sep_weight)
    agent.apply_force(ali * ali_weight)
    agent.apply_force(coh * coh_weight)

    if other_species:
        inter = separation(agent, other_species, desired_distance, max_speed, max_force)
        agent.apply_force(inter * (sep_weight * config.other_species_separation))
