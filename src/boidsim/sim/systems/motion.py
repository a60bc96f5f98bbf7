from __future__ import annotations

from typing import TYPE_CHECKING

from ..core.agent import Boid, TrailPoint
from ..core.config import BoundaryMode
from ..utils.math2d import _clamp_length

if TYPE_CHECKING:
    from ..core.flock import Flock


def decay_panic(agent: Boid, elapsed_ms: float) -> None:
    if agent.panic_ms > 0.0:
        agent.panic_ms = max(0.0, agent.panic_ms - elapsed_ms)


def effective_max_speed(flock: Flock, agent: Boid) -> float:
    max_speed = flock.max_speed_for(agent)
    if agent.panicking:
        return max_speed * flock._config.predator.panic_speed_multiplier
    return max_speed


def integrate(flock: Flock, agent: Boid) -> None:
    agent.velocity = _clamp_length(agent.velocity + agent.acceleration, effective_max_speed(flock, agent))
    agent.position += agent.velocity
    agent.acceleration.update(0.0, 0.0)


def apply_boundary(flock: Flock, agent: Boid) -> None:
    width = flock._config.world_width
    height = flock._config.world_height
    pos = agent.position
    if flock.params.boundary_mode == BoundaryMode.WRAP:
        if pos.x > width:
            pos.x = 0.0
        if pos.x < 0.0:
            pos.x = width
        if pos.y > height:
            pos.y = 0.0
        if pos.y < 0.0:
            pos.y = height
        return

    margin = flock._config.bounce_margin
    vel = agent.velocity
    if pos.x < margin:
        pos.x = margin
        vel.x *= -1
    if pos.x > width - margin:
        pos.x = width - margin
        vel.x *= -1
    if pos.y < margin:
        pos.y = margin
        vel.y *= -1
    if pos.y > height - margin:
        pos.y = height - margin
        vel.y *= -1


def record_trail(flock: Flock, agent: Boid) -> None:
    trails = flock._config.trails
    now = flock.now_ms
    if now - agent.last_trail_ms > trails.record_interval_ms:
        agent.trail.append(TrailPoint(agent.position.x, agent.position.y, now))
        agent.last_trail_ms = now
    trail = agent.trail
    while trail and now - trail[0].time_ms > trails.lifetime_ms:
        trail.popleft()
