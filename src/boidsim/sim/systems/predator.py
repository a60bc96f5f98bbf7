from __future__ import annotations

import logging
from typing import TYPE_CHECKING, List

from ..core.agent import Boid
from ..core.entities import FearPoint, PendingRespawn
from . import steering

if TYPE_CHECKING:
    from ..core.flock import Flock

logger = logging.getLogger(__name__)


def advance_predator(flock: Flock, tick: int) -> None:
    """Move the pointer-driven predator and maintain its fear trail."""
    config = flock._config.predator
    state = flock.predator
    pointer = state.pointer
    if pointer is None:
        state.position = None
    elif flock.params.predator_follow and state.position is not None:
        state.position = state.position.lerp(pointer, config.follow_lerp)
    else:
        state.position = pointer.copy()

    now = flock.now_ms
    if flock.params.fear_trail and state.position is not None and tick % max(1, config.fear_point_every_ticks) == 0:
        state.fear_points.append(FearPoint(state.position.x, state.position.y, now))
    while state.fear_points and now - state.fear_points[0].time_ms >= config.fear_point_lifetime_ms:
        state.fear_points.popleft()


def hunt(flock: Flock, agent: Boid) -> bool:
    """Apply flee steering from the predator; returns True when the agent is caught."""
    config = flock._config.predator
    position = flock.predator.position
    if position is None:
        return False
    force, dist = steering.flee(
        agent,
        position,
        config.fear_radius,
        flock.max_speed_for(agent),
        flock._config.max_force,
        config.flee_speed_multiplier,
        config.flee_force_multiplier,
    )
    if dist >= config.fear_radius:
        return False
    agent.apply_force(force)
    return dist < config.kill_distance


def sweep_kills(flock: Flock, killed: List[Boid]) -> int:
    """Remove caught agents, panic their neighbors and queue same-species respawns."""
    if not killed:
        return 0
    config = flock._config.predator
    panic_radius = flock.params.perception_radius
    panic_radius_sq = panic_radius * panic_radius
    survivors = [agent for agent in flock.agents if agent.alive]
    for victim in killed:
        for other in survivors:
            if (other.position - victim.position).length_squared() < panic_radius_sq:
                other.panic_ms = config.panic_ms
        flock.predator.kill_count += 1
        flock.respawn_queue.append(PendingRespawn(victim.species, flock.now_ms + config.respawn_delay_ms))
        if flock.selected is victim:
            flock.selected = None
    flock.agents[:] = survivors
    logger.info("predator caught %d boid(s), total kills %d", len(killed), flock.predator.kill_count)
    return len(killed)


def process_respawns(flock: Flock) -> int:
    queue = flock.respawn_queue
    if not queue:
        return 0
    now = flock.now_ms
    due = [entry for entry in queue if now >= entry.respawn_at_ms]
    if not due:
        return 0
    queue[:] = [entry for entry in queue if now < entry.respawn_at_ms]
    for entry in due:
        flock.spawn(entry.species)
    logger.debug("respawned %d boid(s)", len(due))
    return len(due)
