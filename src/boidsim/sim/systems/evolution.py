from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from pygame.math import Vector2

from ..core.agent import Boid, Genes
from ..core.entities import RoamingPredator
from ..utils.math2d import _clamp_value
from . import steering

if TYPE_CHECKING:
    from ..core.flock import Flock

logger = logging.getLogger(__name__)


def seed_roaming_predators(flock: Flock) -> None:
    config = flock._config
    evolution = config.evolution
    rng = flock._rng
    flock.roaming_predators.clear()
    for _ in range(evolution.predator_count):
        flock.roaming_predators.append(
            RoamingPredator(
                position=Vector2(
                    rng.next_range(0.0, config.world_width),
                    rng.next_range(0.0, config.world_height),
                ),
                velocity=Vector2(
                    rng.next_range(-evolution.predator_start_speed, evolution.predator_start_speed),
                    rng.next_range(-evolution.predator_start_speed, evolution.predator_start_speed),
                ),
            )
        )


def advance_roaming_predators(flock: Flock) -> None:
    """Random walk with edge bounce for the evolution-mode predators."""
    evolution = flock._config.evolution
    width = flock._config.world_width
    height = flock._config.world_height
    rng = flock._rng
    for predator in flock.roaming_predators:
        pos = predator.position
        vel = predator.velocity
        pos.update(pos.x + vel.x, pos.y + vel.y)
        if pos.x < 0 or pos.x > width:
            vel.x *= -1
        if pos.y < 0 or pos.y > height:
            vel.y *= -1
        pos.x = _clamp_value(pos.x, 0.0, width)
        pos.y = _clamp_value(pos.y, 0.0, height)
        if rng.next_chance(evolution.predator_turn_chance):
            jitter = evolution.predator_turn_jitter
            vel.x += rng.next_range(-jitter, jitter)
            vel.y += rng.next_range(-jitter, jitter)
            speed = vel.length()
            if speed > evolution.predator_max_speed:
                vel.scale_to_length(evolution.predator_max_speed)


def evade_and_score(flock: Flock, agent: Boid) -> None:
    evolution = flock._config.evolution
    predator_config = flock._config.predator
    fitness_radius_sq = evolution.fitness_radius * evolution.fitness_radius
    max_speed = flock.max_speed_for(agent)
    for predator in flock.roaming_predators:
        force, _dist = steering.flee(
            agent,
            predator.position,
            evolution.predator_fear_radius,
            max_speed,
            flock._config.max_force,
            predator_config.flee_speed_multiplier,
            predator_config.flee_force_multiplier,
        )
        agent.apply_force(force)
        if (agent.position - predator.position).length_squared() < fitness_radius_sq:
            agent.fitness += evolution.fitness_per_tick


def genes_from_params(flock: Flock) -> Genes:
    params = flock.params
    return Genes(
        separation=params.separation_weight,
        alignment=params.alignment_weight,
        cohesion=params.cohesion_weight,
        max_speed=params.max_speed,
        radius=params.perception_radius,
    )


def selection_due(flock: Flock) -> bool:
    evolution = flock._config.evolution
    return (
        flock.now_ms - flock.last_selection_ms > evolution.interval_ms
        and len(flock.agents) > evolution.min_population
    )


def run_selection(flock: Flock) -> int:
    """Truncation selection: the bottom fraction inherits the top fraction's mean genes, perturbed.

    Returns the number of agents replaced.
    """
    config = flock._config
    evolution = config.evolution
    rng = flock._rng
    agents = flock.agents
    flock.last_selection_ms = flock.now_ms
    flock.generation += 1

    agents.sort(key=lambda agent: agent.fitness, reverse=True)
    total = len(agents)
    top_count = int(total * evolution.selection_fraction)
    bottom_count = int(total * evolution.selection_fraction)
    if top_count == 0 or bottom_count == 0:
        return 0

    mean = Genes(separation=0.0, alignment=0.0, cohesion=0.0, max_speed=0.0, radius=0.0)
    for agent in agents[:top_count]:
        mean.separation += agent.genes.separation
        mean.alignment += agent.genes.alignment
        mean.cohesion += agent.genes.cohesion
        mean.max_speed += agent.genes.max_speed
        mean.radius += agent.genes.radius
    mean.separation /= top_count
    mean.alignment /= top_count
    mean.cohesion /= top_count
    mean.max_speed /= top_count
    mean.radius /= top_count

    low = 1.0 - evolution.mutation
    high = 1.0 + evolution.mutation
    speed_min, speed_max = evolution.max_speed_bounds
    radius_min, radius_max = evolution.radius_bounds
    for agent in agents[total - bottom_count:]:
        agent.position = Vector2(
            rng.next_range(0.0, config.world_width),
            rng.next_range(0.0, config.world_height),
        )
        agent.velocity = rng.next_unit_circle() * evolution.reset_speed
        agent.acceleration.update(0.0, 0.0)
        agent.fitness = evolution.baseline_fitness
        agent.genes = Genes(
            separation=mean.separation * rng.next_range(low, high),
            alignment=mean.alignment * rng.next_range(low, high),
            cohesion=mean.cohesion * rng.next_range(low, high),
            max_speed=_clamp_value(mean.max_speed * rng.next_range(low, high), speed_min, speed_max),
            radius=_clamp_value(mean.radius * rng.next_range(low, high), radius_min, radius_max),
        )

    logger.info(
        "generation %d: replaced %d of %d boids (top fitness %.2f)",
        flock.generation,
        bottom_count,
        total,
        agents[0].fitness,
    )
    return bottom_count
