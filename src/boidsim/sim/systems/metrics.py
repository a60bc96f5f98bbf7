from __future__ import annotations

import math
from typing import List, Sequence

from ..core.agent import Boid
from ..types.metrics import FlockMetrics, StatsSample


def compactness(agents: Sequence[Boid]) -> float:
    """Mean distance of agents to their centroid."""
    if not agents:
        return 0.0
    count = len(agents)
    center_x = sum(agent.position.x for agent in agents) / count
    center_y = sum(agent.position.y for agent in agents) / count
    total = 0.0
    for agent in agents:
        total += math.hypot(agent.position.x - center_x, agent.position.y - center_y)
    return total / count


def create_metrics(
    tick: int,
    agents: Sequence[Boid],
    speed_sum: float,
    neighbor_sum: int,
    stepped: int,
    neighbor_checks: int,
    kills: int,
    respawns: int,
    generation: int,
    duration_ms: float,
) -> FlockMetrics:
    return FlockMetrics(
        tick=tick,
        population=len(agents),
        average_speed=speed_sum / stepped if stepped else 0.0,
        average_neighbors=neighbor_sum / stepped if stepped else 0.0,
        compactness=compactness(agents),
        neighbor_checks=neighbor_checks,
        kills=kills,
        respawns=respawns,
        generation=generation,
        tick_duration_ms=duration_ms,
    )


def record_sample(
    history: List[StatsSample], metrics: FlockMetrics, now_ms: float, history_size: int
) -> None:
    history.append(
        StatsSample(
            time_ms=now_ms,
            average_speed=metrics.average_speed,
            average_neighbors=metrics.average_neighbors,
            compactness=metrics.compactness,
        )
    )
    if len(history) > history_size:
        del history[: len(history) - history_size]
