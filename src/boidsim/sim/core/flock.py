from __future__ import annotations

import logging
import math
from dataclasses import fields as dataclass_fields
from time import perf_counter
from typing import Any, Dict, List, Optional, Tuple

from pygame.math import Vector2

from .agent import Boid, Species
from .config import PRESETS, BoundaryMode, FlockParams, SimulationConfig, VisionMode
from .entities import Obstacle, ObstacleKind, PendingRespawn, PredatorState, RoamingPredator
from .modes import AudioSource, BaseWeights, FlockMode, ModeController
from .rng import DeterministicRng
from .spatial_grid import SpatialGrid, brute_force_neighbors
from ..systems import evolution, metrics as metrics_system, motion, obstacles as obstacle_system, predator, steering
from ..types.metrics import FlockMetrics, StatsSample
from ..types.snapshot import Snapshot, SnapshotMetadata, SnapshotScene, SnapshotWorld
from ..utils.math2d import _heading_from_velocity

logger = logging.getLogger(__name__)

_PARAM_NAMES = frozenset(f.name for f in dataclass_fields(FlockParams))
_WEIGHT_NAMES = frozenset({"separation_weight", "alignment_weight", "cohesion_weight"})
_BOOL_NAMES = frozenset({"two_species", "use_spatial_index", "trails_enabled", "predator_follow", "fear_trail"})


def _coerce_param(name: str, value: Any) -> Any:
    if name == "boundary_mode":
        return BoundaryMode(value)
    if name == "vision_mode":
        return VisionMode(value)
    if name in _BOOL_NAMES:
        if not isinstance(value, bool):
            raise ValueError(f"{name} must be a boolean, got {value!r}")
        return value
    if isinstance(value, bool):
        raise ValueError(f"{name} must be a number, got {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{name} must be a number, got {value!r}") from exc
    if not math.isfinite(number) or number < 0.0:
        raise ValueError(f"{name} must be finite and non-negative, got {value!r}")
    if name == "target_population":
        return int(number)
    return number


class Flock:
    """Simulation context: owns the population, the grid and all mode state.

    External callers mutate it only between calls to :meth:`step`.
    """

    def __init__(self, config: SimulationConfig):
        self._config = config
        self._rng = DeterministicRng(config.seed)
        self.params = FlockParams.from_config(config)
        self.modes = ModeController(config.audio, self._base_weights_from_params())
        self._grid = SpatialGrid(config.perception_radius, config.world_width, config.world_height)
        self._agents: List[Boid] = []
        self.obstacles: List[Obstacle] = []
        self.follow_obstacle: Optional[Obstacle] = None
        self.predator = PredatorState()
        self.roaming_predators: List[RoamingPredator] = []
        self.respawn_queue: List[PendingRespawn] = []
        self.generation = 0
        self.last_selection_ms = 0.0
        self.now_ms = 0.0
        self.selected: Optional[Boid] = None
        self.history: List[StatsSample] = []
        self._last_sample_ms = float("-inf")
        self._metrics: FlockMetrics | None = None
        self._next_id = 0
        self._bootstrap_population()

    @property
    def config(self) -> SimulationConfig:
        return self._config

    @property
    def agents(self) -> List[Boid]:
        return self._agents

    @property
    def grid(self) -> SpatialGrid:
        return self._grid

    @property
    def metrics(self) -> FlockMetrics | None:
        return self._metrics

    @property
    def mode(self) -> FlockMode:
        return self.modes.mode

    def reset(self) -> None:
        self._rng.reset()
        self.params = FlockParams.from_config(self._config)
        self.modes.base_weights = self._base_weights_from_params()
        self._agents.clear()
        self.obstacles.clear()
        self.predator = PredatorState()
        self.roaming_predators.clear()
        self.respawn_queue.clear()
        self.generation = 0
        # Callers restart ticks from zero after a reset.
        self.now_ms = 0.0
        self.last_selection_ms = 0.0
        self.follow_obstacle = None
        self.selected = None
        self.history.clear()
        self._last_sample_ms = float("-inf")
        self._metrics = None
        self._next_id = 0
        self._bootstrap_population()
        if self.mode == FlockMode.EVOLUTION:
            evolution.seed_roaming_predators(self)
        logger.info("flock reset: %d boids, mode %s", len(self._agents), self.mode.value)

    def set_mode(self, mode: FlockMode | str) -> FlockMode:
        return self.modes.switch(self, mode)

    def attach_audio_source(self, source: AudioSource) -> None:
        self.modes.attach_audio_source(source)

    def set_audio_levels(self, bass: float, mid: float, treble: float) -> None:
        self.modes.set_levels(bass, mid, treble)

    def step(self, tick: int) -> FlockMetrics:
        start = perf_counter()
        config = self._config
        params = self.params
        mode = self.modes.mode
        self.now_ms = tick * config.frame_ms

        self.modes.modulate(self)

        # Runs before indexing: selection relocates agents and changes gene radii.
        if mode == FlockMode.PREDATOR:
            predator.advance_predator(self, tick)
        elif mode == FlockMode.EVOLUTION:
            evolution.advance_roaming_predators(self)
            if evolution.selection_due(self):
                evolution.run_selection(self)
        obstacle_system.advance_obstacles(self)

        grid = self._grid
        if params.use_spatial_index:
            if grid.resize(self._index_cell_size(), config.world_width, config.world_height):
                logger.debug("grid resized to cell size %.1f (%d x %d)", grid.cell_size, *grid.dimensions)
            grid.clear()
            grid.insert_all(self._agents)

        neighbor_checks = 0
        speed_sum = 0.0
        neighbor_sum = 0
        killed: List[Boid] = []
        agents = self._agents
        brute_force_checks = max(0, len(agents) - 1)

        for agent in agents:
            neighbors = self._neighbors_of(agent)
            if not params.use_spatial_index:
                neighbor_checks += brute_force_checks
            steering.apply_flocking(self, agent, neighbors)
            if self.obstacles:
                agent.apply_force(steering.avoid_obstacles(self, agent, self.perception_radius_for(agent)))
            self._apply_mode_forces(agent, mode, killed)
            motion.decay_panic(agent, config.frame_ms)
            motion.integrate(self, agent)
            motion.apply_boundary(self, agent)
            if params.trails_enabled:
                motion.record_trail(self, agent)
            speed_sum += agent.velocity.length()
            neighbor_sum += agent.neighbor_count

        stepped = len(agents)
        if params.use_spatial_index:
            neighbor_checks = grid.candidate_count
        kills = predator.sweep_kills(self, killed)
        respawns = predator.process_respawns(self)

        elapsed_ms = (perf_counter() - start) * 1000.0
        metrics = metrics_system.create_metrics(
            tick,
            self._agents,
            speed_sum,
            neighbor_sum,
            stepped,
            neighbor_checks,
            kills,
            respawns,
            self.generation,
            elapsed_ms,
        )
        self._metrics = metrics
        if self.now_ms - self._last_sample_ms > config.stats.sample_interval_ms:
            metrics_system.record_sample(self.history, metrics, self.now_ms, config.stats.history_size)
            self._last_sample_ms = self.now_ms
        return metrics

    def spawn(self, species: Species | None = None, position: Vector2 | None = None) -> Boid:
        config = self._config
        params = self.params
        if species is None:
            species = Species.BLUE
            if params.two_species and self._rng.next_float() > 0.5:
                species = Species.RED
        if position is None:
            position = Vector2(
                self._rng.next_range(0.0, config.world_width),
                self._rng.next_range(0.0, config.world_height),
            )
        velocity = self._rng.next_unit_circle() * self._rng.next_range(1.0, max(1.0, params.max_speed))
        agent = Boid(
            id=self._next_id,
            position=position,
            velocity=velocity,
            species=Species(species),
            genes=evolution.genes_from_params(self),
            fitness=config.evolution.baseline_fitness,
        )
        self._next_id += 1
        self._agents.append(agent)
        return agent

    def set_population(self, count: int) -> None:
        count = max(0, int(count))
        self.params.target_population = count
        diff = count - len(self._agents)
        if diff > 0:
            for _ in range(diff):
                self.spawn()
        elif diff < 0:
            del self._agents[count:]
            if self.selected is not None and self.selected not in self._agents:
                self.selected = None

    def update_params(self, **values: Any) -> None:
        unknown = set(values) - _PARAM_NAMES
        if unknown:
            raise ValueError(f"Unknown parameter(s): {', '.join(sorted(unknown))}")
        # Validate everything first so a bad value leaves params untouched.
        coerced = {name: _coerce_param(name, value) for name, value in values.items()}
        for name, value in coerced.items():
            if name == "target_population":
                self.set_population(value)
                continue
            setattr(self.params, name, value)

        params = self.params
        if "trails_enabled" in coerced and not params.trails_enabled:
            for agent in self._agents:
                agent.trail.clear()
                agent.last_trail_ms = float("-inf")
        if "fear_trail" in coerced and not params.fear_trail:
            self.predator.fear_points.clear()
        if "two_species" in coerced:
            self._assign_species()
        if _WEIGHT_NAMES & set(coerced):
            self.modes.base_weights = self._base_weights_from_params()

    def apply_preset(self, name: str) -> None:
        preset = PRESETS.get(name)
        if preset is None:
            raise ValueError(f"Unknown preset: {name}")
        self.update_params(**preset)

    def set_pointer(self, x: float, y: float) -> None:
        if 0.0 <= x <= self._config.world_width and 0.0 <= y <= self._config.world_height:
            self.predator.pointer = Vector2(x, y)
        else:
            self.predator.pointer = None

    def clear_pointer(self) -> None:
        self.predator.pointer = None

    def add_obstacle(
        self, x: float, y: float, radius: float = 20.0, kind: ObstacleKind | str = ObstacleKind.STATIC
    ) -> Obstacle:
        obstacle = obstacle_system.make_obstacle(self, x, y, radius, ObstacleKind(kind))
        self.obstacles.append(obstacle)
        return obstacle

    def paint_obstacle(
        self, x: float, y: float, radius: float = 20.0, kind: ObstacleKind | str = ObstacleKind.STATIC
    ) -> Optional[Obstacle]:
        """Drag placement: only drop a new obstacle once clear of the previous one."""
        if self.obstacles:
            last = self.obstacles[-1].position
            if (Vector2(x, y) - last).length() <= radius:
                return None
        return self.add_obstacle(x, y, radius, kind)

    def remove_obstacle_at(self, x: float, y: float) -> bool:
        point = Vector2(x, y)
        for index in range(len(self.obstacles) - 1, -1, -1):
            obstacle = self.obstacles[index]
            if (obstacle.position - point).length() < obstacle.radius:
                del self.obstacles[index]
                return True
        return False

    def clear_obstacles(self) -> None:
        self.obstacles.clear()
        self.follow_obstacle = None

    def generate_maze(self) -> None:
        obstacle_system.generate_maze(self)
        self.follow_obstacle = None

    def set_follow_obstacle(self, enabled: bool) -> Optional[Obstacle]:
        """Toggle the painter obstacle that trails the pointer."""
        if enabled:
            if self.follow_obstacle is None:
                self.follow_obstacle = obstacle_system.make_follow_obstacle(self)
                self.obstacles.append(self.follow_obstacle)
            return self.follow_obstacle
        if self.follow_obstacle is not None:
            if self.follow_obstacle in self.obstacles:
                self.obstacles.remove(self.follow_obstacle)
            self.follow_obstacle = None
        return None

    def select_at(self, x: float, y: float) -> Optional[Boid]:
        point = Vector2(x, y)
        closest = None
        closest_dist = self._config.select_radius
        for agent in self._agents:
            dist = (agent.position - point).length()
            if dist < closest_dist:
                closest = agent
                closest_dist = dist
        self.selected = closest
        return closest

    def perception_radius_for(self, agent: Boid) -> float:
        if self.modes.mode == FlockMode.EVOLUTION:
            return agent.genes.radius
        return self.params.perception_radius

    def max_speed_for(self, agent: Boid) -> float:
        if self.modes.mode == FlockMode.EVOLUTION:
            return agent.genes.max_speed
        return self.params.max_speed

    def weights_for(self, agent: Boid) -> Tuple[float, float, float]:
        if self.modes.mode == FlockMode.EVOLUTION:
            genes = agent.genes
            return genes.separation, genes.alignment, genes.cohesion
        params = self.params
        return params.separation_weight, params.alignment_weight, params.cohesion_weight

    def snapshot(self, tick: int) -> Snapshot:
        metrics = self._metrics if self._metrics is not None else self._metrics_from_state(tick)
        state = self.predator
        scene = SnapshotScene(
            obstacles=[
                {
                    "x": obstacle.position.x,
                    "y": obstacle.position.y,
                    "radius": obstacle.radius,
                    "kind": obstacle.kind.value,
                    "follow": obstacle is self.follow_obstacle,
                }
                for obstacle in self.obstacles
            ],
            predator=None if state.position is None else {"x": state.position.x, "y": state.position.y},
            fear_points=[
                {"x": point.x, "y": point.y, "age": self._age_fraction(point.time_ms, self._config.predator.fear_point_lifetime_ms)}
                for point in state.fear_points
            ],
            roaming_predators=[
                {"x": roamer.position.x, "y": roamer.position.y} for roamer in self.roaming_predators
            ],
            kill_count=state.kill_count,
            generation=self.generation,
        )
        return Snapshot(
            tick=tick,
            mode=self.mode.value,
            metrics=metrics,
            agents=[self._agent_snapshot(agent) for agent in self._agents],
            world=SnapshotWorld(width=self._config.world_width, height=self._config.world_height),
            metadata=SnapshotMetadata(
                frame_ms=self._config.frame_ms,
                seed=self._config.seed,
                config_version=self._config.config_version,
                selected_id=None if self.selected is None else self.selected.id,
            ),
            scene=scene,
        )

    def _apply_mode_forces(self, agent: Boid, mode: FlockMode, killed: List[Boid]) -> None:
        if mode == FlockMode.PREDATOR:
            if predator.hunt(self, agent) and agent.alive:
                agent.alive = False
                killed.append(agent)
            if self.params.fear_trail and self.predator.fear_points:
                agent.apply_force(steering.avoid_fear_trail(self, agent))
        elif mode == FlockMode.EVOLUTION:
            evolution.evade_and_score(self, agent)
        elif mode in (FlockMode.NORMAL, FlockMode.PAINTER, FlockMode.SOUND):
            pass
        else:
            raise ValueError(f"Unhandled mode: {mode}")

    def _neighbors_of(self, agent: Boid) -> List[Boid]:
        radius = self.perception_radius_for(agent)
        params = self.params
        if not params.use_spatial_index:
            return brute_force_neighbors(agent, self._agents, radius)
        if params.boundary_mode == BoundaryMode.WRAP:
            return self._grid.query_neighbors_wrapped(agent, radius)
        return self._grid.query_neighbors(agent, radius)

    def _index_cell_size(self) -> float:
        radius = self.params.perception_radius
        if self.modes.mode == FlockMode.EVOLUTION and self._agents:
            radius = max(radius, max(agent.genes.radius for agent in self._agents))
        return max(1.0, radius)

    def _bootstrap_population(self) -> None:
        count = self.params.target_population
        for index in range(count):
            self.spawn(self._species_for_index(index, count))

    def _assign_species(self) -> None:
        count = len(self._agents)
        for index, agent in enumerate(self._agents):
            agent.species = self._species_for_index(index, count)

    def _species_for_index(self, index: int, count: int) -> Species:
        if self.params.two_species and index >= count / 2:
            return Species.RED
        return Species.BLUE

    def _base_weights_from_params(self) -> BaseWeights:
        return BaseWeights(
            separation=self.params.separation_weight,
            alignment=self.params.alignment_weight,
            cohesion=self.params.cohesion_weight,
        )

    def _age_fraction(self, time_ms: float, lifetime_ms: float) -> float:
        if lifetime_ms <= 0:
            return 1.0
        return min(1.0, max(0.0, (self.now_ms - time_ms) / lifetime_ms))

    def _agent_snapshot(self, agent: Boid) -> Dict[str, Any]:
        lifetime = self._config.trails.lifetime_ms
        return {
            "id": agent.id,
            "x": agent.position.x,
            "y": agent.position.y,
            "vx": agent.velocity.x,
            "vy": agent.velocity.y,
            "heading": _heading_from_velocity(agent.velocity),
            "speed": agent.velocity.length(),
            "species": agent.species.value,
            "panicking": agent.panicking,
            "fitness": agent.fitness,
            "neighbors": agent.neighbor_count,
            "trail": [[point.x, point.y, self._age_fraction(point.time_ms, lifetime)] for point in agent.trail],
        }

    def _metrics_from_state(self, tick: int) -> FlockMetrics:
        agents = self._agents
        speed_sum = sum(agent.velocity.length() for agent in agents)
        neighbor_sum = sum(agent.neighbor_count for agent in agents)
        return metrics_system.create_metrics(
            tick, agents, speed_sum, neighbor_sum, len(agents), 0, 0, 0, self.generation, 0.0
        )


