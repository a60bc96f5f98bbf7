from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

import yaml


class BoundaryMode(str, Enum):
    WRAP = "wrap"
    BOUNCE = "bounce"


class VisionMode(str, Enum):
    OMNI = "omni"
    CONE = "cone"


@dataclass
class PredatorConfig:
    fear_radius: float = 150.0
    kill_distance: float = 10.0
    follow_mode: bool = False
    follow_lerp: float = 0.05
    fear_trail: bool = True
    fear_point_every_ticks: int = 10
    fear_point_lifetime_ms: float = 5000.0
    fear_point_radius: float = 60.0
    fear_point_force_scale: float = 0.5
    flee_speed_multiplier: float = 1.5
    flee_force_multiplier: float = 3.0
    panic_ms: float = 2000.0
    panic_speed_multiplier: float = 1.5
    respawn_delay_ms: float = 3000.0


@dataclass
class EvolutionConfig:
    interval_ms: float = 10000.0
    min_population: int = 10
    selection_fraction: float = 0.2
    mutation: float = 0.1
    baseline_fitness: float = 50.0
    predator_count: int = 3
    predator_fear_radius: float = 150.0
    predator_start_speed: float = 1.5
    predator_max_speed: float = 2.0
    predator_turn_chance: float = 0.02
    predator_turn_jitter: float = 0.5
    fitness_radius: float = 200.0
    fitness_per_tick: float = 0.02
    reset_speed: float = 2.0
    max_speed_bounds: tuple[float, float] = (1.0, 10.0)
    radius_bounds: tuple[float, float] = (20.0, 200.0)


@dataclass
class ObstacleConfig:
    default_multiplier: float = 2.0
    repel_multiplier: float = 4.0
    force_multiplier: float = 3.0
    drift_speed: float = 0.5
    maze_spacing: float = 80.0
    maze_radius: float = 20.0
    maze_fill: float = 0.35
    follow_radius: float = 30.0
    follow_lerp: float = 0.1


@dataclass
class TrailConfig:
    record_interval_ms: float = 50.0
    lifetime_ms: float = 1000.0


@dataclass
class AudioConfig:
    bass_sensitivity: float = 2.0
    mid_sensitivity: float = 2.0
    treble_sensitivity: float = 2.0


@dataclass
class StatsConfig:
    sample_interval_ms: float = 500.0
    history_size: int = 120


@dataclass
class SimulationConfig:
    frame_ms: float = 1000.0 / 60.0
    world_width: float = 800.0
    world_height: float = 600.0
    initial_population: int = 200
    separation_weight: float = 1.5
    alignment_weight: float = 1.0
    cohesion_weight: float = 1.0
    perception_radius: float = 80.0
    max_speed: float = 4.0
    max_force: float = 0.2
    separation_fraction: float = 0.4
    cone_half_angle_deg: float = 60.0
    other_species_separation: float = 2.0
    bounce_margin: float = 5.0
    select_radius: float = 20.0
    boundary_mode: BoundaryMode = BoundaryMode.WRAP
    vision_mode: VisionMode = VisionMode.OMNI
    two_species: bool = False
    use_spatial_index: bool = True
    trails_enabled: bool = False
    seed: int = 42
    config_version: str = "v1"
    predator: PredatorConfig = field(default_factory=PredatorConfig)
    evolution: EvolutionConfig = field(default_factory=EvolutionConfig)
    obstacles: ObstacleConfig = field(default_factory=ObstacleConfig)
    trails: TrailConfig = field(default_factory=TrailConfig)
    audio: AudioConfig = field(default_factory=AudioConfig)
    stats: StatsConfig = field(default_factory=StatsConfig)

    @staticmethod
    def from_yaml(path: Path) -> "SimulationConfig":
        data = yaml.safe_load(Path(path).read_text()) or {}
        return load_config(data)


@dataclass
class FlockParams:
    """Runtime knobs the UI mutates between ticks."""

    separation_weight: float
    alignment_weight: float
    cohesion_weight: float
    perception_radius: float
    max_speed: float
    target_population: int
    boundary_mode: BoundaryMode
    vision_mode: VisionMode
    two_species: bool
    use_spatial_index: bool
    trails_enabled: bool
    predator_follow: bool
    fear_trail: bool

    @classmethod
    def from_config(cls, config: SimulationConfig) -> "FlockParams":
        return cls(
            separation_weight=config.separation_weight,
            alignment_weight=config.alignment_weight,
            cohesion_weight=config.cohesion_weight,
            perception_radius=config.perception_radius,
            max_speed=config.max_speed,
            target_population=config.initial_population,
            boundary_mode=BoundaryMode(config.boundary_mode),
            vision_mode=VisionMode(config.vision_mode),
            two_species=config.two_species,
            use_spatial_index=config.use_spatial_index,
            trails_enabled=config.trails_enabled,
            predator_follow=config.predator.follow_mode,
            fear_trail=config.predator.fear_trail,
        )


PRESETS: dict[str, dict[str, float]] = {
    "schooling": {
        "separation_weight": 1.0,
        "alignment_weight": 2.5,
        "cohesion_weight": 1.2,
        "perception_radius": 100.0,
        "max_speed": 3.0,
    },
    "chaotic": {
        "separation_weight": 0.5,
        "alignment_weight": 0.3,
        "cohesion_weight": 0.8,
        "perception_radius": 40.0,
        "max_speed": 6.0,
    },
    "tight": {
        "separation_weight": 0.8,
        "alignment_weight": 1.0,
        "cohesion_weight": 3.0,
        "perception_radius": 120.0,
        "max_speed": 2.0,
    },
}


def load_config(raw: dict) -> SimulationConfig:
    default_evolution = EvolutionConfig()

    def _pair(value: tuple[float, float] | list[float] | None, default: tuple[float, float]) -> tuple[float, float]:
        if isinstance(value, (tuple, list)) and len(value) == 2:
            return (float(value[0]), float(value[1]))
        return default

    predator = PredatorConfig(**raw.get("predator", {}))
    evolution_raw = dict(raw.get("evolution", {}))
    max_speed_bounds = _pair(evolution_raw.pop("max_speed_bounds", None), default_evolution.max_speed_bounds)
    radius_bounds = _pair(evolution_raw.pop("radius_bounds", None), default_evolution.radius_bounds)
    evolution = EvolutionConfig(max_speed_bounds=max_speed_bounds, radius_bounds=radius_bounds, **evolution_raw)
    obstacles = ObstacleConfig(**raw.get("obstacles", {}))
    trails = TrailConfig(**raw.get("trails", {}))
    audio = AudioConfig(**raw.get("audio", {}))
    stats = StatsConfig(**raw.get("stats", {}))
    sim_values = {
        k: v
        for k, v in raw.items()
        if k not in {"predator", "evolution", "obstacles", "trails", "audio", "stats"}
    }
    if "boundary_mode" in sim_values:
        sim_values["boundary_mode"] = BoundaryMode(sim_values["boundary_mode"])
    if "vision_mode" in sim_values:
        sim_values["vision_mode"] = VisionMode(sim_values["vision_mode"])
    return SimulationConfig(
        predator=predator,
        evolution=evolution,
        obstacles=obstacles,
        trails=trails,
        audio=audio,
        stats=stats,
        **sim_values,
    )
