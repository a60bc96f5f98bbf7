from __future__ import annotations

from dataclasses import replace

from pygame.math import Vector2
from pytest import approx

from boidsim.sim.core.agent import Boid, Genes
from boidsim.sim.core.config import SimulationConfig
from boidsim.sim.core.flock import Flock
from boidsim.sim.core.modes import FlockMode
from boidsim.sim.systems import evolution


def graded_flock(count: int = 50) -> Flock:
    flock = Flock(SimulationConfig(initial_population=count, seed=17))
    flock.set_mode(FlockMode.EVOLUTION)
    for index, agent in enumerate(flock.agents):
        agent.fitness = float(index)
        agent.genes = Genes(
            separation=1.0 + index * 0.01,
            alignment=1.0 + index * 0.02,
            cohesion=1.0 + index * 0.03,
            max_speed=2.0 + index * 0.05,
            radius=40.0 + index,
        )
    return flock


def test_entering_evolution_resets_genes_and_seeds_predators():
    flock = Flock(SimulationConfig(initial_population=10))
    flock.agents[0].fitness = 99.0
    flock.generation = 4

    flock.set_mode(FlockMode.EVOLUTION)

    assert flock.generation == 0
    assert len(flock.roaming_predators) == flock.config.evolution.predator_count
    for agent in flock.agents:
        assert agent.fitness == approx(50.0)
        assert agent.genes.radius == approx(flock.params.perception_radius)
        assert agent.genes.max_speed == approx(flock.params.max_speed)


def test_selection_replaces_bottom_fifth_with_mutated_top_mean():
    flock = graded_flock()
    top = sorted(flock.agents, key=lambda a: a.fitness, reverse=True)[:10]
    bottom_ids = {a.id for a in sorted(flock.agents, key=lambda a: a.fitness)[:10]}
    mean_speed = sum(a.genes.max_speed for a in top) / 10
    mean_radius = sum(a.genes.radius for a in top) / 10
    mean_cohesion = sum(a.genes.cohesion for a in top) / 10

    replaced = evolution.run_selection(flock)

    assert replaced == 10
    assert flock.generation == 1
    offspring = [a for a in flock.agents if a.id in bottom_ids]
    assert len(offspring) == 10
    for agent in offspring:
        assert agent.fitness == approx(50.0)
        assert 0.9 * mean_speed - 1e-9 <= agent.genes.max_speed <= 1.1 * mean_speed + 1e-9
        assert 0.9 * mean_radius - 1e-9 <= agent.genes.radius <= 1.1 * mean_radius + 1e-9
        assert 0.9 * mean_cohesion - 1e-9 <= agent.genes.cohesion <= 1.1 * mean_cohesion + 1e-9
        assert agent.velocity.length() == approx(2.0)


def test_selection_keeps_top_genes_untouched():
    flock = graded_flock()
    best = max(flock.agents, key=lambda a: a.fitness)
    before = replace(best.genes)

    evolution.run_selection(flock)

    assert best.genes == before
    assert best.fitness == approx(49.0)


def test_selection_clamps_gene_bounds():
    flock = graded_flock()
    for agent in flock.agents:
        agent.genes.max_speed = 50.0
        agent.genes.radius = 5.0

    evolution.run_selection(flock)

    low_speed, high_speed = flock.config.evolution.max_speed_bounds
    low_radius, high_radius = flock.config.evolution.radius_bounds
    for agent in flock.agents[-10:]:
        assert agent.genes.max_speed == approx(high_speed)
        assert agent.genes.radius == approx(low_radius)
    assert low_speed < high_speed and low_radius < high_radius


def test_selection_is_due_only_after_interval_with_enough_boids():
    flock = graded_flock(12)
    flock.last_selection_ms = 0.0
    flock.now_ms = 10000.0
    assert not evolution.selection_due(flock)
    flock.now_ms = 10001.0
    assert evolution.selection_due(flock)

    flock.set_population(10)
    assert not evolution.selection_due(flock)


def test_step_runs_selection_when_interval_elapses():
    flock = Flock(SimulationConfig(initial_population=30, seed=2))
    flock.set_mode(FlockMode.EVOLUTION)

    flock.step(601)

    assert flock.generation == 1
    assert flock.last_selection_ms == approx(flock.now_ms)


def test_grid_cell_covers_largest_gene_radius():
    flock = Flock(SimulationConfig(initial_population=20))
    flock.set_mode(FlockMode.EVOLUTION)
    flock.agents[3].genes.radius = 150.0

    flock.step(0)

    assert flock.grid.cell_size == approx(150.0)


def test_boids_near_roaming_predators_gain_fitness():
    flock = Flock(SimulationConfig(initial_population=1))
    flock.set_mode(FlockMode.EVOLUTION)
    boid = flock.agents[0]
    predator = flock.roaming_predators[0]
    boid.position = predator.position.copy()

    evolution.evade_and_score(flock, boid)

    assert boid.fitness > 50.0


def test_leaving_evolution_removes_roaming_predators():
    flock = Flock(SimulationConfig(initial_population=5))
    flock.set_mode(FlockMode.EVOLUTION)
    flock.set_mode(FlockMode.NORMAL)
    assert flock.roaming_predators == []


def test_selection_resumes_after_reset():
    flock = Flock(SimulationConfig(initial_population=30, seed=6))
    flock.set_mode(FlockMode.EVOLUTION)
    for tick in (0, 300, 700, 1400, 2100):
        flock.step(tick)
    assert flock.generation == 3

    flock.reset()
    assert flock.generation == 0
    assert flock.now_ms == 0.0

    for tick in (0, 300, 700):
        flock.step(tick)
    assert flock.generation == 1


def test_relocated_offspring_are_indexed_at_new_positions(monkeypatch):
    flock = Flock(SimulationConfig(initial_population=40, seed=13))
    flock.set_mode(FlockMode.EVOLUTION)
    relocated = {}
    run_selection = evolution.run_selection

    def recording_selection(target):
        replaced = run_selection(target)
        for agent in target.agents[len(target.agents) - replaced:]:
            relocated[agent.id] = agent.position.copy()
        return replaced

    monkeypatch.setattr(evolution, "run_selection", recording_selection)
    flock.step(601)

    assert len(relocated) == 8
    by_id = {agent.id: agent for agent in flock.agents}
    for agent_id, position in relocated.items():
        marker = Boid(id=-1, position=position, velocity=Vector2())
        assert by_id[agent_id] in flock.grid.query_neighbors(marker, 1e-3)
