from __future__ import annotations

from pygame.math import Vector2
from pytest import approx

from boidsim.sim.core.agent import Species
from boidsim.sim.core.config import SimulationConfig
from boidsim.sim.core.flock import Flock
from boidsim.sim.core.modes import FlockMode


def predator_flock() -> Flock:
    flock = Flock(SimulationConfig(initial_population=3, seed=11))
    flock.set_mode(FlockMode.PREDATOR)
    victim, neighbor, bystander = flock.agents
    victim.position = Vector2(105.0, 100.0)
    victim.velocity = Vector2()
    victim.species = Species.RED
    neighbor.position = Vector2(150.0, 100.0)
    neighbor.velocity = Vector2()
    bystander.position = Vector2(600.0, 500.0)
    bystander.velocity = Vector2()
    flock.set_pointer(100.0, 100.0)
    return flock


def test_predator_kill_removes_boid_and_queues_respawn():
    flock = predator_flock()
    victim = flock.agents[0]
    flock.selected = victim

    metrics = flock.step(0)

    assert victim not in flock.agents
    assert metrics.kills == 1
    assert metrics.population == 2
    assert flock.predator.kill_count == 1
    assert flock.selected is None
    assert len(flock.respawn_queue) == 1
    pending = flock.respawn_queue[0]
    assert pending.species is Species.RED
    assert pending.respawn_at_ms == approx(flock.now_ms + 3000.0)


def test_kill_panics_nearby_survivors_only():
    flock = predator_flock()
    _, neighbor, bystander = flock.agents

    flock.step(0)

    assert neighbor.panicking
    assert neighbor.panic_ms == approx(2000.0)
    assert not bystander.panicking


def test_panic_raises_speed_limit_then_decays():
    flock = predator_flock()
    _, neighbor, _ = flock.agents
    flock.step(0)
    flock.clear_pointer()

    limit = flock.params.max_speed * flock.config.predator.panic_speed_multiplier
    assert neighbor.velocity.length() <= limit + 1e-9

    for tick in range(1, 130):
        flock.step(tick)
    assert not neighbor.panicking


def test_respawn_happens_after_delay():
    flock = predator_flock()
    flock.step(0)
    flock.clear_pointer()

    flock.step(60)
    assert len(flock.agents) == 2
    assert len(flock.respawn_queue) == 1

    metrics = flock.step(200)
    assert metrics.respawns == 1
    assert len(flock.agents) == 3
    assert flock.agents[-1].species is Species.RED
    assert flock.respawn_queue == []


def test_pointer_outside_world_deactivates_predator():
    flock = predator_flock()
    flock.set_pointer(-10.0, 50.0)

    flock.step(0)

    assert flock.predator.position is None
    assert len(flock.agents) == 3


def test_fear_trail_points_are_dropped_and_expire():
    flock = Flock(SimulationConfig(initial_population=0))
    flock.set_mode("predator")
    flock.set_pointer(400.0, 300.0)

    for tick in range(0, 31):
        flock.step(tick)
    assert len(flock.predator.fear_points) == 4

    flock.clear_pointer()
    flock.step(1000)
    assert len(flock.predator.fear_points) == 0


def test_follow_mode_lerps_toward_pointer():
    flock = Flock(SimulationConfig(initial_population=0))
    flock.update_params(predator_follow=True)
    flock.set_mode(FlockMode.PREDATOR)
    flock.set_pointer(100.0, 100.0)
    flock.step(0)
    assert flock.predator.position == Vector2(100.0, 100.0)

    flock.set_pointer(200.0, 100.0)
    flock.step(1)
    assert flock.predator.position.x == approx(105.0)


def test_leaving_predator_mode_clears_fear_trail():
    flock = Flock(SimulationConfig(initial_population=0))
    flock.set_mode(FlockMode.PREDATOR)
    flock.set_pointer(400.0, 300.0)
    flock.step(0)
    assert flock.predator.fear_points

    flock.set_mode(FlockMode.NORMAL)

    assert not flock.predator.fear_points
    assert flock.predator.position is None
