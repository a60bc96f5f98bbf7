import pytest

from boidsim.sim.core.config import SimulationConfig
from boidsim.sim.core.flock import Flock
from boidsim.sim.core.modes import FlockMode


@pytest.mark.slow
def test_long_run_population_and_performance():
    config = SimulationConfig()
    flock = Flock(config)
    durations = []

    for tick in range(3000):
        metrics = flock.step(tick)
        durations.append(metrics.tick_duration_ms)

    average_tick_ms = sum(durations) / len(durations)
    summary = (
        f"final_pop={metrics.population}, "
        f"avg_speed={metrics.average_speed:.2f}, "
        f"avg_neighbors={metrics.average_neighbors:.2f}, "
        f"avg_tick_ms={average_tick_ms:.2f}"
    )

    assert metrics.population == config.initial_population, summary
    assert metrics.average_speed <= config.max_speed + 1e-6, summary
    assert metrics.average_neighbors > 1.0, summary
    assert average_tick_ms <= 50.0, summary


@pytest.mark.slow
def test_long_run_evolution_advances_generations():
    flock = Flock(SimulationConfig(seed=3))
    flock.set_mode(FlockMode.EVOLUTION)

    for tick in range(2000):
        flock.step(tick)

    assert flock.generation == 3
    assert len(flock.agents) == 200
