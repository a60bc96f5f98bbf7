from __future__ import annotations

import pytest
from pytest import approx

from boidsim.sim.core.config import SimulationConfig
from boidsim.sim.core.flock import Flock
from boidsim.sim.core.modes import FlockMode


class FakeAudioSource:
    def __init__(self) -> None:
        self.stopped = 0

    def stop(self) -> None:
        self.stopped += 1


def test_sound_mode_modulates_weights_from_bands():
    flock = Flock(SimulationConfig(initial_population=5))
    flock.set_mode(FlockMode.SOUND)
    flock.attach_audio_source(FakeAudioSource())
    flock.set_audio_levels(bass=0.5, mid=0.25, treble=1.0)

    flock.step(0)

    assert flock.params.cohesion_weight == approx(1.0 + 0.5 * 2.0)
    assert flock.params.alignment_weight == approx(1.0 + 0.25 * 2.0)
    assert flock.params.separation_weight == approx(1.5 + 1.0 * 2.0)


def test_modulation_does_not_compound_across_ticks():
    flock = Flock(SimulationConfig(initial_population=5))
    flock.set_mode(FlockMode.SOUND)
    flock.attach_audio_source(FakeAudioSource())
    flock.set_audio_levels(bass=1.0, mid=0.0, treble=0.0)

    for tick in range(5):
        flock.step(tick)

    assert flock.params.cohesion_weight == approx(3.0)


def test_sound_mode_without_source_leaves_weights():
    flock = Flock(SimulationConfig(initial_population=5))
    flock.set_mode(FlockMode.SOUND)
    flock.set_audio_levels(bass=1.0, mid=1.0, treble=1.0)

    flock.step(0)

    assert flock.params.cohesion_weight == approx(1.0)


def test_leaving_sound_mode_stops_audio_source():
    flock = Flock(SimulationConfig(initial_population=5))
    source = FakeAudioSource()
    flock.set_mode(FlockMode.SOUND)
    flock.attach_audio_source(source)

    flock.set_mode(FlockMode.PAINTER)

    assert source.stopped == 1
    assert flock.modes.audio_source is None


def test_reattaching_audio_stops_previous_source():
    flock = Flock(SimulationConfig(initial_population=1))
    first = FakeAudioSource()
    second = FakeAudioSource()
    flock.set_mode(FlockMode.SOUND)
    flock.attach_audio_source(first)
    flock.attach_audio_source(second)

    assert first.stopped == 1
    assert second.stopped == 0
    assert flock.modes.audio_source is second


def test_mode_accepts_string_values():
    flock = Flock(SimulationConfig(initial_population=1))
    assert flock.set_mode("painter") is FlockMode.PAINTER
    assert flock.mode is FlockMode.PAINTER


def test_unknown_mode_is_rejected():
    flock = Flock(SimulationConfig(initial_population=1))
    with pytest.raises(ValueError):
        flock.set_mode("hurricane")
    assert flock.mode is FlockMode.NORMAL


@pytest.mark.parametrize("mode", list(FlockMode))
def test_every_mode_steps(mode):
    flock = Flock(SimulationConfig(initial_population=20, seed=5))
    flock.set_mode(mode)
    for tick in range(5):
        metrics = flock.step(tick)
    assert metrics.population == 20
    assert flock.snapshot(5).mode == mode.value
