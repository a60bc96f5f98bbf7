from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Optional, Protocol

from .config import AudioConfig
from ..systems import evolution

if TYPE_CHECKING:
    from .flock import Flock

logger = logging.getLogger(__name__)


class FlockMode(str, Enum):
    NORMAL = "normal"
    PREDATOR = "predator"
    PAINTER = "painter"
    EVOLUTION = "evolution"
    SOUND = "sound"


class AudioSource(Protocol):
    """External capture collaborator; only its teardown is driven from here."""

    def stop(self) -> None:
        ...


@dataclass(slots=True)
class AudioLevels:
    bass: float = 0.0
    mid: float = 0.0
    treble: float = 0.0


@dataclass(slots=True)
class BaseWeights:
    separation: float
    alignment: float
    cohesion: float


class ModeController:
    def __init__(self, audio: AudioConfig, base_weights: BaseWeights) -> None:
        self._mode = FlockMode.NORMAL
        self._audio = audio
        self._audio_source: Optional[AudioSource] = None
        self.levels = AudioLevels()
        self.base_weights = base_weights

    @property
    def mode(self) -> FlockMode:
        return self._mode

    @property
    def audio_source(self) -> Optional[AudioSource]:
        return self._audio_source

    def attach_audio_source(self, source: AudioSource) -> None:
        if self._audio_source is not None and self._audio_source is not source:
            self._audio_source.stop()
        self._audio_source = source

    def set_levels(self, bass: float, mid: float, treble: float) -> None:
        self.levels = AudioLevels(bass=bass, mid=mid, treble=treble)

    def switch(self, flock: Flock, mode: FlockMode | str) -> FlockMode:
        new_mode = FlockMode(mode)
        previous = self._mode
        self._mode = new_mode

        flock.predator.clear()
        flock.set_follow_obstacle(False)

        if new_mode != FlockMode.SOUND:
            self._release_audio()
        if new_mode != FlockMode.EVOLUTION:
            flock.roaming_predators.clear()

        if new_mode == FlockMode.EVOLUTION:
            self._enter_evolution(flock)
        elif new_mode == FlockMode.SOUND:
            params = flock.params
            self.base_weights = BaseWeights(
                separation=params.separation_weight,
                alignment=params.alignment_weight,
                cohesion=params.cohesion_weight,
            )
        elif new_mode in (FlockMode.NORMAL, FlockMode.PREDATOR, FlockMode.PAINTER):
            pass
        else:
            raise ValueError(f"Unhandled mode: {new_mode}")

        logger.info("mode %s -> %s", previous.value, new_mode.value)
        return new_mode

    def modulate(self, flock: Flock) -> None:
        """Map the latest band levels additively onto the base flocking weights."""
        if self._mode != FlockMode.SOUND or self._audio_source is None:
            return
        params = flock.params
        base = self.base_weights
        levels = self.levels
        params.cohesion_weight = base.cohesion + levels.bass * self._audio.bass_sensitivity
        params.alignment_weight = base.alignment + levels.mid * self._audio.mid_sensitivity
        params.separation_weight = base.separation + levels.treble * self._audio.treble_sensitivity

    def _enter_evolution(self, flock: Flock) -> None:
        flock.generation = 0
        flock.last_selection_ms = flock.now_ms
        baseline = flock._config.evolution.baseline_fitness
        for agent in flock.agents:
            agent.fitness = baseline
            agent.genes = evolution.genes_from_params(flock)
        evolution.seed_roaming_predators(flock)

    def _release_audio(self) -> None:
        if self._audio_source is None:
            return
        self._audio_source.stop()
        self._audio_source = None
        self.levels = AudioLevels()
        logger.debug("audio source released")
