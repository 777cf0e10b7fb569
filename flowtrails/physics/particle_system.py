"""
Particle system module for FlowTrails.

This module advances a fixed population of particles through the flow field
with simple Euler integration, and runs the per-particle fade state machine
that hides trail streaks when a particle wraps at the field edge or is
respawned somewhere else.

Particle state is held column-wise in numpy arrays so that every force term
is computed for all active particles at once.
"""

import logging
from dataclasses import dataclass
from enum import IntEnum

import numpy as np

from .. import config
from ..config import SimulationParams
from .grid_computation import normalize_vectors
from .noise import PerlinNoise

logger = logging.getLogger(__name__)


class ParticleState(IntEnum):
    ACTIVE = 0
    FADING = 1  # frozen while its trail fades, waiting to be relocated


@dataclass(frozen=True)
class ParticleSnapshot:
    """Read-only view of the population handed to a renderer."""
    positions: np.ndarray
    velocities: np.ndarray
    emitting: np.ndarray
    clear_trail: np.ndarray
    states: np.ndarray
    time: float

    def __len__(self):
        return len(self.positions)


class ParticleSimulation:
    """
    Flow-following particles with damping, turbulence, lateral drift and a
    fade-then-teleport protocol for wraps and scheduled respawns.

    Args:
        field (FlowFieldGrid): Field sampled every tick; also defines the wrap bounds
        num_particles (int): Population size, fixed for the session
        params (SimulationParams, optional): Mutable global parameters
        rng (np.random.Generator, optional): Source of every random draw
        audio_source (optional): Object with a `level` attribute in [0, 1],
            read when tick() is not given an explicit audio level
    """

    def __init__(self, field, num_particles=config.DEFAULT_NUM_PARTICLES,
                 params=None, rng=None, audio_source=None):
        if field is None:
            raise ValueError("ParticleSimulation: No FlowField assigned!")
        if isinstance(num_particles, bool) or not isinstance(num_particles, (int, np.integer)):
            raise TypeError(f"Particle count must be an integer, got {type(num_particles).__name__}")
        if num_particles < 1:
            raise ValueError(f"Particle count must be at least 1, got {num_particles}")

        self.field = field
        self.params = params if params is not None else SimulationParams()
        self.rng = rng if rng is not None else np.random.default_rng()
        self.audio_source = audio_source
        self.noise = PerlinNoise(self.rng)

        self.num_particles = int(num_particles)
        self.bounds_min, self.bounds_max = field.get_bounds()

        n = self.num_particles
        self.positions = self._random_positions(n)
        self.velocities = np.zeros((n, 2))
        self.speed_multipliers = self._random_speed_multipliers(n)
        self.noise_offsets = self._random_noise_offsets(n)

        self.states = np.full(n, ParticleState.ACTIVE, dtype=np.int8)
        self.fade_elapsed = np.zeros(n)
        self.fade_targets = self.positions.copy()

        # Renderer-facing flags
        self.emitting = np.ones(n, dtype=bool)
        self.clear_trail = np.zeros(n, dtype=bool)
        # Bulk-reset flags: held through the next tick, released the tick after
        self._reset_held = np.zeros(n, dtype=bool)
        self._suppressed = np.zeros(n, dtype=bool)

        self.time = 0.0
        self.stats = {'ticks': 0, 'respawns': 0, 'wraps': 0, 'fades_completed': 0}

        logger.info("ParticleSimulation: Spawned %d particles", n)

    # ------------------------------------------------------------------
    # Random draws
    # ------------------------------------------------------------------

    def _random_positions(self, count):
        return self.rng.uniform(self.bounds_min, self.bounds_max, size=(count, 2))

    def _random_speed_multipliers(self, count):
        low, high = config.SPEED_MULTIPLIER_RANGE
        return self.rng.uniform(low, high, size=count)

    def _random_noise_offsets(self, count):
        return self.rng.uniform(0.0, config.NOISE_SEED_RANGE, size=(count, 2))

    def _random_in_unit_circle(self, count):
        angle = self.rng.uniform(0.0, 2.0 * np.pi, size=count)
        radius = np.sqrt(self.rng.random(count))
        return np.stack([np.cos(angle), np.sin(angle)], axis=-1) * radius[:, None]

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def fade_wait(self):
        return self.params.fade_wait

    @property
    def active_mask(self):
        return self.states == ParticleState.ACTIVE

    def snapshot(self):
        """Copy of the renderer-facing state."""
        return ParticleSnapshot(
            positions=self.positions.copy(),
            velocities=self.velocities.copy(),
            emitting=self.emitting.copy(),
            clear_trail=self.clear_trail.copy(),
            states=self.states.copy(),
            time=self.time,
        )

    def set_bounds_from_field(self):
        """Re-read wrap and spawn bounds after the field has been replaced."""
        self.bounds_min, self.bounds_max = self.field.get_bounds()

    def _audio_level(self, audio_level):
        if audio_level is None:
            audio_level = getattr(self.audio_source, 'level', 0.0) if self.audio_source is not None else 0.0
        return float(np.clip(audio_level, 0.0, 1.0))

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------

    def tick(self, dt, now=None, audio_level=None):
        """
        Advance the simulation by one frame.

        Args:
            dt (float): Elapsed seconds since the previous tick
            now (float, optional): Current time in seconds; defaults to the
                previous time plus dt
            audio_level (float, optional): Audio level in [0, 1] for this tick
        """
        dt = float(dt)
        if not np.isfinite(dt) or dt <= 0.0:
            logger.debug("Tick skipped: non-positive dt %r", dt)
            return

        self.time = self.time + dt if now is None else float(now)
        self.stats['ticks'] += 1
        audio = self._audio_level(audio_level)

        # Flags last one tick; a bulk reset keeps its flags up for the first
        # tick after it so a renderer reading after tick() still sees them
        self.clear_trail[:] = self._reset_held
        self.emitting[self._suppressed & self.active_mask] = True
        self._suppressed[:] = self._reset_held
        self._reset_held[:] = False

        active = self.active_mask
        self._advance_fades(~active, dt)

        active_idx = np.flatnonzero(active)
        chosen = self._select_respawns(active_idx, dt)
        if chosen.size:
            self._start_fade(chosen, self._random_positions(chosen.size))
            self.stats['respawns'] += int(chosen.size)
            active_idx = np.setdiff1d(active_idx, chosen, assume_unique=True)

        if active_idx.size:
            self._integrate(active_idx, dt, self.time, audio)

    def _advance_fades(self, fading, dt):
        if not np.any(fading):
            return
        self.fade_elapsed[fading] += dt
        done = fading & (self.fade_elapsed >= self.fade_wait)
        if np.any(done):
            self._complete_fade(done)

    def _respawn_count(self, dt):
        """Integer respawn count whose expectation is rate/100 * N * dt."""
        expected = self.params.respawn_rate / 100.0 * self.num_particles * dt
        if expected <= 0.0:
            return 0
        count = int(np.floor(expected))
        if self.rng.random() < expected - count:
            count += 1
        return count

    def _select_respawns(self, active_idx, dt):
        count = min(self._respawn_count(dt), active_idx.size)
        if count <= 0:
            return np.zeros(0, dtype=int)
        return self.rng.choice(active_idx, size=count, replace=False)

    def _start_fade(self, idx, targets):
        self.states[idx] = ParticleState.FADING
        self.fade_elapsed[idx] = 0.0
        self.fade_targets[idx] = targets
        self.emitting[idx] = False

    def _complete_fade(self, mask):
        # move to the target and restart with a fresh trail
        self.positions[mask] = self.fade_targets[mask]
        self.velocities[mask] = 0.0
        self.fade_elapsed[mask] = 0.0
        self.clear_trail[mask] = True
        self.emitting[mask] = True
        self.states[mask] = ParticleState.ACTIVE
        self.stats['fades_completed'] += int(np.count_nonzero(mask))

    def _integrate(self, idx, dt, t, audio):
        p = self.params
        pos = self.positions[idx]
        vel = self.velocities[idx]
        mult = self.speed_multipliers[idx]
        ox = self.noise_offsets[idx, 0]
        oy = self.noise_offsets[idx, 1]
        noise = self.noise.sample

        flow = self.field.sample(pos)
        # small flow noise to avoid lane convergence
        if p.flow_noise > 0.0:
            phase = t * config.FLOW_NOISE_PHASE
            flow_jitter = np.stack([noise(ox + phase, oy) - 0.5,
                                    noise(ox, oy + phase) - 0.5], axis=-1) * p.flow_noise
            flow, _ = normalize_vectors(flow + flow_jitter, flow)

        effective_turbulence = p.turbulence + audio * p.sound_to_turbulence
        effective_spread = p.spread + audio * p.sound_to_spread
        speed_boost = 1.0 + audio * p.sound_to_speed

        phase = t * config.TURBULENCE_PHASE
        turbulence_force = np.stack([noise(ox + phase, oy) - 0.5,
                                     noise(ox, oy + phase) - 0.5], axis=-1) * effective_turbulence

        perpendicular = np.stack([-flow[:, 1], flow[:, 0]], axis=-1)
        drift_noise = noise(ox + t * config.DRIFT_PHASE, oy + t * config.DRIFT_PHASE * 0.5) - 0.5
        drift_force = perpendicular * (drift_noise * effective_spread)[:, None]

        burst_force = np.zeros_like(flow)
        if audio > p.burst_threshold:
            phase = t * config.BURST_PHASE
            angle = noise(ox + phase, oy + phase) * 2.0 * np.pi
            burst_force = np.stack([np.cos(angle), np.sin(angle)], axis=-1) * (audio * p.burst_gain)

        acceleration = (flow * (p.flow_strength * mult * speed_boost)[:, None]
                        + turbulence_force * p.turbulence_gain
                        + drift_force * p.drift_gain
                        + burst_force)
        vel = (vel + acceleration * dt) * p.damping

        # clamp speed, scaled by the per-particle multiplier
        max_speed = p.max_speed * mult
        speed = np.linalg.norm(vel, axis=1)
        too_fast = speed > max_speed
        if np.any(too_fast):
            vel[too_fast] *= (max_speed[too_fast] / speed[too_fast])[:, None]

        pos = pos + vel * dt
        if p.position_jitter > 0.0:
            pos = pos + self._random_in_unit_circle(len(idx)) * p.position_jitter * dt

        pos, wrapped = self._wrap(pos)
        vel[wrapped] *= config.WRAP_VELOCITY_FACTOR

        self.positions[idx] = pos
        self.velocities[idx] = vel

        if np.any(wrapped):
            wrapped_idx = idx[wrapped]
            self._start_fade(wrapped_idx, pos[wrapped])
            self.stats['wraps'] += int(wrapped_idx.size)

    def _wrap(self, pos):
        """Move positions outside the bounds to the opposite edge."""
        below = pos < self.bounds_min
        above = pos > self.bounds_max
        wrapped_pos = np.where(below, self.bounds_max, pos)
        wrapped_pos = np.where(above, self.bounds_min, wrapped_pos)
        return wrapped_pos, np.any(below | above, axis=1)

    # ------------------------------------------------------------------
    # Bulk reset
    # ------------------------------------------------------------------

    def clear_and_respawn(self):
        """
        Relocate every particle at once with fresh per-particle variation.

        Trails are cleared instead of going through the fade wait. The
        clear_trail and emitting=False flags stay up until the end of the next
        tick, so a renderer that snapshots after tick() still sees them.
        Pending fades keep running, retargeted to the new position.
        """
        n = self.num_particles
        self.positions = self._random_positions(n)
        self.velocities[:] = 0.0
        self.speed_multipliers = self._random_speed_multipliers(n)
        self.noise_offsets = self._random_noise_offsets(n)

        fading = ~self.active_mask
        self.fade_targets[fading] = self.positions[fading]

        self.clear_trail[:] = True
        self.emitting[:] = False
        self._reset_held[:] = True
        self._suppressed[:] = False
        logger.info("Particles cleared and respawned")
