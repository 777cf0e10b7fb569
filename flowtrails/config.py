"""
Configuration module for FlowTrails.

This module contains the default parameters used throughout the simulation
and the two parameter containers (field and particle simulation) that the
host application mutates at runtime.
"""

import json
import logging
from dataclasses import dataclass, fields, asdict

logger = logging.getLogger(__name__)

# Field generation
DEFAULT_GRID_RES = 64
DEFAULT_NOISE_SCALE = 0.1  # Smaller = smoother, larger = more chaotic
DEFAULT_ALGORITHM = 'angle'  # options: 'angle', 'curl'
CURL_EPSILON = 0.01  # finite-difference step for the curl gradient
NOISE_SEED_RANGE = 1000.0  # seed offsets are drawn from [0, NOISE_SEED_RANGE)
DEFAULT_WORLD_ORIGIN = (-8.0, -4.5)
DEFAULT_WORLD_SIZE = (16.0, 9.0)

ALGORITHMS = ('angle', 'curl')

# Particle population
DEFAULT_NUM_PARTICLES = 1200
SPEED_MULTIPLIER_RANGE = (0.7, 1.3)

# Particle dynamics
DEFAULT_FLOW_STRENGTH = 2.0
DEFAULT_DAMPING = 0.98  # 1 = no damping
DEFAULT_MAX_SPEED = 8.0
DEFAULT_TURBULENCE = 0.1
DEFAULT_SPREAD = 0.3
DEFAULT_RESPAWN_RATE = 10.0  # percent of the population per second
DEFAULT_TRAIL_LIFETIME = 6.0  # seconds
DEFAULT_FLOW_NOISE = 0.15
DEFAULT_POSITION_JITTER = 0.02
DEFAULT_FADE_WAIT_CAP = 6.0  # seconds

# Force gains and noise phase speeds
TURBULENCE_GAIN = 8.0
DRIFT_GAIN = 5.0
BURST_GAIN = 2.0
BURST_THRESHOLD = 0.3
FLOW_NOISE_PHASE = 0.5
TURBULENCE_PHASE = 2.0
DRIFT_PHASE = 1.0
BURST_PHASE = 3.0

# Wrapped particles keep this fraction of their speed
WRAP_VELOCITY_FACTOR = 0.5

# Sound reactivity
DEFAULT_SOUND_TO_TURBULENCE = 3.0
DEFAULT_SOUND_TO_SPEED = 2.0
DEFAULT_SOUND_TO_SPREAD = 1.0
AUDIO_SENSITIVITY = 2.0
AUDIO_SMOOTHING = 0.1

# Brush
DEFAULT_BRUSH_SIZE = 0.8
DEFAULT_BRUSH_STRENGTH = 0.3
BRUSH_SIZE_RANGE = (0.2, 5.0)
BRUSH_STRENGTH_RANGE = (0.01, 1.0)
MIN_DRAG_DISTANCE = 0.001
BRUSH_CENTER_SKIP = 0.1  # grid units around the brush centre with no defined direction

# Numeric guard for normalisation
EPSILON = 1e-9

# Preview
TAIL_LENGTH = 24  # number of segments per trail
ANIMATION_INTERVAL = 16  # milliseconds between frames
WINDOW_TITLE = "FlowTrails"

# Particle trail opacity fade (older segments more transparent)
# Alpha per segment = base_alpha * (TRAIL_TAIL_MIN_FACTOR + (1-TRAIL_TAIL_MIN_FACTOR) * ((t+1)/TAIL_LENGTH)**TRAIL_TAIL_EXP)
TRAIL_TAIL_MIN_FACTOR = 0.10  # 0..1, alpha factor for the oldest segment
TRAIL_TAIL_EXP = 2.0          # >1 for stronger decay near the tail

# UI hotkeys
RESPAWN_HOTKEY = 'r'
RESET_FIELD_HOTKEY = 'n'
TOGGLE_ALGORITHM_HOTKEY = 'c'


@dataclass
class FieldParams:
    """Parameters consumed by FlowFieldGrid when it (re)generates."""
    resolution: int = DEFAULT_GRID_RES
    noise_scale: float = DEFAULT_NOISE_SCALE
    algorithm: str = DEFAULT_ALGORITHM
    curl_epsilon: float = CURL_EPSILON


@dataclass
class SimulationParams:
    """
    Global particle parameters. Every field may be changed between ticks;
    range clamps are the caller's responsibility.
    """
    flow_strength: float = DEFAULT_FLOW_STRENGTH
    damping: float = DEFAULT_DAMPING
    max_speed: float = DEFAULT_MAX_SPEED
    turbulence: float = DEFAULT_TURBULENCE
    spread: float = DEFAULT_SPREAD
    respawn_rate: float = DEFAULT_RESPAWN_RATE
    trail_lifetime: float = DEFAULT_TRAIL_LIFETIME
    flow_noise: float = DEFAULT_FLOW_NOISE
    position_jitter: float = DEFAULT_POSITION_JITTER
    fade_wait_cap: float = DEFAULT_FADE_WAIT_CAP
    sound_to_turbulence: float = DEFAULT_SOUND_TO_TURBULENCE
    sound_to_speed: float = DEFAULT_SOUND_TO_SPEED
    sound_to_spread: float = DEFAULT_SOUND_TO_SPREAD
    burst_threshold: float = BURST_THRESHOLD
    burst_gain: float = BURST_GAIN
    turbulence_gain: float = TURBULENCE_GAIN
    drift_gain: float = DRIFT_GAIN

    @property
    def fade_wait(self):
        """Seconds a particle stays frozen while its trail fades."""
        return min(self.trail_lifetime, self.fade_wait_cap)

    def update(self, **overrides):
        """Apply keyword overrides, rejecting names that are not parameters."""
        _apply_overrides(self, overrides)
        return self


def _apply_overrides(params, overrides):
    known = {f.name for f in fields(params)}
    unknown = sorted(set(overrides) - known)
    if unknown:
        raise ValueError(f"Unknown {type(params).__name__} parameter(s): {', '.join(unknown)}")
    for key, value in overrides.items():
        setattr(params, key, value)


def load_params(path):
    """
    Load parameter overrides from a JSON file.

    The file holds up to two objects, "field" and "simulation", each mapping
    parameter names to values. Missing sections keep their defaults.

    Args:
        path (str): Path to the JSON file

    Returns:
        tuple: (FieldParams, SimulationParams)
    """
    with open(path, "r") as f:
        data = json.load(f)

    if not isinstance(data, dict):
        raise ValueError(f"Parameter file '{path}' must contain a JSON object")

    unknown_sections = sorted(set(data) - {'field', 'simulation'})
    if unknown_sections:
        raise ValueError(f"Unknown section(s) in '{path}': {', '.join(unknown_sections)}")

    field_params = FieldParams()
    sim_params = SimulationParams()
    _apply_overrides(field_params, data.get('field', {}))
    _apply_overrides(sim_params, data.get('simulation', {}))
    logger.info("Loaded parameters from %s", path)
    return field_params, sim_params


def params_to_dict(field_params, sim_params):
    """Inverse of load_params, for writing a starting file."""
    return {'field': asdict(field_params), 'simulation': asdict(sim_params)}
