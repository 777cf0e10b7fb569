"""
FlowTrails: a noise-driven 2D flow field that steers particles drawn as
fading trails.

This package provides the field engine (generation, sampling and brush
edits) and the particle engine (integration and the fade-then-teleport
lifecycle) behind the visualisation.
"""

__version__ = "0.1.0"

from .config import FieldParams, SimulationParams
from .physics.grid_computation import FlowFieldGrid
from .physics.particle_system import ParticleSimulation, ParticleSnapshot, ParticleState

__all__ = [
    "FieldParams",
    "SimulationParams",
    "FlowFieldGrid",
    "ParticleSimulation",
    "ParticleSnapshot",
    "ParticleState",
]
