"""Shared fixtures for the FlowTrails test suite."""

import matplotlib
matplotlib.use("Agg")

import numpy as np
import pytest

from flowtrails.config import SimulationParams
from flowtrails.physics.grid_computation import FlowFieldGrid


@pytest.fixture
def rng():
    return np.random.default_rng(1234)


@pytest.fixture
def field(rng):
    """10x10 world units covered by a 10x10 grid: cell (i, j) is centred at (i + 0.5, j + 0.5)."""
    return FlowFieldGrid(resolution=10, world_origin=(0.0, 0.0), world_size=(10.0, 10.0),
                         algorithm='angle', rng=rng)


@pytest.fixture
def quiet_params():
    """No stochastic forces, no damping, no respawns."""
    return SimulationParams(
        turbulence=0.0,
        spread=0.0,
        flow_noise=0.0,
        position_jitter=0.0,
        respawn_rate=0.0,
        damping=1.0,
    )
