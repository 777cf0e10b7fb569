"""
Coherent noise for FlowTrails.

A vectorised 2D Perlin noise whose permutation table is drawn from an injected
numpy Generator, so a seeded generator reproduces the same field and the same
per-particle forces run after run.
"""

import numpy as np


def fade(t):
    """Smooth fade function: 6t^5 - 15t^4 + 10t^3"""
    return t * t * t * (t * (t * 6 - 15) + 10)


def lerp(a, b, t):
    """Linear interpolation"""
    return a + t * (b - a)


def grad(hash_val, x, y):
    """Dot product of (x, y) with one of four diagonal gradients picked by hash."""
    h = hash_val & 3
    gx = np.where(h & 1, -1.0, 1.0)
    gy = np.where(h & 2, -1.0, 1.0)
    return gx * x + gy * y


class PerlinNoise:
    """
    Two-argument Perlin noise in [0, 1].

    Args:
        rng (np.random.Generator, optional): Source of the permutation table.
            A fresh unseeded generator is used when omitted.
    """

    def __init__(self, rng=None):
        if rng is None:
            rng = np.random.default_rng()
        perm = rng.permutation(256)
        # Duplicate to avoid overflow when hashing x + 1
        self.p = np.concatenate([perm, perm])

    def raw(self, x, y):
        """Signed noise in [-1, 1] at coordinates (x, y); zero on lattice points."""
        x = np.asarray(x, dtype=float)
        y = np.asarray(y, dtype=float)

        # Find grid cell coordinates
        xi = np.floor(x)
        yi = np.floor(y)
        X = xi.astype(np.int64) & 255
        Y = yi.astype(np.int64) & 255

        # Relative coordinates within cell
        xf = x - xi
        yf = y - yi

        u = fade(xf)
        v = fade(yf)

        p = self.p
        A = p[X] + Y
        B = p[X + 1] + Y
        AA, AB = p[A], p[A + 1]
        BA, BB = p[B], p[B + 1]

        return lerp(
            lerp(grad(p[AA], xf, yf), grad(p[BA], xf - 1, yf), u),
            lerp(grad(p[AB], xf, yf - 1), grad(p[BB], xf - 1, yf - 1), u),
            v,
        )

    def sample(self, x, y):
        """
        Noise in [0, 1] at (x, y). Scalars in, float out; arrays in, array out.
        """
        value = np.clip((self.raw(x, y) + 1.0) * 0.5, 0.0, 1.0)
        if value.ndim == 0:
            return float(value)
        return value
