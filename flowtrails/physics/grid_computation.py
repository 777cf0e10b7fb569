"""
Grid computation module for FlowTrails.

This module owns the flow field: a square grid of unit direction vectors laid
over a world-space rectangle. It generates the grid from coherent noise,
answers bilinear point queries for the particle system, and applies the
brush edits that let the user paint on the field.
"""

import logging

import numpy as np
from scipy.interpolate import RegularGridInterpolator

from .. import config
from .noise import PerlinNoise

logger = logging.getLogger(__name__)


def normalize_vectors(vectors, fallback):
    """
    Normalise vectors along the last axis.

    Rows whose length is below config.EPSILON are replaced by the matching
    row of `fallback` instead of being divided by (near) zero.

    Args:
        vectors (np.ndarray): Vectors, shape (..., 2)
        fallback (np.ndarray): Replacement directions, broadcastable to vectors

    Returns:
        tuple: (normalised vectors, number of degenerate rows)
    """
    magnitudes = np.linalg.norm(vectors, axis=-1, keepdims=True)
    valid = magnitudes > config.EPSILON
    safe = np.where(valid, magnitudes, 1.0)
    normalised = np.where(valid, vectors / safe, fallback)
    return normalised, int(np.count_nonzero(~valid))


def brush_falloff(distances, radius):
    """
    Linear brush falloff: 1 at the centre, 0 at and beyond `radius`.

    Args:
        distances (np.ndarray): Distances from the brush centre in world units
        radius (float): Brush radius in world units

    Returns:
        np.ndarray: Falloff weights in [0, 1]
    """
    distances = np.asarray(distances, dtype=float)
    if radius <= 0:
        return np.zeros_like(distances)
    return np.clip(1.0 - distances / radius, 0.0, 1.0)


class FlowFieldGrid:
    """
    A 2D grid of unit direction vectors over a fixed world rectangle.

    Cells are stored as an array of shape (resolution, resolution, 2) indexed
    [x, y]. Cell (i, j) has its world-space centre at
    origin + (i + 0.5, j + 0.5) * cell_size.

    Args:
        resolution (int): Number of cells per dimension
        world_origin (tuple): Bottom-left corner of the field in world units
        world_size (tuple): Width and height of the field in world units
        algorithm (str): 'angle' or 'curl'
        noise_scale (float): Noise coordinates per cell
        rng (np.random.Generator, optional): Source of noise tables and seeds
        curl_epsilon (float): Finite-difference step for the curl algorithm
    """

    def __init__(self, resolution=config.DEFAULT_GRID_RES,
                 world_origin=config.DEFAULT_WORLD_ORIGIN,
                 world_size=config.DEFAULT_WORLD_SIZE,
                 algorithm=config.DEFAULT_ALGORITHM,
                 noise_scale=config.DEFAULT_NOISE_SCALE,
                 rng=None, curl_epsilon=config.CURL_EPSILON):
        if isinstance(resolution, bool) or not isinstance(resolution, (int, np.integer)):
            raise TypeError(f"Grid resolution must be an integer, got {type(resolution).__name__}")
        if resolution <= 0:
            raise ValueError(f"Grid resolution must be at least 1, got {resolution}")

        origin = np.asarray(world_origin, dtype=float)
        size = np.asarray(world_size, dtype=float)
        if origin.shape != (2,) or size.shape != (2,):
            raise ValueError(f"World origin and size must be 2D, got shapes {origin.shape} and {size.shape}")
        if not np.all(np.isfinite(origin)) or not np.all(np.isfinite(size)) or np.any(size <= 0):
            raise ValueError(f"World size must be finite and positive, got {tuple(size)}")
        if curl_epsilon <= 0:
            raise ValueError(f"Curl epsilon must be positive, got {curl_epsilon}")
        _check_algorithm(algorithm)

        self.rng = rng if rng is not None else np.random.default_rng()
        self.resolution = int(resolution)
        self.origin = origin
        self.size = size
        self.cell_size = size / self.resolution
        self.algorithm = algorithm
        self.noise_scale = float(noise_scale)
        self.curl_epsilon = float(curl_epsilon)

        self.noise = PerlinNoise(self.rng)
        self.seed_offset = np.zeros(2)

        # Start from +X so the curl fallback always has a previous direction
        self._field = np.zeros((self.resolution, self.resolution, 2))
        self._field[..., 0] = 1.0
        self._interp = None

        self.generate()
        logger.info("FlowField initialized: %dx%d grid, covering %.1fx%.1f world units",
                    self.resolution, self.resolution, self.size[0], self.size[1])

    @classmethod
    def from_params(cls, params, world_origin=config.DEFAULT_WORLD_ORIGIN,
                    world_size=config.DEFAULT_WORLD_SIZE, rng=None):
        """Build a grid from a config.FieldParams instance."""
        return cls(resolution=params.resolution, world_origin=world_origin,
                   world_size=world_size, algorithm=params.algorithm,
                   noise_scale=params.noise_scale, rng=rng,
                   curl_epsilon=params.curl_epsilon)

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    def generate(self, algorithm=None):
        """
        Regenerate every cell with a fresh random seed offset.

        Args:
            algorithm (str, optional): Switch algorithm before generating
        """
        if algorithm is not None:
            _check_algorithm(algorithm)
            self.algorithm = algorithm

        self.seed_offset = self.rng.uniform(0.0, config.NOISE_SEED_RANGE, size=2)

        cells = np.arange(self.resolution, dtype=float)
        ix, iy = np.meshgrid(cells, cells, indexing='ij')
        nx = ix * self.noise_scale + self.seed_offset[0]
        ny = iy * self.noise_scale + self.seed_offset[1]

        if self.algorithm == 'curl':
            self._field = self._curl_field(nx, ny)
        else:
            self._field = self._angle_field(nx, ny)

        self._invalidate()
        logger.debug("Generated %s field with seed offset (%.3f, %.3f)",
                     self.algorithm, self.seed_offset[0], self.seed_offset[1])

    def _angle_field(self, nx, ny):
        # each cell gets an angle from 0 to 2pi, converted to a direction vector
        angle = self.noise.sample(nx, ny) * 2.0 * np.pi
        return np.stack([np.cos(angle), np.sin(angle)], axis=-1)

    def _curl_field(self, nx, ny):
        eps = self.curl_epsilon
        dn_dx = (self.noise.sample(nx + eps, ny) - self.noise.sample(nx - eps, ny)) / (2.0 * eps)
        dn_dy = (self.noise.sample(nx, ny + eps) - self.noise.sample(nx, ny - eps)) / (2.0 * eps)

        # 2D curl: gradient rotated by 90 degrees
        curl = np.stack([dn_dy, -dn_dx], axis=-1)
        field, degenerate = normalize_vectors(curl, self._field)
        if degenerate:
            logger.debug("Curl field: %d flat cells kept their previous direction", degenerate)
        return field

    def fill(self, direction):
        """Set every cell to the same direction."""
        d = np.asarray(direction, dtype=float)
        norm = np.linalg.norm(d)
        if d.shape != (2,) or norm <= config.EPSILON:
            raise ValueError(f"Fill direction must be a non-zero 2D vector, got {direction!r}")
        self._field[:] = d / norm
        self._invalidate()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def vectors(self):
        """Copy of the grid, shape (resolution, resolution, 2), indexed [x, y]."""
        return self._field.copy()

    def get_bounds(self):
        """Return the field's world rectangle as (min, max)."""
        return self.origin.copy(), self.origin + self.size

    def cell_centers(self):
        """World-space cell centres, shape (resolution, resolution, 2)."""
        cells = np.arange(self.resolution, dtype=float) + 0.5
        cx = self.origin[0] + cells * self.cell_size[0]
        cy = self.origin[1] + cells * self.cell_size[1]
        grid_x, grid_y = np.meshgrid(cx, cy, indexing='ij')
        return np.stack([grid_x, grid_y], axis=-1)

    def _interpolator(self):
        if self._interp is None:
            # Grid nodes sit at normalised coordinates i / (resolution - 1)
            nodes = np.linspace(0.0, 1.0, self.resolution)
            self._interp = RegularGridInterpolator((nodes, nodes), self._field, method='linear')
        return self._interp

    def _invalidate(self):
        self._interp = None

    def sample(self, world_position):
        """
        Flow direction at one or more world positions.

        Queries are clamped into the field's bounds, mapped to continuous grid
        coordinates and bilinearly interpolated across the four surrounding
        cells, then renormalised.

        Interpolation places cell i at normalised coordinate i / (resolution - 1),
        spanning the full rectangle edge to edge, whereas brushes and
        cell_centers() use the cell centre (i + 0.5) * cell_size. Near the edges
        a sample can therefore read cells up to half a cell away from where a
        brush at the same point painted.

        Args:
            world_position (array-like): A point (2,) or points (N, 2)

        Returns:
            np.ndarray: Unit vector(s), shape (2,) or (N, 2)
        """
        points = np.asarray(world_position, dtype=float)
        single = points.ndim == 1
        points = np.atleast_2d(points)

        normalised = (points - self.origin) / self.size
        normalised = np.nan_to_num(normalised, nan=0.5, posinf=1.0, neginf=0.0)
        normalised = np.clip(normalised, 0.0, 1.0)

        # Nearest cell doubles as the fallback for a cancelled blend
        nearest = np.rint(normalised * (self.resolution - 1)).astype(int)
        fallback = self._field[nearest[:, 0], nearest[:, 1]]

        if self.resolution == 1:
            blended = fallback.copy()
        else:
            blended = self._interpolator()(normalised)

        directions, degenerate = normalize_vectors(blended, fallback)
        if degenerate:
            logger.debug("Sample: %d cancelled blends fell back to the nearest cell", degenerate)
        return directions[0] if single else directions

    # ------------------------------------------------------------------
    # Brushes
    # ------------------------------------------------------------------

    def _cells_in_radius(self, center, radius):
        """
        Cells whose centre lies within `radius` world units of `center`.

        Returns:
            tuple: (ix, iy, offsets from centre to cell (K, 2), distances (K,))
        """
        center = np.asarray(center, dtype=float)
        empty = (np.zeros(0, dtype=int), np.zeros(0, dtype=int), np.zeros((0, 2)), np.zeros(0))
        if radius <= 0 or not np.all(np.isfinite(center)):
            return empty

        # Index window covering the brush circle, clipped to the grid
        lo = np.floor((center - radius - self.origin) / self.cell_size - 0.5).astype(int)
        hi = np.ceil((center + radius - self.origin) / self.cell_size - 0.5).astype(int)
        lo = np.maximum(lo, 0)
        hi = np.minimum(hi, self.resolution - 1)
        if np.any(hi < lo):
            return empty

        xs = np.arange(lo[0], hi[0] + 1)
        ys = np.arange(lo[1], hi[1] + 1)
        ix, iy = np.meshgrid(xs, ys, indexing='ij')
        ix, iy = ix.ravel(), iy.ravel()

        centers = self.origin + (np.stack([ix, iy], axis=-1) + 0.5) * self.cell_size
        offsets = centers - center
        distances = np.linalg.norm(offsets, axis=1)
        inside = distances <= radius
        return ix[inside], iy[inside], offsets[inside], distances[inside]

    def _blend_cells(self, ix, iy, targets, weights):
        current = self._field[ix, iy]
        blended = current + weights[:, None] * (targets - current)
        blended, degenerate = normalize_vectors(blended, current)
        if degenerate:
            logger.debug("Brush: %d cancelled blends kept their previous direction", degenerate)
        self._field[ix, iy] = blended
        self._invalidate()
        return len(ix)

    def apply_brush(self, center, radius, direction, strength):
        """
        Blend cells around `center` toward `direction`.

        Args:
            center (array-like): Brush centre in world units
            radius (float): Brush radius in world units
            direction (array-like): Target direction (normalised internally)
            strength (float): Blend amount at the centre, in [0, 1]

        Returns:
            int: Number of cells edited
        """
        target = np.asarray(direction, dtype=float)
        norm = np.linalg.norm(target)
        if norm <= config.EPSILON:
            logger.debug("Directional brush ignored: zero-length direction")
            return 0
        target = target / norm

        ix, iy, _, distances = self._cells_in_radius(center, radius)
        if len(ix) == 0:
            return 0
        weights = strength * brush_falloff(distances, radius)
        targets = np.broadcast_to(target, (len(ix), 2))
        return self._blend_cells(ix, iy, targets, weights)

    def _centred_cells(self, center, radius):
        # Drop cells too close to the centre to have a direction
        ix, iy, offsets, distances = self._cells_in_radius(center, radius)
        min_distance = config.BRUSH_CENTER_SKIP * float(np.mean(self.cell_size))
        keep = distances >= min_distance
        return ix[keep], iy[keep], offsets[keep], distances[keep]

    def apply_swirl_brush(self, center, radius, strength):
        """
        Blend cells toward the tangent of a circle around `center`,
        producing counter-clockwise rotational flow.

        Returns:
            int: Number of cells edited
        """
        ix, iy, offsets, distances = self._centred_cells(center, radius)
        if len(ix) == 0:
            return 0
        tangents = np.stack([-offsets[:, 1], offsets[:, 0]], axis=-1) / distances[:, None]
        weights = strength * brush_falloff(distances, radius)
        return self._blend_cells(ix, iy, tangents, weights)

    def apply_radial_brush(self, center, radius, strength, outward=False):
        """
        Blend cells toward `center` (attract), or away from it when `outward`
        (repel).

        Returns:
            int: Number of cells edited
        """
        ix, iy, offsets, distances = self._centred_cells(center, radius)
        if len(ix) == 0:
            return 0
        radial = offsets / distances[:, None]
        targets = radial if outward else -radial
        weights = strength * brush_falloff(distances, radius)
        return self._blend_cells(ix, iy, targets, weights)


def _check_algorithm(algorithm):
    if algorithm not in config.ALGORITHMS:
        raise ValueError(f"Unknown field algorithm '{algorithm}'; expected one of {config.ALGORITHMS}")
