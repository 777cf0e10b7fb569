"""
Trail preview for FlowTrails.

A minimal rendering collaborator: it keeps a short position history per
particle, following the emitting / clear-trail flags the simulation publishes,
and draws the histories as fading line segments with matplotlib.
"""

import logging

import numpy as np
import matplotlib.pyplot as plt
from matplotlib.collections import LineCollection
from matplotlib.animation import FuncAnimation

from .. import config
from ..ui.brush_controls import BrushMode

logger = logging.getLogger(__name__)


class TrailHistory:
    """
    Fixed-length trail history for every particle.

    Args:
        positions (np.ndarray): Initial particle positions, shape (N, 2)
        length (int): Number of segments per trail
    """

    def __init__(self, positions, length=config.TAIL_LENGTH):
        if length < 1:
            raise ValueError(f"Trail length must be at least 1, got {length}")
        positions = np.asarray(positions, dtype=float)
        self.length = int(length)
        self.histories = np.repeat(positions[:, None, :], self.length + 1, axis=1)

    def __len__(self):
        return len(self.histories)

    def update(self, snapshot):
        """
        Advance every trail by one frame.

        Emitting particles append their position. Particles that are not
        emitting append nothing, so their trail shrinks toward its head.
        Particles flagged with clear_trail restart from their current position.
        """
        his = self.histories
        positions = snapshot.positions

        # Shift history for everyone; idle trails repeat their head
        his[:, :-1, :] = his[:, 1:, :]
        emitting = snapshot.emitting
        his[emitting, -1, :] = positions[emitting]

        clear = snapshot.clear_trail
        if np.any(clear):
            his[clear] = positions[clear][:, None, :]

    def segments(self):
        """Line segments, shape (N * length, 2, 2)."""
        his = self.histories
        segs = np.stack([his[:, :-1, :], his[:, 1:, :]], axis=2)
        return segs.reshape(-1, 2, 2)

    def alphas(self, base_alpha=0.8):
        """
        Per-segment opacity: older segments are more transparent and
        collapsed (zero-length) segments are invisible.
        """
        t = np.arange(self.length)
        age_factor = (config.TRAIL_TAIL_MIN_FACTOR
                      + (1.0 - config.TRAIL_TAIL_MIN_FACTOR)
                      * ((t + 1) / self.length) ** config.TRAIL_TAIL_EXP)
        alphas = np.tile(base_alpha * age_factor, len(self.histories))

        his = self.histories
        seg_lengths = np.linalg.norm(his[:, 1:, :] - his[:, :-1, :], axis=2).ravel()
        alphas[seg_lengths <= config.EPSILON] = 0.0
        return alphas


def connect_brush(fig, ax, brush):
    """Route mouse drags on `ax` to a BrushController."""

    def on_press(event):
        if event.inaxes != ax or event.xdata is None or event.ydata is None:
            return
        if int(getattr(event, 'button', 1)) == 1:
            brush.begin_stroke((event.xdata, event.ydata))

    def on_motion(event):
        if event.inaxes != ax or event.xdata is None or event.ydata is None:
            return
        brush.drag_to((event.xdata, event.ydata))

    def on_release(event):
        brush.end_stroke()

    return [
        fig.canvas.mpl_connect('button_press_event', on_press),
        fig.canvas.mpl_connect('motion_notify_event', on_motion),
        fig.canvas.mpl_connect('button_release_event', on_release),
    ]


def run_preview(simulation, brush=None, dt=1.0 / 60.0, frames=None,
                tail_length=config.TAIL_LENGTH, show=True, audio_feed=None):
    """
    Animate a ParticleSimulation, ticking it once per frame.

    Hotkeys: 'r' respawns every particle, 'n' regenerates the field, 'c'
    toggles between angle and curl noise, '1'-'4' pick the brush mode.

    When `audio_feed` (e.g. an AudioPlayback) is given it becomes the
    simulation's audio source and is advanced by dt before every tick.

    Returns:
        FuncAnimation: Keep a reference or matplotlib stops the animation
    """
    field = simulation.field
    if audio_feed is not None:
        simulation.audio_source = audio_feed
    bounds_min, bounds_max = field.get_bounds()

    fig, ax = plt.subplots(figsize=(10, 5.6))
    fig.patch.set_facecolor('black')
    ax.set_facecolor('black')
    ax.set_xlim(bounds_min[0], bounds_max[0])
    ax.set_ylim(bounds_min[1], bounds_max[1])
    ax.set_aspect('equal')
    ax.axis('off')
    ax.set_title(config.WINDOW_TITLE, color='white')

    history = TrailHistory(simulation.positions, tail_length)
    lc = LineCollection([], linewidths=1.0, zorder=2)
    ax.add_collection(lc)
    n_segments = len(history) * history.length
    colors_rgba = np.ones((n_segments, 4))

    if brush is not None:
        connect_brush(fig, ax, brush)

    def on_key(event):
        if event.key == config.RESPAWN_HOTKEY:
            simulation.clear_and_respawn()
        elif event.key == config.RESET_FIELD_HOTKEY:
            field.generate()
        elif event.key == config.TOGGLE_ALGORITHM_HOTKEY:
            field.generate('curl' if field.algorithm == 'angle' else 'angle')
            logger.info("Field algorithm: %s", field.algorithm)
        elif brush is not None and event.key in ('1', '2', '3', '4'):
            brush.set_mode(BrushMode(int(event.key) - 1))

    fig.canvas.mpl_connect('key_press_event', on_key)

    def update(frame):
        if audio_feed is not None:
            audio_feed.advance(dt)
        simulation.tick(dt)
        history.update(simulation.snapshot())
        lc.set_segments(history.segments())
        colors_rgba[:, 3] = history.alphas()
        lc.set_colors(colors_rgba)
        return (lc,)

    anim = FuncAnimation(fig, update, frames=frames, interval=config.ANIMATION_INTERVAL,
                         blit=False, cache_frame_data=False)
    if show:
        plt.show()
    return anim
