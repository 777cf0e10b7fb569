"""Tests for the trail history and the matplotlib preview."""

import numpy as np
import pytest
import matplotlib.pyplot as plt
from matplotlib.animation import FuncAnimation
from matplotlib.backend_bases import KeyEvent

from flowtrails.core.audio_level import AudioPlayback, AudioReactor
from flowtrails.physics.particle_system import ParticleSimulation, ParticleSnapshot
from flowtrails.ui.brush_controls import BrushController, BrushMode
from flowtrails.visualization.trail_preview import TrailHistory, run_preview


def make_snapshot(positions, emitting, clear_trail=None):
    positions = np.asarray(positions, dtype=float)
    n = len(positions)
    return ParticleSnapshot(
        positions=positions,
        velocities=np.zeros((n, 2)),
        emitting=np.asarray(emitting, dtype=bool),
        clear_trail=np.zeros(n, dtype=bool) if clear_trail is None else np.asarray(clear_trail, dtype=bool),
        states=np.zeros(n, dtype=np.int8),
        time=0.0,
    )


class TestTrailHistory:

    def test_rejects_empty_trail(self):
        with pytest.raises(ValueError):
            TrailHistory(np.zeros((3, 2)), length=0)

    def test_starts_collapsed_and_invisible(self):
        history = TrailHistory(np.array([[1.0, 1.0], [2.0, 2.0]]), length=3)
        assert history.histories.shape == (2, 4, 2)
        assert history.segments().shape == (6, 2, 2)
        np.testing.assert_array_equal(history.alphas(), 0.0)

    def test_emitting_particles_extend_their_trail(self):
        history = TrailHistory(np.array([[0.0, 0.0], [5.0, 5.0]]), length=3)
        history.update(make_snapshot([[1.0, 0.0], [6.0, 5.0]], emitting=[True, False]))

        np.testing.assert_array_equal(history.histories[0, -1], [1.0, 0.0])
        np.testing.assert_array_equal(history.histories[0, -2], [0.0, 0.0])
        # idle particle keeps its old head
        np.testing.assert_array_equal(history.histories[1], np.tile([5.0, 5.0], (4, 1)))

        alphas = history.alphas(base_alpha=0.8)
        assert alphas[2] == pytest.approx(0.8)
        assert np.count_nonzero(alphas) == 1

    def test_older_segments_are_fainter(self):
        history = TrailHistory(np.array([[0.0, 0.0]]), length=4)
        for step in range(1, 5):
            history.update(make_snapshot([[float(step), 0.0]], emitting=[True]))
        alphas = history.alphas()
        assert np.all(np.diff(alphas) > 0.0)

    def test_bulk_reset_leaves_no_bridging_segments(self, field, rng):
        sim = ParticleSimulation(field, 50, rng=rng)
        history = TrailHistory(sim.positions, length=6)
        for _ in range(10):
            sim.tick(1 / 60)
            history.update(sim.snapshot())

        sim.clear_and_respawn()
        sim.tick(1 / 60)
        history.update(sim.snapshot())

        segs = history.segments()
        lengths = np.linalg.norm(segs[:, 1] - segs[:, 0], axis=1)
        assert lengths.max() < 1e-9
        np.testing.assert_array_equal(history.histories[:, -1], sim.positions)

        # trails grow again from the relocated positions
        sim.tick(1 / 60)
        history.update(sim.snapshot())
        segs = history.segments()
        lengths = np.linalg.norm(segs[:, 1] - segs[:, 0], axis=1)
        assert lengths.max() < 1.0

    def test_clear_trail_collapses_history(self):
        history = TrailHistory(np.array([[0.0, 0.0]]), length=3)
        history.update(make_snapshot([[1.0, 0.0]], emitting=[True]))
        history.update(make_snapshot([[8.0, 8.0]], emitting=[True], clear_trail=[True]))
        np.testing.assert_array_equal(history.histories[0], np.tile([8.0, 8.0], (4, 1)))
        np.testing.assert_array_equal(history.alphas(), 0.0)


class TestRunPreview:

    @pytest.fixture
    def preview(self, field, rng):
        sim = ParticleSimulation(field, 40, rng=rng)
        brush = BrushController(field)
        anim = run_preview(sim, brush=brush, frames=5, tail_length=6, show=False)
        yield sim, brush, anim
        plt.close(anim._fig)

    def test_returns_animation(self, preview):
        _, _, anim = preview
        assert isinstance(anim, FuncAnimation)

    def test_each_frame_ticks_once(self, preview):
        sim, _, anim = preview
        artists = anim._func(0)
        anim._func(1)
        assert sim.stats['ticks'] == 2
        assert len(artists[0].get_segments()) == 40 * 6

    def test_hotkeys(self, preview):
        sim, brush, anim = preview
        canvas = anim._fig.canvas

        canvas.callbacks.process('key_press_event', KeyEvent('key_press_event', canvas, 'r'))
        assert np.all(sim.clear_trail)

        before = sim.field.algorithm
        canvas.callbacks.process('key_press_event', KeyEvent('key_press_event', canvas, 'c'))
        assert sim.field.algorithm != before

        canvas.callbacks.process('key_press_event', KeyEvent('key_press_event', canvas, '2'))
        assert brush.mode is BrushMode.SWIRL

    def test_audio_feed_drives_simulation(self, field, rng):
        sim = ParticleSimulation(field, 20, rng=rng)
        feed = AudioPlayback(np.full(600, 0.4), 600,
                             reactor=AudioReactor(sensitivity=2.0, smoothing=1.0))
        anim = run_preview(sim, frames=3, show=False, audio_feed=feed)
        try:
            anim._func(0)
            assert sim.audio_source is feed
            assert feed.cursor > 0
            assert sim._audio_level(None) == pytest.approx(0.8)
        finally:
            plt.close(anim._fig)
