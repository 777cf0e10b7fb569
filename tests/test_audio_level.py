"""Tests for the audio level smoothing."""

import numpy as np
import pytest
from scipy.io import wavfile

from flowtrails.core.audio_level import AudioPlayback, AudioReactor, SilentAudio, load_wav


class TestAudioReactor:

    def test_starts_silent(self):
        assert AudioReactor().level == 0.0
        assert SilentAudio().level == 0.0

    @pytest.mark.parametrize("smoothing", [0.0, -0.5, 1.5])
    def test_rejects_bad_smoothing(self, smoothing):
        with pytest.raises(ValueError):
            AudioReactor(smoothing=smoothing)

    def test_level_moves_toward_scaled_rms(self):
        reactor = AudioReactor(sensitivity=2.0, smoothing=0.5)
        # constant 0.2 buffer: rms 0.2, target 0.4
        level = reactor.push_samples(np.full(256, 0.2))
        assert level == pytest.approx(0.2)
        level = reactor.push_samples(np.full(256, 0.2))
        assert level == pytest.approx(0.3)

    def test_level_is_clamped(self):
        reactor = AudioReactor(sensitivity=10.0, smoothing=1.0)
        assert reactor.push_samples(np.ones(64)) == 1.0

    def test_non_finite_samples_are_ignored(self):
        reactor = AudioReactor(sensitivity=1.0, smoothing=1.0)
        assert reactor.push_samples([0.5, np.nan, -0.5, np.inf]) == pytest.approx(0.5)

    def test_empty_buffer_decays(self):
        reactor = AudioReactor(sensitivity=1.0, smoothing=1.0)
        reactor.push_samples(np.full(16, 0.8))
        reactor.smoothing = 0.5
        assert reactor.push_samples([]) == pytest.approx(0.4)
        assert reactor.decay() == pytest.approx(0.2)

    def test_disabled_reads_zero(self):
        reactor = AudioReactor(sensitivity=1.0, smoothing=1.0)
        reactor.push_samples(np.full(16, 0.8))
        reactor.enabled = False
        assert reactor.level == 0.0
        assert reactor.push_samples(np.full(16, 0.8)) == 0.0


class TestAudioPlayback:

    @pytest.fixture
    def steady(self):
        reactor = AudioReactor(sensitivity=2.0, smoothing=1.0)
        return AudioPlayback(np.full(1000, 0.25), 1000, reactor=reactor)

    def test_rejects_bad_rate(self):
        with pytest.raises(ValueError):
            AudioPlayback(np.zeros(10), 0)

    def test_advance_feeds_reactor(self, steady):
        assert steady.level == 0.0
        assert steady.advance(0.1) == pytest.approx(0.5)
        assert steady.cursor == 100
        assert steady.level == pytest.approx(0.5)

    def test_non_positive_dt_keeps_level(self, steady):
        steady.advance(0.1)
        assert steady.advance(0.0) == pytest.approx(0.5)
        assert steady.cursor == 100

    def test_loops_past_the_end(self, steady):
        steady.advance(1.25)
        assert steady.cursor == 250
        assert steady.level == pytest.approx(0.5)

    def test_stops_at_the_end_without_loop(self):
        reactor = AudioReactor(sensitivity=2.0, smoothing=1.0)
        playback = AudioPlayback(np.full(1000, 0.25), 1000, reactor=reactor, loop=False)
        assert playback.advance(1.5) == pytest.approx(0.5)
        assert playback.cursor == 1000
        assert playback.advance(0.1) == 0.0

    def test_fractional_samples_carry_over(self, steady):
        for _ in range(3):
            steady.advance(0.00075)
        # 0.75 samples per call: two whole samples after three calls
        assert steady.cursor == 2

    def test_load_int16_wav(self, tmp_path):
        path = tmp_path / "tone.wav"
        t = np.arange(8000) / 8000.0
        tone = (0.5 * np.sin(2 * np.pi * 440 * t) * 32767).astype(np.int16)
        wavfile.write(str(path), 8000, np.column_stack([tone, tone]))

        samples, rate = load_wav(str(path))
        assert rate == 8000
        assert samples.shape == (8000,)
        assert np.max(np.abs(samples)) == pytest.approx(0.5, abs=1e-3)

        playback = AudioPlayback.from_wav(str(path), reactor=AudioReactor(sensitivity=1.0, smoothing=1.0))
        # RMS of a sine with amplitude 0.5
        assert playback.advance(0.5) == pytest.approx(0.5 / np.sqrt(2), abs=1e-2)
