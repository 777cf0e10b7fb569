"""
Audio level input for FlowTrails.

The simulation reads one normalised loudness value per tick. Capturing audio
belongs to the host; this module turns raw sample buffers into that smoothed
level, provides the silent stand-in used when no audio is attached, and can
play a recorded WAV file into the level frame by frame.
"""

import logging

import numpy as np
from scipy.io import wavfile

from .. import config

logger = logging.getLogger(__name__)


class SilentAudio:
    """Audio source used when nothing is attached: always 0."""
    level = 0.0


class AudioReactor:
    """
    Smoothed RMS loudness in [0, 1].

    Args:
        sensitivity (float): Gain applied to the RMS before clamping
        smoothing (float): Fraction of the gap to the new level closed per
            update (lower = smoother)
        enabled (bool): When False, `level` reads as 0
    """

    def __init__(self, sensitivity=config.AUDIO_SENSITIVITY,
                 smoothing=config.AUDIO_SMOOTHING, enabled=True):
        if not 0.0 < smoothing <= 1.0:
            raise ValueError(f"Audio smoothing must be in (0, 1], got {smoothing}")
        self.sensitivity = sensitivity
        self.smoothing = smoothing
        self.enabled = enabled
        self.current_volume = 0.0
        self._logged_sound = False

    @property
    def level(self):
        return self.current_volume if self.enabled else 0.0

    def push_samples(self, samples):
        """
        Update the level from a buffer of audio samples in [-1, 1].

        Returns:
            float: The smoothed level after the update
        """
        buffer = np.asarray(samples, dtype=float).ravel()
        if buffer.size == 0 or not self.enabled:
            return self.decay()

        buffer = buffer[np.isfinite(buffer)]
        rms = float(np.sqrt(np.mean(buffer ** 2))) if buffer.size else 0.0
        target = float(np.clip(rms * self.sensitivity, 0.0, 1.0))

        if not self._logged_sound and target > 0.1:
            logger.info("AudioReactor: Sound detected! Volume: %.2f", target)
            self._logged_sound = True

        self.current_volume += (target - self.current_volume) * self.smoothing
        return self.level

    def decay(self):
        """Ease toward silence when no input arrived this frame."""
        self.current_volume += (0.0 - self.current_volume) * self.smoothing
        return self.level


def load_wav(path):
    """
    Read a WAV file as mono float samples in [-1, 1].

    Args:
        path (str): Path to the WAV file

    Returns:
        tuple: (samples, sample_rate)
    """
    rate, data = wavfile.read(path)
    data = np.asarray(data)
    if np.issubdtype(data.dtype, np.integer):
        info = np.iinfo(data.dtype)
        # unsigned 8-bit audio is centred on 128
        centre = (int(info.max) + int(info.min) + 1) / 2.0
        scale = (int(info.max) - int(info.min) + 1) / 2.0
        data = (data.astype(float) - centre) / scale
    else:
        data = data.astype(float)
    if data.ndim > 1:
        data = data.mean(axis=1)
    logger.info("Loaded %s: %d samples at %d Hz", path, data.shape[0], rate)
    return data, int(rate)


class AudioPlayback:
    """
    Feeds a recorded buffer through an AudioReactor, dt seconds at a time.

    Args:
        samples (np.ndarray): Mono samples in [-1, 1]
        sample_rate (int): Samples per second
        reactor (AudioReactor, optional): Level smoother to feed
        loop (bool): Restart from the beginning when the buffer runs out
    """

    def __init__(self, samples, sample_rate, reactor=None, loop=True):
        if sample_rate <= 0:
            raise ValueError(f"Sample rate must be positive, got {sample_rate}")
        self.samples = np.asarray(samples, dtype=float).ravel()
        self.sample_rate = sample_rate
        self.reactor = reactor if reactor is not None else AudioReactor()
        self.loop = loop
        self.cursor = 0
        self._carry = 0.0

    @classmethod
    def from_wav(cls, path, reactor=None, loop=True):
        samples, rate = load_wav(path)
        return cls(samples, rate, reactor=reactor, loop=loop)

    @property
    def level(self):
        return self.reactor.level

    def advance(self, dt):
        """
        Push the next dt seconds of samples into the reactor.

        Returns:
            float: The smoothed level after the update
        """
        if dt <= 0:
            return self.level
        exact = dt * self.sample_rate + self._carry
        count = int(exact)
        self._carry = exact - count

        size = self.samples.size
        end = self.cursor + count
        if self.loop and size:
            chunk = self.samples[np.arange(self.cursor, end) % size]
            self.cursor = end % size
        else:
            chunk = self.samples[self.cursor:end]
            self.cursor = min(end, size)
        return self.reactor.push_samples(chunk)
