"""Digital Signal Processing (DSP) layer for audio analysis."""

import logging
import math
from dataclasses import dataclass
from typing import Optional

import numpy as np

from ..models import Range

logger = logging.getLogger(__name__)

# Smallest linear magnitude considered before converting to decibels
_MIN_LINEAR = 1e-20


def to_float_samples(audio_chunk: np.ndarray) -> np.ndarray:
    """Convert raw PCM samples to float32 in [-1, 1].

    Integer input is scaled by its dtype's full range; float input is passed
    through unchanged.
    """
    audio_chunk = np.asarray(audio_chunk)
    if audio_chunk.dtype == np.uint8:
        return (audio_chunk.astype(np.float32) - 128.0) / 128.0
    if np.issubdtype(audio_chunk.dtype, np.integer):
        scale = float(np.iinfo(audio_chunk.dtype).max) + 1.0
        return audio_chunk.astype(np.float32) / scale
    return audio_chunk.astype(np.float32)


@dataclass(frozen=True, eq=False)
class SpectralFrame:
    """One tick's spectral snapshot.

    Attributes:
        magnitudes: Frequency-bin magnitudes on a 0-255 scale.
        samples: Raw time-domain samples in [-1, 1] for the same tick.
        sample_rate: Sample rate in Hz.
        fft_size: FFT size the magnitudes were computed with.
    """

    magnitudes: np.ndarray
    samples: np.ndarray
    sample_rate: int
    fft_size: int

    @property
    def bin_width(self) -> float:
        """Width of one frequency bin in Hz."""
        return self.sample_rate / self.fft_size

    def band(self, band: Range) -> np.ndarray:
        """Magnitudes of the bins covering ``band``.

        Bins ``floor(min / bin_width)`` up to, but excluding,
        ``floor(max / bin_width)``.
        """
        start = int(math.floor(band.min / self.bin_width))
        end = int(math.floor(band.max / self.bin_width))
        return self.magnitudes[start:end]


class SpectralAnalyzer:
    """Turns the latest block of audio samples into a SpectralFrame.

    Performs a Blackman-windowed FFT, smooths magnitudes over time, converts
    them to decibels and maps the ``[min_decibels, max_decibels]`` range
    linearly onto 0-255.
    """

    def __init__(
        self,
        sample_rate: int,
        fft_size: int,
        min_decibels: float = -150.0,
        max_decibels: float = -10.0,
        smoothing: float = 0.2,
    ):
        """Initialize the spectral analyzer.

        Args:
            sample_rate: Audio sample rate in Hz
            fft_size: Number of samples per FFT
            min_decibels: Level mapped to magnitude 0
            max_decibels: Level mapped to magnitude 255
            smoothing: Weight of the previous spectrum (0 disables smoothing)
        """
        if fft_size < 2:
            raise ValueError(f"fft_size must be at least 2, got {fft_size}")
        if max_decibels <= min_decibels:
            raise ValueError("max_decibels must exceed min_decibels")
        if not 0.0 <= smoothing < 1.0:
            raise ValueError(f"smoothing must be in [0, 1), got {smoothing}")

        self.sample_rate = sample_rate
        self.fft_size = fft_size
        self.min_decibels = min_decibels
        self.max_decibels = max_decibels
        self.smoothing = smoothing
        self.window = np.blackman(fft_size)

        self._previous: Optional[np.ndarray] = None

    def reset(self) -> None:
        """Forget the smoothing history."""
        self._previous = None

    def analyze(self, samples: np.ndarray, commit: bool = True) -> SpectralFrame:
        """Analyze the most recent ``fft_size`` samples.

        Args:
            samples: Time-domain samples in [-1, 1]. Shorter input is
                zero-padded at the front; longer input keeps its tail.
            commit: Store the spectrum as smoothing history. Pass False for
                one-off peeks that must not influence the next frame.

        Returns:
            A SpectralFrame with ``fft_size // 2`` magnitude bins.
        """
        samples = np.asarray(samples, dtype=np.float32)
        if len(samples) >= self.fft_size:
            block = samples[-self.fft_size :]
        else:
            block = np.zeros(self.fft_size, dtype=np.float32)
            if len(samples):
                block[-len(samples) :] = samples

        # Normalized magnitude spectrum
        spectrum = np.abs(np.fft.rfft(block * self.window))[: self.fft_size // 2]
        spectrum = spectrum / self.fft_size

        # Time smoothing
        if self._previous is not None and self.smoothing > 0:
            spectrum = self.smoothing * self._previous + (1.0 - self.smoothing) * spectrum
        if commit:
            self._previous = spectrum

        # dB -> byte scale
        decibels = 20.0 * np.log10(np.maximum(spectrum, _MIN_LINEAR))
        scaled = (decibels - self.min_decibels) / (self.max_decibels - self.min_decibels)
        magnitudes = np.floor(np.clip(scaled * 255.0, 0.0, 255.0))

        return SpectralFrame(
            magnitudes=magnitudes,
            samples=block.copy(),
            sample_rate=self.sample_rate,
            fft_size=self.fft_size,
        )
