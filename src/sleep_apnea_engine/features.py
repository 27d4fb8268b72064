"""Reduces spectral frames to breathing and sound-band features."""

import logging
from dataclasses import dataclass, field
from typing import Dict, Tuple

import numpy as np

from .buffer import PatternBuffer, SoundBandBuffers
from .config import DetectorConfig
from .processing.dsp import SpectralFrame

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BreathingFeatures:
    """Features extracted from one SpectralFrame.

    Attributes:
        breathing_sample: Breathing energy in [0, 1] (peak-normalized band
            average plus the blended time-domain amplitude)
        band_average: Raw breathing-band average on the 0-255 scale
        time_amplitude: Mean absolute time-domain amplitude
        noise_average: Average of the non-breathing reference band (0-255)
        non_breathing_noise: True when the tick is noise-contaminated
        sound_levels: Per sound category band average (0-255)
        frequency_data: Leading breathing-band magnitudes for visualization
    """

    breathing_sample: float
    band_average: float
    time_amplitude: float
    noise_average: float = 0.0
    non_breathing_noise: bool = False
    sound_levels: Dict[str, float] = field(default_factory=dict)
    frequency_data: Tuple[float, ...] = ()


def _mean(values: np.ndarray) -> float:
    """Sequential left-to-right mean; an empty band averages to 0."""
    if len(values) == 0:
        return 0.0
    total = 0.0
    for value in values.tolist():
        total += value
    return total / len(values)


class FeatureExtractor:
    """Extracts per-tick breathing features from spectral frames.

    The extractor itself is stateless: ``extract`` has no side effects and
    ``record`` is the only place buffers are written.
    """

    def __init__(self, config: DetectorConfig):
        self.config = config

    def extract(self, frame: SpectralFrame, multiplier: float) -> BreathingFeatures:
        """Compute breathing and sound features for a frame.

        Args:
            frame: Spectral snapshot of the current tick
            multiplier: Current sensitivity multiplier

        Returns:
            BreathingFeatures for this tick
        """
        cfg = self.config

        # 1. Breathing band, normalized against the band's own peak
        band = frame.band(cfg.breathing_band)
        band_average = _mean(band)
        peak = max(float(np.max(band)) if len(band) else 0.0, 1.0)
        gain = multiplier * cfg.breathing_gain
        processed = np.minimum(1.0, (band / peak) * gain)
        breathing_average = _mean(processed)

        # 2. Non-breathing reference band
        noise_average = 0.0
        non_breathing_noise = False
        if cfg.noise_band is not None:
            noise_average = _mean(frame.band(cfg.noise_band))
            non_breathing_noise = noise_average > cfg.ambient_noise_threshold * 255

        # 3. Time-domain amplitude, blended additively
        time_amplitude = _mean(np.abs(frame.samples))
        breathing_sample = min(1.0, breathing_average + time_amplitude * cfg.time_domain_gain)

        # 4. Sound bands are always computed
        sound_levels = {
            name: _mean(frame.band(sound.band)) for name, sound in cfg.sound_bands.items()
        }

        return BreathingFeatures(
            breathing_sample=breathing_sample,
            band_average=band_average,
            time_amplitude=time_amplitude,
            noise_average=noise_average,
            non_breathing_noise=non_breathing_noise,
            sound_levels=sound_levels,
            frequency_data=tuple(band[: cfg.frequency_data_bins].tolist()),
        )

    def record(
        self,
        features: BreathingFeatures,
        buffer: PatternBuffer,
        sound_buffers: SoundBandBuffers,
    ) -> bool:
        """Push a tick's features into the history buffers.

        Noise-contaminated ticks are dropped so they cannot corrupt the
        breathing baseline.

        Returns:
            True if the buffers were updated
        """
        if features.non_breathing_noise:
            logger.debug(
                f"Noise-contaminated tick skipped (noise avg {features.noise_average:.1f})"
            )
            return False

        buffer.push(features.breathing_sample)
        sound_buffers.push(features.sound_levels)
        return True
