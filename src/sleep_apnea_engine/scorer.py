"""Confidence scoring with hysteresis.

Per-tick confidence is the maximum of independently computed signals (silence,
reference-pattern match, statistical irregularity, sounds and the optional
classifier), so any single strong signal dominates. A consecutive-anomaly
counter then boosts confidence only when anomalies persist across ticks.

The breathing state (normal / interrupted / missing) is a pure function of
the final confidence; the only memory is the counter and the buffers.
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from .buffer import PatternBuffer, SoundBandBuffers, detect_sound
from .classifier import Prediction
from .config import DetectorConfig
from .events import BreathingPattern, DetectedSounds
from .features import BreathingFeatures
from .matcher import Classification, PatternMatcher

logger = logging.getLogger(__name__)


def mean_and_stddev(values: Sequence[float]) -> Tuple[float, float]:
    """Population mean and standard deviation in two forward passes."""
    n = len(values)
    if n == 0:
        return 0.0, 0.0

    total = 0.0
    for v in values:
        total += v
    mean = total / n

    squared = 0.0
    for v in values:
        squared += (v - mean) ** 2
    return mean, math.sqrt(squared / n)


@dataclass(frozen=True)
class ScoreResult:
    """Outcome of scoring one tick.

    Attributes:
        confidence: Final confidence in [0, 1] after hysteresis
        raw_confidence: Confidence before the hysteresis boost
        pattern: Breathing state derived from the final confidence
        is_apnea: True in the ``missing`` state
        consecutive_anomalies: Hysteresis counter after this tick
        sounds: Detected sound flags
        classification: Reference-pattern classification, when evaluated
    """

    confidence: float
    raw_confidence: float
    pattern: BreathingPattern
    is_apnea: bool
    consecutive_anomalies: int
    sounds: DetectedSounds
    classification: Optional[Classification] = None


class ConfidenceScorer:
    """Fuses the detection signals and applies hysteresis.

    Owns the consecutive-anomaly counter; one scorer belongs to one detector.
    """

    def __init__(self, config: DetectorConfig, matcher: Optional[PatternMatcher] = None):
        self.config = config
        self.matcher = matcher
        self.consecutive_anomalies = 0

    def reset(self) -> None:
        """Forget the anomaly run."""
        self.consecutive_anomalies = 0

    def silence_threshold(self, multiplier: float) -> float:
        """Band-average threshold below which the breathing band counts as silent."""
        cfg = self.config
        return cfg.detection_threshold_base / (multiplier * cfg.silence_threshold_divisor)

    def classify_band(self, confidence: float) -> BreathingPattern:
        """Map a final confidence onto the breathing state."""
        if confidence > self.config.missing_threshold:
            return "missing"
        if confidence > self.config.interrupted_threshold:
            return "interrupted"
        return "normal"

    def score(
        self,
        features: BreathingFeatures,
        buffer: PatternBuffer,
        sound_buffers: SoundBandBuffers,
        multiplier: float,
        prediction: Optional[Prediction] = None,
    ) -> ScoreResult:
        """Score the current tick.

        Args:
            features: Features of the current tick
            buffer: Breathing history, already including this tick
            sound_buffers: Sound-band history, already including this tick
            multiplier: Current sensitivity multiplier
            prediction: Optional classifier prediction for the recent window

        Returns:
            ScoreResult for the tick. With fewer than ``min_samples`` buffered
            samples the result is a neutral normal/zero and the counter is
            left untouched.
        """
        cfg = self.config
        if len(buffer) < cfg.min_samples:
            return ScoreResult(
                confidence=0.0,
                raw_confidence=0.0,
                pattern="normal",
                is_apnea=False,
                consecutive_anomalies=self.consecutive_anomalies,
                sounds=DetectedSounds(),
            )

        confidence = self._silence_signal(features, multiplier)

        classification = None
        if cfg.use_reference_patterns and self.matcher is not None and len(buffer) >= cfg.match_window:
            classification = self.matcher.classify(buffer.window(cfg.match_window))
            confidence = self._pattern_signal(confidence, classification)

        confidence = self._irregularity_signal(confidence, buffer.values(), multiplier)

        sounds = self._detect_sounds(sound_buffers)
        if sounds.snoring or sounds.gasping or sounds.coughing:
            confidence = max(confidence, cfg.sound_confidence)

        if (
            prediction is not None
            and prediction.label == "apnea"
            and prediction.confidence > cfg.classifier_min_confidence
        ):
            confidence = max(confidence, min(1.0, prediction.confidence))

        raw_confidence = confidence

        # Hysteresis
        if confidence > cfg.anomaly_threshold:
            self.consecutive_anomalies += 1
        else:
            self.consecutive_anomalies = max(0, self.consecutive_anomalies - 1)

        if self.consecutive_anomalies >= cfg.hysteresis_count:
            confidence += cfg.hysteresis_boost

        confidence = min(1.0, max(0.0, confidence))
        pattern = self.classify_band(confidence)

        logger.debug(
            f"Score raw={raw_confidence:.3f} final={confidence:.3f} "
            f"anomalies={self.consecutive_anomalies} pattern={pattern}"
        )

        return ScoreResult(
            confidence=confidence,
            raw_confidence=raw_confidence,
            pattern=pattern,
            is_apnea=pattern == "missing",
            consecutive_anomalies=self.consecutive_anomalies,
            sounds=DetectedSounds(
                snoring=sounds.snoring,
                coughing=sounds.coughing,
                gasping=sounds.gasping,
                paused_breathing=pattern == "missing",
            ),
            classification=classification,
        )

    def _silence_signal(self, features: BreathingFeatures, multiplier: float) -> float:
        cfg = self.config
        threshold = self.silence_threshold(multiplier)

        is_silent = (
            features.band_average < threshold
            and features.time_amplitude < threshold / cfg.time_silence_fraction
        )
        confidence = 0.0
        if is_silent:
            confidence = min(
                1.0, (threshold - features.band_average) / threshold * cfg.silence_confidence_gain
            )

        if features.time_amplitude < threshold / cfg.time_floor_fraction:
            confidence = max(confidence, cfg.time_floor_confidence)
        return confidence

    def _pattern_signal(self, confidence: float, classification: Classification) -> float:
        cfg = self.config
        if classification.confidence <= cfg.match_min_confidence:
            return confidence
        if classification.category in cfg.benign_categories:
            return confidence

        confidence = max(confidence, min(1.0, classification.confidence * cfg.match_boost))
        if classification.is_apnea:
            confidence = max(confidence, cfg.match_apnea_confidence)
        return confidence

    def _irregularity_signal(
        self, confidence: float, values: Sequence[float], multiplier: float
    ) -> float:
        cfg = self.config
        _, stddev = mean_and_stddev(values)
        is_irregular = stddev > cfg.irregularity_factor * multiplier

        recent_mean, recent_stddev = mean_and_stddev(values[-cfg.recent_window :])
        is_flat = recent_stddev < cfg.flat_stddev and recent_mean < cfg.flat_mean

        if is_irregular:
            confidence = max(confidence, cfg.irregular_confidence)
        if is_flat:
            confidence = max(confidence, cfg.flat_confidence)
            if recent_mean < cfg.very_flat_mean:
                confidence = max(confidence, cfg.very_flat_confidence)
        return confidence

    def _detect_sounds(self, sound_buffers: SoundBandBuffers) -> DetectedSounds:
        cfg = self.config
        flags = {}
        for name, sound in cfg.sound_bands.items():
            flags[name] = detect_sound(
                sound_buffers.values(name),
                sound.threshold,
                peak_factor=cfg.sound_peak_factor,
                min_samples=cfg.sound_min_samples,
            )
        return DetectedSounds(
            snoring=flags.get("snoring", False),
            coughing=flags.get("coughing", False),
            gasping=flags.get("gasping", False),
        )
