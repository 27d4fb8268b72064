"""Tests for confidence scoring and hysteresis."""

import pytest

from sleep_apnea_engine.buffer import PatternBuffer, SoundBandBuffers
from sleep_apnea_engine.classifier import Prediction
from sleep_apnea_engine.config import DetectorConfig
from sleep_apnea_engine.features import BreathingFeatures
from sleep_apnea_engine.matcher import PatternMatcher
from sleep_apnea_engine.reference import default_reference_library
from sleep_apnea_engine.scorer import ConfidenceScorer, mean_and_stddev

MULTIPLIER = 4.5


class Harness:
    """Feeds features into buffers and scores them, like one detector tick."""

    def __init__(self, config=None, use_matcher=True):
        self.config = config or DetectorConfig()
        matcher = PatternMatcher(default_reference_library(), self.config) if use_matcher else None
        self.scorer = ConfidenceScorer(self.config, matcher)
        self.buffer = PatternBuffer(self.config.buffer_size)
        self.sounds = SoundBandBuffers(self.config.sound_bands, self.config.sound_buffer_size)

    def tick(self, features, prediction=None):
        self.buffer.push(features.breathing_sample)
        self.sounds.push(features.sound_levels)
        return self.scorer.score(features, self.buffer, self.sounds, MULTIPLIER, prediction)


def breathing(sample, band_average=50.0, time_amplitude=0.05, sound_level=0.0):
    return BreathingFeatures(
        breathing_sample=sample,
        band_average=band_average,
        time_amplitude=time_amplitude,
        sound_levels={"snoring": sound_level, "gasping": sound_level},
    )


def test_mean_and_stddev():
    assert mean_and_stddev([]) == (0.0, 0.0)
    mean, std = mean_and_stddev([2.0, 4.0, 4.0, 4.0, 5.0, 5.0, 7.0, 9.0])
    assert mean == pytest.approx(5.0)
    assert std == pytest.approx(2.0)


def test_silence_threshold():
    scorer = ConfidenceScorer(DetectorConfig())
    assert scorer.silence_threshold(MULTIPLIER) == pytest.approx(2.0 / (1.5 * MULTIPLIER * 1.5))


def test_classification_bands():
    scorer = ConfidenceScorer(DetectorConfig())
    assert scorer.classify_band(0.10) == "normal"
    assert scorer.classify_band(0.11) == "interrupted"
    assert scorer.classify_band(0.30) == "interrupted"
    assert scorer.classify_band(0.31) == "missing"


def test_neutral_until_min_samples():
    h = Harness()
    for _ in range(4):
        result = h.tick(breathing(0.0, band_average=0.0, time_amplitude=0.0))
        assert result.confidence == 0.0
        assert result.pattern == "normal"
        assert result.consecutive_anomalies == 0
    assert h.tick(breathing(0.0, band_average=0.0, time_amplitude=0.0)).confidence > 0


def test_flat_low_breathing_becomes_missing():
    h = Harness()
    results = [
        h.tick(breathing(0.05, band_average=0.01, time_amplitude=0.001)) for _ in range(10)
    ]
    last = results[-1]
    assert last.pattern == "missing"
    assert last.is_apnea
    assert last.sounds.paused_breathing
    assert last.consecutive_anomalies >= 2


def test_flat_statistics_alone_flag_missing():
    # loud enough to avoid the silence signals, but the envelope is flat and low
    h = Harness(use_matcher=False)
    results = [h.tick(breathing(0.05)) for _ in range(10)]
    assert results[-1].raw_confidence == pytest.approx(0.85)
    assert results[-1].pattern == "missing"


def test_regular_quiet_breathing_stays_normal():
    h = Harness()
    for i in range(30):
        result = h.tick(breathing(0.60 if i % 2 == 0 else 0.65))
        assert result.pattern == "normal"
        assert result.confidence <= h.config.interrupted_threshold
    assert result.classification is not None
    assert result.classification.category.value == "normal"


def test_irregular_breathing_is_flagged():
    h = Harness(use_matcher=False)
    samples = [0.0, 1.0] * 5
    for s in samples:
        result = h.tick(breathing(s))
    assert result.raw_confidence >= h.config.irregular_confidence


def test_hysteresis_boosts_persistent_anomalies():
    cfg = DetectorConfig(use_reference_patterns=False)
    scorer = ConfidenceScorer(cfg)
    threshold = scorer.silence_threshold(MULTIPLIER)
    # silence confidence of 0.12, just above the 0.09 anomaly threshold
    weak = breathing(
        0.62, band_average=threshold * (1 - 0.12 / 3.0), time_amplitude=threshold / 11
    )

    isolated = Harness(cfg, use_matcher=False)
    for s in (0.60, 0.65, 0.60, 0.65):
        isolated.tick(breathing(s))
    single = isolated.tick(weak)

    persistent = Harness(cfg, use_matcher=False)
    for s in (0.60, 0.65, 0.60, 0.65):
        persistent.tick(breathing(s))
    persistent.tick(weak)
    second = persistent.tick(weak)

    assert single.raw_confidence == pytest.approx(0.12)
    assert single.confidence == pytest.approx(0.12)
    assert second.raw_confidence == pytest.approx(0.12)
    assert second.confidence == pytest.approx(0.12 + 0.35)
    assert second.consecutive_anomalies == 2


def test_counter_decays_on_normal_ticks():
    h = Harness(use_matcher=False)
    for _ in range(6):
        h.tick(breathing(0.0, band_average=0.0, time_amplitude=0.0))
    peak = h.scorer.consecutive_anomalies
    h.tick(breathing(0.6))
    assert h.scorer.consecutive_anomalies in (peak - 1, peak + 1)
    h.scorer.reset()
    assert h.scorer.consecutive_anomalies == 0


def test_confidence_is_clamped():
    h = Harness()
    for _ in range(10):
        result = h.tick(breathing(0.0, band_average=0.0, time_amplitude=0.0))
    assert result.raw_confidence == pytest.approx(1.0)
    assert result.confidence == 1.0


def test_snoring_raises_confidence():
    h = Harness(use_matcher=False)
    for i in range(6):
        result = h.tick(breathing(0.60 if i % 2 == 0 else 0.65, sound_level=10.0))
    assert result.sounds.snoring
    assert result.sounds.gasping
    assert result.raw_confidence >= 0.70


def test_classifier_prediction_floors_confidence():
    h = Harness(use_matcher=False)
    for i in range(5):
        result = h.tick(
            breathing(0.60 if i % 2 == 0 else 0.65), prediction=Prediction("apnea", 0.9)
        )
    assert result.raw_confidence == pytest.approx(0.9)

    h = Harness(use_matcher=False)
    for i in range(5):
        result = h.tick(
            breathing(0.60 if i % 2 == 0 else 0.65), prediction=Prediction("apnea", 0.4)
        )
    assert result.raw_confidence == 0.0
