"""Tests for the optional classifier hook."""

import sys
import types

import pytest

from sleep_apnea_engine.classifier import NullClassifier, Prediction, load_classifier
from sleep_apnea_engine.config import DetectorConfig
from sleep_apnea_engine.engine import Detector
from sleep_apnea_engine.exceptions import ModelUnavailableError

from conftest import breathing_frame, run_ticks


class AlwaysApnea:
    def classify(self, window):
        return Prediction(label="apnea", confidence=0.95)


class Exploding:
    def classify(self, window):
        raise RuntimeError("model crashed")


class TupleModel:
    def classify(self, window):
        return ("apnea", 0.9)


@pytest.fixture
def model_module(monkeypatch):
    module = types.ModuleType("fake_apnea_models")
    module.AlwaysApnea = AlwaysApnea
    module.instance = AlwaysApnea()
    module.factory = lambda: AlwaysApnea()
    module.Exploding = Exploding
    module.TupleModel = TupleModel
    module.not_a_model = 42
    monkeypatch.setitem(sys.modules, "fake_apnea_models", module)
    return module


def test_null_classifier():
    assert NullClassifier().classify([0.5] * 10) == Prediction("normal", 0.0)


@pytest.mark.parametrize("attribute", ["AlwaysApnea", "instance", "factory"])
def test_load_classifier_variants(model_module, attribute):
    classifier = load_classifier(f"fake_apnea_models:{attribute}")
    assert classifier.classify([0.1] * 10).label == "apnea"


@pytest.mark.parametrize(
    "path",
    [
        "fake_apnea_models",
        "fake_apnea_models:missing",
        "fake_apnea_models:not_a_model",
        "no_such_package_anywhere:Model",
    ],
)
def test_load_classifier_failures(model_module, path):
    with pytest.raises(ModelUnavailableError):
        load_classifier(path)


def _detector(capture, audio_settings, clock, scheduler, path):
    return Detector(
        config=DetectorConfig(classifier=path),
        audio=audio_settings,
        capture_factory=lambda settings: capture,
        clock=clock,
        scheduler=scheduler,
    )


def test_classifier_prediction_reaches_events(model_module, capture, audio_settings, clock, scheduler):
    detector = _detector(capture, audio_settings, clock, scheduler, "fake_apnea_models:AlwaysApnea")
    capture.feed(*[breathing_frame() for _ in range(12)])
    detector.start()
    events = run_ticks(detector, clock, 12)

    # the classifier needs a full match window before it is consulted
    assert events[8].confidence == 0.0
    assert events[-1].is_apnea


def test_crashing_classifier_is_dropped(model_module, capture, audio_settings, clock, scheduler):
    detector = _detector(capture, audio_settings, clock, scheduler, "fake_apnea_models:Exploding")
    capture.feed(*[breathing_frame() for _ in range(12)])
    detector.start()
    events = run_ticks(detector, clock, 12)

    assert all(event.pattern == "normal" for event in events)
    assert isinstance(detector.classifier, NullClassifier)


def test_classifier_with_wrong_result_type_is_dropped(model_module, capture, audio_settings, clock, scheduler):
    detector = _detector(capture, audio_settings, clock, scheduler, "fake_apnea_models:TupleModel")
    capture.feed(*[breathing_frame() for _ in range(12)])
    detector.start()
    events = run_ticks(detector, clock, 12)

    assert all(event.pattern == "normal" for event in events)
    assert isinstance(detector.classifier, NullClassifier)


def test_detector_defaults_to_null_classifier(detector):
    detector.initialize()
    assert isinstance(detector.classifier, NullClassifier)
