"""Sleep Apnea Engine - Real-time breathing pattern monitoring.

A standalone library that listens to a sleeper's breathing, compares the
recent breathing envelope against clinically derived reference patterns and
reports normal, interrupted or missing breathing with a confidence score.

Usage:
    from sleep_apnea_engine import Detector

    detector = Detector(sensitivity=7)
    detector.start()
    detector.subscribe(print, interval_ms=1000)
"""

__version__ = "1.0.0"

# Core exports
from sleep_apnea_engine.models import ApneaPattern, PatternCategory, Range, Severity
from sleep_apnea_engine.events import DetectedSounds, DetectionEvent, ReferenceMatch
from sleep_apnea_engine.config import (
    AudioSettings,
    DetectorConfig,
    GlobalConfig,
    SystemConfig,
    sensitivity_multiplier,
    setup_logging,
)
from sleep_apnea_engine.exceptions import (
    ApneaEngineError,
    ConfigurationError,
    DeviceUnavailableError,
    ModelUnavailableError,
)
from sleep_apnea_engine.engine import Detector
from sleep_apnea_engine.listener import ArrayCapture, Capture, MicrophoneCapture
from sleep_apnea_engine.buffer import PatternBuffer
from sleep_apnea_engine.features import BreathingFeatures, FeatureExtractor
from sleep_apnea_engine.matcher import Classification, PatternMatcher
from sleep_apnea_engine.scorer import ConfidenceScorer
from sleep_apnea_engine.reference import (
    ReferenceLibrary,
    default_reference_library,
    load_reference_library,
)
from sleep_apnea_engine.classifier import AudioClassifier, NullClassifier, Prediction
from sleep_apnea_engine.recording import RecordingAnalysis, analyze_samples, analyze_wav

__all__ = [
    # Version
    "__version__",
    # Core classes
    "Detector",
    "Capture",
    "MicrophoneCapture",
    "ArrayCapture",
    "FeatureExtractor",
    "BreathingFeatures",
    "PatternBuffer",
    "PatternMatcher",
    "Classification",
    "ConfidenceScorer",
    # Configuration
    "AudioSettings",
    "DetectorConfig",
    "GlobalConfig",
    "SystemConfig",
    "sensitivity_multiplier",
    "setup_logging",
    # Models and events
    "ApneaPattern",
    "PatternCategory",
    "Range",
    "Severity",
    "DetectedSounds",
    "DetectionEvent",
    "ReferenceMatch",
    # Reference patterns
    "ReferenceLibrary",
    "default_reference_library",
    "load_reference_library",
    # Classifier
    "AudioClassifier",
    "NullClassifier",
    "Prediction",
    # Offline analysis
    "RecordingAnalysis",
    "analyze_samples",
    "analyze_wav",
    # Errors
    "ApneaEngineError",
    "ConfigurationError",
    "DeviceUnavailableError",
    "ModelUnavailableError",
]
