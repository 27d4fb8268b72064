"""Main Detector class - orchestrates the detection loop."""

import logging
import threading
import time
from collections import deque
from typing import Callable, Deque, List, Optional

from .buffer import PatternBuffer, SoundBandBuffers
from .classifier import AudioClassifier, NullClassifier, Prediction, load_classifier
from .config import AudioSettings, DetectorConfig, GlobalConfig
from .events import DetectionEvent, ReferenceMatch
from .exceptions import DeviceUnavailableError, ModelUnavailableError
from .features import FeatureExtractor
from .listener import Capture, MicrophoneCapture
from .matcher import Classification, PatternMatcher
from .processing.dsp import SpectralFrame
from .reference import ReferenceLibrary, default_reference_library
from .scheduler import ScheduledTask, Scheduler, ThreadScheduler
from .scorer import ConfidenceScorer

logger = logging.getLogger(__name__)

CaptureFactory = Callable[[AudioSettings], Capture]
EventCallback = Callable[[DetectionEvent], None]


class Detector:
    """Sleep apnea detection engine.

    Orchestrates the detection loop:
    Capture -> Spectral frame -> Features -> Pattern buffer -> Scoring -> Events

    One Detector owns its buffers, hysteresis counter and capture handle, so
    several detectors can coexist in one process.

    Example:
        >>> from sleep_apnea_engine import Detector
        >>>
        >>> detector = Detector()
        >>> detector.set_sensitivity(7)
        >>> detector.start()
        >>> detector.subscribe(lambda event: print(event), interval_ms=1000)
        >>> ...
        >>> detector.stop()
    """

    def __init__(
        self,
        config: Optional[DetectorConfig] = None,
        audio: Optional[AudioSettings] = None,
        capture_factory: Optional[CaptureFactory] = None,
        library: Optional[ReferenceLibrary] = None,
        clock: Callable[[], float] = time.time,
        scheduler: Optional[Scheduler] = None,
        sensitivity: Optional[float] = None,
    ):
        """Initialize the detector.

        Args:
            config: Detection tuning (uses the standard constant set if None)
            audio: Audio capture settings (uses defaults if None)
            capture_factory: Builds the Capture; defaults to MicrophoneCapture
            library: Reference patterns (uses the bundled catalog if None)
            clock: Returns the current time in seconds
            scheduler: Drives subscriptions; defaults to a ThreadScheduler
            sensitivity: Initial sensitivity level 1-10
        """
        self.config = config or DetectorConfig()
        self.audio = audio or AudioSettings()
        self.capture_factory = capture_factory or MicrophoneCapture
        self.clock = clock
        self.scheduler = scheduler or ThreadScheduler()

        if library is None and self.config.use_reference_patterns:
            library = default_reference_library()
        self.library = library

        # Sensitivity
        self._sensitivity: Optional[float] = None
        self._multiplier = self.config.default_multiplier
        if sensitivity is not None:
            self.set_sensitivity(sensitivity)

        # Pipeline components
        self._extractor = FeatureExtractor(self.config)
        self._matcher = PatternMatcher(library, self.config) if library is not None else None
        self._scorer = ConfidenceScorer(self.config, self._matcher)
        self._buffer = PatternBuffer(self.config.buffer_size)
        self._sound_buffers = SoundBandBuffers(
            self.config.sound_bands.keys(), self.config.sound_buffer_size
        )

        # State
        self._capture: Optional[Capture] = None
        self._classifier: AudioClassifier = NullClassifier()
        self._initialized = False
        self._listening = False
        self._history: Deque[DetectionEvent] = deque(maxlen=self.config.event_history_size)
        self._last_event: Optional[DetectionEvent] = None
        self._last_analysis: Optional[float] = None
        self._in_apnea = False
        self._tick_lock = threading.Lock()

        # Subscription
        self._subscription: Optional[ScheduledTask] = None
        self._subscription_interval_ms: Optional[float] = None

        logger.info(
            f"Detector initialized (multiplier={self._multiplier:.2f}, "
            f"reference patterns={len(library) if library is not None else 0})"
        )

    @classmethod
    def from_config(cls, config: GlobalConfig, **kwargs) -> "Detector":
        """Create a detector from a loaded GlobalConfig."""
        return cls(
            config=config.detector,
            audio=config.audio,
            sensitivity=config.sensitivity,
            **kwargs,
        )

    # Lifecycle

    def initialize(self) -> None:
        """Build the capture and try to load the optional classifier.

        Safe to call more than once. The capture is created but not opened;
        opening it is left to ``start()``.
        """
        if self._initialized:
            return

        self._capture = self.capture_factory(self.audio)

        if self.config.classifier:
            try:
                self._classifier = load_classifier(self.config.classifier)
            except ModelUnavailableError as e:
                logger.warning(f"Classifier unavailable, using heuristics only: {e}")
                self._classifier = NullClassifier()

        self._initialized = True

    def start(self) -> None:
        """Reset all state and open the audio capture.

        Calling ``start()`` while already listening is a no-op.

        Raises:
            DeviceUnavailableError: If the capture cannot be opened.
        """
        if self._listening:
            return

        self.initialize()
        self._reset()

        try:
            self._capture.open()
        except DeviceUnavailableError as e:
            logger.error(f"Failed to start detector: {e}")
            raise

        self._listening = True
        logger.info("Detector started")

    def stop(self) -> None:
        """Cancel the subscription, close the capture and reset all state.

        Safe to call at any time, including when not started.
        """
        self.unsubscribe()

        was_listening = self._listening
        self._listening = False

        if self._capture is not None:
            self._capture.close()

        with self._tick_lock:
            self._reset()

        if was_listening:
            logger.info("Detector stopped")

    def dispose(self) -> None:
        """Stop and drop the capture and classifier."""
        self.stop()
        self._capture = None
        self._classifier = NullClassifier()
        self._initialized = False

    def _reset(self) -> None:
        self._buffer.reset()
        self._sound_buffers.reset()
        self._scorer.reset()
        self._history.clear()
        self._last_event = None
        self._last_analysis = None
        self._in_apnea = False

    def __enter__(self) -> "Detector":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()

    # Sensitivity

    def set_sensitivity(self, level: float) -> None:
        """Set the sensitivity level (1 = least sensitive, 10 = most).

        Raises:
            ConfigurationError: If level is outside 1-10.
        """
        self._multiplier = self.config.multiplier_for(level)
        self._sensitivity = level
        logger.info(f"Sensitivity set to {level} (multiplier {self._multiplier:.2f})")

    @property
    def sensitivity(self) -> Optional[float]:
        """Last level passed to set_sensitivity, or None for the default multiplier."""
        return self._sensitivity

    @property
    def sensitivity_multiplier(self) -> float:
        return self._multiplier

    # State

    @property
    def is_listening(self) -> bool:
        """Check if the detector is currently listening."""
        return self._listening

    @property
    def capture(self) -> Optional[Capture]:
        return self._capture

    @property
    def classifier(self) -> AudioClassifier:
        """The classifier in use; NullClassifier when none is loaded."""
        return self._classifier

    @property
    def consecutive_anomalies(self) -> int:
        return self._scorer.consecutive_anomalies

    @property
    def buffered_samples(self) -> int:
        return len(self._buffer)

    @property
    def tick_interval(self) -> float:
        """Seconds between analysis passes, used to estimate event durations."""
        if self._subscription_interval_ms is not None:
            return self._subscription_interval_ms / 1000.0
        return self.config.analysis_throttle_ms / 1000.0

    def recent_events(self) -> List[DetectionEvent]:
        """The most recent recorded events, oldest first."""
        return list(self._history)

    # Analysis

    def current_breathing_sample(self) -> Optional[float]:
        """Breathing energy of the latest audio, for live visualization.

        Not throttled and never touches the buffers.

        Returns:
            A value in [0, 1], or None when not listening or no audio yet.
        """
        if not self._listening or self._capture is None:
            return None
        frame = self._capture.peek_frame()
        if frame is None:
            return None
        return self._extractor.extract(frame, self._multiplier).breathing_sample

    def tick(self) -> DetectionEvent:
        """Run one throttled analysis pass.

        Calls arriving within ``analysis_throttle_ms`` of the previous pass,
        or while another pass is running, get the cached event back.

        Returns:
            The DetectionEvent for this tick.
        """
        if not self._listening:
            return DetectionEvent.neutral(self.clock())

        if not self._tick_lock.acquire(blocking=False):
            return self._last_event or DetectionEvent.neutral(self.clock())

        try:
            now = self.clock()
            if (
                self._last_event is not None
                and self._last_analysis is not None
                and (now - self._last_analysis) * 1000.0 < self.config.analysis_throttle_ms
            ):
                return self._last_event

            self._last_analysis = now
            frame = self._capture.read_frame() if self._capture is not None else None
            if frame is None:
                event = DetectionEvent.neutral(now)
            else:
                event = self.process_frame(frame, timestamp=now)
            self._last_event = event
            return event
        finally:
            self._tick_lock.release()

    def process_frame(self, frame: SpectralFrame, timestamp: Optional[float] = None) -> DetectionEvent:
        """Run the full analysis on one frame, without throttling.

        This can be called directly if you're handling audio capture yourself.

        Args:
            frame: Spectral snapshot to analyze
            timestamp: Event time; defaults to the detector clock

        Returns:
            The DetectionEvent for this frame
        """
        if timestamp is None:
            timestamp = self.clock()

        features = self._extractor.extract(frame, self._multiplier)

        if not self._extractor.record(features, self._buffer, self._sound_buffers):
            event = DetectionEvent(
                timestamp=timestamp,
                non_breathing_noise=True,
                message="Non-breathing noise detected",
                frequency_data=features.frequency_data,
            )
            self._record(event)
            return event

        if len(self._buffer) < self.config.min_samples:
            return DetectionEvent(timestamp=timestamp, frequency_data=features.frequency_data)

        result = self._scorer.score(
            features,
            self._buffer,
            self._sound_buffers,
            self._multiplier,
            prediction=self._predict(),
        )

        reference_match = _reference_match(result.classification)
        event = DetectionEvent(
            is_apnea=result.is_apnea,
            confidence=result.confidence,
            duration=result.consecutive_anomalies * self.tick_interval,
            pattern=result.pattern,
            timestamp=timestamp,
            detected_sounds=result.sounds,
            pattern_type=reference_match.pattern_name if reference_match else None,
            reference_match=reference_match,
            frequency_data=features.frequency_data,
        )
        if event.is_apnea and not self._in_apnea:
            logger.warning(f"Apnea suspected: {event}")
        else:
            logger.debug(f"Tick: {event}")
        self._in_apnea = event.is_apnea

        self._record(event)
        return event

    def _predict(self) -> Optional[Prediction]:
        if len(self._buffer) < self.config.match_window:
            return None
        try:
            result = self._classifier.classify(self._buffer.window(self.config.match_window))
        except Exception as e:
            logger.warning(f"Classifier failed, continuing with heuristics only: {e}")
            self._classifier = NullClassifier()
            return None

        if not isinstance(result, Prediction):
            logger.warning(
                f"Classifier returned {type(result).__name__} instead of Prediction, "
                f"continuing with heuristics only"
            )
            self._classifier = NullClassifier()
            return None
        return result

    def _record(self, event: DetectionEvent) -> None:
        self._history.append(event)

    # Subscription

    def subscribe(self, callback: EventCallback, interval_ms: float = 1000) -> float:
        """Run ``tick()`` periodically and pass each event to ``callback``.

        Replaces any previous subscription.

        Args:
            callback: Receives each DetectionEvent
            interval_ms: Requested interval, raised to ``min_subscribe_interval_ms``

        Returns:
            The effective interval in milliseconds
        """
        self.unsubscribe()

        interval_ms = max(float(interval_ms), self.config.min_subscribe_interval_ms)

        def drive() -> None:
            event = self.tick()
            try:
                callback(event)
            except Exception as e:
                logger.error(f"Error in detection callback: {e}")

        self._subscription_interval_ms = interval_ms
        self._subscription = self.scheduler.schedule(interval_ms / 1000.0, drive)
        logger.info(f"Subscribed to detection events every {interval_ms:.0f}ms")
        return interval_ms

    def unsubscribe(self) -> None:
        """Cancel the active subscription, if any."""
        if self._subscription is not None:
            self._subscription.cancel()
            self._subscription = None
        self._subscription_interval_ms = None

    @property
    def is_subscribed(self) -> bool:
        return self._subscription is not None


def _reference_match(classification: Optional[Classification]) -> Optional[ReferenceMatch]:
    if classification is None or classification.pattern is None:
        return None
    return ReferenceMatch(
        pattern_name=classification.pattern.name,
        category=classification.category.value,
        similarity=classification.confidence,
        description=classification.pattern.description,
        severity=classification.severity.value,
    )
