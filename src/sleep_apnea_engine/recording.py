"""Offline analysis of recorded audio.

Recordings are replayed through the same Detector used for live monitoring,
driven by a virtual clock so a night of audio is analyzed as fast as the CPU
allows.
"""

import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import numpy as np
from scipy.io import wavfile

from .config import AudioSettings, DetectorConfig
from .engine import Detector
from .events import DetectionEvent
from .exceptions import ConfigurationError
from .listener import ArrayCapture
from .models import Severity
from .processing.dsp import to_float_samples
from .reference import ReferenceLibrary
from .scheduler import ManualClock, ManualScheduler

logger = logging.getLogger(__name__)

# Apnea-hypopnea index cut-offs (events per hour)
MILD_EVENTS_PER_HOUR = 5.0
MODERATE_EVENTS_PER_HOUR = 15.0
SEVERE_EVENTS_PER_HOUR = 30.0


def severity_for(events_per_hour: float) -> Severity:
    """Severity tier for an event rate."""
    if events_per_hour >= SEVERE_EVENTS_PER_HOUR:
        return Severity.SEVERE
    if events_per_hour >= MODERATE_EVENTS_PER_HOUR:
        return Severity.MODERATE
    if events_per_hour >= MILD_EVENTS_PER_HOUR:
        return Severity.MILD
    return Severity.NONE


@dataclass
class RecordingAnalysis:
    """Summary of a recording.

    Attributes:
        duration: Length of the recording in seconds
        ticks: Number of analysis passes
        apnea_event_count: Number of separate apnea episodes
        events_per_hour: Episodes normalized to one hour
        max_confidence: Highest tick confidence
        mean_confidence: Mean tick confidence
        severity: Severity tier derived from events_per_hour
        timeline: Every event produced, in order
    """

    duration: float
    ticks: int
    apnea_event_count: int
    events_per_hour: float
    max_confidence: float
    mean_confidence: float
    severity: Severity
    timeline: List[DetectionEvent] = field(default_factory=list)

    @property
    def is_apnea(self) -> bool:
        return self.apnea_event_count > 0

    def to_dict(self, include_timeline: bool = False) -> Dict[str, Any]:
        data = {
            "duration": self.duration,
            "ticks": self.ticks,
            "is_apnea": self.is_apnea,
            "apnea_event_count": self.apnea_event_count,
            "events_per_hour": self.events_per_hour,
            "max_confidence": self.max_confidence,
            "mean_confidence": self.mean_confidence,
            "severity": self.severity.value,
        }
        if include_timeline:
            data["timeline"] = [event.to_dict() for event in self.timeline]
        return data


def summarize(events: List[DetectionEvent], duration: float) -> RecordingAnalysis:
    """Build a RecordingAnalysis from a sequence of events.

    An apnea episode is counted on every transition into ``is_apnea``.
    """
    episodes = 0
    previous = False
    for event in events:
        if event.is_apnea and not previous:
            episodes += 1
        previous = event.is_apnea

    confidences = [event.confidence for event in events]
    hours = duration / 3600.0
    events_per_hour = episodes / hours if hours > 0 else 0.0

    return RecordingAnalysis(
        duration=duration,
        ticks=len(events),
        apnea_event_count=episodes,
        events_per_hour=events_per_hour,
        max_confidence=max(confidences) if confidences else 0.0,
        mean_confidence=float(np.mean(confidences)) if confidences else 0.0,
        severity=severity_for(events_per_hour),
        timeline=list(events),
    )


def analyze_samples(
    samples: np.ndarray,
    sample_rate: int,
    config: Optional[DetectorConfig] = None,
    tick_seconds: float = 0.2,
    audio: Optional[AudioSettings] = None,
    sensitivity: Optional[float] = None,
    library: Optional[ReferenceLibrary] = None,
) -> RecordingAnalysis:
    """Analyze a mono signal.

    Args:
        samples: Audio samples (integer PCM or float in [-1, 1])
        sample_rate: Sample rate in Hz
        config: Detection tuning
        tick_seconds: Audio advanced per analysis pass
        audio: Spectral settings; sample_rate is overridden
        sensitivity: Sensitivity level 1-10
        library: Reference patterns

    Returns:
        The RecordingAnalysis.
    """
    if tick_seconds <= 0:
        raise ConfigurationError(f"tick_seconds must be positive, got {tick_seconds}")

    config = config or DetectorConfig()
    tick_ms = tick_seconds * 1000.0
    if tick_ms < config.min_subscribe_interval_ms or tick_ms <= config.analysis_throttle_ms:
        # every scheduled tick must analyze a fresh hop
        config = replace(
            config,
            min_subscribe_interval_ms=min(config.min_subscribe_interval_ms, tick_ms),
            analysis_throttle_ms=min(config.analysis_throttle_ms, tick_ms / 2),
        )

    audio = replace(audio or AudioSettings(), sample_rate=int(sample_rate))
    hop_size = max(1, int(round(tick_seconds * sample_rate)))
    samples = np.asarray(samples)
    duration = len(samples) / float(sample_rate)

    clock = ManualClock()
    scheduler = ManualScheduler(clock)
    detector = Detector(
        config=config,
        audio=audio,
        capture_factory=lambda settings: ArrayCapture(samples, settings, hop_size=hop_size),
        library=library,
        clock=clock,
        scheduler=scheduler,
        sensitivity=sensitivity,
    )

    events: List[DetectionEvent] = []
    logger.info(f"Analyzing {duration:.1f}s of audio in {tick_seconds:.2f}s steps")

    with detector:
        detector.subscribe(events.append, interval_ms=tick_ms)
        capture = detector.capture
        while not capture.exhausted:
            scheduler.advance(tick_seconds)

    analysis = summarize(events, duration)
    logger.info(
        f"Analysis complete: {analysis.apnea_event_count} episode(s), "
        f"{analysis.events_per_hour:.1f}/h, severity {analysis.severity.value}"
    )
    return analysis


def load_wav(path: Union[str, Path]):
    """Read a WAV file as mono float samples.

    Returns:
        (samples, sample_rate) tuple
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Recording not found: {path}")

    sample_rate, data = wavfile.read(path)
    samples = to_float_samples(data)
    if samples.ndim > 1:
        samples = samples.mean(axis=1)
    return samples, sample_rate


def analyze_wav(path: Union[str, Path], **kwargs) -> RecordingAnalysis:
    """Analyze a WAV recording. Keyword arguments go to ``analyze_samples``."""
    samples, sample_rate = load_wav(path)
    logger.info(f"Loaded {path} ({sample_rate} Hz, {len(samples)} samples)")
    return analyze_samples(samples, sample_rate, **kwargs)
