"""Detection events published by the engine.

Events are immutable values: consumers (UI, storage writers, other threads)
receive copies and never a live reference into the engine's ring buffers.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Literal, Optional, Tuple

BreathingPattern = Literal["normal", "interrupted", "missing"]


@dataclass(frozen=True)
class DetectedSounds:
    """Sound categories detected during a tick."""

    snoring: bool = False
    coughing: bool = False
    gasping: bool = False
    paused_breathing: bool = False


@dataclass(frozen=True)
class ReferenceMatch:
    """Best matching reference pattern for the recent breathing window."""

    pattern_name: str
    category: str
    similarity: float
    description: str
    severity: str = "none"


@dataclass(frozen=True)
class DetectionEvent:
    """Result of one analysis pass.

    Attributes:
        is_apnea: Whether the tick is classified as an apnea
        confidence: Confidence in [0, 1]
        duration: Estimated duration of the current anomaly run (seconds)
        pattern: normal / interrupted / missing
        timestamp: Clock time of the analysis (seconds)
        detected_sounds: Snoring, coughing, gasping and paused breathing flags
        non_breathing_noise: True when ambient noise suppressed this tick
        message: Optional human readable note
        pattern_type: Name of the best matching reference pattern, if any
        reference_match: Details of that match, if any
        frequency_data: Leading breathing-band magnitudes for visualization
    """

    is_apnea: bool = False
    confidence: float = 0.0
    duration: float = 0.0
    pattern: BreathingPattern = "normal"
    timestamp: float = 0.0
    detected_sounds: DetectedSounds = field(default_factory=DetectedSounds)
    non_breathing_noise: bool = False
    message: Optional[str] = None
    pattern_type: Optional[str] = None
    reference_match: Optional[ReferenceMatch] = None
    frequency_data: Tuple[float, ...] = ()

    @classmethod
    def neutral(cls, timestamp: float = 0.0) -> "DetectionEvent":
        """A normal, zero-confidence event (not listening or not enough data)."""
        return cls(timestamp=timestamp)

    def to_dict(self) -> Dict[str, Any]:
        """Plain-dict representation for JSON output and storage writers."""
        data = asdict(self)
        data["frequency_data"] = list(self.frequency_data)
        return data

    def __str__(self) -> str:
        label = "APNEA" if self.is_apnea else self.pattern
        extra = f" [{self.pattern_type}]" if self.pattern_type else ""
        if self.non_breathing_noise:
            extra += " (noise)"
        return f"{label} conf={self.confidence:.2f} dur={self.duration:.2f}s{extra}"
