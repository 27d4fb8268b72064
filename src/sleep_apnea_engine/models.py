"""Data models for reference breathing patterns."""

from dataclasses import dataclass
from enum import Enum
from typing import Tuple


class PatternCategory(str, Enum):
    """Clinical category a reference pattern belongs to.

    Declaration order is the tie-break order used when two categories score
    the same weighted similarity.
    """

    CENTRAL = "central"
    OBSTRUCTIVE = "obstructive"
    HYPOPNEA = "hypopnea"
    SNORING = "snoring"
    NORMAL = "normal"


class Severity(str, Enum):
    """Severity tier attached to a classification."""

    NONE = "none"
    MILD = "mild"
    MODERATE = "moderate"
    SEVERE = "severe"


@dataclass(frozen=True)
class Range:
    """A frequency band in Hz (min, max)."""

    min: float
    max: float

    def __repr__(self) -> str:
        return f"Range({self.min}, {self.max})"


@dataclass(frozen=True)
class ApneaPattern:
    """A clinically-derived reference breathing pattern.

    Attributes:
        name: Unique identifier, e.g. ``complete-cessation``
        description: Human readable description
        category: Which clinical category the pattern represents
        amplitude: Relative amplitude envelope, in chronological order
        frequency: Frequency characteristics in Hz
        duration: Typical duration in seconds
        variability: Coefficient of variation (stddev / mean) of the pattern
    """

    name: str
    description: str
    category: PatternCategory
    amplitude: Tuple[float, ...]
    frequency: Tuple[float, ...] = ()
    duration: float = 0.0
    variability: float = 0.0

    def __repr__(self) -> str:
        return (
            f"ApneaPattern('{self.name}', {self.category.value}, "
            f"{len(self.amplitude)} points, variability={self.variability})"
        )
