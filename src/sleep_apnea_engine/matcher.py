"""Matching of recent breathing history against reference patterns.

All accumulations (sums, squared errors, variance) are explicit single
forward passes in index order. Thresholds sit close to the values these
folds produce; do not reorder them.
"""

import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Sequence

from .config import DetectorConfig
from .models import ApneaPattern, PatternCategory, Severity
from .reference import ReferenceLibrary

logger = logging.getLogger(__name__)


def resize_pattern(pattern: Sequence[float], target_length: int) -> List[float]:
    """Linearly interpolate a template envelope to ``target_length`` points.

    Output index ``i`` maps to ``position = i / (target_length - 1) *
    (len(pattern) - 1)`` and interpolates between the floor and ceil samples
    by the fractional part, so the first and last values are preserved.

    Args:
        pattern: Template amplitude envelope.
        target_length: Number of output samples.

    Returns:
        The resampled envelope. An empty template yields zeros.
    """
    if target_length <= 0:
        return []
    if len(pattern) == 0:
        return [0.0] * target_length
    if len(pattern) == target_length:
        return [float(v) for v in pattern]
    if target_length == 1:
        return [float(pattern[0])]

    last = len(pattern) - 1
    result = [0.0] * target_length
    for i in range(target_length):
        position = (i / (target_length - 1)) * last
        index = int(math.floor(position))
        fraction = position - index
        if index + 1 < len(pattern):
            result[i] = pattern[index] * (1 - fraction) + pattern[index + 1] * fraction
        else:
            result[i] = float(pattern[index])
    return result


def calculate_variability(values: Sequence[float]) -> float:
    """Coefficient of variation (population stddev / mean).

    Returns 0 for fewer than two values or a non-positive mean.
    """
    n = len(values)
    if n < 2:
        return 0.0

    total = 0.0
    for v in values:
        total += v
    mean = total / n
    if mean <= 0:
        return 0.0

    squared = 0.0
    for v in values:
        squared += (v - mean) ** 2
    return math.sqrt(squared / n) / mean


def pattern_similarity(
    window: Sequence[float],
    pattern: ApneaPattern,
    min_window: int = 5,
    amplitude_weight: float = 0.8,
    variability_weight: float = 0.2,
) -> float:
    """Score how closely a window of breathing samples resembles a template.

    The window is normalized by its own maximum, the template is resized to
    the window length, and the score blends amplitude agreement
    (``1 - mse``) with agreement of the coefficients of variation.

    Args:
        window: Breathing samples, oldest first.
        pattern: Reference template.
        min_window: Windows shorter than this score 0.
        amplitude_weight: Weight of the amplitude similarity.
        variability_weight: Weight of the variability similarity.

    Returns:
        Similarity in [0, 1]. Degenerate windows (no positive value) score 0.
    """
    n = len(window)
    if n < min_window or n == 0:
        return 0.0

    peak = window[0]
    for v in window:
        if v > peak:
            peak = v
    if peak <= 0:
        return 0.0

    normalized = [v / peak for v in window]
    reference = resize_pattern(pattern.amplitude, n)

    squared_error = 0.0
    for actual, expected in zip(normalized, reference):
        error = actual - expected
        squared_error += error * error
    mse = squared_error / n
    amplitude_similarity = max(0.0, 1.0 - mse)

    variability = calculate_variability(normalized)
    variability_similarity = 1.0 - min(1.0, abs(variability - pattern.variability))

    score = amplitude_similarity * amplitude_weight + variability_similarity * variability_weight
    return min(1.0, max(0.0, score))


@dataclass(frozen=True)
class PatternMatch:
    """Best template of a category and its similarity."""

    pattern: ApneaPattern
    similarity: float


def find_best_match(
    window: Sequence[float],
    patterns: Sequence[ApneaPattern],
    min_similarity: float = 0.5,
    min_window: int = 5,
    amplitude_weight: float = 0.8,
    variability_weight: float = 0.2,
) -> Optional[PatternMatch]:
    """Find the most similar template in a set.

    The first template wins ties. Returns None when no template scores above
    ``min_similarity``; this floor keeps barely-correlated noise from
    producing matches.
    """
    if len(window) < min_window or not patterns:
        return None

    best: Optional[ApneaPattern] = None
    highest = 0.0
    for pattern in patterns:
        similarity = pattern_similarity(
            window, pattern, min_window, amplitude_weight, variability_weight
        )
        if similarity > highest:
            highest = similarity
            best = pattern

    if best is not None and highest > min_similarity:
        return PatternMatch(pattern=best, similarity=highest)
    return None


@dataclass(frozen=True)
class Classification:
    """Outcome of classifying a breathing window against all categories.

    Attributes:
        is_apnea: Whether the best match is an apnea-grade pattern
        confidence: Similarity of the best match (0.1 when nothing matched)
        category: Category of the best match, if any
        pattern: Best matching template, if any
        severity: Severity tier
    """

    is_apnea: bool
    confidence: float
    category: Optional[PatternCategory] = None
    pattern: Optional[ApneaPattern] = None
    severity: Severity = Severity.NONE

    @property
    def pattern_name(self) -> Optional[str]:
        return self.pattern.name if self.pattern else None


class PatternMatcher:
    """Classifies breathing windows using a ReferenceLibrary.

    Each category is matched independently; the category with the highest
    reliability-weighted similarity wins.
    """

    def __init__(self, library: ReferenceLibrary, config: Optional[DetectorConfig] = None):
        self.library = library
        self.config = config or DetectorConfig()

    def best_match(
        self, window: Sequence[float], category: PatternCategory
    ) -> Optional[PatternMatch]:
        """Best template of a single category for the window."""
        cfg = self.config
        return find_best_match(
            window,
            self.library.patterns(category),
            min_similarity=cfg.min_similarity,
            min_window=cfg.min_similarity_window,
            amplitude_weight=cfg.amplitude_weight,
            variability_weight=cfg.variability_weight,
        )

    def classify(self, window: Sequence[float]) -> Classification:
        """Classify a window of breathing samples.

        Args:
            window: Most recent breathing samples, oldest first.

        Returns:
            Classification of the window.
        """
        cfg = self.config
        if len(window) < cfg.match_window:
            return Classification(is_apnea=False, confidence=0.0)

        best_category: Optional[PatternCategory] = None
        best_match: Optional[PatternMatch] = None
        best_score = -1.0
        for category in self.library.categories():
            match = self.best_match(window, category)
            if match is None:
                continue
            score = match.similarity * cfg.category_weights.get(category, 0.0)
            if score > best_score:
                best_score = score
                best_category = category
                best_match = match

        if best_match is None or best_category is None:
            return Classification(is_apnea=False, confidence=cfg.no_match_confidence)

        confidence = best_match.similarity
        threshold = cfg.apnea_thresholds.get(best_category)
        is_apnea = threshold is not None and confidence > threshold
        severity = self._severity(best_category, confidence, is_apnea)

        logger.debug(
            f"Best reference match: {best_match.pattern.name} ({best_category.value}) "
            f"similarity={confidence:.3f} apnea={is_apnea} severity={severity.value}"
        )

        return Classification(
            is_apnea=is_apnea,
            confidence=confidence,
            category=best_category,
            pattern=best_match.pattern,
            severity=severity,
        )

    def _severity(self, category: PatternCategory, confidence: float, is_apnea: bool) -> Severity:
        cfg = self.config
        if is_apnea:
            if category == PatternCategory.CENTRAL and confidence > cfg.severe_confidence:
                return Severity.SEVERE
            if category == PatternCategory.CENTRAL or confidence > cfg.severe_confidence:
                return Severity.MODERATE
            return Severity.MILD
        if category == PatternCategory.HYPOPNEA and confidence > cfg.hypopnea_mild_confidence:
            return Severity.MILD
        return Severity.NONE
