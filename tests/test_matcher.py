"""Tests for template resizing, similarity and classification."""

import random

import pytest

from sleep_apnea_engine.config import DetectorConfig
from sleep_apnea_engine.matcher import (
    PatternMatcher,
    calculate_variability,
    find_best_match,
    pattern_similarity,
    resize_pattern,
)
from sleep_apnea_engine.models import ApneaPattern, PatternCategory, Severity
from sleep_apnea_engine.reference import ReferenceLibrary, default_reference_library


def make_pattern(amplitude, variability=0.0, name="test", category=PatternCategory.CENTRAL):
    return ApneaPattern(
        name=name,
        description="",
        category=category,
        amplitude=tuple(amplitude),
        variability=variability,
    )


@pytest.mark.parametrize("length", [2, 3, 7, 10, 25])
def test_resize_keeps_endpoints(length):
    template = [0.2, 0.15, 0.1, 0.05, 0.02, 0.01, 0.01, 0.01, 0.2]
    out = resize_pattern(template, length)
    assert len(out) == length
    assert out[0] == pytest.approx(template[0])
    assert out[-1] == pytest.approx(template[-1])


def test_resize_interpolates_linearly():
    assert resize_pattern([0.0, 1.0], 5) == pytest.approx([0.0, 0.25, 0.5, 0.75, 1.0])


def test_resize_edge_cases():
    assert resize_pattern([0.3, 0.4], 0) == []
    assert resize_pattern([0.3, 0.4], 1) == [0.3]
    assert resize_pattern([], 3) == [0.0, 0.0, 0.0]


def test_variability_is_coefficient_of_variation():
    assert calculate_variability([1.0, 1.0, 1.0]) == 0.0
    assert calculate_variability([1.0, 3.0]) == pytest.approx(0.5)
    assert calculate_variability([0.0, 0.0]) == 0.0
    assert calculate_variability([0.4]) == 0.0


def test_identical_shape_scores_one():
    pattern = make_pattern([0.5, 1.0, 0.5, 1.0, 0.5], variability=calculate_variability([0.5, 1.0, 0.5, 1.0, 0.5]))
    window = [0.25, 0.5, 0.25, 0.5, 0.25]  # same shape once normalized by its peak
    assert pattern_similarity(window, pattern) == pytest.approx(1.0)


def test_similarity_degenerate_windows():
    pattern = make_pattern([0.5, 0.5])
    assert pattern_similarity([0.5] * 4, pattern) == 0.0  # shorter than 5
    assert pattern_similarity([0.0] * 10, pattern) == 0.0  # no positive peak


def test_similarity_stays_in_unit_range():
    rng = random.Random(7)
    for pattern in default_reference_library():
        for _ in range(50):
            window = [rng.uniform(0.01, 1.0) for _ in range(rng.randint(5, 40))]
            score = pattern_similarity(window, pattern)
            assert 0.0 <= score <= 1.0


def test_find_best_match_floor_and_ties():
    a = make_pattern([1.0] * 5, name="a")
    b = make_pattern([1.0] * 5, name="b")
    window = [0.8] * 10
    match = find_best_match(window, [a, b])
    assert match.pattern.name == "a"
    assert match.similarity == pytest.approx(1.0)

    far = make_pattern([0.0] * 5, variability=1.0, name="far")
    assert find_best_match(window, [far]) is None


def test_classify_short_window():
    matcher = PatternMatcher(default_reference_library())
    result = matcher.classify([0.5] * 9)
    assert not result.is_apnea
    assert result.confidence == 0.0


def test_classify_no_match_is_deterministic():
    library = ReferenceLibrary(
        {PatternCategory.CENTRAL: (make_pattern([0.0] * 5, variability=1.0),)}
    )
    matcher = PatternMatcher(library)
    window = [0.9] * 10
    first = matcher.classify(window)
    second = matcher.classify(window)
    assert first == second
    assert not first.is_apnea
    assert first.confidence == pytest.approx(0.1)
    assert first.category is None
    assert first.pattern_name is None


def test_classify_regular_breathing_as_normal():
    matcher = PatternMatcher(default_reference_library())
    result = matcher.classify([0.60, 0.65] * 5)
    assert result.category == PatternCategory.NORMAL
    assert not result.is_apnea
    assert result.severity == Severity.NONE


def test_classify_cessation_shape_as_central_apnea():
    # one breath followed by near silence
    window = [1.0] + [0.01] * 9
    matcher = PatternMatcher(default_reference_library())
    result = matcher.classify(window)
    assert result.category == PatternCategory.CENTRAL
    assert result.is_apnea
    assert result.severity in (Severity.MODERATE, Severity.SEVERE)


def test_category_weights_decide_the_winner():
    central = make_pattern([1.0] * 5, name="c", category=PatternCategory.CENTRAL)
    normal = make_pattern([1.0] * 5, name="n", category=PatternCategory.NORMAL)
    library = ReferenceLibrary(
        {PatternCategory.CENTRAL: (central,), PatternCategory.NORMAL: (normal,)}
    )
    window = [0.7] * 10

    assert PatternMatcher(library).classify(window).category == PatternCategory.CENTRAL

    cfg = DetectorConfig(
        category_weights={PatternCategory.CENTRAL: 0.5, PatternCategory.NORMAL: 0.9}
    )
    assert PatternMatcher(library, cfg).classify(window).category == PatternCategory.NORMAL
