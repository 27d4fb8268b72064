"""Tests for the reference pattern catalog."""

import pytest

from sleep_apnea_engine.exceptions import ConfigurationError
from sleep_apnea_engine.models import PatternCategory
from sleep_apnea_engine.reference import (
    default_reference_library,
    load_reference_library,
    parse_reference_library,
)


def test_default_library_contents():
    library = default_reference_library()
    assert len(library) == 10
    assert library.categories() == tuple(PatternCategory)
    for category in PatternCategory:
        assert len(library.patterns(category)) == 2

    cessation = library.get("complete-cessation")
    assert cessation.category == PatternCategory.CENTRAL
    assert cessation.amplitude[0] == pytest.approx(0.01)
    assert cessation.variability == pytest.approx(0.1)


def test_default_library_is_shared():
    assert default_reference_library() is default_reference_library()


def test_catalog_order_is_kept():
    library = default_reference_library()
    names = [p.name for p in library.patterns(PatternCategory.NORMAL)]
    assert names == ["regular-quiet", "deeper-sleep"]


def test_load_from_yaml(tmp_path):
    path = tmp_path / "patterns.yaml"
    path.write_text(
        "central:\n"
        "  - name: flatline\n"
        "    amplitude: [0.0, 0.0, 0.0]\n"
        "    variability: 0\n"
        "normal:\n"
        "  - name: steady\n"
        "    description: Steady breathing\n"
        "    amplitude: [0.5, 0.6, 0.5]\n"
    )
    library = load_reference_library(path)
    assert len(library) == 2
    assert library.patterns(PatternCategory.OBSTRUCTIVE) == ()
    assert library.get("steady").description == "Steady breathing"


@pytest.mark.parametrize(
    "data",
    [
        {"mystery": [{"name": "x", "amplitude": [1]}]},
        {"central": [{"amplitude": [1]}]},
        {"central": [{"name": "x", "amplitude": []}]},
        {"central": [{"name": "x", "amplitude": ["loud"]}]},
        {"central": [{"name": "x", "amplitude": [1], "variability": -1}]},
        {"central": [{"name": "x", "amplitude": [1]}], "normal": [{"name": "x", "amplitude": [1]}]},
        ["not", "a", "mapping"],
    ],
)
def test_invalid_catalogs(data):
    with pytest.raises(ConfigurationError):
        parse_reference_library(data)
