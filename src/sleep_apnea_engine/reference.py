"""Loading of the reference breathing-pattern catalog.

The catalog is immutable once loaded. ``default_reference_library()`` loads
the packaged catalog once per process and every Detector shares it.
"""

import logging
from functools import lru_cache
from importlib import resources
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple, Union

import yaml

from .exceptions import ConfigurationError
from .models import ApneaPattern, PatternCategory

logger = logging.getLogger(__name__)

DEFAULT_PATTERNS_RESOURCE = "reference_patterns.yaml"


class ReferenceLibrary:
    """Read-only catalog of reference patterns grouped by category."""

    def __init__(self, patterns: Mapping[PatternCategory, Tuple[ApneaPattern, ...]]):
        self._patterns: Dict[PatternCategory, Tuple[ApneaPattern, ...]] = {
            category: tuple(patterns.get(category, ())) for category in PatternCategory
        }
        self._by_name: Dict[str, ApneaPattern] = {}
        for pattern in self:
            if pattern.name in self._by_name:
                raise ConfigurationError(f"Duplicate reference pattern name: {pattern.name}")
            self._by_name[pattern.name] = pattern

    def patterns(self, category: PatternCategory) -> Tuple[ApneaPattern, ...]:
        """All templates of one category, in catalog order."""
        return self._patterns[PatternCategory(category)]

    def categories(self) -> Tuple[PatternCategory, ...]:
        return tuple(self._patterns)

    def get(self, name: str) -> Optional[ApneaPattern]:
        """Look up a template by name."""
        return self._by_name.get(name)

    def __iter__(self) -> Iterator[ApneaPattern]:
        for patterns in self._patterns.values():
            yield from patterns

    def __len__(self) -> int:
        return len(self._by_name)

    def __repr__(self) -> str:
        counts = ", ".join(f"{c.value}={len(p)}" for c, p in self._patterns.items())
        return f"ReferenceLibrary({counts})"


def _parse_pattern(category: PatternCategory, data: Dict[str, Any]) -> ApneaPattern:
    """Parse a single template definition from a dictionary."""
    if not isinstance(data, dict) or "name" not in data:
        raise ConfigurationError(f"Reference pattern in '{category.value}' needs a name")

    name = str(data["name"])
    try:
        amplitude = tuple(float(v) for v in data.get("amplitude", ()))
        frequency = tuple(float(v) for v in data.get("frequency", ()))
        duration = float(data.get("duration", 0.0))
        variability = float(data.get("variability", 0.0))
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid values in reference pattern '{name}': {e}") from e

    if not amplitude:
        raise ConfigurationError(f"Reference pattern '{name}' has an empty amplitude envelope")
    if variability < 0:
        raise ConfigurationError(f"Reference pattern '{name}' has negative variability")

    return ApneaPattern(
        name=name,
        description=str(data.get("description", "")),
        category=category,
        amplitude=amplitude,
        frequency=frequency,
        duration=duration,
        variability=variability,
    )


def parse_reference_library(data: Dict[str, Any]) -> ReferenceLibrary:
    """Build a library from a mapping of category name to template list."""
    if not isinstance(data, dict):
        raise ConfigurationError("Reference pattern data must be a mapping of categories")

    patterns: Dict[PatternCategory, Tuple[ApneaPattern, ...]] = {}
    for key, items in data.items():
        try:
            category = PatternCategory(key)
        except ValueError as e:
            raise ConfigurationError(f"Unknown pattern category: {key!r}") from e
        parsed: List[ApneaPattern] = [_parse_pattern(category, item) for item in items or []]
        patterns[category] = tuple(parsed)

    return ReferenceLibrary(patterns)


def load_reference_library(path: Union[str, Path]) -> ReferenceLibrary:
    """Load a reference catalog from a YAML file.

    Args:
        path: Path to the YAML file.

    Returns:
        The loaded ReferenceLibrary.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Reference pattern file not found: {path}")

    with open(path, "r") as f:
        data = yaml.safe_load(f) or {}

    library = parse_reference_library(data)
    logger.info(f"Loaded {len(library)} reference pattern(s) from {path}")
    return library


@lru_cache(maxsize=1)
def default_reference_library() -> ReferenceLibrary:
    """The packaged catalog, loaded once and shared by every Detector."""
    text = (
        resources.files("sleep_apnea_engine")
        .joinpath("data")
        .joinpath(DEFAULT_PATTERNS_RESOURCE)
        .read_text(encoding="utf-8")
    )
    library = parse_reference_library(yaml.safe_load(text) or {})
    logger.debug(f"Default reference library ready: {library!r}")
    return library
