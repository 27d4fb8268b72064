"""Optional machine-learned audio classifier.

The engine works heuristic-only. When a classifier is configured it is
consulted as one more signal; loading or prediction failures never stop
detection.
"""

import importlib
import logging
from dataclasses import dataclass
from typing import Literal, Protocol, Sequence, runtime_checkable

from .exceptions import ModelUnavailableError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Prediction:
    """A classifier's verdict for a breathing window."""

    label: Literal["apnea", "normal"]
    confidence: float


@runtime_checkable
class AudioClassifier(Protocol):
    """Anything with ``classify(window) -> Prediction``."""

    def classify(self, window: Sequence[float]) -> Prediction: ...


class NullClassifier:
    """Fallback used when no model is available: always predicts normal."""

    def classify(self, window: Sequence[float]) -> Prediction:
        return Prediction(label="normal", confidence=0.0)

    def __repr__(self) -> str:
        return "NullClassifier()"


def load_classifier(path: str) -> AudioClassifier:
    """Import a classifier from a ``"package.module:attribute"`` path.

    If the attribute is a class or factory function it is called without
    arguments; otherwise it is used as is.

    Args:
        path: Import path of the classifier.

    Returns:
        An object implementing AudioClassifier.

    Raises:
        ModelUnavailableError: If the import, construction or interface check fails.
    """
    module_name, _, attribute = path.partition(":")
    if not module_name or not attribute:
        raise ModelUnavailableError(f"Classifier path must look like 'module:attribute', got {path!r}")

    try:
        module = importlib.import_module(module_name)
        target = getattr(module, attribute)
        if isinstance(target, type) or (
            callable(target) and not isinstance(target, AudioClassifier)
        ):
            classifier = target()
        else:
            classifier = target
    except Exception as e:
        raise ModelUnavailableError(f"Could not load classifier {path!r}: {e}") from e

    if not isinstance(classifier, AudioClassifier):
        raise ModelUnavailableError(f"{path!r} does not provide a classify(window) method")

    logger.info(f"Loaded audio classifier {path}")
    return classifier
