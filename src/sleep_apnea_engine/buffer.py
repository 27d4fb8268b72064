"""Bounded history buffers for breathing and sound-band samples.

Both buffers are owned by a single Detector and mutated only from its tick
handler. Readers always receive copies.
"""

import logging
from collections import deque
from typing import Deque, Dict, Iterable, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)


class PatternBuffer:
    """Fixed-capacity FIFO of breathing samples in chronological order.

    When full, the oldest sample is evicted before the newest is appended, so
    the length never exceeds ``capacity``.
    """

    def __init__(self, capacity: int = 120):
        if capacity < 1:
            raise ValueError(f"capacity must be at least 1, got {capacity}")
        self._samples: Deque[float] = deque(maxlen=capacity)

    def __len__(self) -> int:
        return len(self._samples)

    @property
    def capacity(self) -> int:
        """Maximum number of samples held."""
        return self._samples.maxlen or 0

    @property
    def is_full(self) -> bool:
        return len(self._samples) == self.capacity

    def push(self, sample: float) -> None:
        """Append a sample, evicting the oldest one when full."""
        self._samples.append(float(sample))

    def window(self, n: int) -> Tuple[float, ...]:
        """Return the most recent ``n`` samples (fewer if not yet filled)."""
        if n <= 0:
            return ()
        if n >= len(self._samples):
            return tuple(self._samples)
        return tuple(self._samples)[-n:]

    def values(self) -> Tuple[float, ...]:
        """Copy of all buffered samples, oldest first."""
        return tuple(self._samples)

    def latest(self) -> Optional[float]:
        """Most recent sample, or None when empty."""
        return self._samples[-1] if self._samples else None

    def reset(self) -> None:
        """Clear all history."""
        self._samples.clear()

    def __repr__(self) -> str:
        return f"PatternBuffer({len(self)}/{self.capacity})"


class SoundBandBuffers:
    """One small ring buffer of band averages per sound category."""

    def __init__(self, categories: Iterable[str], capacity: int = 10):
        if capacity < 1:
            raise ValueError(f"capacity must be at least 1, got {capacity}")
        self.capacity = capacity
        self._buffers: Dict[str, Deque[float]] = {
            name: deque(maxlen=capacity) for name in categories
        }

    @property
    def categories(self) -> Tuple[str, ...]:
        return tuple(self._buffers)

    def push(self, levels: Mapping[str, float]) -> None:
        """Append one tick of band averages. Unknown categories are ignored."""
        for name, buf in self._buffers.items():
            if name in levels:
                buf.append(float(levels[name]))

    def values(self, category: str) -> Tuple[float, ...]:
        """Copy of the samples held for ``category`` (empty if unknown)."""
        buf = self._buffers.get(category)
        return tuple(buf) if buf is not None else ()

    def reset(self) -> None:
        for buf in self._buffers.values():
            buf.clear()


def detect_sound(
    values: Tuple[float, ...], threshold: float, peak_factor: float = 1.1, min_samples: int = 3
) -> bool:
    """Check a sound-band history for a sustained or peaking sound.

    A sound is present when at least ``min_samples`` values exist and either
    their mean exceeds ``threshold`` or their peak exceeds
    ``threshold * peak_factor``.
    """
    if len(values) < min_samples:
        return False

    # Left-to-right sum, then divide
    total = 0.0
    peak = values[0]
    for value in values:
        total += value
        if value > peak:
            peak = value
    mean = total / len(values)

    return mean > threshold or peak > threshold * peak_factor
