"""Synthetic events and signals for demos and tests."""

import random
import time
from typing import Callable, Optional, Sequence, Tuple

import numpy as np
from scipy import signal

from .events import DetectedSounds, DetectionEvent


def generate_test_event(
    rng: Optional[random.Random] = None, clock: Callable[[], float] = time.time
) -> DetectionEvent:
    """Random DetectionEvent with a realistic mix of states.

    About 15% of events are apneas (``missing``), 25% are ``interrupted``
    and the remaining 60% are ``normal``. Pass a seeded ``random.Random``
    for repeatable sequences.
    """
    r = (rng or random).random()

    if r < 0.15:
        return DetectionEvent(
            is_apnea=True,
            confidence=min(1.0, 0.85 + r * 0.15),
            duration=float(int(r * 10) + 5),
            pattern="missing",
            timestamp=clock(),
            detected_sounds=DetectedSounds(gasping=True, paused_breathing=True),
            pattern_type="complete-cessation" if r < 0.06 else "gradual-central",
        )
    if r < 0.40:
        return DetectionEvent(
            confidence=0.55 + r * 0.3,
            duration=float(int(r * 5) + 2),
            pattern="interrupted",
            timestamp=clock(),
            detected_sounds=DetectedSounds(snoring=r > 0.2),
            pattern_type="continued-effort" if r < 0.25 else "moderate-reduction",
        )
    return DetectionEvent(
        confidence=r * 0.25,
        pattern="normal",
        timestamp=clock(),
        detected_sounds=DetectedSounds(snoring=r > 0.85),
        pattern_type="regular-quiet" if r < 0.6 else "deeper-sleep",
    )


def synthesize_breathing(
    duration_s: float,
    sample_rate: int,
    rate_hz: float = 0.25,
    apnea_spans: Sequence[Tuple[float, float]] = (),
    amplitude: float = 0.3,
    seed: Optional[int] = None,
) -> np.ndarray:
    """Generate a breathing-like noise signal.

    Low-passed noise is shaped by a raised-cosine envelope at ``rate_hz``
    breaths per second. Inside each ``(start, end)`` span of
    ``apnea_spans`` the signal is silent.

    Args:
        duration_s: Signal length in seconds
        sample_rate: Sample rate in Hz
        rate_hz: Breathing rate
        apnea_spans: Silent spans in seconds
        amplitude: Peak amplitude in [0, 1]
        seed: Noise seed

    Returns:
        float32 samples in [-1, 1]
    """
    n = int(duration_s * sample_rate)
    rng = np.random.default_rng(seed)
    t = np.arange(n) / float(sample_rate)

    # Breath sounds sit below ~600 Hz
    noise = rng.standard_normal(n)
    b, a = signal.butter(4, 600.0 / (sample_rate / 2.0), btype="low")
    noise = signal.lfilter(b, a, noise)
    peak = np.max(np.abs(noise)) if n else 0.0
    if peak > 0:
        noise = noise / peak

    envelope = 0.5 * (1.0 - np.cos(2.0 * np.pi * rate_hz * t))
    out = noise * envelope * amplitude

    for start, end in apnea_spans:
        lo = max(0, int(start * sample_rate))
        hi = min(n, int(end * sample_rate))
        out[lo:hi] = 0.0

    return np.clip(out, -1.0, 1.0).astype(np.float32)
