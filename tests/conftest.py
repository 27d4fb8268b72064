"""Pytest configuration and fixtures for the apnea engine tests."""

from typing import Iterable, List, Optional

import numpy as np
import pytest

from sleep_apnea_engine.config import AudioSettings, DetectorConfig
from sleep_apnea_engine.engine import Detector
from sleep_apnea_engine.exceptions import DeviceUnavailableError
from sleep_apnea_engine.listener import Capture
from sleep_apnea_engine.processing.dsp import SpectralFrame
from sleep_apnea_engine.scheduler import ManualClock, ManualScheduler

# Small FFT keeps frames cheap: bin width 7.8125 Hz, 512 bins
SAMPLE_RATE = 8000
FFT_SIZE = 1024


def make_frame(
    breathing: float = 0.0,
    noise: float = 0.0,
    amplitude: float = 0.0,
    settings: Optional[AudioSettings] = None,
) -> SpectralFrame:
    """Build a SpectralFrame with flat magnitudes per region.

    Args:
        breathing: Magnitude of the 20-600 Hz bins
        noise: Magnitude of the 600-4000 Hz bins
        amplitude: Constant absolute value of the time-domain samples
    """
    settings = settings or AudioSettings(sample_rate=SAMPLE_RATE, fft_size=FFT_SIZE)
    bin_width = settings.sample_rate / settings.fft_size
    magnitudes = np.zeros(settings.fft_size // 2)
    split = int(600 // bin_width)
    magnitudes[int(20 // bin_width) : split] = breathing
    magnitudes[split:] = noise
    samples = np.full(settings.fft_size, amplitude, dtype=np.float32)
    samples[1::2] *= -1
    return SpectralFrame(
        magnitudes=magnitudes,
        samples=samples,
        sample_rate=settings.sample_rate,
        fft_size=settings.fft_size,
    )


def quiet_frame() -> SpectralFrame:
    """No breathing energy at all."""
    return make_frame()


def breathing_frame() -> SpectralFrame:
    """Steady breathing below the sound-detection thresholds."""
    return make_frame(breathing=3.0, amplitude=0.05)


def noisy_frame() -> SpectralFrame:
    """Loud broadband noise outside the breathing band."""
    return make_frame(breathing=3.0, noise=100.0, amplitude=0.05)


class FrameCapture(Capture):
    """Capture that replays a scripted list of frames.

    Once the script runs out the last frame repeats.
    """

    def __init__(self, settings: AudioSettings, frames: Iterable[SpectralFrame] = (), fail: bool = False):
        super().__init__(settings)
        self.frames: List[SpectralFrame] = list(frames)
        self.fail = fail
        self.reads = 0
        self.peeks = 0
        self.open_count = 0
        self.close_count = 0
        self._last: Optional[SpectralFrame] = None

    def feed(self, *frames: SpectralFrame) -> None:
        self.frames.extend(frames)

    def open(self) -> None:
        if self.fail:
            raise DeviceUnavailableError("permission denied")
        self.open_count += 1
        self._open = True

    def close(self) -> None:
        self.close_count += 1
        self._open = False

    def read_frame(self) -> Optional[SpectralFrame]:
        self.reads += 1
        if self.frames:
            self._last = self.frames.pop(0)
        return self._last

    def peek_frame(self) -> Optional[SpectralFrame]:
        self.peeks += 1
        return self.frames[0] if self.frames else self._last


@pytest.fixture
def clock():
    return ManualClock(1000.0)


@pytest.fixture
def scheduler(clock):
    return ManualScheduler(clock)


@pytest.fixture
def audio_settings():
    return AudioSettings(sample_rate=SAMPLE_RATE, fft_size=FFT_SIZE, hop_size=256)


@pytest.fixture
def capture(audio_settings):
    return FrameCapture(audio_settings)


@pytest.fixture
def detector(capture, audio_settings, clock, scheduler):
    """Detector wired to a scripted capture, a manual clock and scheduler."""
    return Detector(
        config=DetectorConfig(),
        audio=audio_settings,
        capture_factory=lambda settings: capture,
        clock=clock,
        scheduler=scheduler,
    )


def run_ticks(detector: Detector, clock: ManualClock, count: int, step: float = 0.1):
    """Tick ``count`` times, advancing the clock past the throttle each time."""
    events = []
    for _ in range(count):
        clock.advance(step)
        events.append(detector.tick())
    return events
