"""Audio capture components that produce spectral frames."""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Optional

import numpy as np

from .config import AudioSettings
from .exceptions import DeviceUnavailableError
from .processing.dsp import SpectralAnalyzer, SpectralFrame, to_float_samples

try:
    import pyaudio

    HAS_PYAUDIO = True
except ImportError:
    HAS_PYAUDIO = False

logger = logging.getLogger(__name__)


class Capture(ABC):
    """Source of spectral frames.

    ``open()`` may be slow (device acquisition, permission prompts) and is the
    only long-latency operation; ``read_frame()`` must return promptly.
    """

    def __init__(self, settings: AudioSettings):
        self.settings = settings
        self.analyzer = SpectralAnalyzer(
            settings.sample_rate,
            settings.fft_size,
            min_decibels=settings.min_decibels,
            max_decibels=settings.max_decibels,
            smoothing=settings.smoothing,
        )
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    @abstractmethod
    def open(self) -> None:
        """Acquire the audio source.

        Raises:
            DeviceUnavailableError: If the source cannot be acquired.
        """

    @abstractmethod
    def close(self) -> None:
        """Release the audio source. Safe to call when already closed."""

    @abstractmethod
    def read_frame(self) -> Optional[SpectralFrame]:
        """Frame for the current tick, or None when no audio is available."""

    def peek_frame(self) -> Optional[SpectralFrame]:
        """Frame for visualization without consuming input."""
        return self.read_frame()


class MicrophoneCapture(Capture):
    """Captures audio from a microphone with PyAudio.

    The PyAudio callback thread is the single writer of a rolling window of
    the latest ``fft_size`` samples; readers take a copy under a lock.
    """

    def __init__(self, settings: AudioSettings):
        super().__init__(settings)
        self._pyaudio: Optional["pyaudio.PyAudio"] = None
        self._stream = None
        self._lock = threading.Lock()
        self._window = np.zeros(settings.fft_size, dtype=np.float32)
        self._received = 0

    def open(self) -> None:
        """Initialize PyAudio and open the input stream."""
        if self._open:
            return
        if not HAS_PYAUDIO:
            raise DeviceUnavailableError(
                "PyAudio is required for audio capture. Install it with: pip install pyaudio"
            )

        try:
            logger.info("Initializing PyAudio...")
            self._pyaudio = pyaudio.PyAudio()
            self._list_devices()

            if self.settings.device_index is not None:
                self._validate_device(self.settings.device_index)
                logger.info(f"Using audio device index: {self.settings.device_index}")
            else:
                logger.info("Using default audio device")

            self._stream = self._pyaudio.open(
                format=pyaudio.paInt16,
                channels=self.settings.channels,
                rate=self.settings.sample_rate,
                input=True,
                input_device_index=self.settings.device_index,
                frames_per_buffer=self.settings.hop_size,
                stream_callback=self._on_audio,
            )
            self._stream.start_stream()
        except DeviceUnavailableError:
            self.close()
            raise
        except Exception as e:
            logger.error(f"Failed to initialize audio: {e}")
            self.close()
            raise DeviceUnavailableError(f"Could not open audio input: {e}") from e

        with self._lock:
            self._window[:] = 0.0
            self._received = 0
        self.analyzer.reset()
        self._open = True
        logger.info("Audio stream opened successfully")

    def _validate_device(self, device_index: int) -> None:
        """Validate that a device index is usable for input."""
        try:
            dev_info = self._pyaudio.get_device_info_by_host_api_device_index(0, device_index)
        except Exception as e:
            raise DeviceUnavailableError(f"Invalid device index {device_index}: {e}") from e
        if dev_info.get("maxInputChannels", 0) == 0:
            raise DeviceUnavailableError(f"Device index {device_index} has no input channels")
        logger.info(f"Device: {dev_info.get('name')} (Inputs: {dev_info.get('maxInputChannels')})")

    def _list_devices(self) -> None:
        """Log all available audio input devices."""
        if not self._pyaudio:
            return
        try:
            info = self._pyaudio.get_host_api_info_by_index(0)
            num_devices = info.get("deviceCount", 0)
            if num_devices == 0:
                logger.warning("No audio devices found!")
                return

            logger.debug("Available audio input devices:")
            for i in range(num_devices):
                device_info = self._pyaudio.get_device_info_by_host_api_device_index(0, i)
                if device_info.get("maxInputChannels", 0) > 0:
                    logger.debug(
                        f"  Index {i}: {device_info.get('name')} "
                        f"(Inputs: {device_info.get('maxInputChannels')})"
                    )
        except Exception as e:
            logger.warning(f"Could not list devices: {e}")

    def _on_audio(self, in_data, frame_count, time_info, status):
        """PyAudio callback: append the new block to the rolling window."""
        chunk = np.frombuffer(in_data, dtype=np.int16)
        if self.settings.channels > 1:
            chunk = chunk.reshape(-1, self.settings.channels).mean(axis=1)
        samples = to_float_samples(chunk.astype(np.int16))

        n = len(samples)
        with self._lock:
            if n >= len(self._window):
                self._window[:] = samples[-len(self._window) :]
            elif n:
                self._window[:-n] = self._window[n:]
                self._window[-n:] = samples
            self._received += n
        return (None, pyaudio.paContinue)

    def _snapshot(self) -> Optional[np.ndarray]:
        if not self._open:
            return None
        with self._lock:
            if self._received == 0:
                return None
            return self._window.copy()

    def read_frame(self) -> Optional[SpectralFrame]:
        samples = self._snapshot()
        return self.analyzer.analyze(samples) if samples is not None else None

    def peek_frame(self) -> Optional[SpectralFrame]:
        samples = self._snapshot()
        return self.analyzer.analyze(samples, commit=False) if samples is not None else None

    def close(self) -> None:
        """Stop the stream and release PyAudio."""
        self._open = False

        if self._stream:
            try:
                self._stream.stop_stream()
                self._stream.close()
            except Exception as e:
                logger.debug(f"Error closing audio stream: {e}")
            self._stream = None

        if self._pyaudio:
            try:
                self._pyaudio.terminate()
            except Exception as e:
                logger.debug(f"Error terminating PyAudio: {e}")
            self._pyaudio = None


class ArrayCapture(Capture):
    """Replays an in-memory signal, advancing ``hop_size`` samples per frame.

    Used for recordings, examples and tests.
    """

    def __init__(self, samples: np.ndarray, settings: AudioSettings, hop_size: Optional[int] = None):
        super().__init__(settings)
        self.samples = to_float_samples(np.asarray(samples))
        self.hop_size = hop_size if hop_size is not None else settings.hop_size
        if self.hop_size < 1:
            raise ValueError(f"hop_size must be at least 1, got {self.hop_size}")
        self._position = 0

    @property
    def position(self) -> int:
        """Number of samples consumed so far."""
        return self._position

    @property
    def exhausted(self) -> bool:
        return self._position >= len(self.samples)

    def open(self) -> None:
        self._position = 0
        self.analyzer.reset()
        self._open = True

    def close(self) -> None:
        self._open = False

    def _frame_at(self, end: int, commit: bool = True) -> SpectralFrame:
        start = max(0, end - self.settings.fft_size)
        return self.analyzer.analyze(self.samples[start:end], commit=commit)

    def read_frame(self) -> Optional[SpectralFrame]:
        if not self._open or self.exhausted:
            return None
        self._position = min(len(self.samples), self._position + self.hop_size)
        return self._frame_at(self._position)

    def peek_frame(self) -> Optional[SpectralFrame]:
        if not self._open or self._position == 0:
            return None
        return self._frame_at(self._position, commit=False)
