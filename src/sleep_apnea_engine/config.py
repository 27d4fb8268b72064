"""Configuration utilities for the apnea detection engine.

This module centralizes every band, threshold and weight used by the
detection pipeline, the sensitivity mapping, logging setup and loading of a
unified global configuration file.

Two constant sets exist in the engine's history. ``DetectorConfig.standard()``
is the canonical, most refined set and is what ``DetectorConfig()`` gives you;
``DetectorConfig.legacy()`` reproduces the earlier, more aggressive tuning.
"""

import logging
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import yaml

from .exceptions import ConfigurationError
from .models import PatternCategory, Range

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(message)s"
LOG_DATE_FORMAT = "%H:%M:%S"

# Sensitivity scale
MIN_SENSITIVITY = 1
MAX_SENSITIVITY = 10
DEFAULT_MULTIPLIER = 4.5


def sensitivity_multiplier(
    level: float, max_multiplier: float = 7.0, span: float = 6.8
) -> float:
    """Map a sensitivity level (1-10) onto the internal threshold multiplier.

    The mapping is linear and strictly decreasing: level 1 gives
    ``max_multiplier`` and level 10 gives ``max_multiplier - span``. A higher
    level means a more sensitive detector and a lower multiplier.

    Args:
        level: Sensitivity level between 1 and 10 inclusive.
        max_multiplier: Multiplier at level 1.
        span: Distance between the level 1 and level 10 multipliers.

    Returns:
        The threshold multiplier.

    Raises:
        ConfigurationError: If level is not a number in [1, 10].
    """
    if isinstance(level, bool) or not isinstance(level, (int, float)):
        raise ConfigurationError(f"Sensitivity level must be a number, got {level!r}")
    if not MIN_SENSITIVITY <= level <= MAX_SENSITIVITY:
        raise ConfigurationError(
            f"Sensitivity level must be between {MIN_SENSITIVITY} and {MAX_SENSITIVITY}, got {level}"
        )
    return max_multiplier - ((level - 1) / (MAX_SENSITIVITY - 1)) * span


@dataclass(frozen=True)
class SoundBand:
    """A frequency band watched for a specific sound (snoring, gasping...).

    Attributes:
        band: Frequency range in Hz.
        threshold: Byte-scale band average above which the sound is detected.
    """

    band: Range
    threshold: float


def _standard_sound_bands() -> Dict[str, SoundBand]:
    return {
        "snoring": SoundBand(Range(30, 500), threshold=4.0),
        "gasping": SoundBand(Range(200, 2500), threshold=6.0),
    }


def _category_weights() -> Dict[PatternCategory, float]:
    return {
        PatternCategory.CENTRAL: 1.0,
        PatternCategory.OBSTRUCTIVE: 0.9,
        PatternCategory.HYPOPNEA: 0.7,
        PatternCategory.SNORING: 0.5,
        PatternCategory.NORMAL: 0.8,
    }


def _apnea_thresholds() -> Dict[PatternCategory, float]:
    return {
        PatternCategory.CENTRAL: 0.70,
        PatternCategory.OBSTRUCTIVE: 0.75,
        PatternCategory.HYPOPNEA: 0.80,
    }


@dataclass
class SystemConfig:
    """System-level configuration settings.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_file: Optional path to a log file.
    """

    log_level: str = "INFO"
    log_file: Optional[str] = None


@dataclass
class AudioSettings:
    """Audio capture and spectral analysis settings.

    Attributes:
        sample_rate: Audio sampling rate in Hz.
        fft_size: Samples per spectral frame.
        hop_size: Samples read from the device per callback.
        min_decibels: Level mapped to magnitude 0.
        max_decibels: Level mapped to magnitude 255.
        smoothing: Time smoothing between consecutive spectra (0 = none).
        channels: Number of audio channels (usually 1 for mono).
        device_index: Specific audio device index (None for default).
    """

    sample_rate: int = 48000
    fft_size: int = 32768
    hop_size: int = 4096
    min_decibels: float = -150.0
    max_decibels: float = -10.0
    smoothing: float = 0.2
    channels: int = 1
    device_index: Optional[int] = None

    @property
    def bin_width(self) -> float:
        """Width of one frequency bin in Hz."""
        return self.sample_rate / self.fft_size


@dataclass
class DetectorConfig:
    """Every band, threshold and weight used by the detection pipeline.

    Grouped by the stage that consumes them. Byte-scale values refer to
    magnitudes in the 0-255 range produced by the spectral analyzer.
    """

    # Feature extraction
    breathing_band: Range = Range(20, 600)
    noise_band: Optional[Range] = Range(600, 4500)  # None disables noise gating
    ambient_noise_threshold: float = 0.08  # fraction of 255
    breathing_gain: float = 3.0
    time_domain_gain: float = 10.0
    frequency_data_bins: int = 100
    sound_bands: Dict[str, SoundBand] = field(default_factory=_standard_sound_bands)

    # Buffers
    buffer_size: int = 120
    sound_buffer_size: int = 10
    min_samples: int = 5
    sound_min_samples: int = 3

    # Silence signal
    detection_threshold_base: float = 2.0
    silence_threshold_divisor: float = 2.25
    silence_confidence_gain: float = 3.0
    time_silence_fraction: float = 10.0
    time_floor_fraction: float = 12.0
    time_floor_confidence: float = 0.60

    # Statistical irregularity signal
    irregularity_factor: float = 0.055
    irregular_confidence: float = 0.65
    recent_window: int = 5
    flat_stddev: float = 0.02
    flat_mean: float = 0.18
    flat_confidence: float = 0.65
    very_flat_mean: float = 0.12
    very_flat_confidence: float = 0.85

    # Sound signal
    sound_peak_factor: float = 1.1
    sound_confidence: float = 0.70

    # Reference pattern signal
    use_reference_patterns: bool = True
    match_window: int = 10
    match_min_confidence: float = 0.4
    match_boost: float = 1.3
    match_apnea_confidence: float = 0.80
    benign_categories: Tuple[PatternCategory, ...] = (PatternCategory.NORMAL,)
    min_similarity: float = 0.5
    min_similarity_window: int = 5
    amplitude_weight: float = 0.8
    variability_weight: float = 0.2
    no_match_confidence: float = 0.1
    category_weights: Dict[PatternCategory, float] = field(default_factory=_category_weights)
    apnea_thresholds: Dict[PatternCategory, float] = field(default_factory=_apnea_thresholds)
    severe_confidence: float = 0.85
    hypopnea_mild_confidence: float = 0.70

    # Optional classifier signal
    classifier: Optional[str] = None  # "package.module:attribute"
    classifier_min_confidence: float = 0.5

    # Hysteresis and classification bands
    anomaly_threshold: float = 0.09
    hysteresis_count: int = 2
    hysteresis_boost: float = 0.35
    interrupted_threshold: float = 0.10
    missing_threshold: float = 0.30

    # Loop timing
    analysis_throttle_ms: float = 60.0
    min_subscribe_interval_ms: float = 200.0
    event_history_size: int = 10

    # Sensitivity mapping
    default_multiplier: float = DEFAULT_MULTIPLIER
    sensitivity_max_multiplier: float = 7.0
    sensitivity_span: float = 6.8

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        """Check internal consistency.

        Raises:
            ConfigurationError: On any invalid value.
        """
        bands = [("breathing_band", self.breathing_band)]
        if self.noise_band is not None:
            bands.append(("noise_band", self.noise_band))
        bands.extend((f"sound_bands.{name}", sb.band) for name, sb in self.sound_bands.items())
        for name, band in bands:
            if band.min < 0 or band.max <= band.min:
                raise ConfigurationError(f"Invalid frequency band {name}: {band}")

        for name in ("buffer_size", "sound_buffer_size", "min_samples", "recent_window", "match_window"):
            if getattr(self, name) < 1:
                raise ConfigurationError(f"{name} must be at least 1")
        if self.min_samples > self.buffer_size:
            raise ConfigurationError("min_samples cannot exceed buffer_size")
        if self.interrupted_threshold > self.missing_threshold:
            raise ConfigurationError("interrupted_threshold cannot exceed missing_threshold")
        if self.analysis_throttle_ms < 0 or self.min_subscribe_interval_ms <= 0:
            raise ConfigurationError("Loop intervals must be positive")

    def multiplier_for(self, level: float) -> float:
        """Threshold multiplier for a sensitivity level using this config's mapping."""
        return sensitivity_multiplier(
            level, self.sensitivity_max_multiplier, self.sensitivity_span
        )

    @classmethod
    def standard(cls) -> "DetectorConfig":
        """Canonical tuning: ambient-noise gating, reference patterns, 60ms throttle."""
        return cls()

    @classmethod
    def legacy(cls) -> "DetectorConfig":
        """Earlier tuning: wide band, no noise gating, no reference patterns.

        Kept for comparison runs against recordings analyzed with the older
        detector.
        """
        return cls(
            breathing_band=Range(10, 3000),
            noise_band=None,
            breathing_gain=1.8,
            time_domain_gain=5.0,
            sound_bands={
                "snoring": SoundBand(Range(50, 350), threshold=8.0),
                "coughing": SoundBand(Range(250, 1200), threshold=10.0),
                "gasping": SoundBand(Range(400, 1800), threshold=12.0),
            },
            buffer_size=80,
            detection_threshold_base=3.0,
            silence_threshold_divisor=1.0,
            silence_confidence_gain=1.8,
            time_floor_fraction=10.0,
            time_floor_confidence=0.3,
            irregularity_factor=0.08,
            flat_stddev=0.025,
            flat_mean=0.15,
            sound_peak_factor=1.3,
            use_reference_patterns=False,
            anomaly_threshold=0.18,
            interrupted_threshold=0.18,
            missing_threshold=0.45,
            analysis_throttle_ms=100.0,
            default_multiplier=3.0,
            sensitivity_max_multiplier=5.0,
            sensitivity_span=4.8,
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DetectorConfig":
        """Build a config from a YAML mapping.

        An optional ``preset`` key (``standard`` or ``legacy``) selects the base
        constant set; every other key overrides a field of that preset.

        Raises:
            ConfigurationError: On unknown keys or malformed values.
        """
        data = dict(data or {})
        preset = data.pop("preset", "standard")
        if preset == "standard":
            base = cls.standard()
        elif preset == "legacy":
            base = cls.legacy()
        else:
            raise ConfigurationError(f"Unknown detector preset: {preset!r}")

        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigurationError(f"Unknown detector settings: {', '.join(unknown)}")

        overrides: Dict[str, Any] = {}
        for key, value in data.items():
            overrides[key] = _parse_detector_value(key, value)

        try:
            return replace(base, **overrides)
        except ConfigurationError:
            raise
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid detector settings: {e}") from e


def _parse_range(key: str, value: Any) -> Range:
    if isinstance(value, Range):
        return value
    if isinstance(value, dict):
        value = [value.get("min"), value.get("max")]
    try:
        low, high = value
        return Range(float(low), float(high))
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"{key} must be a [min, max] pair, got {value!r}") from e


def _parse_category_map(key: str, value: Any) -> Dict[PatternCategory, float]:
    if not isinstance(value, dict):
        raise ConfigurationError(f"{key} must be a mapping of category to value")
    try:
        return {PatternCategory(k): float(v) for k, v in value.items()}
    except ValueError as e:
        raise ConfigurationError(f"Invalid {key}: {e}") from e


def _parse_detector_value(key: str, value: Any) -> Any:
    """Convert a raw YAML value into the type expected by DetectorConfig."""
    if key in ("breathing_band", "noise_band"):
        if value is None and key == "noise_band":
            return None
        return _parse_range(key, value)
    if key == "sound_bands":
        if not isinstance(value, dict):
            raise ConfigurationError("sound_bands must be a mapping")
        bands = {}
        for name, spec in value.items():
            if not isinstance(spec, dict) or "band" not in spec or "threshold" not in spec:
                raise ConfigurationError(f"sound_bands.{name} needs 'band' and 'threshold'")
            bands[name] = SoundBand(
                _parse_range(f"sound_bands.{name}", spec["band"]), float(spec["threshold"])
            )
        return bands
    if key in ("category_weights", "apnea_thresholds"):
        return _parse_category_map(key, value)
    if key == "benign_categories":
        try:
            return tuple(PatternCategory(v) for v in value)
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid benign_categories: {value!r}") from e
    return value


@dataclass
class GlobalConfig:
    """Unified configuration for the entire application.

    Loads system settings, audio parameters, detector tuning and the initial
    sensitivity level from a single YAML file.
    """

    system: SystemConfig = field(default_factory=SystemConfig)
    audio: AudioSettings = field(default_factory=AudioSettings)
    detector: DetectorConfig = field(default_factory=DetectorConfig)
    sensitivity: Optional[float] = None

    @classmethod
    def load(cls, path: Union[str, Path]) -> "GlobalConfig":
        """Load the global configuration from a YAML file.

        The YAML file should have the following structure:
        ```yaml
        system:
          log_level: INFO
        audio:
          sample_rate: 48000
          fft_size: 32768
        detector:
          preset: standard
          ambient_noise_threshold: 0.1
        sensitivity: 7
        ```

        Args:
            path: Path to the configuration YAML file.

        Returns:
            A GlobalConfig object populated with the settings.
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        with open(path, "r") as f:
            try:
                data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigurationError(f"Could not parse {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"Top level of {path} must be a mapping")

        config = cls.from_dict(data)
        logger.info(f"Loaded configuration from {path}")
        return config

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GlobalConfig":
        """Build a GlobalConfig from an already parsed mapping."""
        # 1. System
        sys_data = data.get("system", {}) or {}
        system_config = SystemConfig(
            log_level=str(sys_data.get("log_level", "INFO")).upper(),
            log_file=sys_data.get("log_file"),
        )

        # 2. Audio
        audio_data = data.get("audio", {}) or {}
        defaults = AudioSettings()
        audio_config = AudioSettings(
            sample_rate=int(audio_data.get("sample_rate", defaults.sample_rate)),
            fft_size=int(audio_data.get("fft_size", defaults.fft_size)),
            hop_size=int(audio_data.get("hop_size", defaults.hop_size)),
            min_decibels=float(audio_data.get("min_decibels", defaults.min_decibels)),
            max_decibels=float(audio_data.get("max_decibels", defaults.max_decibels)),
            smoothing=float(audio_data.get("smoothing", defaults.smoothing)),
            channels=int(audio_data.get("channels", defaults.channels)),
            device_index=audio_data.get("device_index"),
        )
        _validate_audio(audio_config)

        # 3. Detector
        detector_config = DetectorConfig.from_dict(data.get("detector", {}) or {})

        # 4. Sensitivity
        sensitivity = data.get("sensitivity")
        if sensitivity is not None:
            detector_config.multiplier_for(sensitivity)  # validates the level

        return cls(
            system=system_config,
            audio=audio_config,
            detector=detector_config,
            sensitivity=sensitivity,
        )


def _validate_audio(audio: AudioSettings) -> None:
    if audio.sample_rate < 1:
        raise ConfigurationError(f"audio.sample_rate must be positive, got {audio.sample_rate}")
    if audio.fft_size < 2:
        raise ConfigurationError(f"audio.fft_size must be at least 2, got {audio.fft_size}")
    if audio.hop_size < 1:
        raise ConfigurationError(f"audio.hop_size must be at least 1, got {audio.hop_size}")
    if audio.channels < 1:
        raise ConfigurationError(f"audio.channels must be at least 1, got {audio.channels}")
    if not 0.0 <= audio.smoothing < 1.0:
        raise ConfigurationError(f"audio.smoothing must be in [0, 1), got {audio.smoothing}")
    if audio.max_decibels <= audio.min_decibels:
        raise ConfigurationError("audio.max_decibels must exceed audio.min_decibels")


def setup_logging(system: Optional[SystemConfig] = None) -> None:
    """Configure root logging from a SystemConfig.

    Args:
        system: Logging settings; defaults to INFO on stderr.
    """
    system = system or SystemConfig()
    handlers = [logging.StreamHandler()]
    if system.log_file:
        handlers.append(logging.FileHandler(system.log_file, encoding="utf-8"))

    logging.basicConfig(
        level=getattr(logging, system.log_level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
        handlers=handlers,
        force=True,
    )
