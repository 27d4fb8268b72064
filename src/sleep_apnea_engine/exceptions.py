"""Exception types raised by the apnea detection engine."""


class ApneaEngineError(Exception):
    """Base class for all engine errors."""


class DeviceUnavailableError(ApneaEngineError):
    """Audio capture could not be acquired (no device, permission denied, no PyAudio).

    Raised once from ``Detector.start()``. The engine never retries; the caller
    must call ``start()`` again after fixing the underlying cause.
    """


class ModelUnavailableError(ApneaEngineError):
    """The optional audio classifier failed to load or to predict."""


class ConfigurationError(ApneaEngineError, ValueError):
    """Invalid configuration value, config file or reference-pattern data."""
