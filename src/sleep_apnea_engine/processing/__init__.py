"""Signal processing helpers."""

from .dsp import SpectralAnalyzer, SpectralFrame, to_float_samples

__all__ = ["SpectralAnalyzer", "SpectralFrame", "to_float_samples"]
