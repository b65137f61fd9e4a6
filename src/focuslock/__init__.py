"""Focus Lock: a focus timer that keeps distracting apps closed."""

__version__ = "0.1.0"
