"""Core engine components."""

from focuslock.core.config import Config, get_config

__all__ = ["Config", "get_config"]
