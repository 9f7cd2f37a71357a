"""Configuration for catalog processing system."""

from .loader import Config, load_config

__all__ = ["Config", "load_config"]
