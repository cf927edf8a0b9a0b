"""Version information for cronlock."""

__version__ = "1.0.0"
