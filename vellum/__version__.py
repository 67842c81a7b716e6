"""Version information for Vellum."""

__version__ = "0.1.0"
