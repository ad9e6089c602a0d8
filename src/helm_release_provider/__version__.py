"""Version information for helm_release_provider."""

__version__ = "0.1.0"
