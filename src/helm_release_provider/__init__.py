"""Helm release resource provider.

Drives Helm installs, upgrades and uninstalls as resumable, idempotent
steps, executing directly or through a network-isolated proxy function.
"""

from helm_release_provider.__version__ import __version__

__all__ = ["__version__"]
