"""Kubernetes service module.

Managers that inspect the cluster objects created by Helm releases.
"""

from helm_release_provider.services.kubernetes.resource_manager import (
    ReleaseResourceManager,
    parse_manifest,
)

__all__ = ["ReleaseResourceManager", "parse_manifest"]
