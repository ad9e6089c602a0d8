"""Records describing releases and the objects they declare."""

from helm_release_provider.integrations.kubernetes.models.helm import (
    HelmRelease,
    HelmReleaseStatus,
    PendingResources,
    ReleaseData,
    ResourceDescriptor,
)

__all__ = [
    "HelmRelease",
    "HelmReleaseStatus",
    "PendingResources",
    "ReleaseData",
    "ResourceDescriptor",
]
