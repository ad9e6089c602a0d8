"""Cluster access for releases: status reads through the API, lifecycle through Helm."""

from helm_release_provider.integrations.kubernetes.client import KubernetesClient
from helm_release_provider.integrations.kubernetes.exceptions import (
    KubernetesAuthError,
    KubernetesConnectionError,
    KubernetesError,
    KubernetesNotFoundError,
    KubernetesValidationError,
)
from helm_release_provider.integrations.kubernetes.helm_client import (
    HelmBinaryNotFoundError,
    HelmChartNotFoundError,
    HelmClient,
    HelmCommandError,
    HelmError,
    HelmReleaseExistsError,
    HelmReleaseNotFoundError,
)

__all__ = [
    "HelmBinaryNotFoundError",
    "HelmChartNotFoundError",
    "HelmClient",
    "HelmCommandError",
    "HelmError",
    "HelmReleaseExistsError",
    "HelmReleaseNotFoundError",
    "KubernetesAuthError",
    "KubernetesClient",
    "KubernetesConnectionError",
    "KubernetesError",
    "KubernetesNotFoundError",
    "KubernetesValidationError",
]
