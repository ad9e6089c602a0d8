"""Cluster-side failures raised by the Kubernetes and Helm clients.

These describe what went wrong talking to a cluster. The provider layer
(``helm_release_provider.exceptions``) classifies them into error kinds.
"""

from __future__ import annotations


class KubernetesError(Exception):
    """A failed call against a cluster.

    Attributes:
        message: What failed.
        status_code: API status code, when the API server answered.
        resource: ``Kind/name`` of the release object involved, if any.
        namespace: Namespace of that object.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        resource: str | None = None,
        namespace: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.resource = resource
        self.namespace = namespace

    def __str__(self) -> str:
        text = self.message
        if self.status_code:
            text += f" (HTTP {self.status_code})"
        if self.resource:
            where = f" in {self.namespace}" if self.namespace else ""
            text += f" [{self.resource}{where}]"
        return text


class KubernetesConnectionError(KubernetesError):
    """The API server could not be reached.

    Covers network errors, unusable kubeconfig content, API gateway errors
    and Helm's "Kubernetes cluster unreachable". Retried with backoff.
    """

    def __init__(
        self,
        message: str = "Kubernetes cluster unreachable",
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.original_error = original_error


class KubernetesAuthError(KubernetesError):
    """The cluster rejected the kubeconfig credentials (401/403)."""

    def __init__(
        self,
        message: str = "credentials rejected by the cluster",
        status_code: int = 401,
    ) -> None:
        super().__init__(message, status_code=status_code)


class KubernetesNotFoundError(KubernetesError):
    """An object declared by a release manifest does not exist (404).

    Readiness checks treat this as "not created yet".
    """

    def __init__(
        self,
        kind: str | None = None,
        name: str | None = None,
        namespace: str | None = None,
    ) -> None:
        resource = f"{kind}/{name}" if kind and name else None
        super().__init__(
            f"{resource} not found" if resource else "object not found",
            status_code=404,
            resource=resource,
            namespace=namespace,
        )


class KubernetesValidationError(KubernetesError):
    """The API server rejected a request as malformed (400/422)."""

    def __init__(
        self, message: str = "request rejected as invalid", status_code: int = 422
    ) -> None:
        super().__init__(message, status_code=status_code)
