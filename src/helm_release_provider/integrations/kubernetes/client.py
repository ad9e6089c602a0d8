"""Read access to the cluster a release is installed into.

Readiness checks only ever read object status, so the client exposes the
three API groups those reads need and nothing else. Every instance builds
its own ``ApiClient`` from a kubeconfig file; two releases checked in the
same process never see each other's credentials.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from helm_release_provider.integrations.kubernetes.exceptions import (
    KubernetesAuthError,
    KubernetesConnectionError,
    KubernetesError,
    KubernetesNotFoundError,
    KubernetesValidationError,
)

if TYPE_CHECKING:
    from kubernetes.client import ApiClient, AppsV1Api, BatchV1Api, CoreV1Api

logger = structlog.get_logger()

DEFAULT_RETRY_ATTEMPTS = 3

# API server answers that mean "try again later" rather than "you are wrong".
GATEWAY_STATUSES = frozenset({502, 503, 504})
AUTH_STATUSES = frozenset({401, 403})
INVALID_STATUSES = frozenset({400, 422})

_API_GROUPS = {
    "core_v1": "CoreV1Api",
    "apps_v1": "AppsV1Api",
    "batch_v1": "BatchV1Api",
}


class KubernetesClient:
    """Status reader bound to one kubeconfig and a default namespace.

    Example:
        ```python
        with KubernetesClient("/tmp/kubeconfig-x.yaml", namespace="Test") as kube:
            kube.apps_v1.read_namespaced_deployment_status("web", "Test")
        ```
    """

    def __init__(
        self,
        kubeconfig: str,
        *,
        context: str | None = None,
        namespace: str = "default",
        retry_attempts: int = DEFAULT_RETRY_ATTEMPTS,
    ) -> None:
        """Load ``kubeconfig`` into a private ApiClient.

        Raises:
            KubernetesConnectionError: If the kubeconfig cannot be loaded.
        """
        self._kubeconfig = kubeconfig
        self._context = context
        self._namespace = namespace
        self._retries = retry_attempts
        self._groups: dict[str, Any] = {}
        self._api_client = self._connect()

        logger.debug("kube_client_ready", context=context, namespace=namespace)

    def _connect(self) -> ApiClient:
        from kubernetes import config
        from kubernetes.config import ConfigException

        try:
            return config.new_client_from_config(
                config_file=self._kubeconfig,
                context=self._context,
            )
        except (ConfigException, OSError) as e:
            raise KubernetesConnectionError(
                f"Cannot load Kubernetes configuration: {e}", original_error=e
            ) from e

    def _group(self, attr: str) -> Any:
        if attr not in self._groups:
            import kubernetes.client

            api_class = getattr(kubernetes.client, _API_GROUPS[attr])
            self._groups[attr] = api_class(self._api_client)
        return self._groups[attr]

    @property
    def core_v1(self) -> CoreV1Api:
        """Pods, services and persistent volume claims."""
        return self._group("core_v1")  # type: ignore[no-any-return]

    @property
    def apps_v1(self) -> AppsV1Api:
        """Deployments, stateful sets and daemon sets."""
        return self._group("apps_v1")  # type: ignore[no-any-return]

    @property
    def batch_v1(self) -> BatchV1Api:
        """Jobs."""
        return self._group("batch_v1")  # type: ignore[no-any-return]

    @staticmethod
    def translate_api_exception(
        e: Exception,
        kind: str | None = None,
        name: str | None = None,
        namespace: str | None = None,
    ) -> KubernetesError:
        """Map a client library failure onto a :class:`KubernetesError`.

        ``kind``, ``name`` and ``namespace`` identify the manifest object
        being read and end up on the returned error.
        """
        from kubernetes.client import ApiException
        from urllib3.exceptions import HTTPError

        if isinstance(e, KubernetesError):
            return e
        if isinstance(e, HTTPError):
            return KubernetesConnectionError(f"Kubernetes API unreachable: {e}", original_error=e)

        resource = f"{kind}/{name}" if kind and name else None
        if not isinstance(e, ApiException):
            return KubernetesError(str(e), resource=resource, namespace=namespace)

        status = e.status
        if status == 404:
            return KubernetesNotFoundError(kind, name, namespace)
        if status in AUTH_STATUSES:
            return KubernetesAuthError(e.reason or "credentials rejected by the cluster", status)
        if status in INVALID_STATUSES:
            return KubernetesValidationError(e.reason or "request rejected as invalid", status)
        if status in GATEWAY_STATUSES:
            return KubernetesConnectionError(
                e.reason or f"Kubernetes API unavailable: {status}", original_error=e
            )
        return KubernetesError(
            e.reason or f"Kubernetes API error: {status}",
            status_code=status,
            resource=resource,
            namespace=namespace,
        )

    def make_retry_decorator(self) -> Any:
        """Retry an API read while the cluster is unreachable, with backoff."""
        return retry(
            retry=retry_if_exception_type(KubernetesConnectionError),
            stop=stop_after_attempt(self._retries),
            wait=wait_exponential(multiplier=1, min=1, max=10),
            reraise=True,
        )

    @property
    def default_namespace(self) -> str:
        return self._namespace

    @property
    def kubeconfig(self) -> str:
        return self._kubeconfig

    @property
    def context(self) -> str | None:
        return self._context

    def close(self) -> None:
        self._groups.clear()
        self._api_client.close()
        logger.debug("kube_client_closed")

    def __enter__(self) -> KubernetesClient:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()
