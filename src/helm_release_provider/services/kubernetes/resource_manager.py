"""Release resource inspection.

Parses a release's rendered manifest into resource descriptors and checks
whether the workloads it created have converged.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from helm_release_provider.integrations.kubernetes.exceptions import KubernetesNotFoundError
from helm_release_provider.integrations.kubernetes.models.helm import (
    PendingResources,
    ResourceDescriptor,
)
from helm_release_provider.services.kubernetes.base import K8sBaseManager

if TYPE_CHECKING:
    from helm_release_provider.integrations.kubernetes.client import KubernetesClient

# Kinds that are cluster-scoped and never take the release namespace
CLUSTER_SCOPED_KINDS = frozenset(
    {
        "ClusterRole",
        "ClusterRoleBinding",
        "CustomResourceDefinition",
        "MutatingWebhookConfiguration",
        "Namespace",
        "PersistentVolume",
        "PriorityClass",
        "StorageClass",
        "ValidatingWebhookConfiguration",
    }
)


def parse_manifest(manifest: str, default_namespace: str | None = None) -> list[ResourceDescriptor]:
    """Parse multi-document manifest YAML into resource descriptors.

    Empty documents and ``List`` wrappers are handled; documents without a
    kind or name are skipped.

    Raises:
        ValueError: If the manifest is not valid YAML.
    """
    from ruamel.yaml import YAML
    from ruamel.yaml.error import YAMLError

    yaml = YAML(typ="safe")
    try:
        documents = list(yaml.load_all(manifest or ""))
    except YAMLError as e:
        raise ValueError(f"Failed to parse release manifest: {e}") from e

    descriptors: list[ResourceDescriptor] = []
    for doc in documents:
        if not isinstance(doc, dict):
            continue
        items = doc.get("items") if doc.get("kind") == "List" else [doc]
        for item in items or []:
            if not isinstance(item, dict) or not item.get("kind"):
                continue
            if not (item.get("metadata") or {}).get("name"):
                continue
            namespace = None if item["kind"] in CLUSTER_SCOPED_KINDS else default_namespace
            descriptors.append(ResourceDescriptor.from_manifest(item, namespace))
    return descriptors


def _deployment_ready(obj: Any) -> bool:
    desired = getattr(obj.spec, "replicas", None)
    desired = 1 if desired is None else desired
    status = obj.status
    generation = getattr(obj.metadata, "generation", None)
    observed = getattr(status, "observed_generation", None)
    if generation is not None and observed is not None and observed < generation:
        return False
    updated = getattr(status, "updated_replicas", 0) or 0
    ready = getattr(status, "ready_replicas", 0) or 0
    return updated >= desired and ready >= desired


def _stateful_set_ready(obj: Any) -> bool:
    desired = getattr(obj.spec, "replicas", None)
    desired = 1 if desired is None else desired
    ready = getattr(obj.status, "ready_replicas", 0) or 0
    return ready >= desired


def _daemon_set_ready(obj: Any) -> bool:
    status = obj.status
    desired = getattr(status, "desired_number_scheduled", 0) or 0
    ready = getattr(status, "number_ready", 0) or 0
    updated = getattr(status, "updated_number_scheduled", 0) or 0
    return ready >= desired and updated >= desired


def _job_ready(obj: Any) -> bool:
    completions = getattr(obj.spec, "completions", None) or 1
    succeeded = getattr(obj.status, "succeeded", 0) or 0
    return succeeded >= completions


def _pod_ready(obj: Any) -> bool:
    phase = getattr(obj.status, "phase", "")
    if phase == "Succeeded":
        return True
    if phase != "Running":
        return False
    conditions = getattr(obj.status, "conditions", None) or []
    return any(c.type == "Ready" and c.status == "True" for c in conditions)


def _pvc_ready(obj: Any) -> bool:
    return getattr(obj.status, "phase", "") == "Bound"


def _service_ready(obj: Any) -> bool:
    if getattr(obj.spec, "type", "") != "LoadBalancer":
        return True
    load_balancer = getattr(obj.status, "load_balancer", None)
    return bool(getattr(load_balancer, "ingress", None))


class ReleaseResourceManager(K8sBaseManager):
    """Inspects the Kubernetes objects created by a Helm release."""

    _entity_name: str = "release_resource"

    def __init__(self, client: KubernetesClient) -> None:
        super().__init__(client)
        self._checks: dict[str, tuple[Callable[[str, str], Any], Callable[[Any], bool]]] = {
            "Deployment": (self._read_deployment, _deployment_ready),
            "StatefulSet": (self._read_stateful_set, _stateful_set_ready),
            "DaemonSet": (self._read_daemon_set, _daemon_set_ready),
            "Job": (self._read_job, _job_ready),
            "Pod": (self._read_pod, _pod_ready),
            "PersistentVolumeClaim": (self._read_pvc, _pvc_ready),
            "Service": (self._read_service, _service_ready),
        }

    def manifest_resources(
        self, manifest: str, namespace: str | None = None
    ) -> list[ResourceDescriptor]:
        """List the resources a release manifest declares."""
        ns = self._resolve_namespace(namespace)
        resources = parse_manifest(manifest, ns)
        self._log.debug("parsed_manifest_resources", count=len(resources), namespace=ns)
        return resources

    def pending_resources(self, manifest: str, namespace: str | None = None) -> PendingResources:
        """Report the manifest resources that have not converged yet.

        A resource that does not exist yet counts as pending. Kinds without
        a readiness rule are considered ready once created by Helm.

        Raises:
            KubernetesError: On API failures other than 404.
        """
        pending: list[str] = []
        for resource in self.manifest_resources(manifest, namespace):
            check = self._checks.get(resource.kind)
            if check is None:
                continue
            read, is_ready = check
            ns = resource.namespace or self._resolve_namespace(None)
            try:
                obj = read(resource.name, ns)
            except KubernetesNotFoundError:
                pending.append(resource.display_name)
                continue
            if not is_ready(obj):
                pending.append(resource.display_name)

        self._log.info("checked_pending_resources", pending=len(pending), resources=pending)
        return PendingResources(pending=bool(pending), resources=pending)

    # -----------------------------------------------------------------------
    # Readers
    # -----------------------------------------------------------------------

    def _read(self, kind: str, fn: Callable[..., Any], name: str, namespace: str) -> Any:
        try:
            return fn(name=name, namespace=namespace)
        except Exception as e:
            self._handle_api_error(e, kind, name, namespace)

    def _read_deployment(self, name: str, namespace: str) -> Any:
        return self._read(
            "Deployment", self._client.apps_v1.read_namespaced_deployment_status, name, namespace
        )

    def _read_stateful_set(self, name: str, namespace: str) -> Any:
        return self._read(
            "StatefulSet", self._client.apps_v1.read_namespaced_stateful_set_status, name, namespace
        )

    def _read_daemon_set(self, name: str, namespace: str) -> Any:
        return self._read(
            "DaemonSet", self._client.apps_v1.read_namespaced_daemon_set_status, name, namespace
        )

    def _read_job(self, name: str, namespace: str) -> Any:
        return self._read("Job", self._client.batch_v1.read_namespaced_job_status, name, namespace)

    def _read_pod(self, name: str, namespace: str) -> Any:
        return self._read("Pod", self._client.core_v1.read_namespaced_pod_status, name, namespace)

    def _read_pvc(self, name: str, namespace: str) -> Any:
        return self._read(
            "PersistentVolumeClaim",
            self._client.core_v1.read_namespaced_persistent_volume_claim_status,
            name,
            namespace,
        )

    def _read_service(self, name: str, namespace: str) -> Any:
        return self._read(
            "Service", self._client.core_v1.read_namespaced_service_status, name, namespace
        )
