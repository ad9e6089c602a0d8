"""Unit tests for ReleaseResourceManager."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from kubernetes.client import ApiException

from helm_release_provider.integrations.kubernetes.client import KubernetesClient
from helm_release_provider.integrations.kubernetes.exceptions import KubernetesAuthError
from helm_release_provider.services.kubernetes.resource_manager import (
    ReleaseResourceManager,
    parse_manifest,
)

MANIFEST = """
---
# Source: coscale/templates/serviceaccount.yaml
apiVersion: v1
kind: ServiceAccount
metadata:
  name: coscale
---
apiVersion: apps/v1
kind: Deployment
metadata:
  name: coscale
spec:
  replicas: 2
---
apiVersion: rbac.authorization.k8s.io/v1
kind: ClusterRole
metadata:
  name: coscale-reader
---
apiVersion: v1
kind: Service
metadata:
  name: coscale
  namespace: monitoring
"""


def _deployment(replicas: int, ready: int, updated: int | None = None) -> SimpleNamespace:
    return SimpleNamespace(
        spec=SimpleNamespace(replicas=replicas),
        metadata=SimpleNamespace(generation=1),
        status=SimpleNamespace(
            observed_generation=1,
            ready_replicas=ready,
            updated_replicas=ready if updated is None else updated,
        ),
    )


@pytest.fixture
def mock_k8s_client() -> MagicMock:
    """Kubernetes client whose API groups are mocks."""
    client = MagicMock()
    client.default_namespace = "Test"
    client.translate_api_exception = KubernetesClient.translate_api_exception
    client.core_v1.read_namespaced_service_status.return_value = SimpleNamespace(
        spec=SimpleNamespace(type="ClusterIP"), status=SimpleNamespace()
    )
    return client


@pytest.fixture
def manager(mock_k8s_client: MagicMock) -> ReleaseResourceManager:
    return ReleaseResourceManager(mock_k8s_client)


@pytest.mark.unit
@pytest.mark.kubernetes
class TestParseManifest:
    """Tests for parse_manifest."""

    def test_parses_documents(self) -> None:
        """Every named document becomes a descriptor in manifest order."""
        resources = parse_manifest(MANIFEST, "Test")

        assert [r.display_name for r in resources] == [
            "ServiceAccount/Test/coscale",
            "Deployment/Test/coscale",
            "ClusterRole/coscale-reader",
            "Service/monitoring/coscale",
        ]

    def test_cluster_scoped_kinds_have_no_namespace(self) -> None:
        """Cluster-scoped kinds never take the release namespace."""
        resources = parse_manifest(MANIFEST, "Test")

        cluster_role = next(r for r in resources if r.kind == "ClusterRole")
        assert cluster_role.namespace is None
        assert cluster_role.api_version == "rbac.authorization.k8s.io/v1"

    def test_list_documents_are_expanded(self) -> None:
        """Items of a List document are listed individually."""
        manifest = """
apiVersion: v1
kind: List
items:
  - apiVersion: v1
    kind: ConfigMap
    metadata:
      name: first
  - apiVersion: v1
    kind: ConfigMap
    metadata:
      name: second
"""
        resources = parse_manifest(manifest, "Test")

        assert [r.name for r in resources] == ["first", "second"]

    def test_skips_empty_and_unnamed_documents(self) -> None:
        """Empty documents and documents without kind or name are ignored."""
        manifest = "---\n---\nkind: ConfigMap\nmetadata: {}\n---\nmetadata:\n  name: x\n"

        assert parse_manifest(manifest, "Test") == []

    def test_empty_manifest(self) -> None:
        assert parse_manifest("", "Test") == []

    def test_invalid_yaml(self) -> None:
        """Unparseable manifests raise ValueError."""
        with pytest.raises(ValueError, match="Failed to parse release manifest"):
            parse_manifest("kind: [unclosed", "Test")


@pytest.mark.unit
@pytest.mark.kubernetes
class TestManifestResources:
    """Tests for ReleaseResourceManager.manifest_resources."""

    def test_uses_client_namespace_by_default(self, manager: ReleaseResourceManager) -> None:
        """Without a namespace the client default applies."""
        resources = manager.manifest_resources(MANIFEST)

        assert resources[0].namespace == "Test"

    def test_explicit_namespace(self, manager: ReleaseResourceManager) -> None:
        resources = manager.manifest_resources(MANIFEST, "other")

        assert resources[0].display_name == "ServiceAccount/other/coscale"


@pytest.mark.unit
@pytest.mark.kubernetes
class TestPendingResources:
    """Tests for ReleaseResourceManager.pending_resources."""

    def test_all_ready(self, manager: ReleaseResourceManager, mock_k8s_client: MagicMock) -> None:
        """Converged workloads report nothing pending."""
        mock_k8s_client.apps_v1.read_namespaced_deployment_status.return_value = _deployment(2, 2)

        result = manager.pending_resources(MANIFEST, "Test")

        assert result.pending is False
        assert result.resources == []
        mock_k8s_client.apps_v1.read_namespaced_deployment_status.assert_called_once_with(
            name="coscale", namespace="Test"
        )

    def test_unready_deployment(
        self, manager: ReleaseResourceManager, mock_k8s_client: MagicMock
    ) -> None:
        """A deployment short of its replicas is pending."""
        mock_k8s_client.apps_v1.read_namespaced_deployment_status.return_value = _deployment(2, 1)

        result = manager.pending_resources(MANIFEST, "Test")

        assert result.pending is True
        assert result.resources == ["Deployment/Test/coscale"]

    def test_rollout_in_progress(
        self, manager: ReleaseResourceManager, mock_k8s_client: MagicMock
    ) -> None:
        """Replicas from the previous revision do not count as ready."""
        mock_k8s_client.apps_v1.read_namespaced_deployment_status.return_value = _deployment(
            2, 2, updated=1
        )

        assert manager.pending_resources(MANIFEST, "Test").pending is True

    def test_missing_resource_is_pending(
        self, manager: ReleaseResourceManager, mock_k8s_client: MagicMock
    ) -> None:
        """A resource that does not exist yet counts as pending."""
        mock_k8s_client.apps_v1.read_namespaced_deployment_status.side_effect = ApiException(
            status=404, reason="Not Found"
        )

        result = manager.pending_resources(MANIFEST, "Test")

        assert result.resources == ["Deployment/Test/coscale"]

    def test_pending_load_balancer(
        self, manager: ReleaseResourceManager, mock_k8s_client: MagicMock
    ) -> None:
        """A LoadBalancer service waits for its ingress."""
        mock_k8s_client.apps_v1.read_namespaced_deployment_status.return_value = _deployment(2, 2)
        mock_k8s_client.core_v1.read_namespaced_service_status.return_value = SimpleNamespace(
            spec=SimpleNamespace(type="LoadBalancer"),
            status=SimpleNamespace(load_balancer=SimpleNamespace(ingress=None)),
        )

        result = manager.pending_resources(MANIFEST, "Test")

        assert result.resources == ["Service/monitoring/coscale"]
        mock_k8s_client.core_v1.read_namespaced_service_status.assert_called_once_with(
            name="coscale", namespace="monitoring"
        )

    def test_kinds_without_rule_are_ready(
        self, manager: ReleaseResourceManager, mock_k8s_client: MagicMock
    ) -> None:
        """Objects without a readiness rule are not read at all."""
        manifest = "apiVersion: v1\nkind: ConfigMap\nmetadata:\n  name: settings\n"

        result = manager.pending_resources(manifest, "Test")

        assert result.pending is False
        mock_k8s_client.core_v1.read_namespaced_config_map.assert_not_called()

    def test_job_and_pvc(
        self, manager: ReleaseResourceManager, mock_k8s_client: MagicMock
    ) -> None:
        """Jobs wait for completion and claims for binding."""
        manifest = (
            "apiVersion: batch/v1\nkind: Job\nmetadata:\n  name: migrate\n---\n"
            "apiVersion: v1\nkind: PersistentVolumeClaim\nmetadata:\n  name: data\n"
        )
        mock_k8s_client.batch_v1.read_namespaced_job_status.return_value = SimpleNamespace(
            spec=SimpleNamespace(completions=1), status=SimpleNamespace(succeeded=0)
        )
        mock_k8s_client.core_v1.read_namespaced_persistent_volume_claim_status.return_value = (
            SimpleNamespace(status=SimpleNamespace(phase="Bound"))
        )

        result = manager.pending_resources(manifest, "Test")

        assert result.resources == ["Job/Test/migrate"]

    def test_api_errors_propagate(
        self, manager: ReleaseResourceManager, mock_k8s_client: MagicMock
    ) -> None:
        """Errors other than 404 are translated and raised."""
        mock_k8s_client.apps_v1.read_namespaced_deployment_status.side_effect = ApiException(
            status=403, reason="Forbidden"
        )

        with pytest.raises(KubernetesAuthError):
            manager.pending_resources(MANIFEST, "Test")
