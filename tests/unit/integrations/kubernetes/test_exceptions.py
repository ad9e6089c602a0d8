"""Unit tests for cluster-side exceptions."""

from __future__ import annotations

import pytest

from helm_release_provider.integrations.kubernetes.exceptions import (
    KubernetesAuthError,
    KubernetesConnectionError,
    KubernetesError,
    KubernetesNotFoundError,
    KubernetesValidationError,
)


@pytest.mark.unit
@pytest.mark.kubernetes
class TestKubernetesError:
    """Tests for the base exception."""

    def test_str_message_only(self) -> None:
        """A bare error renders as its message."""
        assert str(KubernetesError("boom")) == "boom"

    def test_str_with_status_and_resource(self) -> None:
        """Status and the manifest object are appended."""
        error = KubernetesError(
            "boom", status_code=409, resource="Deployment/web", namespace="Test"
        )
        assert str(error) == "boom (HTTP 409) [Deployment/web in Test]"

    def test_str_resource_without_namespace(self) -> None:
        """Cluster-scoped objects have no namespace suffix."""
        error = KubernetesError("boom", resource="ClusterRole/web")
        assert str(error) == "boom [ClusterRole/web]"


@pytest.mark.unit
@pytest.mark.kubernetes
class TestSubclasses:
    """Tests for the typed subclasses."""

    def test_connection_error_keeps_original(self) -> None:
        """The underlying network failure stays attached."""
        original = OSError("refused")
        error = KubernetesConnectionError(original_error=original)

        assert error.original_error is original
        assert error.message == "Kubernetes cluster unreachable"
        assert error.status_code is None

    def test_auth_error_defaults(self) -> None:
        """Rejected credentials default to 401."""
        assert KubernetesAuthError().status_code == 401
        assert KubernetesAuthError("Forbidden", 403).status_code == 403

    def test_not_found_names_object(self) -> None:
        """A missing manifest object is named as Kind/name."""
        error = KubernetesNotFoundError("Pod", "web", "Test")

        assert error.message == "Pod/web not found"
        assert error.resource == "Pod/web"
        assert error.namespace == "Test"
        assert error.status_code == 404

    def test_not_found_without_object(self) -> None:
        """Without a kind and name the message stays generic."""
        error = KubernetesNotFoundError()
        assert error.message == "object not found"
        assert error.resource is None

    def test_validation_error_defaults(self) -> None:
        """Malformed requests default to 422."""
        assert KubernetesValidationError().status_code == 422

    @pytest.mark.parametrize(
        "cls",
        [
            KubernetesAuthError,
            KubernetesConnectionError,
            KubernetesNotFoundError,
            KubernetesValidationError,
        ],
    )
    def test_inheritance(self, cls: type[KubernetesError]) -> None:
        """All typed errors derive from KubernetesError."""
        assert issubclass(cls, KubernetesError)
