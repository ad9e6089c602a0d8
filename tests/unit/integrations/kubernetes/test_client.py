"""Unit tests for Kubernetes client."""

from __future__ import annotations

from collections.abc import Generator
from unittest.mock import MagicMock, patch

import pytest

from helm_release_provider.integrations.kubernetes.client import KubernetesClient
from helm_release_provider.integrations.kubernetes.exceptions import (
    KubernetesAuthError,
    KubernetesConnectionError,
    KubernetesError,
    KubernetesNotFoundError,
    KubernetesValidationError,
)


@pytest.fixture
def mock_config() -> Generator[MagicMock]:
    """Patch kubeconfig loading."""
    with patch("kubernetes.config") as config:
        yield config


@pytest.mark.unit
@pytest.mark.kubernetes
class TestKubernetesClientInitialization:
    """Test KubernetesClient initialization."""

    def test_builds_private_api_client(self, mock_config: MagicMock) -> None:
        """Each client should own an ApiClient built from its kubeconfig."""
        client = KubernetesClient("/tmp/kubeconfig", context="eks", namespace="Test")

        mock_config.new_client_from_config.assert_called_once_with(
            config_file="/tmp/kubeconfig",
            context="eks",
        )
        assert client.default_namespace == "Test"
        assert client.kubeconfig == "/tmp/kubeconfig"
        assert client.context == "eks"
        assert client._retries == 3

    def test_unloadable_kubeconfig(self) -> None:
        """A missing kubeconfig should surface as a connection error."""
        with pytest.raises(KubernetesConnectionError, match="Cannot load Kubernetes configuration"):
            KubernetesClient("/nonexistent/kubeconfig")

    def test_lazy_api_groups(self, mock_config: MagicMock) -> None:
        """API groups should be created once, on first access."""
        client = KubernetesClient("/tmp/kubeconfig")

        with patch("kubernetes.client.AppsV1Api") as apps:
            first = client.apps_v1
            second = client.apps_v1

        assert first is second
        apps.assert_called_once_with(mock_config.new_client_from_config.return_value)

    def test_context_manager_closes(self, mock_config: MagicMock) -> None:
        """Leaving the context should close the ApiClient."""
        api_client = mock_config.new_client_from_config.return_value

        with KubernetesClient("/tmp/kubeconfig"):
            pass

        api_client.close.assert_called_once()


@pytest.mark.unit
@pytest.mark.kubernetes
class TestTranslateApiException:
    """Test translation of kubernetes client errors."""

    @staticmethod
    def _api_exception(status: int, reason: str = "reason") -> Exception:
        from kubernetes.client import ApiException

        return ApiException(status=status, reason=reason)

    @pytest.mark.parametrize(
        ("status", "expected"),
        [
            (401, KubernetesAuthError),
            (403, KubernetesAuthError),
            (404, KubernetesNotFoundError),
            (400, KubernetesValidationError),
            (422, KubernetesValidationError),
            (502, KubernetesConnectionError),
            (503, KubernetesConnectionError),
            (504, KubernetesConnectionError),
        ],
    )
    def test_status_mapping(self, status: int, expected: type[KubernetesError]) -> None:
        """HTTP status codes should map onto typed errors."""
        error = KubernetesClient.translate_api_exception(
            self._api_exception(status), "Deployment", "web", "Test"
        )
        assert isinstance(error, expected)

    def test_not_found_carries_resource(self) -> None:
        """404s should name the missing resource."""
        error = KubernetesClient.translate_api_exception(
            self._api_exception(404), "Deployment", "web", "Test"
        )
        assert str(error) == "Deployment/web not found (HTTP 404) [Deployment/web in Test]"

    def test_unexpected_status(self) -> None:
        """Other statuses should become a plain KubernetesError."""
        error = KubernetesClient.translate_api_exception(self._api_exception(500, "boom"))
        assert type(error) is KubernetesError
        assert error.status_code == 500

    def test_conflict_is_plain_error(self) -> None:
        """A 409 has no typed error and keeps the object it concerned."""
        error = KubernetesClient.translate_api_exception(
            self._api_exception(409, "Conflict"), "Secret", "creds", "Test"
        )
        assert type(error) is KubernetesError
        assert error.resource == "Secret/creds"
        assert error.namespace == "Test"

    def test_network_error(self) -> None:
        """urllib3 failures mean the API server is unreachable."""
        from urllib3.exceptions import MaxRetryError

        error = KubernetesClient.translate_api_exception(MaxRetryError(None, "/api"))
        assert isinstance(error, KubernetesConnectionError)

    def test_passes_through_translated_errors(self) -> None:
        """Already translated errors should be returned unchanged."""
        original = KubernetesNotFoundError()
        assert KubernetesClient.translate_api_exception(original) is original


@pytest.mark.unit
@pytest.mark.kubernetes
class TestRetryDecorator:
    """Test the tenacity retry decorator."""

    def test_retries_connection_errors(self, mock_config: MagicMock) -> None:
        """Connection errors should be retried up to the configured attempts."""
        client = KubernetesClient("/tmp/kubeconfig", retry_attempts=2)
        fn = MagicMock(side_effect=[KubernetesConnectionError(), "ok"])

        with patch("time.sleep"):
            result = client.make_retry_decorator()(fn)()

        assert result == "ok"
        assert fn.call_count == 2

    def test_does_not_retry_other_errors(self, mock_config: MagicMock) -> None:
        """Non-transient errors should propagate immediately."""
        client = KubernetesClient("/tmp/kubeconfig")
        fn = MagicMock(side_effect=KubernetesNotFoundError())

        with pytest.raises(KubernetesNotFoundError):
            client.make_retry_decorator()(fn)()

        fn.assert_called_once()
