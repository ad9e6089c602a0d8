"""Unit tests for HelmClient."""

from __future__ import annotations

import json
import subprocess
from collections.abc import Generator
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from helm_release_provider.exceptions import (
    ClusterUnreachableError,
    ReleaseNotStableError,
    classify_error,
)
from helm_release_provider.integrations.kubernetes.exceptions import KubernetesConnectionError
from helm_release_provider.integrations.kubernetes.helm_client import (
    HelmBinaryNotFoundError,
    HelmChartNotFoundError,
    HelmClient,
    HelmCommandError,
    HelmOperationInProgressError,
    HelmReleaseExistsError,
    HelmReleaseNotFoundError,
    classify_stderr,
)


@pytest.fixture
def helm_client() -> HelmClient:
    """HelmClient with binary detection patched."""
    with patch("shutil.which", return_value="/usr/local/bin/helm"):
        return HelmClient()


@pytest.fixture
def mock_run() -> Generator[MagicMock]:
    """Patch subprocess.run with a successful, empty result."""
    with patch("subprocess.run") as run:
        run.return_value = MagicMock(stdout="", stderr="", returncode=0)
        yield run


def _failure(stderr: str) -> subprocess.CalledProcessError:
    return subprocess.CalledProcessError(returncode=1, cmd=["helm"], stderr=stderr)


def _cmd(mock_run: MagicMock) -> list[str]:
    return list(mock_run.call_args[0][0])


def _flag(cmd: list[str], name: str) -> str:
    return cmd[cmd.index(name) + 1]


@pytest.mark.unit
@pytest.mark.kubernetes
class TestLocateBinary:
    """Resolving the helm binary."""

    def test_found_on_path(self) -> None:
        """Without an explicit path helm comes from PATH."""
        with patch("shutil.which", return_value="/usr/local/bin/helm"):
            assert HelmClient()._binary == "/usr/local/bin/helm"

    def test_missing_from_path(self) -> None:
        """No helm on PATH is a HelmBinaryNotFoundError."""
        with patch("shutil.which", return_value=None), pytest.raises(HelmBinaryNotFoundError):
            HelmClient()

    def test_explicit_path(self, tmp_path: Path) -> None:
        """An existing explicit path is used as is."""
        binary = tmp_path / "helm"
        binary.touch()

        assert HelmClient(binary_path=str(binary))._binary == str(binary.resolve())

    def test_explicit_path_missing(self) -> None:
        """A configured path that does not exist is named in the error."""
        with pytest.raises(HelmBinaryNotFoundError, match="/opt/helm"):
            HelmClient(binary_path="/opt/helm")


@pytest.mark.unit
@pytest.mark.kubernetes
class TestClusterPinning:
    """Every command targets the client's kubeconfig and context."""

    def test_appends_kubeconfig_and_context(self, mock_run: MagicMock) -> None:
        """--kubeconfig and --kube-context follow the command."""
        with patch("shutil.which", return_value="/usr/local/bin/helm"):
            client = HelmClient(kubeconfig="/tmp/kubeconfig-x.yaml", kube_context="eks")

        client.list_releases(namespace="Test")

        cmd = _cmd(mock_run)
        assert _flag(cmd, "--kubeconfig") == "/tmp/kubeconfig-x.yaml"
        assert _flag(cmd, "--kube-context") == "eks"

    def test_no_cluster_args_when_unset(
        self, mock_run: MagicMock, helm_client: HelmClient
    ) -> None:
        """Without a kubeconfig helm uses its own discovery."""
        helm_client.list_releases()

        cmd = _cmd(mock_run)
        assert "--kubeconfig" not in cmd
        assert "--kube-context" not in cmd

    def test_lifecycle_commands_use_client_timeout(self, mock_run: MagicMock) -> None:
        """Install and upgrade run under the configured timeout."""
        with patch("shutil.which", return_value="/usr/local/bin/helm"):
            client = HelmClient(timeout=42)

        client.install("Test", "/tmp/chart.tgz")

        assert mock_run.call_args.kwargs["timeout"] == 42

    def test_queries_use_short_timeout(self, mock_run: MagicMock) -> None:
        """Read-only queries do not wait for the long lifecycle timeout."""
        with patch("shutil.which", return_value="/usr/local/bin/helm"):
            client = HelmClient(timeout=600)

        client.get_manifest("Test")

        assert mock_run.call_args.kwargs["timeout"] == 30


@pytest.mark.unit
@pytest.mark.kubernetes
class TestClassifyStderr:
    """Helm stderr is turned into the most specific error."""

    @pytest.mark.parametrize(
        ("stderr", "expected"),
        [
            (
                "Error: Kubernetes cluster unreachable: Get https://x: dial tcp: i/o timeout",
                KubernetesConnectionError,
            ),
            (
                "Error: uninstall: Release not loaded: one: release: not found",
                HelmReleaseNotFoundError,
            ),
            ("Error: cannot re-use a name that is still in use", HelmReleaseExistsError),
            (
                "Error: UPGRADE FAILED: another operation "
                "(install/upgrade/rollback) is in progress",
                HelmOperationInProgressError,
            ),
            ('Error: failed to download "stable/missing"', HelmChartNotFoundError),
            ('Error: path "/tmp/chart.tgz" not found', HelmChartNotFoundError),
            ("Error: something else entirely", HelmCommandError),
        ],
    )
    def test_classification(self, stderr: str, expected: type[Exception]) -> None:
        """Each known fragment maps onto its error class."""
        assert type(classify_stderr(stderr, 1)) is expected

    def test_empty_stderr_reports_exit_code(self) -> None:
        """Silent failures still say something."""
        assert "exit code 2" in str(classify_stderr("", 2))

    def test_failed_command_raises(self, mock_run: MagicMock, helm_client: HelmClient) -> None:
        """A non-zero exit raises the classified error with helm's stderr."""
        mock_run.side_effect = _failure("Error: cannot re-use a name that is still in use")

        with pytest.raises(HelmReleaseExistsError) as exc_info:
            helm_client.install("Test", "/tmp/chart.tgz")

        assert "cannot re-use" in (exc_info.value.stderr or "")

    def test_timeout(self, mock_run: MagicMock, helm_client: HelmClient) -> None:
        """A hung helm is treated as an unreachable cluster and retried."""
        mock_run.side_effect = subprocess.TimeoutExpired(cmd=["helm"], timeout=300)

        with pytest.raises(KubernetesConnectionError, match="helm install timed out") as exc_info:
            helm_client.install("Test", "/tmp/chart.tgz")

        error = classify_error(exc_info.value)
        assert isinstance(error, ClusterUnreachableError)
        assert error.retryable

    def test_operation_in_progress_is_retried(
        self, mock_run: MagicMock, helm_client: HelmClient
    ) -> None:
        """A concurrent upgrade of the same release re-polls instead of failing."""
        mock_run.side_effect = _failure(
            "Error: UPGRADE FAILED: another operation (install/upgrade/rollback) is in progress"
        )

        with pytest.raises(HelmOperationInProgressError) as exc_info:
            helm_client.upgrade("Test", "/tmp/chart.tgz")

        error = classify_error(exc_info.value)
        assert isinstance(error, ReleaseNotStableError)
        assert error.retryable


@pytest.mark.unit
@pytest.mark.kubernetes
class TestLifecycle:
    """install, upgrade and uninstall."""

    def test_install(self, mock_run: MagicMock, helm_client: HelmClient) -> None:
        """Install passes namespace, values and --create-namespace."""
        mock_run.return_value.stdout = "NAME: Test\n"

        stdout = helm_client.install(
            "Test",
            "/tmp/chart.tgz",
            namespace="Test",
            values_files=["/tmp/values.yaml"],
            create_namespace=True,
        )

        cmd = _cmd(mock_run)
        assert stdout == "NAME: Test\n"
        assert cmd[1:4] == ["install", "Test", "/tmp/chart.tgz"]
        assert _flag(cmd, "--namespace") == "Test"
        assert _flag(cmd, "--values") == "/tmp/values.yaml"
        assert "--create-namespace" in cmd

    def test_upgrade_resets_values(self, mock_run: MagicMock, helm_client: HelmClient) -> None:
        """Upgrade can drop the previous revision's values."""
        helm_client.upgrade("Test", "/tmp/chart.tgz", reset_values=True)

        cmd = _cmd(mock_run)
        assert cmd[1:3] == ["upgrade", "Test"]
        assert "--reset-values" in cmd
        assert "--install" not in cmd

    def test_uninstall(self, mock_run: MagicMock, helm_client: HelmClient) -> None:
        """Uninstall runs in the release namespace."""
        helm_client.uninstall("Test", namespace="Test")

        cmd = _cmd(mock_run)
        assert cmd[1:3] == ["uninstall", "Test"]
        assert _flag(cmd, "--namespace") == "Test"

    def test_uninstall_missing_release(
        self, mock_run: MagicMock, helm_client: HelmClient
    ) -> None:
        """An absent release raises HelmReleaseNotFoundError."""
        mock_run.side_effect = _failure(
            "Error: uninstall: Release not loaded: Test: release: not found"
        )

        with pytest.raises(HelmReleaseNotFoundError):
            helm_client.uninstall("Test")


@pytest.mark.unit
@pytest.mark.kubernetes
class TestQueries:
    """status, list and manifest."""

    def test_status(self, mock_run: MagicMock, helm_client: HelmClient) -> None:
        """helm status JSON becomes a HelmReleaseStatus."""
        mock_run.return_value.stdout = json.dumps(
            {
                "name": "Test",
                "namespace": "Test",
                "version": 3,
                "info": {"status": "deployed", "description": "Upgrade complete"},
                "manifest": "kind: Service\n",
            }
        )

        status = helm_client.status("Test", namespace="Test")

        assert status.status == "deployed"
        assert status.revision == 3
        assert status.manifest == "kind: Service\n"

    def test_list_with_filter(self, mock_run: MagicMock, helm_client: HelmClient) -> None:
        """The name filter is passed through and rows are parsed."""
        mock_run.return_value.stdout = json.dumps(
            [
                {
                    "name": "Test",
                    "namespace": "Test",
                    "revision": "1",
                    "status": "deployed",
                    "chart": "coscale-0.1.0",
                    "app_version": "1.0",
                    "updated": "2024-01-01",
                }
            ]
        )

        releases = helm_client.list_releases(namespace="Test", filter_pattern="^Test$")

        assert [r.name for r in releases] == ["Test"]
        assert releases[0].revision == 1
        assert _flag(_cmd(mock_run), "--filter") == "^Test$"

    def test_list_blank_output(self, mock_run: MagicMock, helm_client: HelmClient) -> None:
        """Blank output means no releases."""
        mock_run.return_value.stdout = "\n"

        assert helm_client.list_releases() == []

    def test_get_manifest(self, mock_run: MagicMock, helm_client: HelmClient) -> None:
        """The manifest comes back as raw YAML."""
        mock_run.return_value.stdout = "---\nkind: ConfigMap\n"

        assert helm_client.get_manifest("Test", namespace="Test") == "---\nkind: ConfigMap\n"
        assert _cmd(mock_run)[1:4] == ["get", "manifest", "Test"]


@pytest.mark.unit
@pytest.mark.kubernetes
class TestPull:
    """Downloading chart archives."""

    def test_pull_from_repository(self, mock_run: MagicMock, helm_client: HelmClient) -> None:
        """Destination, version and repository URL are passed to helm pull."""
        helm_client.pull(
            "coscale", "/tmp/out", version="1.0.0", repo_url="https://charts.helm.sh/stable"
        )

        cmd = _cmd(mock_run)
        assert cmd[1:3] == ["pull", "coscale"]
        assert _flag(cmd, "--destination") == "/tmp/out"
        assert _flag(cmd, "--version") == "1.0.0"
        assert _flag(cmd, "--repo") == "https://charts.helm.sh/stable"

    def test_pull_missing_chart(self, mock_run: MagicMock, helm_client: HelmClient) -> None:
        """An unknown chart raises HelmChartNotFoundError."""
        mock_run.side_effect = _failure(
            'Error: chart "nope" version "" not found: no chart name found'
        )

        with pytest.raises(HelmChartNotFoundError):
            helm_client.pull("nope", "/tmp/out")
