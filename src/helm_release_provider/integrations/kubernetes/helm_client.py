"""Helm CLI driver for the release lifecycle.

Runs the ``helm`` binary as a subprocess for install, upgrade, uninstall,
status, list, manifest and chart pulls. Helm reports failures only as
stderr text, so failed commands are matched against known fragments and
raised as typed errors the provider can classify.
"""

from __future__ import annotations

import json
import shutil
import subprocess
from pathlib import Path

import structlog

from helm_release_provider.integrations.kubernetes.exceptions import (
    KubernetesConnectionError,
    KubernetesError,
)
from helm_release_provider.integrations.kubernetes.models.helm import (
    HelmRelease,
    HelmReleaseStatus,
)

logger = structlog.get_logger()

HELM_TIMEOUT_SECONDS = 300
QUERY_TIMEOUT_SECONDS = 30


class HelmError(KubernetesError):
    """A helm invocation failed; ``stderr`` holds Helm's own words."""

    def __init__(self, message: str, stderr: str | None = None) -> None:
        super().__init__(message=message)
        self.stderr = stderr


class HelmBinaryNotFoundError(HelmError):
    """No usable helm binary at the configured path or on PATH."""

    def __init__(self, location: str | None = None) -> None:
        super().__init__(f"helm binary not found at {location or 'PATH'}")


class HelmCommandError(HelmError):
    """helm exited non-zero for a reason without a more specific class."""


class HelmReleaseNotFoundError(HelmCommandError):
    """The named release does not exist in the namespace."""


class HelmReleaseExistsError(HelmCommandError):
    """Install hit a release name that is still in use."""


class HelmChartNotFoundError(HelmCommandError):
    """The chart reference could not be located or downloaded."""


class HelmOperationInProgressError(HelmCommandError):
    """Another install, upgrade or rollback of the release is still running."""


# Lower-cased stderr fragments, checked in order. Unreachable comes first:
# Helm wraps cluster errors in whatever command was running.
_STDERR_CLASSES: tuple[tuple[tuple[str, ...], type[HelmCommandError] | None], ...] = (
    (
        (
            "kubernetes cluster unreachable",
            "connection refused",
            "i/o timeout",
            "no such host",
            "tls handshake timeout",
        ),
        None,
    ),
    (("release: not found", "release not loaded"), HelmReleaseNotFoundError),
    (("cannot re-use a name that is still in use",), HelmReleaseExistsError),
    (
        ("another operation (install/upgrade/rollback) is in progress",),
        HelmOperationInProgressError,
    ),
    (
        (
            "failed to download",
            "no chart version found",
            "no chart name found",
            "not a valid chart repository",
            "chart.yaml file is missing",
        ),
        HelmChartNotFoundError,
    ),
)


def classify_stderr(stderr: str, returncode: int) -> KubernetesError:
    """Pick the error class for a failed helm command from its stderr."""
    detail = stderr.strip() or f"exit code {returncode}"
    message = f"Helm command failed: {detail}"
    lowered = detail.lower()

    for markers, error_class in _STDERR_CLASSES:
        if any(marker in lowered for marker in markers):
            if error_class is None:
                return KubernetesConnectionError(message=message)
            return error_class(message, stderr=stderr)
    # missing local archive: Error: path "/tmp/x.tgz" not found
    if 'path "' in lowered and "not found" in lowered:
        return HelmChartNotFoundError(message, stderr=stderr)
    return HelmCommandError(message, stderr=stderr)


class HelmClient:
    """Runs helm commands against one cluster.

    ``kubeconfig`` and ``kube_context`` are appended to every command, so
    an instance never touches a cluster other than the one it was built for.
    """

    def __init__(
        self,
        binary_path: str | None = None,
        *,
        kubeconfig: str | None = None,
        kube_context: str | None = None,
        timeout: int = HELM_TIMEOUT_SECONDS,
    ) -> None:
        """Resolve the helm binary.

        Raises:
            HelmBinaryNotFoundError: If ``binary_path`` does not exist or,
                without one, helm is not on PATH.
        """
        self._binary = self._locate(binary_path)
        self._kubeconfig = kubeconfig
        self._kube_context = kube_context
        self._timeout = timeout
        self._log = logger.bind(helm=self._binary, kube_context=kube_context)

    @staticmethod
    def _locate(binary_path: str | None) -> str:
        if binary_path:
            path = Path(binary_path)
            if not path.exists():
                raise HelmBinaryNotFoundError(binary_path)
            return str(path.resolve())
        found = shutil.which("helm")
        if not found:
            raise HelmBinaryNotFoundError()
        return found

    def _run(self, *args: str, timeout: int | None = None) -> str:
        """Run ``helm <args>`` on this client's cluster and return stdout."""
        timeout = timeout or self._timeout
        cmd = [self._binary, *args]
        if self._kubeconfig:
            cmd += ["--kubeconfig", self._kubeconfig]
        if self._kube_context:
            cmd += ["--kube-context", self._kube_context]
        self._log.debug("helm_command", args=list(args))

        try:
            completed = subprocess.run(
                cmd, capture_output=True, text=True, check=True, timeout=timeout
            )
        except subprocess.CalledProcessError as e:
            raise classify_stderr(e.stderr or "", e.returncode) from e
        except subprocess.TimeoutExpired as e:
            raise KubernetesConnectionError(
                message=f"helm {args[0]} timed out after {timeout}s", original_error=e
            ) from e
        return completed.stdout

    @staticmethod
    def _scope(namespace: str | None) -> list[str]:
        return ["--namespace", namespace] if namespace else []

    def _deploy(
        self,
        verb: str,
        release_name: str,
        chart: str,
        namespace: str | None,
        values_files: list[str] | None,
        extra: list[str],
    ) -> str:
        args = [verb, release_name, chart, *self._scope(namespace)]
        for path in values_files or []:
            args += ["--values", path]
        stdout = self._run(*args, *extra)
        self._log.info(f"helm_{verb}_done", release=release_name, namespace=namespace)
        return stdout

    def install(
        self,
        release_name: str,
        chart: str,
        *,
        namespace: str | None = None,
        values_files: list[str] | None = None,
        create_namespace: bool = False,
    ) -> str:
        """Install ``chart`` as ``release_name``.

        Raises:
            HelmReleaseExistsError: If the name is already taken.
        """
        extra = ["--create-namespace"] if create_namespace else []
        return self._deploy("install", release_name, chart, namespace, values_files, extra)

    def upgrade(
        self,
        release_name: str,
        chart: str,
        *,
        namespace: str | None = None,
        values_files: list[str] | None = None,
        reset_values: bool = False,
    ) -> str:
        """Upgrade ``release_name`` to ``chart``.

        With ``reset_values`` the previous revision's values are discarded,
        so overrides removed from the model really disappear.
        """
        extra = ["--reset-values"] if reset_values else []
        return self._deploy("upgrade", release_name, chart, namespace, values_files, extra)

    def uninstall(self, release_name: str, *, namespace: str | None = None) -> str:
        """Remove a release.

        Raises:
            HelmReleaseNotFoundError: If the release does not exist.
        """
        stdout = self._run("uninstall", release_name, *self._scope(namespace))
        self._log.info("helm_uninstall_done", release=release_name, namespace=namespace)
        return stdout

    def status(self, release_name: str, *, namespace: str | None = None) -> HelmReleaseStatus:
        """Current revision, state and rendered manifest of a release.

        Raises:
            HelmReleaseNotFoundError: If the release does not exist.
        """
        stdout = self._run(
            "status",
            release_name,
            "--output",
            "json",
            *self._scope(namespace),
            timeout=QUERY_TIMEOUT_SECONDS,
        )
        return HelmReleaseStatus.from_json(json.loads(stdout), release_name, namespace)

    def list_releases(
        self,
        *,
        namespace: str | None = None,
        filter_pattern: str | None = None,
    ) -> list[HelmRelease]:
        """Releases in ``namespace``, optionally narrowed by a name regex."""
        args = ["list", "--output", "json", *self._scope(namespace)]
        if filter_pattern:
            args += ["--filter", filter_pattern]
        stdout = self._run(*args, timeout=QUERY_TIMEOUT_SECONDS)
        return [HelmRelease.from_json(entry) for entry in json.loads(stdout.strip() or "[]")]

    def get_manifest(self, release_name: str, *, namespace: str | None = None) -> str:
        """The multi-document YAML the release rendered."""
        return self._run(
            "get", "manifest", release_name, *self._scope(namespace), timeout=QUERY_TIMEOUT_SECONDS
        )

    def pull(
        self,
        chart: str,
        destination: str,
        *,
        version: str | None = None,
        repo_url: str | None = None,
    ) -> str:
        """Download a chart archive into ``destination``.

        Raises:
            HelmChartNotFoundError: If the chart cannot be found.
        """
        args = ["pull", chart, "--destination", destination]
        if version:
            args += ["--version", version]
        if repo_url:
            args += ["--repo", repo_url]
        stdout = self._run(*args, timeout=QUERY_TIMEOUT_SECONDS)
        self._log.info("helm_chart_pulled", chart=chart, version=version, repo=repo_url)
        return stdout
