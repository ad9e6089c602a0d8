"""In-process execution of release events.

``ReleaseExecutor`` runs one :class:`Event` against a Helm client and a
Kubernetes client. The local route calls it directly; the proxy function
calls the very same executor inside the VPC, so both paths share one
implementation and one result shape.
"""

from __future__ import annotations

import base64
import os
import tempfile
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol, TypeVar

import structlog
import yaml
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from helm_release_provider.config import ProviderConfig
from helm_release_provider.exceptions import (
    InvalidConfigurationError,
    ProviderError,
    classify_error,
)
from helm_release_provider.integrations.kubernetes.client import KubernetesClient
from helm_release_provider.integrations.kubernetes.exceptions import KubernetesConnectionError
from helm_release_provider.integrations.kubernetes.helm_client import (
    HelmClient,
    HelmError,
    HelmReleaseExistsError,
)
from helm_release_provider.integrations.kubernetes.models.helm import ReleaseData
from helm_release_provider.services.kubernetes.resource_manager import ReleaseResourceManager
from helm_release_provider.services.release.models import Action, ChartDetails, Event

logger = structlog.get_logger()

T = TypeVar("T")


@dataclass
class ReleaseClients:
    """Authenticated clients for one cluster.

    The Kubernetes client is created on first use since most actions only
    need Helm.
    """

    helm: HelmClient
    kube_factory: Callable[[], KubernetesClient]
    retry_attempts: int = 3
    temp_files: list[str] = field(default_factory=list)
    _kube: KubernetesClient | None = field(default=None, init=False, repr=False)

    @property
    def kube(self) -> KubernetesClient:
        if self._kube is None:
            self._kube = self.kube_factory()
        return self._kube

    def retrying(self, fn: Callable[..., T]) -> Callable[..., T]:
        """Wrap ``fn`` to retry transient cluster connection failures."""
        return retry(
            retry=retry_if_exception_type(KubernetesConnectionError),
            stop=stop_after_attempt(max(self.retry_attempts, 1)),
            wait=wait_exponential(multiplier=1, min=1, max=10),
            reraise=True,
        )(fn)

    def close(self) -> None:
        if self._kube is not None:
            self._kube.close()
            self._kube = None
        for path in self.temp_files:
            Path(path).unlink(missing_ok=True)
        self.temp_files.clear()


class ClientFactory(Protocol):
    """Builds cluster clients from kubeconfig content."""

    def __call__(self, kubeconfig: str | None, namespace: str) -> ReleaseClients: ...


class DefaultClientFactory:
    """Creates Helm and Kubernetes clients from kubeconfig text.

    Inline kubeconfig content is written to a private temporary file that
    is removed when the returned clients are closed. Without inline
    content the configured kubeconfig path is used.
    """

    def __init__(self, config: ProviderConfig) -> None:
        self._config = config

    def __call__(self, kubeconfig: str | None, namespace: str) -> ReleaseClients:
        temp_files = [self._materialize(kubeconfig)] if kubeconfig else []
        path = temp_files[0] if temp_files else self._config.kubeconfig
        try:
            helm = HelmClient(
                self._config.helm_binary,
                kubeconfig=path,
                timeout=self._config.helm_timeout,
            )
        except HelmError:
            for temp in temp_files:
                Path(temp).unlink(missing_ok=True)
            raise
        return ReleaseClients(
            helm=helm,
            kube_factory=lambda: KubernetesClient(
                path,
                namespace=namespace,
                retry_attempts=self._config.retry_attempts,
            ),
            retry_attempts=self._config.retry_attempts,
            temp_files=temp_files,
        )

    @staticmethod
    def _materialize(kubeconfig: str) -> str:
        fd, path = tempfile.mkstemp(prefix="kubeconfig-", suffix=".yaml")
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(kubeconfig)
        os.chmod(path, 0o600)
        return path


def response_envelope(
    data: dict[str, Any] | None = None, error: ProviderError | None = None
) -> dict[str, Any]:
    """Build the response shape shared by the local and remote routes."""
    return {"Data": data, "Error": error.to_dict() if error else None}


class ReleaseExecutor:
    """Executes release events in-process."""

    def __init__(self, client_factory: ClientFactory) -> None:
        self._client_factory = client_factory

    def execute(self, event: Event) -> dict[str, Any]:
        """Run ``event`` and return its response envelope.

        Classified failures are returned in the envelope rather than raised.
        """
        log = logger.bind(action=str(event.action), release=event.release_name)
        try:
            clients = self._client_factory(event.kube_config, event.namespace)
        except Exception as e:
            error = classify_error(e)
            log.warning("client_setup_failed", kind=str(error.kind), error=error.message)
            return response_envelope(error=error)

        try:
            data = self._dispatch(event, clients)
        except Exception as e:
            error = classify_error(e)
            log.warning("event_failed", kind=str(error.kind), error=error.message)
            return response_envelope(error=error)
        finally:
            clients.close()

        log.debug("event_succeeded")
        return response_envelope(data=data)

    def _dispatch(self, event: Event, clients: ReleaseClients) -> dict[str, Any] | None:
        handlers: dict[Action, Callable[[Event, ReleaseClients], dict[str, Any] | None]] = {
            Action.INSTALL: self._install,
            Action.UPDATE: self._upgrade,
            Action.UNINSTALL: self._uninstall,
            Action.CHECK_STATUS: self._status,
            Action.LIST_RELEASES: self._list,
            Action.GET_PENDING_RESOURCES: self._pending,
            Action.GET_MANIFEST_RESOURCES: self._resources,
        }
        return handlers[event.action](event, clients)

    # -----------------------------------------------------------------------
    # Actions
    # -----------------------------------------------------------------------

    def _install(self, event: Event, clients: ReleaseClients) -> dict[str, Any]:
        name = _require_name(event)
        with _chart_and_values(event) as (chart_path, values_file):
            try:
                clients.retrying(clients.helm.install)(
                    name,
                    chart_path,
                    namespace=event.namespace,
                    values_files=[values_file],
                    create_namespace=True,
                )
            except HelmReleaseExistsError:
                # Left behind by an earlier attempt of this same step
                logger.info("release_already_installed", release=name)
        return self._status(event, clients)

    def _upgrade(self, event: Event, clients: ReleaseClients) -> dict[str, Any]:
        name = _require_name(event)
        with _chart_and_values(event) as (chart_path, values_file):
            clients.retrying(clients.helm.upgrade)(
                name,
                chart_path,
                namespace=event.namespace,
                values_files=[values_file],
                reset_values=True,
            )
        return self._status(event, clients)

    def _uninstall(self, event: Event, clients: ReleaseClients) -> None:
        name = _require_name(event)
        clients.retrying(clients.helm.uninstall)(name, namespace=event.namespace)
        return None

    def _status(self, event: Event, clients: ReleaseClients) -> dict[str, Any]:
        name = _require_name(event)
        status = clients.retrying(clients.helm.status)(name, namespace=event.namespace)
        release = ReleaseData.from_status(status)
        if not release.manifest:
            release.manifest = clients.retrying(clients.helm.get_manifest)(
                name, namespace=event.namespace
            )
        return release.to_dict()

    def _list(self, event: Event, clients: ReleaseClients) -> dict[str, Any]:
        releases = clients.retrying(clients.helm.list_releases)(
            namespace=event.namespace,
            filter_pattern=f"^{event.release_name}$" if event.release_name else None,
        )
        return {"releases": [r.to_dict() for r in releases]}

    def _pending(self, event: Event, clients: ReleaseClients) -> dict[str, Any]:
        manifest = self._manifest_for(event, clients)
        manager = ReleaseResourceManager(clients.kube)
        check = clients.kube.make_retry_decorator()(manager.pending_resources)
        return check(manifest, event.namespace).to_dict()

    def _resources(self, event: Event, clients: ReleaseClients) -> dict[str, Any]:
        manifest = self._manifest_for(event, clients)
        manager = ReleaseResourceManager(clients.kube)
        resources = manager.manifest_resources(manifest, event.namespace)
        return {"resources": [r.to_dict() for r in resources]}

    def _manifest_for(self, event: Event, clients: ReleaseClients) -> str:
        if event.release_data and event.release_data.get("manifest"):
            return str(event.release_data["manifest"])
        name = _require_name(event)
        return clients.retrying(clients.helm.get_manifest)(name, namespace=event.namespace)


def _require_name(event: Event) -> str:
    if not event.release_name:
        raise InvalidConfigurationError(f"{event.action} requires a release name")
    return event.release_name


@contextmanager
def _chart_and_values(event: Event) -> Iterator[tuple[str, str]]:
    """Materialize the chart archive and values file for one Helm call."""
    inputs = event.inputs
    details = inputs.chart_details if inputs else None
    if details is None:
        raise InvalidConfigurationError(f"{event.action} requires chart details")

    with tempfile.TemporaryDirectory(prefix="helm-release-") as work_dir:
        chart_path = _chart_path(details, Path(work_dir))
        values_file = Path(work_dir) / "values.yaml"
        values_file.write_text(
            yaml.safe_dump(inputs.value_opts if inputs else {}, default_flow_style=False),
            encoding="utf-8",
        )
        yield chart_path, str(values_file)


def _chart_path(details: ChartDetails, work_dir: Path) -> str:
    if details.local_path and Path(details.local_path).exists():
        return details.local_path
    if details.archive:
        archive = work_dir / f"{details.chart_name}.tgz"
        archive.write_bytes(base64.b64decode(details.archive))
        return str(archive)
    raise InvalidConfigurationError(f"chart {details.chart!r} has no local archive")
