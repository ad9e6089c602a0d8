"""Chart resolution.

Turns a chart reference from the release model into a local chart archive
that Helm can install. Supported references:

- ``http(s)://.../chart-1.0.0.tgz``: downloaded with httpx
- a local archive or chart directory
- ``repo/chart``: fetched with ``helm pull`` (``Repository`` supplies the
  repo URL; ``stable/`` charts default to the archived stable repository)
"""

from __future__ import annotations

import re
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING, Protocol
from urllib.parse import urlparse

import httpx
import structlog
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from helm_release_provider.exceptions import (
    ChartNotFoundError,
    InvalidConfigurationError,
    UnknownProviderError,
)
from helm_release_provider.integrations.kubernetes.helm_client import (
    HelmChartNotFoundError,
    HelmCommandError,
)
from helm_release_provider.services.release.models import ChartDetails, ReleaseModel

if TYPE_CHECKING:
    from helm_release_provider.integrations.kubernetes.helm_client import HelmClient

logger = structlog.get_logger()

DOWNLOAD_TIMEOUT_SECONDS = 60
DEFAULT_REPOSITORIES = {"stable": "https://charts.helm.sh/stable"}
_VERSION_SUFFIX = re.compile(r"-v?\d+\.\d+\.\d+[\w.+-]*$")


class ChartResolver(Protocol):
    """Resolves a release model's chart reference to local chart details."""

    def resolve(self, model: ReleaseModel) -> ChartDetails: ...


def chart_name_from_reference(reference: str) -> str:
    """Derive the bare chart name from a reference.

    ``stable/coscale`` -> ``coscale``; ``https://host/hello-0.1.0.tgz`` -> ``hello``.
    """
    path = urlparse(reference).path if "://" in reference else reference
    base = path.rstrip("/").rsplit("/", 1)[-1]
    for suffix in (".tgz", ".tar.gz"):
        if base.endswith(suffix):
            base = base[: -len(suffix)]
    return _VERSION_SUFFIX.sub("", base) or base


class DefaultChartResolver:
    """Resolves charts from URLs, local paths, and Helm repositories."""

    def __init__(
        self,
        helm_client: HelmClient | None = None,
        http_client: httpx.Client | None = None,
        work_dir: str | None = None,
    ) -> None:
        self._helm = helm_client
        self._http = http_client
        self._work_dir = work_dir

    def resolve(self, model: ReleaseModel) -> ChartDetails:
        """Resolve the model's chart to a local archive.

        Raises:
            InvalidConfigurationError: If the model has no chart.
            ChartNotFoundError: If the chart does not exist at its source.
        """
        reference = (model.chart or "").strip()
        if not reference:
            raise InvalidConfigurationError("Chart is required")

        name = chart_name_from_reference(reference)
        log = logger.bind(chart=reference)

        if reference.startswith(("http://", "https://")):
            local_path = self._download(reference)
        elif Path(reference).expanduser().exists():
            local_path = str(Path(reference).expanduser().resolve())
        elif "/" in reference and "://" not in reference:
            local_path = self._pull(reference, model.version, model.repository)
        else:
            raise ChartNotFoundError(f"chart reference {reference!r} could not be resolved")

        log.info("chart_resolved", chart_name=name, local_path=local_path)
        return ChartDetails(
            chart_name=name,
            chart=reference,
            version=model.version,
            local_path=local_path,
        )

    def _destination(self) -> Path:
        return Path(tempfile.mkdtemp(prefix="helm-chart-", dir=self._work_dir))

    @retry(
        retry=retry_if_exception_type((httpx.ConnectError, httpx.TimeoutException)),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        reraise=True,
    )
    def _fetch(self, url: str) -> httpx.Response:
        if self._http is not None:
            return self._http.get(url, follow_redirects=True)
        with httpx.Client(timeout=httpx.Timeout(DOWNLOAD_TIMEOUT_SECONDS)) as client:
            return client.get(url, follow_redirects=True)

    def _download(self, url: str) -> str:
        try:
            response = self._fetch(url)
        except httpx.HTTPError as e:
            raise UnknownProviderError(f"failed to download chart {url}: {e}") from e

        if response.status_code in (401, 403, 404):
            raise ChartNotFoundError(f"chart {url} not found (HTTP {response.status_code})")
        if response.status_code >= 400:
            raise UnknownProviderError(
                f"failed to download chart {url}: HTTP {response.status_code}"
            )

        filename = urlparse(url).path.rstrip("/").rsplit("/", 1)[-1] or "chart.tgz"
        target = self._destination() / filename
        target.write_bytes(response.content)
        return str(target)

    def _pull(self, reference: str, version: str | None, repository: str | None) -> str:
        if self._helm is None:
            raise InvalidConfigurationError("a Helm client is required to pull repository charts")

        repo_alias, _, chart = reference.partition("/")
        repo_url = repository or DEFAULT_REPOSITORIES.get(repo_alias)
        destination = self._destination()
        try:
            if repo_url:
                self._helm.pull(chart, str(destination), version=version, repo_url=repo_url)
            else:
                self._helm.pull(reference, str(destination), version=version)
        except HelmChartNotFoundError as e:
            raise ChartNotFoundError(e.message) from e
        except HelmCommandError as e:
            raise UnknownProviderError(e.message) from e

        archives = sorted(destination.glob("*.tgz"))
        if not archives:
            raise ChartNotFoundError(f"helm pull produced no archive for {reference!r}")
        return str(archives[0])
