"""Shared plumbing for managers that read release objects from a cluster."""

from __future__ import annotations

from typing import TYPE_CHECKING, NoReturn

from helm_release_provider.logging.config import get_logger

if TYPE_CHECKING:
    from helm_release_provider.integrations.kubernetes.client import KubernetesClient


class K8sBaseManager:
    """Holds the cluster client and a logger tagged with ``_entity_name``."""

    _entity_name: str = ""

    def __init__(self, client: KubernetesClient) -> None:
        self._client = client
        self._log = get_logger(__name__, entity=self._entity_name)

    def _resolve_namespace(self, namespace: str | None) -> str:
        return namespace or self._client.default_namespace

    def _handle_api_error(
        self,
        e: Exception,
        kind: str | None = None,
        name: str | None = None,
        namespace: str | None = None,
    ) -> NoReturn:
        """Re-raise ``e`` as the matching :class:`KubernetesError`."""
        raise self._client.translate_api_exception(e, kind, name, namespace) from e
