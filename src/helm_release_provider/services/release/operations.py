"""Helm and Kubernetes operation wrappers.

One method per primitive. Each builds an :class:`Event`, dispatches it on
the route chosen for this invocation, and turns the response envelope
back into typed results or typed errors.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog
import yaml

from helm_release_provider.exceptions import (
    InvalidConfigurationError,
    ReleaseAlreadyAbsentError,
    error_from_dict,
)
from helm_release_provider.integrations.kubernetes.models.helm import (
    HelmRelease,
    PendingResources,
    ReleaseData,
    ResourceDescriptor,
)
from helm_release_provider.services.release.models import Action, Event, Inputs, ReleaseModel

if TYPE_CHECKING:
    from helm_release_provider.services.release.charts import ChartResolver
    from helm_release_provider.services.release.routing import ExecutionRoute

logger = structlog.get_logger()


def build_value_opts(model: ReleaseModel) -> dict[str, Any]:
    """Merge ``ValueYaml`` and dotted ``Values`` overrides into one values map.

    ``Values`` entries win over ``ValueYaml``, the same precedence Helm
    gives ``--set`` over ``--values``.

    Raises:
        InvalidConfigurationError: If ``ValueYaml`` is not a YAML mapping.
    """
    values: dict[str, Any] = {}
    if model.value_yaml:
        try:
            loaded = yaml.safe_load(model.value_yaml)
        except yaml.YAMLError as e:
            raise InvalidConfigurationError(f"ValueYaml is not valid YAML: {e}") from e
        if loaded is not None and not isinstance(loaded, dict):
            raise InvalidConfigurationError("ValueYaml must be a YAML mapping")
        values.update(loaded or {})

    for key, value in (model.values or {}).items():
        target = values
        *parents, leaf = key.split(".")
        for part in parents:
            child = target.get(part)
            if not isinstance(child, dict):
                child = target[part] = {}
            target = child
        target[leaf] = value
    return values


class ReleaseOperations:
    """Release primitives executed on one route."""

    def __init__(
        self,
        route: ExecutionRoute,
        chart_resolver: ChartResolver,
        *,
        kubeconfig: str | None = None,
    ) -> None:
        self._route = route
        self._charts = chart_resolver
        self._kubeconfig = kubeconfig

    @property
    def route(self) -> ExecutionRoute:
        return self._route

    def install(self, model: ReleaseModel) -> ReleaseData:
        """Install the release.

        A release left behind by an earlier attempt of the same install is
        reported as installed.
        """
        return ReleaseData.from_dict(self._call(self._write_event(Action.INSTALL, model)) or {})

    def upgrade(self, model: ReleaseModel) -> ReleaseData:
        return ReleaseData.from_dict(self._call(self._write_event(Action.UPDATE, model)) or {})

    def uninstall(self, model: ReleaseModel) -> None:
        """Uninstall the release; an absent release counts as uninstalled."""
        try:
            self._call(self._event(Action.UNINSTALL, model))
        except ReleaseAlreadyAbsentError as e:
            logger.info(
                "release_already_absent",
                release=model.name,
                namespace=model.namespace,
                detail=e.message,
            )

    def status(self, model: ReleaseModel) -> ReleaseData:
        return ReleaseData.from_dict(self._call(self._event(Action.CHECK_STATUS, model)) or {})

    def list_releases(self, model: ReleaseModel) -> list[HelmRelease]:
        data = self._call(self._event(Action.LIST_RELEASES, model)) or {}
        return [HelmRelease.from_json(r) for r in data.get("releases") or []]

    def pending_resources(
        self, model: ReleaseModel, release: ReleaseData | None = None
    ) -> PendingResources:
        event = self._event(Action.GET_PENDING_RESOURCES, model, release)
        return PendingResources.from_dict(self._call(event) or {})

    def manifest_resources(
        self, model: ReleaseModel, release: ReleaseData | None = None
    ) -> list[ResourceDescriptor]:
        data = self._call(self._event(Action.GET_MANIFEST_RESOURCES, model, release)) or {}
        return [ResourceDescriptor.from_dict(r) for r in data.get("resources") or []]

    # -----------------------------------------------------------------------
    # Helpers
    # -----------------------------------------------------------------------

    def _event(
        self,
        action: Action,
        model: ReleaseModel,
        release: ReleaseData | None = None,
        inputs: Inputs | None = None,
    ) -> Event:
        return Event(
            action=action,
            release_name=model.name,
            namespace=model.namespace or "default",
            kube_config=self._kubeconfig or model.kube_config,
            inputs=inputs,
            release_data={"manifest": release.manifest} if release and release.manifest else None,
        )

    def _write_event(self, action: Action, model: ReleaseModel) -> Event:
        if not model.name:
            raise InvalidConfigurationError(f"{action} requires a release name")
        # Chart problems surface before any cluster call
        details = self._charts.resolve(model)
        inputs = Inputs(chart_details=details, value_opts=build_value_opts(model))
        return self._event(action, model, inputs=inputs)

    def _call(self, event: Event) -> dict[str, Any] | None:
        log = logger.bind(
            action=str(event.action),
            release=event.release_name,
            namespace=event.namespace,
            remote=self._route.remote,
        )
        log.debug("dispatching_event")
        response = self._route.dispatch(event)
        if error := response.get("Error"):
            raise error_from_dict(error)
        return response.get("Data")
