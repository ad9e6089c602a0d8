"""Execution routes for release events.

A route is chosen once per invocation. ``LocalRoute`` runs events
in-process; ``RemoteRoute`` ships them to the proxy function inside the
cluster's VPC. Both return the same ``{"Data", "Error"}`` envelope, so the
operation wrappers never branch on where an event ran.
"""

from __future__ import annotations

import base64
import hashlib
import json
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

import structlog

from helm_release_provider.exceptions import InvalidConfigurationError, ProxyDispatchError
from helm_release_provider.services.release.models import Event, ReleaseModel

if TYPE_CHECKING:
    from helm_release_provider.integrations.aws.lambda_client import (
        LambdaInvoker,
        ProxyFunctionManager,
    )
    from helm_release_provider.services.release.executor import ReleaseExecutor

logger = structlog.get_logger()

DEFAULT_FUNCTION_PREFIX = "helm-provider-proxy-"


class ExecutionRoute(Protocol):
    """Where release events are executed."""

    remote: bool

    def prepare(self) -> bool:
        """Make the route usable; False means not ready yet, poll again."""
        ...

    def dispatch(self, event: Event) -> dict[str, Any]:
        """Execute ``event`` and return its response envelope."""
        ...

    def teardown(self) -> None:
        """Release route resources once the release is gone."""
        ...


class LocalRoute:
    """Runs events in this process."""

    remote = False

    def __init__(self, executor: ReleaseExecutor) -> None:
        self._executor = executor

    def prepare(self) -> bool:
        return True

    def dispatch(self, event: Event) -> dict[str, Any]:
        return self._executor.execute(event)

    def teardown(self) -> None:
        return None


class RemoteRoute:
    """Sends events to the proxy function through Lambda.

    Chart archives resolved on this side are embedded in the event as
    base64, since the proxy cannot see the local filesystem.
    """

    remote = True

    def __init__(
        self,
        invoker: LambdaInvoker,
        function_name: str,
        *,
        manager: ProxyFunctionManager | None = None,
        subnet_ids: list[str] | None = None,
        security_group_ids: list[str] | None = None,
    ) -> None:
        self._invoker = invoker
        self._manager = manager
        self.function_name = function_name
        self._subnet_ids = subnet_ids or []
        self._security_group_ids = security_group_ids or []

    def prepare(self) -> bool:
        if self._manager is None:
            return True
        self._manager.ensure_function(
            self.function_name, self._subnet_ids, self._security_group_ids
        )
        return self._manager.is_ready(self.function_name)

    def dispatch(self, event: Event) -> dict[str, Any]:
        payload = _embed_chart_archive(event).to_wire()
        response = self._invoker.invoke(self.function_name, payload)
        if "Data" not in response and "Error" not in response:
            raise ProxyDispatchError(
                f"proxy function {self.function_name} returned an unexpected response"
            )
        return response

    def teardown(self) -> None:
        if self._manager is not None:
            self._manager.destroy(self.function_name)


def _embed_chart_archive(event: Event) -> Event:
    details = event.inputs.chart_details if event.inputs else None
    if details is None or details.archive or not details.local_path:
        return event

    path = Path(details.local_path)
    if not path.is_file():
        raise InvalidConfigurationError(
            f"chart {details.chart!r} must be a packaged archive to run through the proxy"
        )
    archive = base64.b64encode(path.read_bytes()).decode("ascii")
    inputs = event.inputs.model_copy(
        update={"chart_details": details.model_copy(update={"archive": archive})}
    )
    return event.model_copy(update={"inputs": inputs})


def proxy_function_name(model: ReleaseModel, prefix: str = DEFAULT_FUNCTION_PREFIX) -> str:
    """Deterministic proxy function name for a release.

    Derived from cluster, namespace, release name and network settings so
    every poll of the same release addresses the same function.
    """
    vpc = model.vpc_configuration
    key = json.dumps(
        {
            "ClusterID": model.cluster_id or "",
            "Namespace": model.namespace or "default",
            "Name": model.name or "",
            "SubnetIds": sorted(vpc.subnet_ids) if vpc else [],
            "SecurityGroupIds": sorted(vpc.security_group_ids) if vpc else [],
        },
        sort_keys=True,
        separators=(",", ":"),
    )
    return f"{prefix}{hashlib.sha256(key.encode('utf-8')).hexdigest()[:12]}"


def select_route(
    model: ReleaseModel,
    *,
    executor: ReleaseExecutor,
    invoker: LambdaInvoker | None = None,
    manager: ProxyFunctionManager | None = None,
    function_prefix: str = DEFAULT_FUNCTION_PREFIX,
) -> ExecutionRoute:
    """Pick the route for this invocation from the model's network settings.

    Raises:
        InvalidConfigurationError: If the release needs the proxy but no
            Lambda invoker is available.
    """
    if not model.network_isolated:
        return LocalRoute(executor)

    if invoker is None:
        raise InvalidConfigurationError("VPCConfiguration requires a Lambda invoker")

    vpc = model.vpc_configuration
    name = proxy_function_name(model, function_prefix)
    logger.debug("selected_remote_route", function=name)
    return RemoteRoute(
        invoker,
        name,
        manager=manager,
        subnet_ids=list(vpc.subnet_ids) if vpc else [],
        security_group_ids=list(vpc.security_group_ids) if vpc else [],
    )
