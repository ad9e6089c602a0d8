"""Inbound handler entry points.

The host fills a :class:`HandlerRequest` and calls one handler per
intent. Each handler prepares the release model (release name, identity
recovered from the token), picks the execution route for this invocation
and runs one stage of the matching action.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Protocol

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from helm_release_provider.config import ProviderConfig
from helm_release_provider.exceptions import (
    InvalidConfigurationError,
    ProviderError,
)
from helm_release_provider.integrations.aws.lambda_client import (
    LambdaInvoker,
    ProxyFunctionManager,
)
from helm_release_provider.integrations.kubernetes.helm_client import (
    HelmBinaryNotFoundError,
    HelmClient,
)
from helm_release_provider.logging.config import bind_invocation
from helm_release_provider.services.release.charts import ChartResolver, DefaultChartResolver
from helm_release_provider.services.release.events import make_event
from helm_release_provider.services.release.executor import (
    ClientFactory,
    DefaultClientFactory,
    ReleaseExecutor,
)
from helm_release_provider.services.release.identity import decode_identity
from helm_release_provider.services.release.models import (
    Action,
    CallbackContext,
    ProgressEvent,
    ReleaseModel,
    Stage,
)
from helm_release_provider.services.release.operations import ReleaseOperations
from helm_release_provider.services.release.routing import select_route
from helm_release_provider.services.release.state_machine import (
    ReleaseStateMachine,
    ensure_release_name,
)

logger = structlog.get_logger()


class HandlerRequest(BaseModel):
    """Request for one handler invocation."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    desired_state: ReleaseModel = Field(alias="DesiredResourceState")
    previous_state: ReleaseModel | None = Field(default=None, alias="PreviousResourceState")
    region: str | None = Field(default=None, alias="Region")
    client_request_token: str | None = Field(default=None, alias="ClientRequestToken")


class KubeconfigSource(Protocol):
    """Supplies kubeconfig content for a release's cluster."""

    def __call__(self, model: ReleaseModel) -> str | None: ...


def inline_kubeconfig(model: ReleaseModel) -> str | None:
    """Use the model's inline kubeconfig; None falls back to the configured file."""
    return model.kube_config


@dataclass
class ProviderRuntime:
    """Collaborators for one handler invocation."""

    config: ProviderConfig
    client_factory: ClientFactory
    chart_resolver: ChartResolver
    invoker: LambdaInvoker | None = None
    function_manager: ProxyFunctionManager | None = None
    kubeconfig_source: KubeconfigSource = field(default=inline_kubeconfig)
    clock: Callable[[], float] = time.time

    @classmethod
    def from_config(cls, config: ProviderConfig) -> ProviderRuntime:
        """Build the default runtime: Helm CLI, kubernetes client and Lambda."""
        try:
            helm: HelmClient | None = HelmClient(
                config.helm_binary,
                kubeconfig=config.kubeconfig,
                timeout=config.helm_timeout,
            )
        except HelmBinaryNotFoundError:
            logger.warning("helm_binary_not_found", detail="repository charts cannot be pulled")
            helm = None

        return cls(
            config=config,
            client_factory=DefaultClientFactory(config),
            chart_resolver=DefaultChartResolver(helm_client=helm),
            invoker=LambdaInvoker(config.region),
            function_manager=ProxyFunctionManager(config.proxy, config.region),
        )

    def state_machine(self, model: ReleaseModel, region: str) -> ReleaseStateMachine:
        """Wire the state machine for ``model`` on its execution route."""
        route = select_route(
            model,
            executor=ReleaseExecutor(self.client_factory),
            invoker=self.invoker,
            manager=self.function_manager,
            function_prefix=self.config.proxy.name_prefix,
        )
        operations = ReleaseOperations(
            route, self.chart_resolver, kubeconfig=self.kubeconfig_source(model)
        )
        return ReleaseStateMachine(
            operations,
            region=region,
            callback_delay_seconds=self.config.callback_delay_seconds,
            max_transient_retries=self.config.max_transient_retries,
            clock=self.clock,
        )


def _resume(model: ReleaseModel, token: str | None) -> ReleaseModel:
    """Recover release identity from the token, when the caller sent one.

    Without a token the model's own name and namespace identify the release.

    Raises:
        InvalidIdentityError: If the token is malformed.
        InvalidConfigurationError: If there is neither a token nor a name.
    """
    if not token:
        if not model.name:
            raise InvalidConfigurationError("release name or identity token is required")
        return model
    identity = decode_identity(token)
    return model.model_copy(
        update={
            "id": token,
            "name": identity.name,
            "namespace": identity.namespace,
            "cluster_id": model.cluster_id or identity.cluster_id or None,
        }
    )


def _prepare(action: Action, request: HandlerRequest) -> ReleaseModel:
    model = request.desired_state
    if action is Action.INSTALL:
        model = ensure_release_name(model, request.client_request_token)
    elif action is Action.UPDATE:
        previous = request.previous_state
        model = _resume(model, model.id or (previous.id if previous else None))
    elif action is Action.LIST_RELEASES:
        pass
    else:
        model = _resume(model, model.id)

    if not model.namespace:
        model = model.model_copy(update={"namespace": "default"})
    return model


def _run(
    action: Action,
    request: HandlerRequest,
    callback_context: dict[str, Any] | None,
    runtime: ProviderRuntime | None,
) -> ProgressEvent:
    runtime = runtime or ProviderRuntime.from_config(ProviderConfig.from_env())
    region = request.region or runtime.config.region
    bind_invocation(action=str(action), release=request.desired_state.name)

    try:
        context = CallbackContext.from_wire(callback_context)
        model = _prepare(action, request)
        machine = runtime.state_machine(model, region)
    except ValidationError as e:
        error: ProviderError = InvalidConfigurationError(f"invalid callback context: {e}")
        logger.warning("handler_rejected", kind=str(error.kind), error=error.message)
        return make_event(request.desired_state, Stage.FAILED, error)
    except ProviderError as e:
        logger.warning("handler_rejected", kind=str(e.kind), error=e.message)
        return make_event(request.desired_state, Stage.FAILED, e)

    event = machine.run(action, model, context)
    logger.info("handler_finished", status=str(event.status), next_stage=str(event.next_stage))
    return event


def create_handler(
    request: HandlerRequest,
    callback_context: dict[str, Any] | None = None,
    runtime: ProviderRuntime | None = None,
) -> ProgressEvent:
    """Install a release and wait for it to stabilize."""
    return _run(Action.INSTALL, request, callback_context, runtime)


def update_handler(
    request: HandlerRequest,
    callback_context: dict[str, Any] | None = None,
    runtime: ProviderRuntime | None = None,
) -> ProgressEvent:
    """Upgrade the release named by the identity token."""
    return _run(Action.UPDATE, request, callback_context, runtime)


def delete_handler(
    request: HandlerRequest,
    callback_context: dict[str, Any] | None = None,
    runtime: ProviderRuntime | None = None,
) -> ProgressEvent:
    """Uninstall the release; a release that is already gone succeeds."""
    return _run(Action.UNINSTALL, request, callback_context, runtime)


def read_handler(
    request: HandlerRequest,
    callback_context: dict[str, Any] | None = None,
    runtime: ProviderRuntime | None = None,
) -> ProgressEvent:
    """Report the release and the resources its manifest declares."""
    return _run(Action.CHECK_STATUS, request, callback_context, runtime)


def list_handler(
    request: HandlerRequest,
    callback_context: dict[str, Any] | None = None,
    runtime: ProviderRuntime | None = None,
) -> ProgressEvent:
    """List releases in the model's namespace."""
    return _run(Action.LIST_RELEASES, request, callback_context, runtime)


HANDLERS: dict[str, Callable[..., ProgressEvent]] = {
    "create": create_handler,
    "update": update_handler,
    "delete": delete_handler,
    "read": read_handler,
    "list": list_handler,
}
