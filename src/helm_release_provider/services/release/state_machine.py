"""Action/stage state machine.

Each invocation runs exactly one stage of one action and returns a
progress event naming the next stage. Nothing is kept between
invocations except the callback context and the release model the caller
sends back, so any invocation can be retried or resumed after a restart.

Transitions are a table keyed by ``(Action, Stage)``. A stage step either
succeeds (advance to ``on_success``), fails transiently (stay at
``on_transient`` and re-poll, within a retry budget), or fails fatally.
"""

from __future__ import annotations

import hashlib
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from helm_release_provider.config import (
    DEFAULT_CALLBACK_DELAY_SECONDS,
    DEFAULT_MAX_TRANSIENT_RETRIES,
)
from helm_release_provider.exceptions import (
    InvalidConfigurationError,
    ProviderError,
    ReleaseNotStableError,
    UnknownProviderError,
    classify_error,
)
from helm_release_provider.integrations.kubernetes.models.helm import (
    STATUS_DEPLOYED,
    STATUS_FAILED,
)
from helm_release_provider.services.release.events import make_event
from helm_release_provider.services.release.identity import encode_identity
from helm_release_provider.services.release.models import (
    Action,
    CallbackContext,
    ProgressEvent,
    ReleaseModel,
    Stage,
)

if TYPE_CHECKING:
    from helm_release_provider.services.release.operations import ReleaseOperations

logger = structlog.get_logger()

GENERATED_NAME_PREFIX = "release-"


@dataclass(frozen=True)
class Transition:
    """Step to run for an (action, stage) pair and where it leads."""

    step: str
    on_success: Stage
    on_transient: Stage


@dataclass
class StepResult:
    model: ReleaseModel
    models: list[ReleaseModel] | None = None


TRANSITIONS: dict[tuple[Action, Stage], Transition] = {
    (Action.INSTALL, Stage.INIT): Transition("_install", Stage.RELEASE_STABILIZE, Stage.INIT),
    (Action.INSTALL, Stage.RELEASE_STABILIZE): Transition(
        "_stabilize", Stage.COMPLETE, Stage.RELEASE_STABILIZE
    ),
    (Action.UPDATE, Stage.INIT): Transition("_upgrade", Stage.RELEASE_STABILIZE, Stage.INIT),
    (Action.UPDATE, Stage.RELEASE_STABILIZE): Transition(
        "_stabilize", Stage.COMPLETE, Stage.RELEASE_STABILIZE
    ),
    (Action.UNINSTALL, Stage.INIT): Transition("_uninstall", Stage.COMPLETE, Stage.INIT),
    # Read operations are not polled: a transient failure is final
    (Action.CHECK_STATUS, Stage.INIT): Transition("_check_status", Stage.COMPLETE, Stage.FAILED),
    (Action.LIST_RELEASES, Stage.INIT): Transition("_list_releases", Stage.COMPLETE, Stage.FAILED),
    (Action.GET_PENDING_RESOURCES, Stage.INIT): Transition(
        "_pending_resources", Stage.COMPLETE, Stage.FAILED
    ),
    (Action.GET_MANIFEST_RESOURCES, Stage.INIT): Transition(
        "_manifest_resources", Stage.COMPLETE, Stage.FAILED
    ),
}


def _check_transitions() -> None:
    """Every action starts at Init and every non-terminal target has a step."""
    for action in Action:
        if (action, Stage.INIT) not in TRANSITIONS:
            raise RuntimeError(f"no Init transition for {action}")
    for (action, _stage), transition in TRANSITIONS.items():
        for target in (transition.on_success, transition.on_transient):
            if not target.is_terminal and (action, target) not in TRANSITIONS:
                raise RuntimeError(f"{action} can reach {target} but has no step for it")
        if not hasattr(ReleaseStateMachine, transition.step):
            raise RuntimeError(f"unknown step {transition.step!r}")


def ensure_release_name(model: ReleaseModel, seed: str | None = None) -> ReleaseModel:
    """Give the model a release name if it has none.

    The generated name is derived from ``seed`` (the caller's request
    token) or from chart, namespace and cluster, so retries of the same
    request generate the same name.
    """
    if model.name:
        return model
    basis = seed or "|".join(
        (model.chart or "", model.namespace or "default", model.cluster_id or "")
    )
    chart = "".join(c for c in (model.chart or "").rsplit("/", 1)[-1].lower() if c.isalnum())
    digest = hashlib.sha256(basis.encode("utf-8")).hexdigest()[:10]
    name = f"{chart[:30]}-{digest}" if chart else f"{GENERATED_NAME_PREFIX}{digest}"
    logger.info("generated_release_name", release=name)
    return model.model_copy(update={"name": name})


class ReleaseStateMachine:
    """Runs one stage of a release action per invocation."""

    def __init__(
        self,
        operations: ReleaseOperations,
        *,
        region: str,
        callback_delay_seconds: int = DEFAULT_CALLBACK_DELAY_SECONDS,
        max_transient_retries: int = DEFAULT_MAX_TRANSIENT_RETRIES,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._ops = operations
        self._region = region
        self._delay = callback_delay_seconds
        self._max_retries = max_transient_retries
        self._clock = clock

    def run(
        self,
        action: Action,
        model: ReleaseModel,
        context: CallbackContext | None = None,
    ) -> ProgressEvent:
        """Run the step for ``action`` at the context's stage."""
        context = context or CallbackContext()
        stage = context.stage
        log = logger.bind(action=str(action), stage=str(stage), release=model.name)

        if stage is Stage.COMPLETE:
            return make_event(model, Stage.COMPLETE)
        if stage is Stage.FAILED:
            return self._fail(model, UnknownProviderError(f"{action} has already failed"))

        transition = TRANSITIONS.get((action, stage))
        if transition is None:
            return self._fail(
                model, InvalidConfigurationError(f"{action} has no step at stage {stage}")
            )

        # The clock restarts at every stage, so TimeOut bounds each polled stage
        if context.started_at is None:
            context = context.model_copy(update={"started_at": self._clock()})
        elif not transition.on_transient.is_terminal and self._timed_out(model, context):
            log.warning("stage_timed_out", time_out=model.time_out)
            error = ReleaseNotStableError(self._timeout_message(action, stage, model))
            return self._fail(model, error)

        step: Callable[[ReleaseModel, CallbackContext], StepResult] = getattr(
            self, transition.step
        )
        try:
            result = step(model, context)
        except ProviderError as e:
            return self._on_error(log, model, context, transition, e)
        except Exception as e:
            log.exception("unexpected_step_failure")
            return self._on_error(log, model, context, transition, classify_error(e))

        log.info("stage_succeeded", next_stage=str(transition.on_success))
        return make_event(
            result.model,
            transition.on_success,
            context=context.model_copy(update={"transient_retries": 0, "started_at": None}),
            delay_seconds=self._delay,
            models=result.models,
        )

    # -----------------------------------------------------------------------
    # Outcome handling
    # -----------------------------------------------------------------------

    def _on_error(
        self,
        log: structlog.typing.FilteringBoundLogger,
        model: ReleaseModel,
        context: CallbackContext,
        transition: Transition,
        error: ProviderError,
    ) -> ProgressEvent:
        if not error.retryable or transition.on_transient.is_terminal:
            log.warning("stage_failed", kind=str(error.kind), error=error.message)
            return self._fail(model, error)

        # Bounded by the model TimeOut, not the retry budget
        if isinstance(error, ReleaseNotStableError):
            log.info("release_not_stable", detail=error.message)
            return make_event(
                model, transition.on_transient, context=context, delay_seconds=self._delay
            )

        retries = context.transient_retries + 1
        if retries > self._max_retries:
            log.warning("transient_retries_exhausted", retries=retries - 1, kind=str(error.kind))
            return self._fail(
                model,
                type(error)(f"giving up after {retries - 1} retries: {error.message}"),
            )

        log.info("transient_failure", kind=str(error.kind), retries=retries, error=error.message)
        return make_event(
            model,
            transition.on_transient,
            context=context.model_copy(update={"transient_retries": retries}),
            delay_seconds=self._delay,
        )

    def _fail(self, model: ReleaseModel, error: ProviderError) -> ProgressEvent:
        return make_event(model, Stage.FAILED, error)

    # -----------------------------------------------------------------------
    # Steps
    # -----------------------------------------------------------------------

    def _install(self, model: ReleaseModel, context: CallbackContext) -> StepResult:
        model = self._with_identity(model)
        self._require_route()
        self._ops.install(model)
        return StepResult(model)

    def _upgrade(self, model: ReleaseModel, context: CallbackContext) -> StepResult:
        model = self._with_identity(model)
        self._require_route()
        self._ops.upgrade(model)
        return StepResult(model)

    def _stabilize(self, model: ReleaseModel, context: CallbackContext) -> StepResult:
        self._require_route()
        release = self._ops.status(model)
        if release.status == STATUS_FAILED:
            raise UnknownProviderError(f"release {model.name} is in status {release.status}")
        if release.status != STATUS_DEPLOYED:
            raise ReleaseNotStableError(f"release {model.name} is {release.status or 'unknown'}")

        pending = self._ops.pending_resources(model, release)
        if pending.pending:
            raise ReleaseNotStableError("waiting for " + ", ".join(pending.resources))

        resources = self._ops.manifest_resources(model, release)
        return StepResult(
            model.model_copy(update={"resources": [r.display_name for r in resources]})
        )

    def _uninstall(self, model: ReleaseModel, context: CallbackContext) -> StepResult:
        self._require_route()
        self._ops.uninstall(model)
        self._ops.route.teardown()
        return StepResult(model)

    def _check_status(self, model: ReleaseModel, context: CallbackContext) -> StepResult:
        self._require_route()
        release = self._ops.status(model)
        resources = self._ops.manifest_resources(model, release)
        return StepResult(
            model.model_copy(update={"resources": [r.display_name for r in resources]})
        )

    def _list_releases(self, model: ReleaseModel, context: CallbackContext) -> StepResult:
        self._require_route()
        models = []
        for release in self._ops.list_releases(model):
            namespace = release.namespace or model.namespace or "default"
            token = encode_identity(model.cluster_id or "", self._region, release.name, namespace)
            models.append(
                ReleaseModel(
                    cluster_id=model.cluster_id,
                    namespace=namespace,
                    name=release.name,
                    id=token,
                )
            )
        return StepResult(model, models)

    def _pending_resources(self, model: ReleaseModel, context: CallbackContext) -> StepResult:
        self._require_route()
        pending = self._ops.pending_resources(model)
        return StepResult(model.model_copy(update={"resources": pending.resources}))

    def _manifest_resources(self, model: ReleaseModel, context: CallbackContext) -> StepResult:
        self._require_route()
        resources = self._ops.manifest_resources(model)
        return StepResult(
            model.model_copy(update={"resources": [r.display_name for r in resources]})
        )

    # -----------------------------------------------------------------------
    # Helpers
    # -----------------------------------------------------------------------

    def _with_identity(self, model: ReleaseModel) -> ReleaseModel:
        if not model.name:
            raise InvalidConfigurationError("release name is required")
        token = encode_identity(
            model.cluster_id or "", self._region, model.name, model.namespace or "default"
        )
        if model.id == token:
            return model
        return model.model_copy(update={"id": token})

    def _require_route(self) -> None:
        if not self._ops.route.prepare():
            raise ReleaseNotStableError("proxy function is not ready")

    @staticmethod
    def _timeout_message(action: Action, stage: Stage, model: ReleaseModel) -> str:
        if stage is Stage.RELEASE_STABILIZE:
            return f"release {model.name} did not stabilize within {model.time_out} minutes"
        return (
            f"{action.name.lower()} of release {model.name} "
            f"did not finish within {model.time_out} minutes"
        )

    def _timed_out(self, model: ReleaseModel, context: CallbackContext) -> bool:
        started_at = context.started_at if context.started_at is not None else self._clock()
        return self._clock() - started_at > model.time_out * 60


_check_transitions()
