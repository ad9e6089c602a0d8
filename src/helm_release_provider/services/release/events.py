"""Progress event construction.

Pure functions: no I/O, no reclassification of errors. The builder only
renders what the state machine decided.
"""

from __future__ import annotations

from helm_release_provider.config import DEFAULT_CALLBACK_DELAY_SECONDS
from helm_release_provider.exceptions import ProviderError
from helm_release_provider.services.release.models import (
    CallbackContext,
    OperationStatus,
    ProgressEvent,
    ReleaseModel,
    Stage,
)


def make_event(
    model: ReleaseModel | None,
    stage: Stage,
    error: ProviderError | None = None,
    *,
    context: CallbackContext | None = None,
    delay_seconds: int = DEFAULT_CALLBACK_DELAY_SECONDS,
    models: list[ReleaseModel] | None = None,
) -> ProgressEvent:
    """Build the caller-visible event for one invocation.

    Args:
        model: Current release model (identity token included).
        stage: Next stage decided by the state machine.
        error: Fatal error, if the operation failed.
        context: Callback context to carry to the next poll; its stage is
            replaced by ``stage``.
        delay_seconds: Re-poll delay for in-progress events.
        models: Resource models for list operations.

    Returns:
        A frozen progress event.
    """
    if error is not None:
        return ProgressEvent(
            status=OperationStatus.FAILED,
            error_code=str(error.error_code),
            message=f"{error.kind}: {error.message}",
            resource_model=model,
            resource_models=models,
        )

    if stage is Stage.COMPLETE:
        return ProgressEvent(
            status=OperationStatus.SUCCESS,
            resource_model=model,
            resource_models=models,
        )

    carried = (context or CallbackContext()).model_copy(update={"stage": stage})
    return ProgressEvent(
        status=OperationStatus.IN_PROGRESS,
        callback_context=carried.to_wire(),
        callback_delay_seconds=delay_seconds,
        resource_model=model,
    )
