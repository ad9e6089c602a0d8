"""Release orchestration.

State machine, operation wrappers, execution routes and the identity
and progress event codecs.
"""

from helm_release_provider.services.release.events import make_event
from helm_release_provider.services.release.executor import (
    DefaultClientFactory,
    ReleaseClients,
    ReleaseExecutor,
)
from helm_release_provider.services.release.identity import (
    ReleaseIdentity,
    decode_identity,
    encode_identity,
)
from helm_release_provider.services.release.models import (
    Action,
    CallbackContext,
    ProgressEvent,
    ReleaseModel,
    Stage,
)
from helm_release_provider.services.release.operations import ReleaseOperations
from helm_release_provider.services.release.routing import LocalRoute, RemoteRoute, select_route
from helm_release_provider.services.release.state_machine import ReleaseStateMachine

__all__ = [
    "Action",
    "CallbackContext",
    "DefaultClientFactory",
    "LocalRoute",
    "ProgressEvent",
    "ReleaseClients",
    "ReleaseExecutor",
    "ReleaseIdentity",
    "ReleaseModel",
    "ReleaseOperations",
    "ReleaseStateMachine",
    "RemoteRoute",
    "Stage",
    "decode_identity",
    "encode_identity",
    "make_event",
    "select_route",
]
