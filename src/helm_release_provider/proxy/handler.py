"""Lambda entry point of the proxy function.

Runs inside the cluster's VPC. Each invocation carries one serialized
:class:`Event`; the response is the same ``{"Data", "Error"}`` envelope
the local route produces. Classified failures travel in the envelope,
so the function itself only errors on crashes.
"""

from __future__ import annotations

from typing import Any

import structlog
from pydantic import ValidationError

from helm_release_provider.config import ProviderConfig
from helm_release_provider.exceptions import InvalidConfigurationError
from helm_release_provider.logging.config import bind_invocation, configure_logging
from helm_release_provider.services.release.executor import (
    ClientFactory,
    DefaultClientFactory,
    ReleaseExecutor,
    response_envelope,
)
from helm_release_provider.services.release.models import Event

logger = structlog.get_logger()


def handle_event(payload: dict[str, Any], client_factory: ClientFactory) -> dict[str, Any]:
    """Decode ``payload`` and execute it with clients from ``client_factory``."""
    try:
        event = Event.model_validate(payload)
    except ValidationError as e:
        logger.warning("proxy_event_rejected", error=str(e))
        return response_envelope(error=InvalidConfigurationError(f"invalid proxy event: {e}"))
    return ReleaseExecutor(client_factory).execute(event)


def lambda_handler(event: dict[str, Any], context: Any = None) -> dict[str, Any]:
    """AWS Lambda handler."""
    config = ProviderConfig.from_env()
    configure_logging(verbose=True, debug=config.debug, json_output=config.log_json)
    bind_invocation(request_id=getattr(context, "aws_request_id", None))
    logger.info("proxy_event_received", action=event.get("Action"))
    return handle_event(event, DefaultClientFactory(config))
