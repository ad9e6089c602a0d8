"""AWS Lambda integration for the network-isolated proxy function.

``LambdaInvoker`` performs the synchronous request/response round trip;
``ProxyFunctionManager`` creates, inspects and removes the proxy function
that runs inside the cluster's VPC.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

import boto3
import structlog
from botocore.exceptions import BotoCoreError, ClientError

from helm_release_provider.exceptions import InvalidConfigurationError, ProxyDispatchError

if TYPE_CHECKING:
    from helm_release_provider.config import ProxyFunctionConfig

logger = structlog.get_logger()

# Lambda function states (GetFunctionConfiguration ``State``)
STATE_ACTIVE = "Active"
STATE_PENDING = "Pending"
STATE_INACTIVE = "Inactive"
STATE_FAILED = "Failed"

NOT_IN_DESIRED_STATE = "not in desired state"


def _lambda(region: str | None) -> Any:
    return boto3.client("lambda", region_name=region) if region else boto3.client("lambda")


def _error_code(exc: ClientError) -> str:
    return str(exc.response.get("Error", {}).get("Code", ""))


class LambdaInvoker:
    """Synchronously invoke a Lambda function with a JSON payload."""

    def __init__(self, region: str | None = None, client: Any | None = None) -> None:
        self._client = client or _lambda(region)

    def invoke(self, function_name: str, payload: dict[str, Any]) -> dict[str, Any]:
        """Invoke ``function_name`` and return its decoded JSON response.

        Raises:
            ProxyDispatchError: If the call could not be delivered, the function
                crashed, or the response is not a JSON object.
        """
        log = logger.bind(function=function_name, action=payload.get("Action"))
        log.debug("invoking_proxy_function")
        try:
            response = self._client.invoke(
                FunctionName=function_name,
                InvocationType="RequestResponse",
                Payload=json.dumps(payload).encode("utf-8"),
            )
            body = response["Payload"].read()
        except (ClientError, BotoCoreError) as exc:
            log.warning("proxy_invoke_failed", error=str(exc))
            raise ProxyDispatchError(
                f"failed to invoke proxy function {function_name}: {exc}"
            ) from exc

        try:
            decoded = json.loads(body) if body else None
        except ValueError as exc:
            raise ProxyDispatchError(f"proxy function returned invalid JSON: {exc}") from exc

        if response.get("FunctionError"):
            detail = decoded.get("errorMessage") if isinstance(decoded, dict) else decoded
            log.warning("proxy_function_error", error=detail)
            raise ProxyDispatchError(f"proxy function {function_name} failed: {detail}")

        if not isinstance(decoded, dict):
            raise ProxyDispatchError("proxy function returned a non-object response")
        return decoded


class ProxyFunctionManager:
    """Lifecycle of the proxy function that executes calls inside a VPC."""

    def __init__(
        self,
        config: ProxyFunctionConfig,
        region: str | None = None,
        client: Any | None = None,
    ) -> None:
        self._config = config
        self._client = client or _lambda(region)

    def ensure_function(
        self,
        function_name: str,
        subnet_ids: list[str],
        security_group_ids: list[str],
    ) -> None:
        """Create the proxy function unless it already exists.

        Raises:
            InvalidConfigurationError: If the role or code is not configured.
            ProxyDispatchError: If the Lambda API call fails.
        """
        if self.get_state(function_name) is not None:
            return

        if not self._config.role_arn:
            raise InvalidConfigurationError("proxy function role ARN is not configured")
        try:
            code = self._config.code()
        except (ValueError, OSError) as exc:
            raise InvalidConfigurationError(str(exc)) from exc

        try:
            self._client.create_function(
                FunctionName=function_name,
                Runtime=self._config.runtime,
                Role=self._config.role_arn,
                Handler=self._config.handler,
                Code=code,
                Timeout=self._config.timeout,
                MemorySize=self._config.memory_size,
                VpcConfig={"SubnetIds": subnet_ids, "SecurityGroupIds": security_group_ids},
                Tags={"managed-by": "helm-release-provider"},
            )
            logger.info("proxy_function_created", function=function_name)
        except ClientError as exc:
            if _error_code(exc) != "ResourceConflictException":
                raise ProxyDispatchError(f"failed to create proxy function: {exc}") from exc
        except BotoCoreError as exc:
            raise ProxyDispatchError(f"failed to create proxy function: {exc}") from exc

    def get_state(self, function_name: str) -> str | None:
        """Return the function state, or None if it does not exist."""
        try:
            config = self._client.get_function_configuration(FunctionName=function_name)
        except ClientError as exc:
            if _error_code(exc) == "ResourceNotFoundException":
                return None
            raise ProxyDispatchError(f"failed to read proxy function state: {exc}") from exc
        except BotoCoreError as exc:
            raise ProxyDispatchError(f"failed to read proxy function state: {exc}") from exc
        return str(config.get("State", STATE_ACTIVE))

    def is_ready(self, function_name: str) -> bool:
        """Whether the proxy function exists and is Active."""
        state = self.get_state(function_name)
        if state == STATE_ACTIVE:
            return True
        if state == STATE_FAILED:
            logger.warning(
                "proxy_function_unavailable",
                function=function_name,
                state=state,
                reason=NOT_IN_DESIRED_STATE,
            )
        else:
            logger.debug("proxy_function_not_ready", function=function_name, state=state)
        return False

    def destroy(self, function_name: str) -> None:
        """Delete the proxy function; a missing function is not an error."""
        try:
            self._client.delete_function(FunctionName=function_name)
            logger.info("proxy_function_deleted", function=function_name)
        except ClientError as exc:
            if _error_code(exc) != "ResourceNotFoundException":
                raise ProxyDispatchError(f"failed to delete proxy function: {exc}") from exc
        except BotoCoreError as exc:
            raise ProxyDispatchError(f"failed to delete proxy function: {exc}") from exc
