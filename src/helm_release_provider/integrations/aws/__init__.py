"""AWS integration - proxy function invocation and lifecycle."""

from helm_release_provider.integrations.aws.lambda_client import (
    LambdaInvoker,
    ProxyFunctionManager,
)

__all__ = ["LambdaInvoker", "ProxyFunctionManager"]
