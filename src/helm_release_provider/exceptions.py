"""Provider error kinds and their classification.

Operation wrappers raise the typed errors below. The state machine only
looks at ``kind`` and ``retryable`` to decide between re-polling and
failing, and the progress event builder renders ``kind`` and ``message``
verbatim.
"""

from __future__ import annotations

from enum import StrEnum

from helm_release_provider.integrations.kubernetes.exceptions import (
    KubernetesAuthError,
    KubernetesConnectionError,
    KubernetesError,
    KubernetesValidationError,
)


class ErrorKind(StrEnum):
    """Classified failure kinds surfaced to the caller."""

    INVALID_IDENTITY = "InvalidIdentity"
    INVALID_CONFIGURATION = "InvalidConfiguration"
    CHART_NOT_FOUND = "ChartNotFound"
    CLUSTER_UNREACHABLE = "ClusterUnreachable"
    RELEASE_NOT_STABLE = "ReleaseNotStable"
    RELEASE_ALREADY_ABSENT = "ReleaseAlreadyAbsent"
    PROXY_DISPATCH_FAILURE = "ProxyDispatchFailure"
    UNKNOWN = "Unknown"


class HandlerErrorCode(StrEnum):
    """CloudFormation handler error codes."""

    INVALID_REQUEST = "InvalidRequest"
    NOT_FOUND = "NotFound"
    NETWORK_FAILURE = "NetworkFailure"
    SERVICE_INTERNAL_ERROR = "ServiceInternalError"
    NOT_STABILIZED = "NotStabilized"
    GENERAL_SERVICE_EXCEPTION = "GeneralServiceException"


ERROR_CODES: dict[ErrorKind, HandlerErrorCode] = {
    ErrorKind.INVALID_IDENTITY: HandlerErrorCode.INVALID_REQUEST,
    ErrorKind.INVALID_CONFIGURATION: HandlerErrorCode.INVALID_REQUEST,
    ErrorKind.CHART_NOT_FOUND: HandlerErrorCode.NOT_FOUND,
    ErrorKind.CLUSTER_UNREACHABLE: HandlerErrorCode.NETWORK_FAILURE,
    ErrorKind.RELEASE_NOT_STABLE: HandlerErrorCode.NOT_STABILIZED,
    ErrorKind.RELEASE_ALREADY_ABSENT: HandlerErrorCode.NOT_FOUND,
    ErrorKind.PROXY_DISPATCH_FAILURE: HandlerErrorCode.SERVICE_INTERNAL_ERROR,
    ErrorKind.UNKNOWN: HandlerErrorCode.GENERAL_SERVICE_EXCEPTION,
}


class ProviderError(Exception):
    """Base class for classified provider failures.

    Attributes:
        message: What failed, rendered verbatim in progress events.
        kind: The classified error kind.
        retryable: Whether the caller should re-poll instead of failing.
    """

    kind: ErrorKind = ErrorKind.UNKNOWN
    retryable: bool = False

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    @property
    def error_code(self) -> HandlerErrorCode:
        return ERROR_CODES[self.kind]

    def to_dict(self) -> dict[str, str]:
        """Serialized form carried in proxy responses."""
        return {"Kind": str(self.kind), "Message": self.message}


class InvalidIdentityError(ProviderError):
    """Raised when an identity token cannot be decoded."""

    kind = ErrorKind.INVALID_IDENTITY


class InvalidConfigurationError(ProviderError):
    """Raised for unusable release models or provider configuration."""

    kind = ErrorKind.INVALID_CONFIGURATION


class ChartNotFoundError(ProviderError):
    """Raised when a chart reference cannot be resolved."""

    kind = ErrorKind.CHART_NOT_FOUND


class ClusterUnreachableError(ProviderError):
    """Raised when the target cluster cannot be reached."""

    kind = ErrorKind.CLUSTER_UNREACHABLE
    retryable = True


class ReleaseNotStableError(ProviderError):
    """Raised while a release is still converging."""

    kind = ErrorKind.RELEASE_NOT_STABLE
    retryable = True


class ReleaseAlreadyAbsentError(ProviderError):
    """Raised when an uninstall targets a release that does not exist."""

    kind = ErrorKind.RELEASE_ALREADY_ABSENT


class ProxyDispatchError(ProviderError):
    """Raised when the proxy function could not be invoked or is not ready."""

    kind = ErrorKind.PROXY_DISPATCH_FAILURE
    retryable = True


class UnknownProviderError(ProviderError):
    """Wraps any unclassified underlying failure."""

    kind = ErrorKind.UNKNOWN


_ERRORS_BY_KIND: dict[ErrorKind, type[ProviderError]] = {
    ErrorKind.INVALID_IDENTITY: InvalidIdentityError,
    ErrorKind.INVALID_CONFIGURATION: InvalidConfigurationError,
    ErrorKind.CHART_NOT_FOUND: ChartNotFoundError,
    ErrorKind.CLUSTER_UNREACHABLE: ClusterUnreachableError,
    ErrorKind.RELEASE_NOT_STABLE: ReleaseNotStableError,
    ErrorKind.RELEASE_ALREADY_ABSENT: ReleaseAlreadyAbsentError,
    ErrorKind.PROXY_DISPATCH_FAILURE: ProxyDispatchError,
    ErrorKind.UNKNOWN: UnknownProviderError,
}


def error_from_dict(data: dict[str, object]) -> ProviderError:
    """Rebuild a typed error from its serialized ``{"Kind", "Message"}`` form."""
    message = str(data.get("Message", ""))
    try:
        kind = ErrorKind(str(data.get("Kind", "")))
    except ValueError:
        return UnknownProviderError(message)
    return _ERRORS_BY_KIND[kind](message)


def classify_error(exc: Exception) -> ProviderError:
    """Map an underlying exception onto a provider error kind.

    Already-classified errors pass through unchanged.
    """
    from helm_release_provider.integrations.kubernetes.helm_client import (
        HelmChartNotFoundError,
        HelmOperationInProgressError,
        HelmReleaseNotFoundError,
    )

    if isinstance(exc, ProviderError):
        return exc
    if isinstance(exc, KubernetesConnectionError):
        return ClusterUnreachableError(exc.message)
    if isinstance(exc, HelmChartNotFoundError):
        return ChartNotFoundError(exc.message)
    if isinstance(exc, HelmReleaseNotFoundError):
        return ReleaseAlreadyAbsentError(exc.message)
    if isinstance(exc, HelmOperationInProgressError):
        return ReleaseNotStableError(exc.message)
    if isinstance(exc, (KubernetesAuthError, KubernetesValidationError)):
        return InvalidConfigurationError(str(exc))
    if isinstance(exc, KubernetesError):
        return UnknownProviderError(str(exc))
    return UnknownProviderError(str(exc) or type(exc).__name__)
