"""Request, event and response models for the release state machine.

Wire-facing models use the PascalCase field names the provisioning
caller sends and expects; Python code addresses them by snake_case name.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Action(StrEnum):
    """Operation selected once per top-level request."""

    INSTALL = "InstallReleaseAction"
    UPDATE = "UpdateReleaseAction"
    UNINSTALL = "UninstallReleaseAction"
    CHECK_STATUS = "CheckReleaseAction"
    LIST_RELEASES = "ListReleaseAction"
    GET_PENDING_RESOURCES = "GetPendingAction"
    GET_MANIFEST_RESOURCES = "GetResourcesAction"


READ_ACTIONS = frozenset(
    {
        Action.CHECK_STATUS,
        Action.LIST_RELEASES,
        Action.GET_PENDING_RESOURCES,
        Action.GET_MANIFEST_RESOURCES,
    }
)


class Stage(StrEnum):
    """Position of an operation in its multi-step process."""

    INIT = "Init"
    RELEASE_STABILIZE = "ReleaseStabilize"
    COMPLETE = "Complete"
    FAILED = "Failed"

    @property
    def is_terminal(self) -> bool:
        return self in (Stage.COMPLETE, Stage.FAILED)


class OperationStatus(StrEnum):
    """Caller-visible operation status."""

    IN_PROGRESS = "IN_PROGRESS"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class _WireModel(BaseModel):
    model_config = ConfigDict(
        extra="ignore",
        populate_by_name=True,
        str_strip_whitespace=True,
    )

    def to_wire(self) -> dict[str, Any]:
        """Serialize with wire (PascalCase) names, dropping unset values."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class VPCConfiguration(_WireModel):
    """Network isolation settings; presence routes calls through the proxy."""

    security_group_ids: list[str] = Field(default_factory=list, alias="SecurityGroupIds")
    subnet_ids: list[str] = Field(default_factory=list, alias="SubnetIds")


class ReleaseModel(_WireModel):
    """Caller-supplied description of the desired release."""

    cluster_id: str | None = Field(default=None, alias="ClusterID")
    kube_config: str | None = Field(default=None, alias="KubeConfig")
    role_arn: str | None = Field(default=None, alias="RoleArn")
    chart: str | None = Field(default=None, alias="Chart")
    repository: str | None = Field(default=None, alias="Repository")
    version: str | None = Field(default=None, alias="Version")
    namespace: str | None = Field(default=None, alias="Namespace")
    name: str | None = Field(default=None, alias="Name")
    values: dict[str, str] | None = Field(default=None, alias="Values")
    value_yaml: str | None = Field(default=None, alias="ValueYaml")
    vpc_configuration: VPCConfiguration | None = Field(default=None, alias="VPCConfiguration")
    time_out: int = Field(default=60, alias="TimeOut", ge=1)
    id: str | None = Field(default=None, alias="ID")
    resources: list[str] | None = Field(default=None, alias="Resources")

    @property
    def network_isolated(self) -> bool:
        vpc = self.vpc_configuration
        return vpc is not None and bool(vpc.subnet_ids or vpc.security_group_ids)


class CallbackContext(_WireModel):
    """State carried between polls of one operation."""

    stage: Stage = Field(default=Stage.INIT, alias="Stage")
    started_at: float | None = Field(default=None, alias="StartedAt")
    transient_retries: int = Field(default=0, alias="TransientRetries", ge=0)

    @classmethod
    def from_wire(cls, data: dict[str, Any] | None) -> CallbackContext:
        return cls.model_validate(data or {})


class ChartDetails(_WireModel):
    """A resolved chart ready to hand to Helm."""

    chart_name: str = Field(alias="ChartName")
    chart: str = Field(alias="Chart", description="Original chart reference")
    version: str | None = Field(default=None, alias="Version")
    local_path: str | None = Field(default=None, alias="LocalPath", exclude=True)
    archive: str | None = Field(
        default=None, alias="ChartArchive", description="Base64 chart archive for the proxy"
    )


class Inputs(_WireModel):
    chart_details: ChartDetails | None = Field(default=None, alias="ChartDetails")
    value_opts: dict[str, Any] = Field(default_factory=dict, alias="ValueOpts")


class Event(_WireModel):
    """One Helm/Kubernetes primitive to execute, locally or in the proxy."""

    action: Action = Field(alias="Action")
    release_name: str | None = Field(default=None, alias="ReleaseName")
    namespace: str = Field(default="default", alias="Namespace")
    kube_config: str | None = Field(default=None, alias="KubeConfig")
    inputs: Inputs | None = Field(default=None, alias="Inputs")
    release_data: dict[str, Any] | None = Field(default=None, alias="ReleaseData")


class ProgressEvent(BaseModel):
    """Caller-visible result of one invocation. Never mutated after construction."""

    model_config = ConfigDict(frozen=True)

    status: OperationStatus
    error_code: str | None = None
    message: str = ""
    callback_context: dict[str, Any] | None = None
    callback_delay_seconds: int = 0
    resource_model: ReleaseModel | None = None
    resource_models: list[ReleaseModel] | None = None

    @property
    def next_stage(self) -> Stage | None:
        if self.callback_context is None:
            return Stage.COMPLETE if self.status is OperationStatus.SUCCESS else None
        return Stage(self.callback_context["Stage"])

    def to_dict(self) -> dict[str, Any]:
        """Render the handler response shape."""
        result: dict[str, Any] = {
            "OperationStatus": str(self.status),
            "HandlerErrorCode": self.error_code or "",
            "Message": self.message,
            "CallbackContext": self.callback_context,
            "CallbackDelaySeconds": self.callback_delay_seconds,
            "ResourceModel": self.resource_model.to_wire() if self.resource_model else None,
        }
        if self.resource_models is not None:
            result["ResourceModels"] = [m.to_wire() for m in self.resource_models]
        return result
