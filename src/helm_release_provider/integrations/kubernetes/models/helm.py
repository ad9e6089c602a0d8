"""Release records passed between the Helm client, routes and state machine.

Everything here crosses the proxy boundary as plain dicts, so each record
knows how to rebuild itself from the serialized form.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any

# info.status values the stabilization check acts on
STATUS_DEPLOYED = "deployed"
STATUS_FAILED = "failed"


@dataclass
class HelmRelease:
    """One row of ``helm list --output json``."""

    name: str
    namespace: str
    revision: int
    status: str
    chart: str
    app_version: str
    updated: str

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> HelmRelease:
        # helm list reports revision as a string
        text = {key: str(data.get(key, "")) for key in ("name", "namespace", "status", "chart")}
        return cls(
            revision=int(data.get("revision") or 0),
            app_version=str(data.get("app_version", "")),
            updated=str(data.get("updated", "")),
            **text,
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class HelmReleaseStatus:
    """Output of ``helm status --output json``."""

    name: str
    namespace: str
    revision: int
    status: str
    description: str
    manifest: str = ""

    @classmethod
    def from_json(
        cls, data: dict[str, Any], release_name: str, namespace: str | None = None
    ) -> HelmReleaseStatus:
        info = data.get("info") or {}
        return cls(
            name=data.get("name") or release_name,
            namespace=data.get("namespace") or namespace or "",
            revision=int(data.get("version") or 0),
            status=info.get("status", ""),
            description=info.get("description", ""),
            manifest=data.get("manifest", ""),
        )


@dataclass(frozen=True)
class ResourceDescriptor:
    """An object a release manifest declares."""

    api_version: str
    kind: str
    name: str
    namespace: str | None = None

    @property
    def display_name(self) -> str:
        """``Kind/namespace/name``, or ``Kind/name`` when cluster scoped."""
        parts = [self.kind, self.namespace, self.name]
        return "/".join(p for p in parts if p)

    @classmethod
    def from_manifest(
        cls, document: dict[str, Any], default_namespace: str | None = None
    ) -> ResourceDescriptor:
        """Describe one parsed manifest document.

        ``metadata.namespace`` wins; otherwise the release namespace applies.
        """
        metadata = document.get("metadata") or {}
        return cls(
            api_version=str(document.get("apiVersion", "")),
            kind=str(document.get("kind", "")),
            name=str(metadata.get("name", "")),
            namespace=metadata.get("namespace") or default_namespace,
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ResourceDescriptor:
        return cls(
            str(data.get("api_version", "")),
            str(data.get("kind", "")),
            str(data.get("name", "")),
            data.get("namespace"),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class ReleaseData:
    """What an install, upgrade or status step learned about a release.

    The manifest rides along so the stabilization step can check readiness
    without asking Helm again.
    """

    name: str
    namespace: str
    status: str = ""
    revision: int = 0
    manifest: str = ""
    resources: list[ResourceDescriptor] = field(default_factory=list)

    @classmethod
    def from_status(cls, status: HelmReleaseStatus) -> ReleaseData:
        return cls(status.name, status.namespace, status.status, status.revision, status.manifest)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ReleaseData:
        return cls(
            name=str(data.get("name", "")),
            namespace=str(data.get("namespace", "")),
            status=str(data.get("status", "")),
            revision=int(data.get("revision") or 0),
            manifest=str(data.get("manifest", "")),
            resources=[ResourceDescriptor.from_dict(r) for r in data.get("resources") or []],
        )

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["resources"] = [r.to_dict() for r in self.resources]
        return data


@dataclass
class PendingResources:
    """Which manifest objects are not ready yet."""

    pending: bool
    resources: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PendingResources:
        names = [str(r) for r in data.get("resources") or []]
        return cls(pending=bool(data.get("pending", False)), resources=names)

    def to_dict(self) -> dict[str, Any]:
        return {"pending": self.pending, "resources": list(self.resources)}
