"""Resumable identity tokens.

A token carries everything needed to find a release again after a
stateless restart: cluster, region, release name and namespace. It is a
versioned JSON document (sorted keys, compact separators) encoded as
unpadded URL-safe base64, so the same identity always yields the same
token.
"""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass
from typing import Any

from helm_release_provider.exceptions import InvalidIdentityError

TOKEN_VERSION = 1
SUPPORTED_VERSIONS = frozenset({1})
_FIELDS = ("ClusterID", "Region", "Name", "Namespace")


@dataclass(frozen=True)
class ReleaseIdentity:
    """Decoded identity of a release."""

    cluster_id: str
    region: str
    name: str
    namespace: str

    def encode(self) -> str:
        return encode_identity(self.cluster_id, self.region, self.name, self.namespace)


def encode_identity(cluster_id: str, region: str, name: str, namespace: str) -> str:
    """Encode release identity into an opaque token."""
    payload = {
        "Version": TOKEN_VERSION,
        "ClusterID": cluster_id,
        "Region": region,
        "Name": name,
        "Namespace": namespace,
    }
    raw = json.dumps(payload, sort_keys=True, separators=(",", ":")).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def decode_identity(token: str) -> ReleaseIdentity:
    """Decode a token produced by :func:`encode_identity`.

    Tokens without a ``Version`` field predate versioning and are read as
    version 1.

    Raises:
        InvalidIdentityError: For any token that is not a well-formed identity.
    """
    if not isinstance(token, str) or not token.strip():
        raise InvalidIdentityError("identity token is empty")

    payload = _decode_payload(token.strip())

    version = payload.get("Version", TOKEN_VERSION)
    if version not in SUPPORTED_VERSIONS or isinstance(version, bool):
        raise InvalidIdentityError(f"unsupported identity token version: {version!r}")

    values: dict[str, str] = {}
    for field_name in _FIELDS:
        value = payload.get(field_name)
        if not isinstance(value, str):
            raise InvalidIdentityError(f"identity token missing field: {field_name}")
        values[field_name] = value

    return ReleaseIdentity(
        cluster_id=values["ClusterID"],
        region=values["Region"],
        name=values["Name"],
        namespace=values["Namespace"],
    )


def _decode_payload(token: str) -> dict[str, Any]:
    padded = token + "=" * (-len(token) % 4)
    try:
        raw = base64.b64decode(padded, altchars=b"-_", validate=True)
        payload = json.loads(raw.decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, ValueError) as e:
        raise InvalidIdentityError(f"identity token is not valid: {e}") from e
    if not isinstance(payload, dict):
        raise InvalidIdentityError("identity token payload is not an object")
    return payload
