"""Shared pytest fixtures for helm_release_provider tests."""

from __future__ import annotations

import os
import tempfile
from collections.abc import Generator
from pathlib import Path

import pytest
import typer
from typer.testing import CliRunner

from helm_release_provider.cli.main import app
from helm_release_provider.services.release.models import ReleaseModel, VPCConfiguration


@pytest.fixture
def cli_runner() -> CliRunner:
    """Create a Typer CLI test runner."""
    return CliRunner()


@pytest.fixture
def temp_dir() -> Generator[Path]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture(autouse=True)
def reset_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Reset environment variables for each test."""
    # Clear any HELM_PROVIDER_ prefixed environment variables
    for key in list(os.environ.keys()):
        if key.startswith("HELM_PROVIDER_"):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture
def release_model() -> ReleaseModel:
    """Release model without network isolation."""
    return ReleaseModel(
        cluster_id="eks",
        chart="stable/coscale",
        namespace="Test",
        name="Test",
    )


@pytest.fixture
def vpc_release_model(release_model: ReleaseModel) -> ReleaseModel:
    """The same release routed through the proxy function."""
    return release_model.model_copy(
        update={
            "vpc_configuration": VPCConfiguration(
                security_group_ids=["sg-01"],
                subnet_ids=["subnet-01"],
            )
        }
    )


@pytest.fixture
def legacy_token() -> str:
    """Unversioned token for eks/eu-west-1/Test/Test."""
    return (
        "eyJDbHVzdGVySUQiOiJla3MiLCJSZWdpb24iOiJldS13ZXN0LTEi"
        "LCJOYW1lIjoiVGVzdCIsIk5hbWVzcGFjZSI6IlRlc3QifQ"
    )


@pytest.fixture
def cli_app() -> typer.Typer:
    """Return the CLI app for testing."""
    return app
