"""Tests for the provisioner CLI."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from provisioner import cli as cli_module
from provisioner.cli import cli
from remote_mock import FakeResourceClient

SUBSCRIPTION_ID = "12345678-1234-1234-1234-123456789012"
RESOURCE_ID = (
    f"/subscriptions/{SUBSCRIPTION_ID}/resourceGroups/rg-platform"
    "/providers/Microsoft.ManagedIdentity/userAssignedIdentities/uami-app"
)

DOCUMENT = f"""\
resourceKind: Azure::Resources::GenericResource
resource:
  id: {RESOURCE_ID}
  location: westeurope
tags:
  owner: platform
"""


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def document(tmp_path: Path) -> Path:
    path = tmp_path / "resource.yaml"
    path.write_text(DOCUMENT, encoding="utf-8")
    return path


@pytest.fixture
def fake_client(monkeypatch: pytest.MonkeyPatch) -> FakeResourceClient:
    """Route `reconcile` to an in-memory control plane."""
    client = FakeResourceClient()
    monkeypatch.setattr(cli_module, "make_client", lambda settings, api_version: client)
    monkeypatch.setenv("AZURE_SUBSCRIPTION_ID", SUBSCRIPTION_ID)
    return client


class TestPlan:
    """Tests for the plan command."""

    def test_create_plan(self, runner: CliRunner, document: Path) -> None:
        result = runner.invoke(cli, ["plan", str(document)])

        assert result.exit_code == 0
        report = json.loads(result.stdout)
        assert report["identifier"] == RESOURCE_ID
        assert report["immutableViolations"] == []
        assert report["tagsToAdd"] == {"owner": "platform"}

    def test_immutable_change_exits_nonzero(
        self, runner: CliRunner, document: Path, tmp_path: Path
    ) -> None:
        previous = tmp_path / "previous.json"
        previous.write_text(
            json.dumps({"id": RESOURCE_ID, "location": "northeurope", "tags": {"stale": "1"}}),
            encoding="utf-8",
        )

        result = runner.invoke(cli, ["plan", str(document), "--previous", str(previous)])

        assert result.exit_code == 1
        report = json.loads(result.stdout)
        assert report["immutableViolations"] == ["location"]
        assert report["tagsToRemove"] == {"stale": "1"}

    def test_invalid_document(self, runner: CliRunner, tmp_path: Path) -> None:
        path = tmp_path / "bad.yaml"
        path.write_text("resourceKind: Azure::Nope\n", encoding="utf-8")

        result = runner.invoke(cli, ["plan", str(path)])

        assert result.exit_code == 1
        assert "Validation failed" in result.output


class TestReconcile:
    """Tests for the reconcile command."""

    def test_create(self, runner: CliRunner, document: Path, fake_client: FakeResourceClient) -> None:
        result = runner.invoke(cli, ["reconcile", "create", str(document)])

        assert result.exit_code == 0
        event = json.loads(result.stdout)
        assert event["status"] == "SUCCESS"
        assert event["resourceModel"]["id"] == RESOURCE_ID
        assert fake_client.tags[RESOURCE_ID] == {"owner": "platform"}

    def test_waits_for_pending_operation(
        self,
        runner: CliRunner,
        document: Path,
        fake_client: FakeResourceClient,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """Test that --wait re-invokes with the returned continuation."""
        fake_client.pending_rounds = 1
        sleeps: list[int] = []
        monkeypatch.setattr(cli_module.time, "sleep", sleeps.append)

        result = runner.invoke(cli, ["reconcile", "create", str(document)])

        assert result.exit_code == 0
        assert json.loads(result.stdout)["status"] == "SUCCESS"
        assert len(sleeps) == 1
        assert fake_client.calls_to("resume") == 1

    def test_no_wait_prints_continuation(
        self, runner: CliRunner, document: Path, fake_client: FakeResourceClient
    ) -> None:
        fake_client.pending_rounds = 1

        result = runner.invoke(cli, ["reconcile", "create", str(document), "--no-wait"])

        assert result.exit_code == 0
        event = json.loads(result.stdout)
        assert event["status"] == "IN_PROGRESS"
        assert event["callbackContext"]["operationToken"] == "op-1"

    def test_failure_exits_nonzero(
        self, runner: CliRunner, document: Path, fake_client: FakeResourceClient
    ) -> None:
        fake_client.seed({"id": RESOURCE_ID, "location": "westeurope"})

        result = runner.invoke(cli, ["reconcile", "create", str(document)])

        assert result.exit_code == 1
        assert "AlreadyExists" in result.output

    def test_missing_subscription(
        self, runner: CliRunner, document: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.delenv("AZURE_SUBSCRIPTION_ID", raising=False)

        result = runner.invoke(cli, ["reconcile", "read", str(document)])

        assert result.exit_code == 1
        assert "AZURE_SUBSCRIPTION_ID is required" in result.output

    def test_secret_in_environment(
        self, runner: CliRunner, document: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test that a credential secret blocks the client with exit code 2."""
        monkeypatch.setenv("AZURE_SUBSCRIPTION_ID", SUBSCRIPTION_ID)
        monkeypatch.setenv("AZURE_CLIENT_SECRET", "s3cret")

        result = runner.invoke(cli, ["reconcile", "read", str(document)])

        assert result.exit_code == 2
        assert "AZURE_CLIENT_SECRET" in result.output

    def test_unknown_verb(self, runner: CliRunner, document: Path) -> None:
        result = runner.invoke(cli, ["reconcile", "upsert", str(document)])

        assert result.exit_code == 2
