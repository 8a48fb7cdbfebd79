"""Provisioner CLI.

A small local driver for the reconciliation engine. In production an external
orchestrator calls ReconciliationEngine.reconcile() directly; this CLI plays
that role for one resource at a time.

Usage:
    provisioner plan resource.yaml --previous last-known.yaml
    provisioner reconcile create resource.yaml
    provisioner reconcile update resource.yaml --previous last-known.yaml --no-wait
    provisioner reconcile update resource.yaml --continuation context.json
    provisioner reconcile list resource.yaml --next-token <token>
"""

from __future__ import annotations

import json
import time
from pathlib import Path
from typing import Any

import click

from .arm_client import DEFAULT_API_VERSION, ArmResourceClient
from .config import ArmSettings, ConfigurationError, EngineConfig
from .engine import ReconciliationEngine
from .immutability import changed_fields
from .kinds import ResourceKindError
from .outcomes import OperationStatus, ProgressEvent, Verb
from .remote import RemoteClient
from .security import SecretlessViolationError, build_resource_client
from .spec_loader import SpecLoadError, load_document, load_mapping
from .tags import diff

# Exit codes
EXIT_FAILED = 1
EXIT_SECURITY_VIOLATION = 2

FILE_ARGUMENT = click.Path(exists=True, dir_okay=False, path_type=Path)


def make_client(settings: ArmSettings, api_version: str) -> RemoteClient:
    """Build the remote client used by `reconcile`."""
    return ArmResourceClient(build_resource_client(settings), api_version=api_version)


def _echo_json(data: dict[str, Any]) -> None:
    click.echo(json.dumps(data, indent=2, sort_keys=True, default=str))


# =============================================================================
# Main CLI Group
# =============================================================================


@click.group()
@click.version_option(version="0.1.0", prog_name="provisioner")
def cli() -> None:
    """Reconcile Azure resources against desired-state documents.

    \b
    Quick Start:
        provisioner plan resource.yaml --previous last-known.yaml
        provisioner reconcile create resource.yaml
    """
    pass


@cli.command()
@click.argument("desired", type=FILE_ARGUMENT)
@click.option(
    "--previous",
    type=FILE_ARGUMENT,
    default=None,
    help="Last known model of the resource (YAML or JSON).",
)
def plan(desired: Path, previous: Path | None) -> None:
    """Report create-only violations and tag changes without calling Azure.

    Exits with status 1 when the update would be refused.
    """
    try:
        document = load_document(desired)
        prior = load_mapping(previous) if previous else None
        config = EngineConfig.from_env()
    except (SpecLoadError, ConfigurationError) as e:
        raise click.ClickException(str(e)) from e

    kind = document.kind
    model = document.desired_model()
    violations = changed_fields(prior, model, kind.immutable_fields)

    report: dict[str, Any] = {
        "resourceKind": kind.name,
        "identifier": kind.identifier(model),
        "immutableViolations": violations,
    }
    if kind.taggable:
        observed = (prior or {}).get(kind.tags_field) or {}
        delta = diff(
            kind.desired_tags(model),
            observed,
            protected_prefixes=config.protected_tag_prefixes,
        )
        report["tagsToAdd"] = delta.to_add
        report["tagsToRemove"] = delta.to_remove

    _echo_json(report)
    if violations:
        raise SystemExit(EXIT_FAILED)


@cli.command()
@click.argument("verb", type=click.Choice([v.value for v in Verb]))
@click.argument("desired", type=FILE_ARGUMENT)
@click.option(
    "--previous",
    type=FILE_ARGUMENT,
    default=None,
    help="Last known model of the resource (update only).",
)
@click.option(
    "--continuation",
    type=FILE_ARGUMENT,
    default=None,
    help="callbackContext from a previous in-progress result.",
)
@click.option("--next-token", default=None, help="Pagination token (list only).")
@click.option(
    "--wait/--no-wait",
    default=True,
    help="Keep re-invoking until the operation leaves IN_PROGRESS.",
)
def reconcile(
    verb: str,
    desired: Path,
    previous: Path | None,
    continuation: Path | None,
    next_token: str | None,
    wait: bool,
) -> None:
    """Run VERB for the resource described in DESIRED.

    Prints the progress event as JSON. Exits with status 1 when the
    operation failed.
    """
    try:
        document = load_document(desired)
        prior = load_mapping(previous) if previous else None
        state = load_mapping(continuation) if continuation else None
        config = EngineConfig.from_env()
        settings = ArmSettings.from_env()
    except (SpecLoadError, ConfigurationError) as e:
        raise click.ClickException(str(e)) from e

    try:
        client = make_client(settings, document.arm_api_version or DEFAULT_API_VERSION)
        engine = ReconciliationEngine(document.kind, client, config=config)
    except SecretlessViolationError as e:
        click.echo(str(e), err=True)
        raise SystemExit(EXIT_SECURITY_VIOLATION) from e
    except ResourceKindError as e:
        raise click.ClickException(str(e)) from e

    model = document.desired_model()
    event: ProgressEvent = engine.reconcile(verb, model, prior, state, next_token=next_token)
    while wait and event.status == OperationStatus.IN_PROGRESS:
        time.sleep(event.callback_delay_seconds)
        event = engine.reconcile(verb, model, prior, event.continuation)

    _echo_json(event.to_dict())
    if event.status == OperationStatus.FAILED:
        raise SystemExit(EXIT_FAILED)
