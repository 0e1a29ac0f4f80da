"""Cosmos DB operator CLI.

Runs a single reconciliation step against a CosmosDB manifest, persisting
the observed status in a JSON file next to it so repeated invocations
converge. Deciding when to run again is left to the caller; the exit code
says whether another run is needed.

Usage:
    cosmosdb-operator ensure db1.yaml     # Create/update the account
    cosmosdb-operator delete db1.yaml     # Delete the account and its key secret
    cosmosdb-operator parents db1.yaml    # Print dependency keys
    cosmosdb-operator hash db1.yaml       # Print the desired-spec fingerprint

Exit codes:
    0  converged, deleted, or terminal failure (see status message)
    1  transient failure or configuration error
    2  security violation (credentials in environment)
    3  in progress, run again later
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

import click

from .config import Config, ConfigurationError
from .hashing import fingerprint
from .main import build_reconciler, setup_logging
from .models import CosmosDB, get_parents
from .reconciler import OutcomeKind
from .security import SecretlessViolationError
from .spec_loader import SpecLoadError, load_resource, load_status, save_status

logger = logging.getLogger(__name__)

STATUS_FILE_SUFFIX = ".status.json"

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_SECURITY = 2
EXIT_IN_PROGRESS = 3

OUTCOME_EXIT_CODES: dict[OutcomeKind, int] = {
    OutcomeKind.READY: EXIT_OK,
    OutcomeKind.TERMINAL: EXIT_OK,
    OutcomeKind.IN_PROGRESS: EXIT_IN_PROGRESS,
    OutcomeKind.TRANSIENT: EXIT_FAILURE,
}

manifest_argument = click.argument(
    "manifest",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
status_option = click.option(
    "--status",
    "status_path",
    type=click.Path(dir_okay=False, path_type=Path),
    help=f"Status file (default: <manifest>{STATUS_FILE_SUFFIX})",
)


def default_status_path(manifest: Path) -> Path:
    """Status file kept beside the manifest."""
    return manifest.with_name(manifest.stem + STATUS_FILE_SUFFIX)


def _load_or_exit(ctx: click.Context, manifest: Path) -> CosmosDB:
    try:
        return load_resource(manifest)
    except SpecLoadError as e:
        click.echo(str(e), err=True)
        ctx.exit(EXIT_FAILURE)


def _run_step(ctx: click.Context, operation: str, manifest: Path, status_path: Path | None) -> None:
    try:
        config = Config.from_env()
    except ConfigurationError as e:
        click.echo(str(e), err=True)
        ctx.exit(EXIT_FAILURE)

    setup_logging(config.log_level_value)

    status_path = status_path or default_status_path(manifest)
    resource = _load_or_exit(ctx, manifest)
    try:
        resource.status = load_status(status_path)
    except SpecLoadError as e:
        click.echo(str(e), err=True)
        ctx.exit(EXIT_FAILURE)

    try:
        reconciler = build_reconciler(config)
    except SecretlessViolationError as e:
        logger.critical("Security violation: credentials detected in environment")
        click.echo(str(e), err=True)
        ctx.exit(EXIT_SECURITY)

    step = reconciler.ensure if operation == "ensure" else reconciler.delete
    outcome = step(resource)
    save_status(status_path, resource.status)

    logger.info(
        "Reconcile step finished",
        extra={"operation": operation, "object": str(resource.key), "outcome": outcome.kind.value},
    )
    click.echo(json.dumps({**outcome.to_dict(), "status": resource.status.to_dict()}, indent=2))
    ctx.exit(OUTCOME_EXIT_CODES[outcome.kind])


@click.group()
@click.version_option(version="0.1.0", prog_name="cosmosdb-operator")
def cli() -> None:
    """Cosmos DB account operator."""


@cli.command()
@manifest_argument
@status_option
@click.pass_context
def ensure(ctx: click.Context, manifest: Path, status_path: Path | None) -> None:
    """Create or update the account described by MANIFEST."""
    _run_step(ctx, "ensure", manifest, status_path)


@cli.command()
@manifest_argument
@status_option
@click.pass_context
def delete(ctx: click.Context, manifest: Path, status_path: Path | None) -> None:
    """Delete the account described by MANIFEST and its key secret."""
    _run_step(ctx, "delete", manifest, status_path)


@cli.command()
@manifest_argument
@click.pass_context
def parents(ctx: click.Context, manifest: Path) -> None:
    """Print the objects MANIFEST depends on."""
    resource = _load_or_exit(ctx, manifest)
    click.echo(
        json.dumps(
            [
                {"namespace": p.key.namespace, "name": p.key.name, "kind": p.target}
                for p in get_parents(resource)
            ],
            indent=2,
        )
    )


@cli.command("hash")
@manifest_argument
@click.pass_context
def hash_command(ctx: click.Context, manifest: Path) -> None:
    """Print the fingerprint of MANIFEST's desired spec."""
    resource = _load_or_exit(ctx, manifest)
    click.echo(fingerprint(resource.desired()))


def main() -> None:
    """Entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
