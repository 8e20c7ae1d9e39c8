"""Applier CLI.

Usage:
    applier apply app.yaml             # Apply an application once
    applier apply app.yaml --context kind-dev
    applier validate app.yaml          # Check a document without a cluster
"""

from __future__ import annotations

import dataclasses
import sys
from pathlib import Path

import click

from .config import Config, ConfigurationError
from .main import run_apply, setup_logging
from .models import DELETE_FIELDS, DESIRED_FIELDS, Outcome
from .spec_loader import SpecLoadError, load_application


def load_config(**overrides: object) -> Config:
    """Load configuration from the environment with CLI overrides applied.

    Raises:
        click.ClickException: If the resulting configuration is invalid.
    """
    try:
        config = Config.from_env()
        changes = {k: v for k, v in overrides.items() if v is not None}
        return dataclasses.replace(config, **changes) if changes else config
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e


@click.group()
@click.version_option(version="0.1.0", prog_name="applier")
def cli() -> None:
    """Converge Kubernetes resources of an application to their desired state."""


@cli.command()
@click.argument("app_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--context", "kube_context", default=None, help="kubeconfig context to use")
@click.option("--in-cluster", is_flag=True, help="Use the pod service account")
@click.option("--log-level", default=None, help="Root log level")
@click.option("--text-logs", is_flag=True, help="Plain text logs instead of JSON")
def apply(
    app_file: Path,
    kube_context: str | None,
    in_cluster: bool,
    log_level: str | None,
    text_logs: bool,
) -> None:
    """Apply APP_FILE once and report per-resource outcomes."""
    config = load_config(
        kube_context=kube_context,
        in_cluster=True if in_cluster else None,
        log_level=log_level.upper() if log_level else None,
        json_logs=False if text_logs else None,
    )
    setup_logging(config.log_level, config.json_logs)

    exit_code, result = run_apply(config, app_file)
    if result is not None:
        for outcome in result.outcomes:
            color = "red" if outcome.outcome == Outcome.FAILED else None
            click.secho(str(outcome), fg=color)
        counts = ", ".join(f"{k.lower()}={v}" for k, v in result.counts().items() if v)
        click.echo(f"Applied {result.service_id} in {result.duration_seconds:.1f}s: {counts}")
    sys.exit(exit_code)


@cli.command()
@click.argument("app_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def validate(app_file: Path) -> None:
    """Validate APP_FILE without contacting a cluster."""
    try:
        app = load_application(app_file)
    except SpecLoadError as e:
        raise click.ClickException(str(e)) from e

    click.echo(f"Application {app.service_id} (tenant {app.tenant_id})")
    if app.is_narrow_update:
        click.echo(f"  narrow update: {app.custom_params}")
    for kind in DESIRED_FIELDS:
        click.echo(f"  {kind.value}: {len(app.desired(kind))} desired")
    for kind in DELETE_FIELDS:
        if app.deletes(kind):
            click.echo(f"  {kind.value}: {len(app.deletes(kind))} to delete")
    click.secho("✓ Valid", fg="green")


if __name__ == "__main__":
    cli()
