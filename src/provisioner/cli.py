"""Play provisioner CLI.

Usage:
    provisioner apply                      # Create or update the built-in topology
    provisioner apply -d infra.yaml        # Apply a definition file
    provisioner teardown --yes             # Delete without confirmation
    provisioner show -d infra.yaml         # Print the resolved topology as JSON

Credentials and settings are read from the environment, see
provisioner.config and provisioner.credentials.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import click

from .config import ConfigurationError, Settings
from .main import main, resolve_config
from .reconciler import Operation
from .spec_loader import SpecLoadError

definition_option = click.option(
    "--definition",
    "-d",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="YAML infrastructure definition (default: built-in topology)",
)


@click.group()
@click.version_option(version="0.1.0", prog_name="provisioner")
def cli() -> None:
    """Provision the Play Azure infrastructure.

    \b
    Quick Start:
        provisioner show       # Inspect the topology
        provisioner apply      # Create or update it
        provisioner teardown   # Delete it
    """
    pass


@cli.command()
@definition_option
@click.pass_context
def apply(ctx: click.Context, definition: Path | None) -> None:
    """Create or update every resource in the topology."""
    ctx.exit(asyncio.run(main(Operation.APPLY, definition)))


@cli.command()
@definition_option
@click.option("--yes", "-y", is_flag=True, help="Skip the confirmation prompt")
@click.pass_context
def teardown(ctx: click.Context, definition: Path | None, yes: bool) -> None:
    """Delete every resource in the topology."""
    if not yes:
        click.confirm("This deletes the resources and their data. Continue?", abort=True)
    ctx.exit(asyncio.run(main(Operation.TEARDOWN, definition)))


@cli.command()
@definition_option
def show(definition: Path | None) -> None:
    """Print the topology apply and teardown would act on, as JSON."""
    try:
        config = resolve_config(Settings.from_env(), definition)
    except (ConfigurationError, SpecLoadError) as e:
        raise click.ClickException(str(e)) from e
    click.echo(config.model_dump_json(indent=2))


if __name__ == "__main__":
    cli()
