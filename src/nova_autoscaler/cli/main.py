"""Nova autoscaler CLI - drive the target by hand.

This module provides commands for operating a pool outside the orchestrator:
- status: Run the target status check and print readiness and count
- scale: Reconcile the pool toward a desired count
- inventory: List the current pool members
- zones: List the discovered availability zones

Plugin configuration is passed as repeated --set key=value options, the
same keys the orchestrator hands the target. Credentials come from the
usual OS_* and NOMAD_* environment variables.

Uses asyncio.run() to execute async operations in sync CLI commands.
"""

import asyncio
import logging

import typer
from rich.console import Console
from rich.table import Table

from nova_autoscaler import __version__
from nova_autoscaler.config import KV_SEPARATOR, TargetConfig, require_pool_name
from nova_autoscaler.exceptions import NovaAutoscalerError
from nova_autoscaler.factory import create_openstack_clients
from nova_autoscaler.identity import build_identity
from nova_autoscaler.inventory import PoolInventory
from nova_autoscaler.settings import OpenStackSettings
from nova_autoscaler.target import NovaTarget
from nova_autoscaler.types import DRY_RUN_COUNT, ScalingAction

app = typer.Typer(
    name="nova-autoscaler",
    help="Autoscale pools of OpenStack Nova servers",
    no_args_is_help=True,
)

console = Console()

SET_HELP = "Plugin config entry as key=value (repeatable)"


def parse_settings(entries: list[str] | None) -> dict[str, str]:
    """Turn repeated key=value options into a config mapping."""
    config: dict[str, str] = {}
    for entry in entries or []:
        key, sep, value = entry.partition(KV_SEPARATOR)
        if not sep or not key.strip():
            raise typer.BadParameter(f"expected key=value, got {entry!r}", param_hint="--set")
        config[key.strip()] = value
    return config


@app.callback()
def configure_logging(
    log_level: str = typer.Option("WARNING", "--log-level", "-l", help="Logging level"),
) -> None:
    """Autoscale pools of OpenStack Nova servers."""
    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.command("version")
def version() -> None:
    """Print the package version."""
    print(__version__)


@app.command("status")
def status(
    settings: list[str] = typer.Option(None, "--set", "-s", help=SET_HELP),
) -> None:
    """Show pool readiness and instance count."""
    config = parse_settings(settings)

    async def _status() -> None:
        pool = require_pool_name(config)
        target = NovaTarget()
        try:
            await target.set_config(config)
            result = await target.status(config)
        finally:
            await target.aclose()

        ready = "[green]ready[/green]" if result.ready else "[yellow]not ready[/yellow]"
        console.print(f"pool {pool}: {ready}, count={result.count}")

    _run(_status())


@app.command("scale")
def scale(
    count: int = typer.Argument(..., help="Desired number of instances"),
    settings: list[str] = typer.Option(None, "--set", "-s", help=SET_HELP),
    dry_run: bool = typer.Option(False, "--dry-run", help="Send a dry-run action"),
    reason: str = typer.Option("manual scaling from CLI", "--reason", help="Action reason"),
) -> None:
    """Scale the pool to COUNT instances."""
    config = parse_settings(settings)
    action = ScalingAction(count=DRY_RUN_COUNT if dry_run else count, reason=reason)

    async def _scale() -> None:
        pool = require_pool_name(config)
        target = NovaTarget()
        try:
            await target.set_config(config)
            await target.scale(action, config)
        finally:
            await target.aclose()

        if action.is_dry_run:
            console.print("[yellow]dry run, no changes made[/yellow]")
        else:
            console.print(f"[green]scaled pool {pool} to {count}[/green]")

    _run(_scale())


@app.command("inventory")
def inventory(
    settings: list[str] = typer.Option(None, "--set", "-s", help=SET_HELP),
) -> None:
    """List the current members of the pool."""
    config = parse_settings(settings)

    async def _inventory() -> None:
        pool = require_pool_name(config)
        target_config = TargetConfig.from_mapping(config)
        _, identity = build_identity(target_config.name_attribute, target_config.id_attribute)

        clients = await create_openstack_clients(OpenStackSettings().with_overrides(config))
        try:
            scan = await PoolInventory(
                clients.compute, identity, target_config.ignored_states
            ).scan(pool)
        finally:
            await clients.aclose()

        table = Table(title=f"Pool {pool}")
        table.add_column("ID", style="cyan")
        table.add_column("Name")
        table.add_column("AZ")
        table.add_column("State", style="green")
        for instance in scan.instances:
            table.add_row(
                instance.id, instance.name, instance.availability_zone or "-", instance.state
            )
        console.print(table)
        console.print(f"total={scan.total} ready={scan.ready} per_az={scan.az_distribution}")

    _run(_inventory())


@app.command("zones")
def zones(
    settings: list[str] = typer.Option(None, "--set", "-s", help=SET_HELP),
) -> None:
    """List the availability zones used for even splitting."""
    config = parse_settings(settings)

    async def _zones() -> None:
        clients = await create_openstack_clients(OpenStackSettings().with_overrides(config))
        try:
            names = await clients.compute.list_availability_zones()
        finally:
            await clients.aclose()

        if not names:
            console.print("[yellow]No availability zones discovered[/yellow]")
            return
        for name in names:
            print(name)

    _run(_zones())


def _run(coro) -> None:
    try:
        asyncio.run(coro)
    except NovaAutoscalerError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
