"""connectlab command line interface."""

from __future__ import annotations

import logging
import sys
import threading

import click
from rich.console import Console
from rich.table import Table

from connectlab.backend import PROJECT_LABEL
from connectlab.cli.doctor import doctor
from connectlab.config import Settings, load_settings
from connectlab.docker import DockerCLI, DockerError
from connectlab.errors import ConnectLabError
from connectlab.session import TestSession

console = Console()


def setup_logging(verbose: bool) -> None:
    """Configure logging based on verbosity level."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.option("--config", "-c", type=click.Path(exists=True), help="Path to settings YAML file")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, config: str | None) -> None:
    """connectlab - ephemeral broker/connect/HTTP test environments."""
    ctx.ensure_object(dict)
    setup_logging(verbose)
    try:
        ctx.obj["settings"] = load_settings(config)
    except ConnectLabError as e:
        raise click.ClickException(str(e)) from e


cli.add_command(doctor)


def _endpoints_table(session: TestSession) -> Table:
    state = session.state
    endpoints = session.endpoints

    table = Table(title=f"Session {state.session_id}")
    table.add_column("Endpoint", style="cyan")
    table.add_column("Address")
    table.add_row("Network", state.network.name if state.network else "-")
    table.add_row("Broker bootstrap", endpoints.broker_bootstrap)
    table.add_row("Broker bootstrap (network)", endpoints.broker_internal_bootstrap)
    table.add_row("Broker admin", endpoints.broker_admin_url)
    table.add_row("Schema registry", endpoints.schema_registry_url)
    table.add_row("Kafka Connect", endpoints.connect_url)
    table.add_row("HTTP target", endpoints.target_url)
    table.add_row("HTTP target (network)", endpoints.target_internal_url)
    if state.config is not None:
        for cluster in state.config.clusters:
            table.add_row(f"Cluster {cluster.name}", cluster.url)
    return table


@cli.command()
@click.pass_context
def up(ctx: click.Context) -> None:
    """Provision the environment and keep it running until Ctrl-C."""
    settings: Settings = ctx.obj["settings"]
    session = TestSession(settings=settings)

    try:
        session.setup()
    except ConnectLabError as e:
        console.print(f"[red]Setup failed:[/red] {e}")
        sys.exit(1)

    try:
        console.print(_endpoints_table(session))
        console.print("[dim]Press Ctrl-C to tear down[/dim]")
        threading.Event().wait()
    except KeyboardInterrupt:
        console.print("\nTearing down...")
    finally:
        failures = session.teardown()

    if failures:
        for failure in failures:
            console.print(f"[red]!![/red] {failure}")
        sys.exit(1)
    console.print("[green]Environment removed[/green]")


@cli.command()
@click.pass_context
def prune(ctx: click.Context) -> None:
    """Remove containers and networks left behind by interrupted runs."""
    settings: Settings = ctx.obj["settings"]
    backend = DockerCLI(timeout=settings.docker_timeout)
    label = f"{PROJECT_LABEL}={settings.network_prefix}"

    try:
        containers, networks = backend.list_labeled(label)
    except DockerError as e:
        raise click.ClickException(str(e)) from e

    failed = 0
    for container_id in containers:
        try:
            backend.remove_container(container_id)
            console.print(f"removed container {container_id[:12]}")
        except DockerError as e:
            console.print(f"[red]!![/red] container {container_id[:12]}: {e}")
            failed += 1
    for network in networks:
        try:
            backend.remove_network(network)
            console.print(f"removed network {network}")
        except DockerError as e:
            console.print(f"[red]!![/red] network {network}: {e}")
            failed += 1

    if not containers and not networks:
        console.print("Nothing to prune")
    if failed:
        sys.exit(1)


def main() -> None:
    """Main entry point for the CLI."""
    cli()


__all__ = ["cli", "main"]
