"""connectlab doctor - checks that the container runtime is usable."""

from __future__ import annotations

import socket
import sys
from collections.abc import Callable

import click
from rich.console import Console
from rich.table import Table

from connectlab.docker import DockerCLI

console = Console()


class HealthCheck:
    """A single health check with name, check function, and required flag."""

    def __init__(
        self,
        name: str,
        check_fn: Callable[[], tuple[bool, str]],
        required: bool = True,
    ) -> None:
        self.name = name
        self.check_fn = check_fn
        self.required = required

    def run(self) -> tuple[bool, str]:
        """Run the health check and return (success, message)."""
        try:
            return self.check_fn()
        except Exception as e:
            return False, str(e)


def check_python_version() -> tuple[bool, str]:
    """Check if Python version meets minimum requirements (>= 3.10)."""
    version = sys.version_info
    if version >= (3, 10):
        return True, f"Python {version.major}.{version.minor}.{version.micro}"
    return False, f"Python {version.major}.{version.minor} (requires >= 3.10)"


def check_docker() -> tuple[bool, str]:
    """Check if the Docker CLI is installed and the daemon is running."""
    health = DockerCLI.check_docker_health()
    if health.is_healthy:
        return True, health.docker_version
    return False, "; ".join(health.errors) or "Docker unavailable"


def check_loopback_bind() -> tuple[bool, str]:
    """Check that ephemeral ports can be bound locally."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        port = sock.getsockname()[1]
    return True, f"bound ephemeral port {port}"


def get_health_checks() -> list[HealthCheck]:
    return [
        HealthCheck("Python version", check_python_version),
        HealthCheck("Docker", check_docker),
        HealthCheck("Local port binding", check_loopback_bind, required=False),
    ]


def run_health_checks(checks: list[HealthCheck] | None = None) -> tuple[int, int, int]:
    """Run health checks and display results.

    Returns:
        Tuple of (passed, failed_required, failed_optional) counts.
    """
    if checks is None:
        checks = get_health_checks()

    console.print("\n[bold blue]connectlab doctor[/bold blue]")

    table = Table(show_header=False, box=None)
    table.add_column("Status", width=3)
    table.add_column("Check", width=22)
    table.add_column("Result")

    passed = 0
    failed_required = 0
    failed_optional = 0

    for check in checks:
        success, message = check.run()
        if success:
            table.add_row("[green]OK[/green]", check.name, f"[green]{message}[/green]")
            passed += 1
        elif check.required:
            table.add_row("[red]!![/red]", check.name, f"[red]{message}[/red]")
            failed_required += 1
        else:
            table.add_row("[yellow]--[/yellow]", check.name, f"[yellow]{message}[/yellow]")
            failed_optional += 1

    console.print(table)
    console.print()

    return passed, failed_required, failed_optional


@click.command()
def doctor() -> None:
    """Check that Docker is available for ephemeral environments."""
    _, failed_required, _ = run_health_checks()
    if failed_required:
        console.print(f"[red]{failed_required} required check(s) failed[/red]")
        sys.exit(1)
    console.print("[green]All required checks passed[/green]")
