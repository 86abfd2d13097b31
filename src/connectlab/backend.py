"""Container backend protocol - lets the orchestrator run on different runtimes."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Protocol

PROJECT_LABEL = "io.connectlab.project"
SESSION_LABEL = "io.connectlab.session"


@dataclass(frozen=True)
class ContainerSpec:
    """Everything a backend needs to start one container."""

    name: str
    image: str
    network: str
    hostname: str | None = None
    aliases: Sequence[str] = ()
    exposed_ports: Sequence[int] = ()
    port_bindings: Mapping[int, int] = field(default_factory=dict)
    env: Mapping[str, str] = field(default_factory=dict)
    labels: Mapping[str, str] = field(default_factory=dict)
    command: Sequence[str] = ()


class ContainerBackend(Protocol):
    """Protocol for container runtimes used by the orchestrator."""

    def create_network(self, name: str, labels: Mapping[str, str] | None = None) -> str:
        """Create an attachable network and return its id."""
        ...

    def remove_network(self, name: str) -> None:
        """Remove a network."""
        ...

    def run_container(self, spec: ContainerSpec) -> str:
        """Create and start a detached container and return its id."""
        ...

    def logs(self, container_id: str) -> str:
        """Get combined stdout and stderr of a container."""
        ...

    def state(self, container_id: str) -> str:
        """Get the container state, e.g. ``running`` or ``exited``."""
        ...

    def mapped_port(self, container_id: str, port: int) -> int:
        """Get the host port published for a container port."""
        ...

    def host(self) -> str:
        """Get the address the host process uses to reach published ports."""
        ...

    def remove_container(self, container_id: str) -> None:
        """Stop and remove a container together with its anonymous volumes."""
        ...

    def list_labeled(self, label: str) -> tuple[list[str], list[str]]:
        """List container ids and network names carrying a label."""
        ...


__all__ = ["ContainerBackend", "ContainerSpec", "PROJECT_LABEL", "SESSION_LABEL"]
