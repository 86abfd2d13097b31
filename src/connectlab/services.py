"""Service definitions, readiness predicates and running service handles."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Union

from connectlab.errors import ErrorContext, ServiceTerminationError

if TYPE_CHECKING:
    from connectlab.backend import ContainerBackend
    from connectlab.network import NetworkHandle

logger = logging.getLogger(__name__)


def _accept_2xx_3xx(status_code: int) -> bool:
    return 200 <= status_code < 400


@dataclass(frozen=True)
class LogMessage:
    """Ready once the container output contains ``text``.

    Matching is an exact, case-sensitive substring test.
    """

    text: str
    poll_interval: float = 0.1
    timeout: float = 60.0

    def describe(self) -> str:
        return f"log message {self.text!r}"


@dataclass(frozen=True)
class HttpProbe:
    """Ready once ``GET path`` on the mapped ``port`` is accepted.

    ``accept`` decides which status codes count as ready; by default any
    status from 200 to 399.
    """

    path: str = "/"
    port: int = 80
    poll_interval: float = 0.1
    timeout: float = 60.0
    accept: Callable[[int], bool] = field(default=_accept_2xx_3xx, compare=False)

    def describe(self) -> str:
        return f"HTTP probe on {self.port}{self.path}"


ReadinessPredicate = Union[LogMessage, HttpProbe]


def _frozen_mapping(value: Mapping | None) -> Mapping:
    return MappingProxyType(dict(value or {}))


@dataclass(frozen=True)
class ServiceDefinition:
    """Immutable description of one service in the topology.

    Attributes:
        name: Logical service name, also used in container names.
        image: Image reference.
        hostname: Hostname inside the container.
        aliases: Network aliases other services use to reach it.
        exposed_ports: Container ports published to the host.
        env: Environment variables.
        port_bindings: Fixed host port per container port. Ports without a
            binding get a random host port from the runtime.
        readiness: Predicate that decides when the service is usable.
        command: Command arguments passed after the image.
        labels: Extra container labels.
    """

    name: str
    image: str
    readiness: ReadinessPredicate
    hostname: str | None = None
    aliases: frozenset[str] = frozenset()
    exposed_ports: frozenset[int] = frozenset()
    env: Mapping[str, str] = field(default_factory=dict)
    port_bindings: Mapping[int, int] = field(default_factory=dict)
    command: tuple[str, ...] = ()
    labels: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "aliases", frozenset(self.aliases))
        object.__setattr__(self, "exposed_ports", frozenset(self.exposed_ports))
        object.__setattr__(self, "env", _frozen_mapping(self.env))
        object.__setattr__(self, "port_bindings", _frozen_mapping(self.port_bindings))
        object.__setattr__(self, "command", tuple(self.command))
        object.__setattr__(self, "labels", _frozen_mapping(self.labels))

        unexposed = set(self.port_bindings) - set(self.exposed_ports)
        if unexposed:
            raise ValueError(
                f"Service {self.name!r} binds ports that are not exposed: {sorted(unexposed)}"
            )

    def __hash__(self) -> int:
        return hash((self.name, self.image, self.hostname, self.aliases, self.exposed_ports))


class RunningService:
    """Handle owning one live container.

    Created by the launcher once the service is ready and terminated by
    the session that owns it.
    """

    def __init__(
        self,
        definition: ServiceDefinition,
        container_id: str,
        network: NetworkHandle,
        backend: ContainerBackend,
    ) -> None:
        self.definition = definition
        self.container_id = container_id
        self.network = network
        self.backend = backend
        self.terminated = False
        self._host: str | None = None

    @property
    def name(self) -> str:
        return self.definition.name

    @property
    def host(self) -> str:
        if self._host is None:
            self._host = self.backend.host()
        return self._host

    def mapped_port(self, port: int) -> int:
        """Host port the given container port is published on."""
        bound = self.definition.port_bindings.get(port)
        if bound is not None:
            return bound
        return self.backend.mapped_port(self.container_id, port)

    def endpoint(self, port: int) -> str:
        return f"{self.host}:{self.mapped_port(port)}"

    def url(self, port: int, scheme: str = "http") -> str:
        return f"{scheme}://{self.endpoint(port)}"

    def logs(self) -> str:
        return self.backend.logs(self.container_id)

    def terminate(self) -> None:
        """Stop and remove the container.

        The first call talks to the backend; later calls do nothing.

        Raises:
            ServiceTerminationError: If the backend fails to remove it.
        """
        if self.terminated:
            return
        self.terminated = True
        logger.debug(f"Terminating {self.name} ({self.container_id[:12]})")
        try:
            self.backend.remove_container(self.container_id)
        except Exception as e:
            raise ServiceTerminationError(
                f"Failed to terminate {self.name}: {e}",
                context=ErrorContext(service=self.name, phase="teardown"),
                cause=e,
                container_id=self.container_id,
            ) from e

    def __repr__(self) -> str:
        return f"RunningService(name={self.name!r}, container_id={self.container_id[:12]!r})"


__all__ = [
    "HttpProbe",
    "LogMessage",
    "ReadinessPredicate",
    "RunningService",
    "ServiceDefinition",
]
