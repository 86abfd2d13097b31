"""Isolated per-run networks."""

from __future__ import annotations

import hashlib
import logging
import os
import random
import time
from dataclasses import dataclass, field

from connectlab.backend import PROJECT_LABEL, SESSION_LABEL, ContainerBackend
from connectlab.errors import ErrorContext, NetworkCreationError, NetworkRemovalError

logger = logging.getLogger(__name__)


def unique_suffix() -> str:
    """Short hex token that differs between concurrent runs."""
    hash_input = f"{os.getpid()}:{time.time_ns()}:{random.random()}"
    return hashlib.md5(hash_input.encode()).hexdigest()[:8]


@dataclass
class NetworkHandle:
    """An isolated network owned by one test session.

    Attributes:
        name: Network name, unique per run.
        network_id: Backend identifier returned on creation.
        session_id: Session the network belongs to.
        project: Project label value shared by all runs.
        removed: Set once removal has been attempted.
    """

    name: str
    network_id: str
    session_id: str
    project: str = "connectlab"
    removed: bool = field(default=False, compare=False)


class NetworkFabric:
    """Creates and removes the isolated network a test run lives in.

    Args:
        backend: Container backend used to manage the network.
        prefix: Prefix for generated network names.
    """

    def __init__(self, backend: ContainerBackend, prefix: str = "connectlab") -> None:
        self.backend = backend
        self.prefix = prefix

    def create_network(self, session_id: str | None = None) -> NetworkHandle:
        """Create an attachable network scoped to one test run.

        Raises:
            NetworkCreationError: If the backend fails to create it.
        """
        session_id = session_id or unique_suffix()
        name = f"{self.prefix}_{session_id}"
        labels = {PROJECT_LABEL: self.prefix, SESSION_LABEL: session_id}

        try:
            network_id = self.backend.create_network(name, labels=labels)
        except Exception as e:
            raise NetworkCreationError(
                f"Failed to create network {name}: {e}",
                context=ErrorContext(phase="setup", extra={"network": name}),
                cause=e,
            ) from e

        return NetworkHandle(
            name=name, network_id=network_id, session_id=session_id, project=self.prefix
        )

    def remove_network(self, handle: NetworkHandle) -> None:
        """Remove the network. Safe to call more than once.

        Only the first call talks to the backend, so a failed removal is
        reported once and later calls return quietly.

        Raises:
            NetworkRemovalError: If the first removal attempt fails.
        """
        if handle.removed:
            logger.debug(f"Network {handle.name} already removed, skipping")
            return

        handle.removed = True
        try:
            self.backend.remove_network(handle.name)
        except Exception as e:
            raise NetworkRemovalError(
                f"Failed to remove network {handle.name}: {e}",
                context=ErrorContext(phase="teardown", extra={"network": handle.name}),
                cause=e,
            ) from e


__all__ = ["NetworkFabric", "NetworkHandle", "unique_suffix"]
