"""Docker CLI backend for the container orchestrator."""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from collections.abc import Mapping
from dataclasses import dataclass
from urllib.parse import urlparse

from connectlab.backend import ContainerSpec

logger = logging.getLogger(__name__)


class DockerError(Exception):
    """Base exception for Docker operations."""

    def __init__(self, message: str, command: list[str] | None = None, stderr: str = "") -> None:
        super().__init__(message)
        self.command = command
        self.stderr = stderr

    def __str__(self) -> str:
        message = super().__str__()
        if self.stderr:
            return f"{message}: {self.stderr.strip()}"
        return message


class DockerNotFoundError(DockerError):
    """Raised when Docker is not installed or not running."""

    pass


class DockerCommandError(DockerError):
    """Raised when a docker command fails."""

    pass


@dataclass
class DockerHealthCheck:
    """Result of a Docker health check."""

    docker_available: bool
    daemon_running: bool
    docker_version: str
    errors: list[str]

    @property
    def is_healthy(self) -> bool:
        """Check if Docker environment is usable."""
        return self.docker_available and self.daemon_running and not self.errors


class DockerCLI:
    """Container backend that shells out to the ``docker`` command.

    Args:
        docker_bin: Name or path of the docker executable.
        timeout: Default timeout in seconds for each command.
    """

    def __init__(self, docker_bin: str = "docker", timeout: float = 120.0) -> None:
        self.docker_bin = docker_bin
        self.timeout = timeout

    def _run_command(
        self,
        *args: str,
        check: bool = True,
        timeout: float | None = None,
    ) -> subprocess.CompletedProcess[str]:
        """Run a docker command.

        Args:
            *args: Command arguments.
            check: Whether to raise on non-zero exit code.
            timeout: Command timeout in seconds.

        Returns:
            CompletedProcess with command results.

        Raises:
            DockerNotFoundError: If the docker executable is missing.
            DockerCommandError: If command fails and check=True.
        """
        cmd = [self.docker_bin, *args]
        logger.debug(f"Running docker command: {' '.join(cmd)}")

        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                check=False,
                timeout=timeout or self.timeout,
            )
        except FileNotFoundError as e:
            raise DockerNotFoundError(
                "Docker command not found. Please install Docker.",
                command=cmd,
            ) from e
        except subprocess.TimeoutExpired as e:
            raise DockerCommandError(
                f"Docker command timed out: {' '.join(args)}",
                command=cmd,
            ) from e

        if check and result.returncode != 0:
            raise DockerCommandError(
                f"Docker command failed: {' '.join(args)}",
                command=cmd,
                stderr=result.stderr,
            )

        return result

    def create_network(self, name: str, labels: Mapping[str, str] | None = None) -> str:
        cmd_args = ["network", "create", "--attachable"]
        for key, value in (labels or {}).items():
            cmd_args.extend(["--label", f"{key}={value}"])
        cmd_args.append(name)

        result = self._run_command(*cmd_args)
        network_id = result.stdout.strip()
        logger.info(f"Created network {name} ({network_id[:12]})")
        return network_id

    def remove_network(self, name: str) -> None:
        self._run_command("network", "rm", name)
        logger.info(f"Removed network {name}")

    def run_container(self, spec: ContainerSpec) -> str:
        cmd_args = ["run", "-d", "--name", spec.name, "--network", spec.network]
        if spec.hostname:
            cmd_args.extend(["--hostname", spec.hostname])
        for alias in spec.aliases:
            cmd_args.extend(["--network-alias", alias])
        for port in sorted(spec.exposed_ports):
            host_port = spec.port_bindings.get(port)
            if host_port is None:
                # Let docker pick a free host port.
                cmd_args.extend(["-p", f"{port}/tcp"])
            else:
                cmd_args.extend(["-p", f"{host_port}:{port}/tcp"])
        for key, value in spec.env.items():
            cmd_args.extend(["-e", f"{key}={value}"])
        for key, value in spec.labels.items():
            cmd_args.extend(["--label", f"{key}={value}"])
        cmd_args.append(spec.image)
        cmd_args.extend(spec.command)

        # Image pulls can be slow on a cold cache.
        result = self._run_command(*cmd_args, timeout=max(self.timeout, 600))
        container_id = result.stdout.strip().splitlines()[-1]
        logger.info(f"Started container {spec.name} ({container_id[:12]}) from {spec.image}")
        return container_id

    def logs(self, container_id: str) -> str:
        result = self._run_command("logs", container_id, check=False)
        return result.stdout + result.stderr

    def state(self, container_id: str) -> str:
        result = self._run_command(
            "inspect", "--format", "{{.State.Status}}", container_id, check=False
        )
        if result.returncode != 0:
            return "unknown"
        return result.stdout.strip().lower()

    def mapped_port(self, container_id: str, port: int) -> int:
        """Get the host port published for a container port.

        ``docker port`` prints one line per binding, e.g.
        ``0.0.0.0:49153`` and ``[::]:49153``.

        Raises:
            DockerCommandError: If the port is not published.
        """
        result = self._run_command("port", container_id, f"{port}/tcp")
        for line in result.stdout.strip().splitlines():
            host_port = line.strip().rsplit(":", 1)[-1]
            if host_port.isdigit():
                return int(host_port)
        raise DockerCommandError(
            f"Port {port}/tcp is not published for container {container_id[:12]}",
            command=[self.docker_bin, "port", container_id, f"{port}/tcp"],
            stderr=result.stdout,
        )

    def host(self) -> str:
        docker_host = os.environ.get("DOCKER_HOST", "")
        if docker_host.startswith(("tcp://", "http://", "https://")):
            return urlparse(docker_host).hostname or "localhost"
        return "localhost"

    def remove_container(self, container_id: str) -> None:
        self._run_command("rm", "-f", "-v", container_id)
        logger.info(f"Removed container {container_id[:12]}")

    def list_labeled(self, label: str) -> tuple[list[str], list[str]]:
        containers = self._run_command("ps", "-aq", "--filter", f"label={label}")
        networks = self._run_command(
            "network", "ls", "--format", "{{.Name}}", "--filter", f"label={label}"
        )
        return (
            [line for line in containers.stdout.split() if line],
            [line for line in networks.stdout.split() if line],
        )

    @classmethod
    def check_docker_health(cls, docker_bin: str = "docker") -> DockerHealthCheck:
        """Check if the Docker CLI and daemon are available.

        Returns:
            DockerHealthCheck with status information.
        """
        errors: list[str] = []
        docker_available = False
        daemon_running = False
        docker_version = ""

        if not shutil.which(docker_bin):
            errors.append("Docker not found in PATH")
            return DockerHealthCheck(False, False, "", errors)

        try:
            result = subprocess.run(
                [docker_bin, "--version"],
                capture_output=True,
                text=True,
                timeout=10,
            )
            if result.returncode == 0:
                docker_available = True
                docker_version = result.stdout.strip()
            else:
                errors.append(f"Docker check failed: {result.stderr.strip()}")
        except subprocess.TimeoutExpired:
            errors.append("Docker command timed out - is Docker running?")

        if docker_available:
            try:
                result = subprocess.run(
                    [docker_bin, "info"],
                    capture_output=True,
                    text=True,
                    timeout=10,
                )
                if result.returncode == 0:
                    daemon_running = True
                else:
                    errors.append("Docker daemon is not running")
            except subprocess.TimeoutExpired:
                errors.append("Docker daemon not responding")

        return DockerHealthCheck(
            docker_available=docker_available,
            daemon_running=daemon_running,
            docker_version=docker_version,
            errors=errors,
        )


__all__ = [
    "DockerCLI",
    "DockerCommandError",
    "DockerError",
    "DockerHealthCheck",
    "DockerNotFoundError",
]
