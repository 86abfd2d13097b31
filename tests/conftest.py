"""Pytest fixtures for connectlab tests."""

from __future__ import annotations

import itertools
import json
import threading
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any

import httpx
import pytest

from connectlab.backend import ContainerSpec
from connectlab.config import ConnectCluster, ConnectConfig, Settings
from connectlab.docker import DockerCommandError
from connectlab.readiness import ReadinessWaiter
from connectlab.topology import BROKER_READY_LOG, CONNECT_READY_LOG
from controlplane import ConnectService, create_app

READY_LOGS: dict[str, list[str]] = {
    "redpanda": ["starting", f"INFO  {BROKER_READY_LOG}"],
    "connect": [f"[2024-01-01] INFO {CONNECT_READY_LOG} (org.apache.kafka.connect.cli)"],
}

# HTTP source connector polling the httpbin target into a topic.
HTTP_CONNECT_INPUT: dict[str, Any] = {
    "name": "http_connect_input",
    "config": {
        "connector.class": "com.github.castorm.kafka.connect.http.HttpSourceConnector",
        "header.converter": "org.apache.kafka.connect.storage.SimpleHeaderConverter",
        "http.request.url": "http://httpbin:80/uuid",
        "http.timer.catchup.interval.millis": "10000",
        "http.timer.interval.millis": "1000",
        "kafka.topic": "httpbin-input",
        "key.converter": "org.apache.kafka.connect.json.JsonConverter",
        "key.converter.schemas.enable": "false",
        "name": "http_connect_input",
        "topic.creation.default.partitions": "1",
        "topic.creation.default.replication.factor": "1",
        "topic.creation.enable": "true",
        "value.converter": "org.apache.kafka.connect.json.JsonConverter",
        "value.converter.schemas.enable": "false",
    },
}


@dataclass
class FakeContainer:
    """A container held by FakeBackend."""

    container_id: str
    service: str
    spec: ContainerSpec
    ports: dict[int, int]
    log_script: list[str] = field(default_factory=list)
    state: str = "running"
    log_reads: int = 0

    def next_logs(self) -> str:
        if not self.log_script:
            return ""
        index = min(self.log_reads, len(self.log_script) - 1)
        self.log_reads += 1
        return "\n".join(self.log_script[: index + 1])


class FakeBackend:
    """In-memory container backend recording every call in ``events``.

    Services are identified by the suffix of the container name, which the
    launcher builds as ``<network>_<service>``.
    """

    def __init__(self, log_scripts: Mapping[str, list[str]] | None = None) -> None:
        self.log_scripts = dict(READY_LOGS if log_scripts is None else log_scripts)
        self.networks: dict[str, dict[str, str]] = {}
        self.containers: dict[str, FakeContainer] = {}
        self.events: list[tuple[str, ...]] = []
        self.fail_create_network = False
        self.fail_remove_network = False
        self.fail_run: set[str] = set()
        self.fail_remove: set[str] = set()
        self.exit_on_start: set[str] = set()
        self._ids = itertools.count(1)
        self._host_ports = itertools.count(41000)
        self._lock = threading.Lock()

    def _record(self, *event: str) -> None:
        with self._lock:
            self.events.append(event)

    def create_network(self, name: str, labels: Mapping[str, str] | None = None) -> str:
        self._record("create_network", name)
        if self.fail_create_network:
            raise DockerCommandError("Docker command failed: network create", stderr="boom")
        self.networks[name] = dict(labels or {})
        return f"net-{name}"

    def remove_network(self, name: str) -> None:
        self._record("remove_network", name)
        if self.fail_remove_network:
            raise DockerCommandError("Docker command failed: network rm", stderr="in use")
        if name not in self.networks:
            raise DockerCommandError("Docker command failed: network rm", stderr="no such network")
        del self.networks[name]

    def run_container(self, spec: ContainerSpec) -> str:
        service = spec.name.rsplit("_", 1)[-1]
        self._record("run", service)
        if spec.network not in self.networks:
            raise DockerCommandError("Docker command failed: run", stderr="network not found")
        if service in self.fail_run:
            raise DockerCommandError("Docker command failed: run", stderr="image not found")

        with self._lock:
            container_id = f"{service}-{next(self._ids):04d}"
            ports = {
                port: spec.port_bindings.get(port) or next(self._host_ports)
                for port in spec.exposed_ports
            }
        self.containers[container_id] = FakeContainer(
            container_id=container_id,
            service=service,
            spec=spec,
            ports=ports,
            log_script=list(self.log_scripts.get(service, [])),
            state="exited" if service in self.exit_on_start else "running",
        )
        return container_id

    def logs(self, container_id: str) -> str:
        container = self.containers[container_id]
        output = container.next_logs()
        self._record("logs", container.service, output)
        return output

    def state(self, container_id: str) -> str:
        container = self.containers.get(container_id)
        return container.state if container else "unknown"

    def mapped_port(self, container_id: str, port: int) -> int:
        try:
            return self.containers[container_id].ports[port]
        except KeyError:
            raise DockerCommandError(f"Port {port}/tcp is not published") from None

    def host(self) -> str:
        return "localhost"

    def remove_container(self, container_id: str) -> None:
        container = self.containers.get(container_id)
        service = container.service if container else container_id
        self._record("remove", service)
        if service in self.fail_remove:
            raise DockerCommandError("Docker command failed: rm", stderr="device busy")
        self.containers.pop(container_id, None)

    def list_labeled(self, label: str) -> tuple[list[str], list[str]]:
        key, _, value = label.partition("=")
        containers = [c.container_id for c in self.containers.values() if c.spec.labels.get(key) == value]
        networks = [n for n, labels in self.networks.items() if labels.get(key) == value]
        return containers, networks

    def index(self, *event: str) -> int:
        """Position of the first event starting with the given fields."""
        for i, recorded in enumerate(self.events):
            if recorded[: len(event)] == event:
                return i
        raise ValueError(f"No event {event} in {self.events}")

    def first_ready_log(self, service: str, text: str) -> int:
        for i, recorded in enumerate(self.events):
            if recorded[:2] == ("logs", service) and text in recorded[2]:
                return i
        raise ValueError(f"{service} never logged {text!r}")


def ok_transport() -> httpx.MockTransport:
    return httpx.MockTransport(lambda request: httpx.Response(200, text="<html>httpbin</html>"))


class FakeKafkaConnect:
    """Mock transport that answers like Kafka Connect's REST API."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.method == "POST" and request.url.path == "/connectors":
            payload: dict[str, Any] = json.loads(request.content)
            config = {**payload["config"], "name": payload["name"]}
            return httpx.Response(
                201,
                json={"name": payload["name"], "config": config, "tasks": [], "type": "source"},
            )
        return httpx.Response(404, json={"error_code": 404, "message": "not found"})

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def fast_settings() -> Settings:
    return Settings(
        check_bindable=False,
        broker_poll_interval=0.01,
        broker_timeout=2.0,
        connect_poll_interval=0.01,
        connect_timeout=2.0,
        target_poll_interval=0.01,
        target_timeout=2.0,
    )


@pytest.fixture
def http_client() -> Iterator[httpx.Client]:
    client = httpx.Client(transport=ok_transport())
    yield client
    client.close()


@pytest.fixture
def waiter(backend: FakeBackend, http_client: httpx.Client) -> ReadinessWaiter:
    return ReadinessWaiter(backend, http_client=http_client)


@pytest.fixture
def production_config() -> ConnectConfig:
    return ConnectConfig(
        enabled=True,
        clusters=[ConnectCluster(name="production", url="http://connect.internal:8083")],
    )


@pytest.fixture
def fake_connect() -> FakeKafkaConnect:
    return FakeKafkaConnect()


@pytest.fixture
def control_plane(production_config: ConnectConfig):
    """FastAPI control plane wired to a production-like Connect service."""
    return create_app(ConnectService(production_config))
