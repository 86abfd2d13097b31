"""Tests for the service templates."""

from __future__ import annotations

import pytest

from connectlab.config import Settings
from connectlab.services import HttpProbe, LogMessage, ServiceDefinition
from connectlab.topology import (
    BROKER_ADMIN_PORT,
    BROKER_READY_LOG,
    CONNECT_READY_LOG,
    CONNECT_REST_PORT,
    Topology,
    TopologyPorts,
    broker_definition,
    target_definition,
    worker_definition,
)

PORTS = TopologyPorts(plaintext=21001, outside=21002, admin=21003, schema_registry=21004)


class TestTopologyPorts:
    """Tests for TopologyPorts."""

    def test_from_list(self) -> None:
        assert TopologyPorts.from_list([21001, 21002, 21003, 21004]) == PORTS

    @pytest.mark.parametrize("ports", [[1, 2, 3], [1, 2, 3, 3], [1, 2, 3, 4, 5]])
    def test_from_list_rejects_bad_input(self, ports: list[int]) -> None:
        with pytest.raises(ValueError):
            TopologyPorts.from_list(ports)

    def test_internal_bootstrap_uses_alias(self) -> None:
        assert PORTS.internal_bootstrap == "redpanda:21001"


class TestBrokerDefinition:
    """Tests for the Redpanda template."""

    def test_listeners_use_drawn_ports(self) -> None:
        definition = broker_definition(PORTS, Settings(check_bindable=False))

        assert definition.port_bindings == {
            21001: 21001,
            21002: 21002,
            BROKER_ADMIN_PORT: 21003,
            21004: 21004,
        }
        command = " ".join(definition.command)
        assert "--kafka-addr PLAINTEXT://0.0.0.0:21001,OUTSIDE://0.0.0.0:21002" in command
        assert "--advertise-kafka-addr PLAINTEXT://redpanda:21001,OUTSIDE://localhost:21002" in command
        assert "--schema-registry-addr 0.0.0.0:21004" in command

    def test_readiness_follows_settings(self) -> None:
        settings = Settings(broker_timeout=12, broker_poll_interval=0.25)

        readiness = broker_definition(PORTS, settings).readiness

        assert readiness == LogMessage(BROKER_READY_LOG, poll_interval=0.25, timeout=12)


class TestWorkerDefinition:
    """Tests for the Kafka Connect template."""

    def test_environment(self) -> None:
        settings = Settings(connect_heap_opts="-Xmx1G")

        definition = worker_definition(["redpanda:21001"], settings)

        assert definition.env["CONNECT_BOOTSTRAP_SERVERS"] == "redpanda:21001"
        assert definition.env["CONNECT_HEAP_OPTS"] == "-Xmx1G"
        assert "group.id=connectors-cluster" in definition.env["CONNECT_CONFIGURATION"]
        assert definition.exposed_ports == frozenset({CONNECT_REST_PORT})
        assert "redpanda-connect" in definition.aliases
        assert isinstance(definition.readiness, LogMessage)
        assert definition.readiness.text == CONNECT_READY_LOG

    def test_definition_is_immutable(self) -> None:
        definition = worker_definition(["redpanda:21001"], Settings())

        with pytest.raises(TypeError):
            definition.env["CONNECT_LOG_LEVEL"] = "debug"  # type: ignore[index]


class TestTargetDefinition:
    """Tests for the httpbin template."""

    def test_http_probe(self) -> None:
        definition = target_definition(Settings(target_timeout=5))

        assert definition.readiness == HttpProbe("/", port=80, poll_interval=0.1, timeout=5)
        assert definition.port_bindings == {}


class TestTopology:
    """Tests for Topology.build."""

    def test_worker_points_at_broker(self) -> None:
        topology = Topology.build(PORTS, Settings())

        assert topology.worker.env["CONNECT_BOOTSTRAP_SERVERS"] == PORTS.internal_bootstrap
        assert [topology.broker.name, topology.worker.name, topology.target.name] == [
            "redpanda",
            "connect",
            "httpbin",
        ]


class TestServiceDefinition:
    """Tests for ServiceDefinition validation."""

    def test_binding_requires_exposed_port(self) -> None:
        with pytest.raises(ValueError, match="not exposed"):
            ServiceDefinition(
                name="x",
                image="x",
                readiness=LogMessage("ready"),
                port_bindings={80: 8080},
            )

    def test_definitions_are_hashable(self) -> None:
        definition = target_definition(Settings())

        assert definition in {definition}
