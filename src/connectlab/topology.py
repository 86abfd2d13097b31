"""Static templates for the broker, connector worker and HTTP target."""

from __future__ import annotations

from dataclasses import dataclass

from connectlab.config import Settings
from connectlab.services import HttpProbe, LogMessage, ServiceDefinition

BROKER = "redpanda"
WORKER = "connect"
TARGET = "httpbin"

BROKER_ALIAS = "redpanda"
WORKER_ALIAS = "redpanda-connect"
TARGET_ALIAS = "httpbin"

BROKER_ADMIN_PORT = 9644
CONNECT_REST_PORT = 8083
TARGET_HTTP_PORT = 80

BROKER_READY_LOG = "Successfully started Redpanda!"
CONNECT_READY_LOG = "Kafka Connect started"

CONNECT_WORKER_PROPERTIES = """\
key.converter=org.apache.kafka.connect.converters.ByteArrayConverter
value.converter=org.apache.kafka.connect.converters.ByteArrayConverter
group.id=connectors-cluster
offset.storage.topic=_internal_connectors_offsets
config.storage.topic=_internal_connectors_configs
status.storage.topic=_internal_connectors_status
config.storage.replication.factor=-1
offset.storage.replication.factor=-1
status.storage.replication.factor=-1
"""


@dataclass(frozen=True)
class TopologyPorts:
    """Host ports drawn for the broker listeners of one run.

    The broker listens on the same numbers inside the container, so the
    advertised addresses are valid both inside the network and on the host.
    """

    plaintext: int
    outside: int
    admin: int
    schema_registry: int

    COUNT = 4

    @classmethod
    def from_list(cls, ports: list[int]) -> TopologyPorts:
        if len(ports) != cls.COUNT or len(set(ports)) != cls.COUNT:
            raise ValueError(f"Expected {cls.COUNT} distinct ports, got {ports}")
        return cls(*ports)

    @property
    def internal_bootstrap(self) -> str:
        return f"{BROKER_ALIAS}:{self.plaintext}"


def broker_definition(ports: TopologyPorts, settings: Settings) -> ServiceDefinition:
    return ServiceDefinition(
        name=BROKER,
        image=settings.broker_image,
        hostname=BROKER_ALIAS,
        aliases=frozenset({BROKER_ALIAS, "local-redpanda"}),
        exposed_ports=frozenset(
            {ports.plaintext, ports.outside, BROKER_ADMIN_PORT, ports.schema_registry}
        ),
        port_bindings={
            ports.plaintext: ports.plaintext,
            ports.outside: ports.outside,
            BROKER_ADMIN_PORT: ports.admin,
            ports.schema_registry: ports.schema_registry,
        },
        command=(
            "redpanda",
            "start",
            "--smp",
            "1",
            "--overprovisioned",
            "--kafka-addr",
            f"PLAINTEXT://0.0.0.0:{ports.plaintext},OUTSIDE://0.0.0.0:{ports.outside}",
            "--advertise-kafka-addr",
            f"PLAINTEXT://{BROKER_ALIAS}:{ports.plaintext},OUTSIDE://localhost:{ports.outside}",
            "--schema-registry-addr",
            f"0.0.0.0:{ports.schema_registry}",
        ),
        readiness=LogMessage(
            BROKER_READY_LOG,
            poll_interval=settings.broker_poll_interval,
            timeout=settings.broker_timeout,
        ),
    )


def worker_definition(bootstrap_servers: list[str], settings: Settings) -> ServiceDefinition:
    return ServiceDefinition(
        name=WORKER,
        image=settings.connect_image,
        hostname=WORKER_ALIAS,
        aliases=frozenset({WORKER_ALIAS}),
        exposed_ports=frozenset({CONNECT_REST_PORT}),
        env={
            "CONNECT_CONFIGURATION": CONNECT_WORKER_PROPERTIES,
            "CONNECT_BOOTSTRAP_SERVERS": ",".join(bootstrap_servers),
            "CONNECT_GC_LOG_ENABLED": "false",
            "CONNECT_HEAP_OPTS": settings.connect_heap_opts,
            "CONNECT_LOG_LEVEL": settings.connect_log_level,
        },
        readiness=LogMessage(
            CONNECT_READY_LOG,
            poll_interval=settings.connect_poll_interval,
            timeout=settings.connect_timeout,
        ),
    )


def target_definition(settings: Settings) -> ServiceDefinition:
    return ServiceDefinition(
        name=TARGET,
        image=settings.target_image,
        hostname=TARGET_ALIAS,
        aliases=frozenset({TARGET_ALIAS, "local-httpbin"}),
        exposed_ports=frozenset({TARGET_HTTP_PORT}),
        readiness=HttpProbe(
            "/",
            port=TARGET_HTTP_PORT,
            poll_interval=settings.target_poll_interval,
            timeout=settings.target_timeout,
        ),
    )


@dataclass(frozen=True)
class Topology:
    """The three service definitions of one test run."""

    broker: ServiceDefinition
    worker: ServiceDefinition
    target: ServiceDefinition

    @classmethod
    def build(cls, ports: TopologyPorts, settings: Settings) -> Topology:
        return cls(
            broker=broker_definition(ports, settings),
            worker=worker_definition([ports.internal_bootstrap], settings),
            target=target_definition(settings),
        )


__all__ = [
    "BROKER",
    "CONNECT_REST_PORT",
    "TARGET",
    "Topology",
    "TopologyPorts",
    "WORKER",
    "broker_definition",
    "target_definition",
    "worker_definition",
]
