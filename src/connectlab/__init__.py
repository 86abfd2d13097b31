"""connectlab - ephemeral test environments for a Kafka Connect control plane.

Provisions an isolated network with a Redpanda broker, a Kafka Connect
worker and an httpbin target, waits until each is ready, points the system
under test at them, and tears everything down afterwards.

Quick Start:
    from connectlab import ScenarioRequest, TestSession

    with TestSession(api=client, target=app.state, attribute="connect_svc") as session:
        response = session.run_scenario(ScenarioRequest("GET", "/api/kafka-connect"))
"""

from __future__ import annotations

from connectlab.config import ConnectCluster, ConnectConfig, Settings, load_settings
from connectlab.errors import (
    ClientOverrideError,
    ConfigurationError,
    ConnectLabError,
    ErrorCode,
    ErrorContext,
    NetworkCreationError,
    NetworkRemovalError,
    PortAllocationExhaustedError,
    ProvisioningError,
    ReadinessTimeoutError,
    ScenarioRequestError,
    ServiceStartError,
    ServiceTerminationError,
    TeardownError,
)
from connectlab.launcher import ServiceLauncher
from connectlab.network import NetworkFabric, NetworkHandle
from connectlab.ports import PortAllocator
from connectlab.readiness import ReadinessWaiter
from connectlab.services import HttpProbe, LogMessage, RunningService, ServiceDefinition
from connectlab.session import (
    ClientOverride,
    EphemeralEndpoints,
    ReleaseFailure,
    ScenarioRequest,
    ScenarioResponse,
    SessionState,
    TestSession,
)
from connectlab.topology import Topology, TopologyPorts

__version__ = "0.1.0"

__all__ = [
    "ClientOverride",
    "ClientOverrideError",
    "ConfigurationError",
    "ConnectCluster",
    "ConnectConfig",
    "ConnectLabError",
    "EphemeralEndpoints",
    "ErrorCode",
    "ErrorContext",
    "HttpProbe",
    "LogMessage",
    "NetworkCreationError",
    "NetworkFabric",
    "NetworkHandle",
    "NetworkRemovalError",
    "PortAllocationExhaustedError",
    "PortAllocator",
    "ProvisioningError",
    "ReadinessTimeoutError",
    "ReadinessWaiter",
    "ReleaseFailure",
    "RunningService",
    "ScenarioRequest",
    "ScenarioRequestError",
    "ScenarioResponse",
    "ServiceDefinition",
    "ServiceLauncher",
    "ServiceStartError",
    "ServiceTerminationError",
    "SessionState",
    "Settings",
    "TeardownError",
    "TestSession",
    "Topology",
    "TopologyPorts",
    "load_settings",
]
