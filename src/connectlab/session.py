"""Test session lifecycle: setup, scenarios, teardown.

A session provisions the whole topology, points the system under test at
it, runs scenarios against the real control-plane API and then releases
everything it acquired. Each acquisition registers its release the moment
it succeeds; teardown runs the releases in reverse order and attempts
every one of them, collecting failures instead of stopping at the first.

Example::

    app.state.connect_svc = ConnectService(production_config)

    with TestSession(
        api=TestClient(app),
        target=app.state,
        attribute="connect_svc",
        client_factory=ConnectService,
    ) as session:
        response = session.run_scenario(
            ScenarioRequest("POST", "/api/kafka-connect/clusters/redpanda_connect/connectors",
                            json={"name": "http_connect_input", "config": {...}})
        )
        assert response.status_code == 200

    # app.state.connect_svc is the production service again here
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from types import TracebackType
from typing import Any

import httpx

from connectlab.backend import ContainerBackend
from connectlab.config import ConnectCluster, ConnectConfig, Settings
from connectlab.docker import DockerCLI
from connectlab.errors import (
    ClientOverrideError,
    ErrorContext,
    ScenarioRequestError,
    TeardownError,
)
from connectlab.launcher import ServiceLauncher
from connectlab.network import NetworkFabric, NetworkHandle, unique_suffix
from connectlab.ports import PortAllocator
from connectlab.readiness import ReadinessWaiter
from connectlab.services import RunningService
from connectlab.topology import (
    BROKER,
    BROKER_ADMIN_PORT,
    CONNECT_REST_PORT,
    TARGET,
    TARGET_ALIAS,
    TARGET_HTTP_PORT,
    WORKER,
    Topology,
    TopologyPorts,
)

logger = logging.getLogger(__name__)

_MISSING = object()


class ClientOverride:
    """Scoped replacement of a process-wide attribute.

    ``reserve`` claims ``(holder, attribute)`` so that no other override can
    take it; ``apply`` saves the current value and installs ``value``;
    ``restore`` puts the saved value back and releases the claim, exactly
    once. At most one override per ``(holder, attribute)`` can be claimed
    in the process.
    """

    _active: set[tuple[int, str]] = set()
    _lock = threading.Lock()

    def __init__(self, holder: Any, attribute: str, value: Any = _MISSING) -> None:
        self.holder = holder
        self.attribute = attribute
        self.value = value
        self.previous: Any = _MISSING
        self.reserved = False
        self.applied = False
        self.restored = False

    @property
    def _key(self) -> tuple[int, str]:
        return (id(self.holder), self.attribute)

    def reserve(self) -> None:
        """Claim the attribute without touching it.

        Raises:
            ClientOverrideError: If the attribute is already claimed.
        """
        with self._lock:
            if self.reserved or self._key in self._active:
                raise ClientOverrideError(
                    f"{self.attribute!r} is already overridden by another session",
                    context=ErrorContext(phase="setup"),
                )
            self._active.add(self._key)
            self.reserved = True

    def apply(self, value: Any = _MISSING) -> None:
        """Install the override, claiming the attribute first if needed.

        Raises:
            ClientOverrideError: If the attribute is claimed by another
                override, or this one was already applied or restored.
        """
        if value is not _MISSING:
            self.value = value
        if self.value is _MISSING:
            raise ValueError("No value to install")
        if not self.reserved:
            self.reserve()
        with self._lock:
            if self.applied or self.restored:
                raise ClientOverrideError(
                    f"Override of {self.attribute!r} cannot be applied twice",
                    context=ErrorContext(phase="setup"),
                )
            self.previous = getattr(self.holder, self.attribute, _MISSING)
            setattr(self.holder, self.attribute, self.value)
            self.applied = True

    def restore(self) -> None:
        """Put the saved value back and release the claim. Later calls do nothing."""
        with self._lock:
            if not self.reserved or self.restored:
                return
            self.restored = True
            try:
                if self.applied and self.previous is _MISSING:
                    delattr(self.holder, self.attribute)
                elif self.applied:
                    setattr(self.holder, self.attribute, self.previous)
            finally:
                self._active.discard(self._key)


@dataclass(frozen=True)
class ScenarioRequest:
    """One request against the control-plane API."""

    method: str
    path: str
    json: Any = None
    headers: dict[str, str] | None = None
    params: dict[str, Any] | None = None


@dataclass
class ScenarioResponse:
    """Status and decoded body of a scenario request.

    ``body`` is the decoded JSON for JSON responses and the text otherwise.
    """

    status_code: int
    body: Any
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


@dataclass(frozen=True)
class EphemeralEndpoints:
    """Addresses of the services of one run.

    Host-facing values are reachable from the test process; internal ones
    only from other containers on the session network.
    """

    broker_bootstrap: str
    broker_internal_bootstrap: str
    broker_admin_url: str
    schema_registry_url: str
    connect_url: str
    target_url: str
    target_internal_url: str

    @classmethod
    def from_services(
        cls,
        broker: RunningService,
        worker: RunningService,
        target: RunningService,
        ports: TopologyPorts,
    ) -> EphemeralEndpoints:
        return cls(
            broker_bootstrap=broker.endpoint(ports.outside),
            broker_internal_bootstrap=ports.internal_bootstrap,
            broker_admin_url=broker.url(BROKER_ADMIN_PORT),
            schema_registry_url=broker.url(ports.schema_registry),
            connect_url=worker.url(CONNECT_REST_PORT),
            target_url=target.url(TARGET_HTTP_PORT),
            target_internal_url=f"http://{TARGET_ALIAS}:{TARGET_HTTP_PORT}",
        )

    def connect_config(self, cluster_name: str) -> ConnectConfig:
        """Cluster registry pointing at the ephemeral connector worker."""
        return ConnectConfig(
            enabled=True,
            clusters=[ConnectCluster(name=cluster_name, url=self.connect_url)],
        )


@dataclass
class ReleaseFailure:
    """A release that raised during teardown."""

    resource: str
    error: BaseException

    def __str__(self) -> str:
        return f"{self.resource}: {self.error}"


@dataclass
class SessionState:
    """Everything one session acquired.

    Attributes:
        session_id: Unique token shared by the network and container names.
        network: The isolated network.
        services: Running services keyed by role.
        ports: Host ports drawn for the broker.
        endpoints: Addresses of the running services.
        config: Cluster registry pointing at the ephemeral worker.
        client: Value installed on the system under test.
        previous_client: Value that was installed before, if overridden.
    """

    session_id: str
    network: NetworkHandle | None = None
    services: dict[str, RunningService] = field(default_factory=dict)
    ports: TopologyPorts | None = None
    endpoints: EphemeralEndpoints | None = None
    config: ConnectConfig | None = None
    client: Any = None
    previous_client: Any = None


class TestSession:
    """Owns the lifecycle of one test run.

    Args:
        api: Client for the control-plane API under test. Any
            ``httpx.Client`` works, including Starlette's ``TestClient``.
        settings: Settings; loaded from the environment when omitted.
        backend: Container backend; the Docker CLI when omitted.
        target: Object holding the system under test's client.
        attribute: Attribute of ``target`` that is swapped for the run.
        client_factory: Builds the value to install from the ephemeral
            cluster registry. The registry itself is installed when omitted.
        allocator: Port allocator; built from settings when omitted.
        waiter: Readiness waiter; built from the backend when omitted.
    """

    __test__ = False

    def __init__(
        self,
        api: httpx.Client | None = None,
        settings: Settings | None = None,
        backend: ContainerBackend | None = None,
        target: Any = None,
        attribute: str = "connect_svc",
        client_factory: Callable[[ConnectConfig], Any] | None = None,
        allocator: PortAllocator | None = None,
        waiter: ReadinessWaiter | None = None,
    ) -> None:
        self.api = api
        self.settings = settings or Settings()
        self.backend = backend or DockerCLI(timeout=self.settings.docker_timeout)
        self.target = target
        self.attribute = attribute
        self.client_factory = client_factory
        self.allocator = allocator or PortAllocator(
            start=self.settings.port_range_start,
            end=self.settings.port_range_end,
            max_attempts=self.settings.port_attempts,
            check_bindable=self.settings.check_bindable,
        )
        self.fabric = NetworkFabric(self.backend, prefix=self.settings.network_prefix)
        self.launcher = ServiceLauncher(
            self.backend,
            waiter or ReadinessWaiter(self.backend, request_timeout=self.settings.request_timeout),
        )

        self._state: SessionState | None = None
        self._releases: list[tuple[str, Callable[[], None]]] = []
        self._releases_lock = threading.Lock()

    @property
    def state(self) -> SessionState:
        if self._state is None:
            raise RuntimeError("Session is not set up. Call setup() first.")
        return self._state

    @property
    def endpoints(self) -> EphemeralEndpoints:
        endpoints = self.state.endpoints
        if endpoints is None:
            raise RuntimeError("Session setup did not complete")
        return endpoints

    def _register(self, resource: str, release: Callable[[], None]) -> None:
        with self._releases_lock:
            self._releases.append((resource, release))

    def setup(self) -> SessionState:
        """Provision the environment and point the system under test at it.

        The worker is launched only after the broker is ready; the target
        starts alongside them. On any failure everything acquired so far is
        released and the original error propagates.
        """
        if self._state is not None:
            raise RuntimeError("Session is already set up")

        state = SessionState(session_id=unique_suffix())
        self._state = state
        logger.info(f"Setting up session {state.session_id}")

        try:
            override = None
            if self.target is not None:
                # Claimed before anything is provisioned so a conflicting
                # session fails without starting containers.
                override = ClientOverride(self.target, self.attribute)
                override.reserve()
                self._register("client override claim", override.restore)

            state.ports = TopologyPorts.from_list(self.allocator.allocate(TopologyPorts.COUNT))
            topology = Topology.build(state.ports, self.settings)

            network = self.fabric.create_network(state.session_id)
            state.network = network
            self._register(f"network {network.name}", lambda: self.fabric.remove_network(network))

            def adopt(service: RunningService) -> None:
                state.services[service.name] = service
                self._register(f"service {service.name}", service.terminate)

            self.launcher.launch_chains(
                [[topology.broker, topology.worker], [topology.target]],
                network,
                adopt,
            )

            state.endpoints = EphemeralEndpoints.from_services(
                state.services[BROKER],
                state.services[WORKER],
                state.services[TARGET],
                state.ports,
            )
            state.config = state.endpoints.connect_config(self.settings.cluster_name)
            state.client = self.client_factory(state.config) if self.client_factory else state.config

            if override is not None:
                override.apply(state.client)
                self._register("client configuration", override.restore)
                if override.previous is not _MISSING:
                    state.previous_client = override.previous
        except BaseException:
            logger.error(f"Setup of session {state.session_id} failed, releasing acquired resources")
            self.teardown()
            raise

        logger.info(f"Session {state.session_id} ready: connect at {state.endpoints.connect_url}")
        return state

    def run_scenario(self, request: ScenarioRequest) -> ScenarioResponse:
        """Send one request to the API under test. No retries.

        Raises:
            ScenarioRequestError: If no response was received.
        """
        if self.api is None:
            raise RuntimeError("No API client configured for this session")
        if self._state is None:
            raise RuntimeError("Session is not set up. Call setup() first.")

        try:
            resp = self.api.request(
                request.method,
                request.path,
                json=request.json,
                headers=request.headers,
                params=request.params,
            )
        except httpx.HTTPError as e:
            raise ScenarioRequestError(
                f"{request.method} {request.path} failed: {e}",
                context=ErrorContext(phase="scenario"),
                cause=e,
            ) from e

        if resp.headers.get("content-type", "").startswith("application/json"):
            try:
                body: Any = resp.json()
            except ValueError:
                body = resp.text
        else:
            body = resp.text

        logger.debug(f"{request.method} {request.path} -> {resp.status_code}")
        return ScenarioResponse(status_code=resp.status_code, body=body, headers=dict(resp.headers))

    def teardown(self) -> list[ReleaseFailure]:
        """Release everything in reverse acquisition order.

        Every release is attempted even when earlier ones fail. Failures
        are logged and returned. Calling this again does nothing.
        """
        with self._releases_lock:
            releases = list(reversed(self._releases))
            self._releases.clear()

        failures: list[ReleaseFailure] = []
        for resource, release in releases:
            try:
                release()
                logger.debug(f"Released {resource}")
            except Exception as e:
                logger.error(f"Failed to release {resource}: {e}")
                failures.append(ReleaseFailure(resource, e))

        if releases:
            session_id = self._state.session_id if self._state else "?"
            logger.info(f"Session {session_id} torn down with {len(failures)} failure(s)")
        return failures

    def __enter__(self) -> TestSession:
        self.setup()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        failures = self.teardown()
        # A failing scenario takes precedence; teardown failures were logged.
        if failures and exc is None:
            raise TeardownError(failures)


__all__ = [
    "ClientOverride",
    "EphemeralEndpoints",
    "ReleaseFailure",
    "ScenarioRequest",
    "ScenarioResponse",
    "SessionState",
    "TestSession",
]
