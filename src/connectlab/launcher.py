"""Starts service definitions into a network and waits until they are ready."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed

from connectlab.backend import PROJECT_LABEL, SESSION_LABEL, ContainerBackend, ContainerSpec
from connectlab.errors import ErrorContext, ServiceStartError
from connectlab.network import NetworkHandle
from connectlab.readiness import ReadinessWaiter
from connectlab.services import RunningService, ServiceDefinition

logger = logging.getLogger(__name__)


class ServiceLauncher:
    """Launches services and hands each one to the readiness waiter.

    ``launch`` only ever returns services whose readiness predicate has
    been satisfied. A service that fails to become ready is removed
    before the error propagates.
    """

    def __init__(self, backend: ContainerBackend, waiter: ReadinessWaiter | None = None) -> None:
        self.backend = backend
        self.waiter = waiter or ReadinessWaiter(backend)

    def _container_spec(self, definition: ServiceDefinition, network: NetworkHandle) -> ContainerSpec:
        labels = {
            **definition.labels,
            PROJECT_LABEL: network.project,
            SESSION_LABEL: network.session_id,
        }
        return ContainerSpec(
            name=f"{network.name}_{definition.name}",
            image=definition.image,
            network=network.name,
            hostname=definition.hostname,
            aliases=sorted(definition.aliases),
            exposed_ports=sorted(definition.exposed_ports),
            port_bindings=dict(definition.port_bindings),
            env=dict(definition.env),
            labels=labels,
            command=list(definition.command),
        )

    def launch(
        self,
        definition: ServiceDefinition,
        network: NetworkHandle,
        abort: threading.Event | None = None,
    ) -> RunningService:
        """Start a service and block until it is ready.

        Raises:
            ServiceStartError: If the backend fails to create or start it,
                or it stops while waiting, or ``abort`` is set first.
            ReadinessTimeoutError: If it is not ready within its timeout.
        """
        spec = self._container_spec(definition, network)
        logger.info(f"Launching {definition.name} ({definition.image}) on {network.name}")

        try:
            container_id = self.backend.run_container(spec)
        except Exception as e:
            raise ServiceStartError(
                f"Failed to start {definition.name}: {e}",
                context=ErrorContext(service=definition.name, phase="setup"),
                cause=e,
                image=definition.image,
            ) from e

        service = RunningService(definition, container_id, network, self.backend)
        try:
            self.waiter.wait_ready(service, definition.readiness, abort=abort)
        except Exception as e:
            self._discard(service, e)
            raise

        return service

    def _discard(self, service: RunningService, error: Exception) -> None:
        """Remove a service that never became ready."""
        try:
            service.terminate()
        except Exception as cleanup_error:
            logger.error(f"Could not remove unready service {service.name}: {cleanup_error}")
            context = getattr(error, "context", None)
            if context is not None:
                context.extra["cleanup_error"] = str(cleanup_error)

    def launch_chains(
        self,
        chains: Sequence[Sequence[ServiceDefinition]],
        network: NetworkHandle,
        on_ready: Callable[[RunningService], None],
    ) -> None:
        """Launch dependency chains in parallel.

        Within a chain each service is launched only after the previous one
        is ready; separate chains do not wait for each other. ``on_ready``
        is called (serialized) as soon as each service is ready, so the
        caller owns it even if another launch fails later.

        The first failure aborts the other chains: they launch nothing
        further and any readiness wait in progress stops at its next poll.
        Once every chain has stopped, the first failure in time order is
        raised.
        """
        if not chains:
            return

        abort = threading.Event()
        lock = threading.Lock()
        failures: list[Exception] = []

        def run_chain(chain: Sequence[ServiceDefinition]) -> None:
            for definition in chain:
                if abort.is_set():
                    logger.info(f"Skipping {definition.name}: setup aborted")
                    return
                try:
                    service = self.launch(definition, network, abort=abort)
                except Exception as e:
                    with lock:
                        failures.append(e)
                    abort.set()
                    raise
                with lock:
                    on_ready(service)

        pool = ThreadPoolExecutor(max_workers=len(chains), thread_name_prefix="connectlab-launch")
        try:
            futures = {pool.submit(run_chain, chain): index for index, chain in enumerate(chains)}
            for future in as_completed(futures):
                error = future.exception()
                if error is not None:
                    logger.error(f"Launch chain {futures[future]} failed: {error}")
        except BaseException:
            # Interrupted while joining; stop the chains so every started
            # service is either handed to on_ready or removed before we leave.
            abort.set()
            raise
        finally:
            pool.shutdown(wait=True)

        if failures:
            raise failures[0]


__all__ = ["ServiceLauncher"]
