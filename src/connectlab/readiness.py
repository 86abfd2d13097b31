"""Readiness synchronization for started services.

Both kinds of readiness predicate go through the same polling loop:
check, give up if the container died, give up if the timeout elapsed,
otherwise sleep for the poll interval and check again.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable

import httpx

from connectlab.backend import ContainerBackend
from connectlab.docker import DockerError
from connectlab.errors import ErrorContext, ReadinessTimeoutError, ServiceStartError
from connectlab.services import HttpProbe, LogMessage, ReadinessPredicate, RunningService

logger = logging.getLogger(__name__)

DEAD_STATES = frozenset({"exited", "dead", "removing"})
LOG_TAIL_LINES = 20


def _last_line(text: str) -> str:
    for line in reversed(text.splitlines()):
        if line.strip():
            return line.strip()
    return "<no output>"


def _tail(text: str, lines: int = LOG_TAIL_LINES) -> str:
    return "\n".join(text.splitlines()[-lines:])


class ReadinessWaiter:
    """Blocks until a service satisfies its readiness predicate.

    Args:
        backend: Container backend, used for logs and container state.
        http_client: Client for HTTP probes. When omitted a short-lived
            client is created for each wait.
        request_timeout: Per-request timeout for the short-lived client,
            capped by the predicate's own timeout.
        clock: Monotonic clock returning seconds.
        sleep: Sleep function, paired with ``clock``.
    """

    def __init__(
        self,
        backend: ContainerBackend,
        http_client: httpx.Client | None = None,
        request_timeout: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.backend = backend
        self.http_client = http_client
        self.request_timeout = request_timeout
        self._clock = clock
        self._sleep = sleep

    def wait_ready(
        self,
        service: RunningService,
        predicate: ReadinessPredicate,
        abort: threading.Event | None = None,
    ) -> float:
        """Poll until the predicate holds.

        Args:
            service: The started service.
            predicate: Condition that marks the service ready.
            abort: When set by another thread, the wait stops at the next
                poll with ``ServiceStartError``.

        Returns:
            Seconds spent waiting.

        Raises:
            ReadinessTimeoutError: If the predicate does not hold within
                ``predicate.timeout``.
            ServiceStartError: If the container stops while waiting, the
                backend cannot be queried, or the wait is aborted.
        """
        if self.http_client is None and isinstance(predicate, HttpProbe):
            with httpx.Client(timeout=min(predicate.timeout, self.request_timeout)) as client:
                return self._poll(service, predicate, client, abort)
        return self._poll(service, predicate, self.http_client, abort)

    def _poll(
        self,
        service: RunningService,
        predicate: ReadinessPredicate,
        client: httpx.Client | None,
        abort: threading.Event | None,
    ) -> float:
        start = self._clock()
        deadline = start + predicate.timeout
        logger.info(f"Waiting for {service.name}: {predicate.describe()} (timeout {predicate.timeout}s)")

        while True:
            try:
                ready, observed = self._check(service, predicate, client)
            except DockerError as e:
                raise self._backend_failure(service, e, self._clock() - start) from e
            now = self._clock()
            elapsed = now - start

            if ready:
                logger.info(f"{service.name} ready after {elapsed:.1f}s")
                return elapsed

            logger.debug(f"{service.name} not ready yet: {observed}")

            if abort is not None and abort.is_set():
                raise ServiceStartError(
                    f"{service.name} launch aborted after {elapsed:.1f}s: another service failed",
                    context=ErrorContext(service=service.name, phase="readiness", elapsed=elapsed),
                    aborted=True,
                    last_observed=observed,
                )

            try:
                state = self.backend.state(service.container_id)
                logs = self.backend.logs(service.container_id) if state in DEAD_STATES else ""
            except DockerError as e:
                raise self._backend_failure(service, e, elapsed) from e

            if state in DEAD_STATES:
                raise ServiceStartError(
                    f"{service.name} stopped ({state}) before becoming ready",
                    context=ErrorContext(service=service.name, phase="readiness", elapsed=elapsed),
                    state=state,
                    logs=_tail(logs),
                )

            if now >= deadline:
                raise ReadinessTimeoutError(
                    f"{service.name} not ready after {elapsed:.1f}s "
                    f"(timeout {predicate.timeout}s) waiting for {predicate.describe()}; "
                    f"last observed: {observed}",
                    context=ErrorContext(service=service.name, phase="readiness", elapsed=elapsed),
                    timeout=predicate.timeout,
                    last_observed=observed,
                )

            self._sleep(min(predicate.poll_interval, deadline - now))

    @staticmethod
    def _backend_failure(service: RunningService, error: DockerError, elapsed: float) -> ServiceStartError:
        return ServiceStartError(
            f"Lost contact with {service.name} while waiting for readiness: {error}",
            context=ErrorContext(service=service.name, phase="readiness", elapsed=elapsed),
            cause=error,
        )

    def _check(
        self,
        service: RunningService,
        predicate: ReadinessPredicate,
        client: httpx.Client | None,
    ) -> tuple[bool, str]:
        if isinstance(predicate, LogMessage):
            output = self.backend.logs(service.container_id)
            return predicate.text in output, _last_line(output)

        if isinstance(predicate, HttpProbe):
            if client is None:
                raise ValueError("HTTP probe requires an HTTP client")
            try:
                url = f"{service.url(predicate.port)}{predicate.path}"
            except DockerError as e:
                return False, f"port {predicate.port} not published yet: {e}"
            try:
                response = client.get(url)
            except httpx.TransportError as e:
                # Connection refused and friends just mean "not yet".
                return False, f"{type(e).__name__}: {e}"
            return predicate.accept(response.status_code), f"HTTP {response.status_code} from {url}"

        raise TypeError(f"Unknown readiness predicate: {predicate!r}")


__all__ = ["ReadinessWaiter"]
