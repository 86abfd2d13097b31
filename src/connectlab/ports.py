"""Randomized host port allocation.

Ports are drawn uniformly from a wide range so that concurrently running
test sessions rarely pick the same values. There is no reservation across
processes: the optional bind probe only rejects ports that are already in
use on this host at allocation time, and another process may still grab a
port between allocation and container start. A collision then surfaces as a
service start failure rather than being silently ignored.
"""

from __future__ import annotations

import logging
import random
import socket

from connectlab.errors import ErrorContext, PortAllocationExhaustedError

logger = logging.getLogger(__name__)

DEFAULT_PORT_RANGE = (10000, 60000)
DEFAULT_MAX_ATTEMPTS = 100


def is_port_bindable(port: int, host: str = "0.0.0.0") -> bool:
    """Check whether a TCP port can currently be bound on this host."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        try:
            sock.bind((host, port))
        except OSError:
            return False
    return True


class PortAllocator:
    """Draws distinct host ports from ``[start, end)``.

    Args:
        start: First port of the range (inclusive).
        end: Last port of the range (exclusive).
        max_attempts: Draws allowed per ``allocate`` call beyond the ones
            that succeed. Repeated values and unbindable ports each use one.
        check_bindable: Probe each drawn port with a local bind.
        rng: Random source, injectable for reproducible draws.
    """

    def __init__(
        self,
        start: int = DEFAULT_PORT_RANGE[0],
        end: int = DEFAULT_PORT_RANGE[1],
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        check_bindable: bool = True,
        rng: random.Random | None = None,
    ) -> None:
        if not 0 < start < end <= 65536:
            raise ValueError(f"Invalid port range [{start}, {end})")
        self.start = start
        self.end = end
        self.max_attempts = max_attempts
        self.check_bindable = check_bindable
        self._rng = rng or random.Random()

    @property
    def size(self) -> int:
        return self.end - self.start

    def allocate(self, count: int) -> list[int]:
        """Return ``count`` distinct ports from the configured range.

        Raises:
            ValueError: If count is negative.
            PortAllocationExhaustedError: If the range is too small or the
                attempt budget runs out.
        """
        if count < 0:
            raise ValueError(f"count must be >= 0, got {count}")
        if count > self.size:
            raise PortAllocationExhaustedError(
                f"Cannot allocate {count} ports from a range of {self.size}",
                context=ErrorContext(phase="setup"),
                requested=count,
                range=[self.start, self.end],
            )

        chosen: list[int] = []
        seen: set[int] = set()
        failed_attempts = 0

        while len(chosen) < count:
            port = self._rng.randrange(self.start, self.end)
            if port in seen or (self.check_bindable and not is_port_bindable(port)):
                seen.add(port)
                failed_attempts += 1
                logger.debug(f"Rejected port {port} (attempt {failed_attempts})")
                if failed_attempts >= self.max_attempts:
                    raise PortAllocationExhaustedError(
                        f"Port allocation exhausted after {failed_attempts} rejected draws",
                        context=ErrorContext(phase="setup"),
                        requested=count,
                        allocated=list(chosen),
                        range=[self.start, self.end],
                    )
                continue
            seen.add(port)
            chosen.append(port)

        logger.debug(f"Allocated ports {chosen}")
        return chosen


__all__ = ["PortAllocator", "is_port_bindable"]
