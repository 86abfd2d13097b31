"""Exception hierarchy for connectlab.

Every error raised by the orchestrator inherits from ConnectLabError and
carries:
- error_code: an ErrorCode for programmatic handling
- context: ErrorContext with the service, phase and timing involved
- cause: the underlying exception, when there is one

Errors are grouped by the phase of a test run in which they happen:

- E1xx: provisioning (ports, network, container start)
- E2xx: readiness
- E3xx: scenario requests
- E4xx: teardown
- E5xx: configuration

Example:
    try:
        session.setup()
    except ReadinessTimeoutError as e:
        print(f"{e.context.service} not ready after {e.context.elapsed:.1f}s")
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class ErrorCode(Enum):
    """Standardized error codes for connectlab."""

    PORT_ALLOCATION_EXHAUSTED = "E101"
    NETWORK_CREATION_FAILED = "E102"
    SERVICE_START_FAILED = "E103"

    READINESS_TIMEOUT = "E201"

    SCENARIO_REQUEST_FAILED = "E301"

    TEARDOWN_FAILED = "E401"
    NETWORK_REMOVAL_FAILED = "E402"
    SERVICE_TERMINATION_FAILED = "E403"

    INVALID_CONFIG = "E501"
    CLIENT_OVERRIDE_CONFLICT = "E502"

    UNKNOWN = "E999"

    @property
    def category(self) -> str:
        """Get the error category name."""
        code_num = int(self.value[1:])
        if code_num < 200:
            return "provisioning"
        elif code_num < 300:
            return "readiness"
        elif code_num < 400:
            return "scenario"
        elif code_num < 500:
            return "teardown"
        elif code_num < 600:
            return "configuration"
        else:
            return "unknown"


@dataclass
class ErrorContext:
    """Structured context for error logging and debugging.

    Attributes:
        service: Name of the service involved, if any.
        phase: Lifecycle phase (setup, readiness, scenario, teardown).
        elapsed: Seconds spent before the error was raised.
        extra: Additional context-specific information.
        timestamp: When the error occurred.
    """

    service: str | None = None
    phase: str | None = None
    elapsed: float | None = None
    extra: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        """Convert context to dictionary for serialization."""
        result = {
            "service": self.service,
            "phase": self.phase,
            "elapsed": self.elapsed,
            "extra": self.extra,
            "timestamp": self.timestamp.isoformat(),
        }
        return {k: v for k, v in result.items() if v is not None}

    def format_location(self) -> str:
        """Format the error location as a readable string."""
        parts = []
        if self.phase:
            parts.append(f"phase={self.phase}")
        if self.service:
            parts.append(f"service={self.service}")
        return " > ".join(parts) if parts else "unknown location"


class ConnectLabError(Exception):
    """Base exception for all connectlab errors.

    Attributes:
        error_code: Unique ErrorCode for this error type
        message: Human-readable error description
        context: ErrorContext with execution details
        cause: The underlying exception (if any)
    """

    error_code: ErrorCode = ErrorCode.UNKNOWN
    default_message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: str | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
        **extra_context: Any,
    ) -> None:
        self.message = message or self.default_message
        self.context = context or ErrorContext()
        self.cause = cause

        if extra_context:
            self.context.extra.update(extra_context)

        super().__init__(self.message)

    def __str__(self) -> str:
        parts = [f"[{self.error_code.value}] {self.message}"]

        location = self.context.format_location()
        if location != "unknown location":
            parts.append(f"at {location}")

        return " | ".join(parts)

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for serialization."""
        return {
            "error_code": self.error_code.value,
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": self.context.to_dict(),
            "cause": str(self.cause) if self.cause else None,
        }


class ProvisioningError(ConnectLabError):
    """A resource needed by the test run could not be created.

    Fatal to the run. Whatever was already created is still released.
    """

    error_code = ErrorCode.SERVICE_START_FAILED
    default_message = "Failed to provision test environment"


class PortAllocationExhaustedError(ProvisioningError):
    """No distinct ports could be drawn within the attempt budget."""

    error_code = ErrorCode.PORT_ALLOCATION_EXHAUSTED
    default_message = "Port allocation exhausted"


class NetworkCreationError(ProvisioningError):
    """The isolated network could not be created."""

    error_code = ErrorCode.NETWORK_CREATION_FAILED
    default_message = "Network creation failed"


class ServiceStartError(ProvisioningError):
    """A service container failed to be created, started, or stay up."""

    error_code = ErrorCode.SERVICE_START_FAILED
    default_message = "Service failed to start"


class ReadinessTimeoutError(ConnectLabError):
    """A readiness predicate was not satisfied within its startup timeout.

    The context carries the service name, the elapsed seconds and, in
    ``extra``, the configured timeout and the last observed state.
    """

    error_code = ErrorCode.READINESS_TIMEOUT
    default_message = "Service did not become ready in time"

    @property
    def last_observed(self) -> str | None:
        return self.context.extra.get("last_observed")


class ScenarioRequestError(ConnectLabError):
    """The request to the API under test did not produce a response."""

    error_code = ErrorCode.SCENARIO_REQUEST_FAILED
    default_message = "Scenario request failed"


class TeardownError(ConnectLabError):
    """One or more releases failed during teardown.

    Every release was still attempted; ``failures`` lists each one.
    """

    error_code = ErrorCode.TEARDOWN_FAILED
    default_message = "Teardown did not complete cleanly"

    def __init__(self, failures: list[Any], message: str | None = None) -> None:
        self.failures = list(failures)
        if message is None:
            described = "; ".join(str(f) for f in self.failures)
            message = f"{len(self.failures)} release(s) failed: {described}"
        super().__init__(message, context=ErrorContext(phase="teardown"))


class NetworkRemovalError(ConnectLabError):
    """The isolated network could not be removed."""

    error_code = ErrorCode.NETWORK_REMOVAL_FAILED
    default_message = "Network removal failed"


class ServiceTerminationError(ConnectLabError):
    """A running service could not be terminated."""

    error_code = ErrorCode.SERVICE_TERMINATION_FAILED
    default_message = "Service termination failed"


class ConfigurationError(ConnectLabError):
    """Settings failed validation."""

    error_code = ErrorCode.INVALID_CONFIG
    default_message = "Invalid configuration"


class ClientOverrideError(ConfigurationError):
    """The client configuration is already overridden by another session."""

    error_code = ErrorCode.CLIENT_OVERRIDE_CONFLICT
    default_message = "Client configuration is already overridden"


__all__ = [
    "ClientOverrideError",
    "ConfigurationError",
    "ConnectLabError",
    "ErrorCode",
    "ErrorContext",
    "NetworkCreationError",
    "NetworkRemovalError",
    "PortAllocationExhaustedError",
    "ProvisioningError",
    "ReadinessTimeoutError",
    "ScenarioRequestError",
    "ServiceStartError",
    "ServiceTerminationError",
    "TeardownError",
]
