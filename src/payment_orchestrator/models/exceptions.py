"""Custom exceptions for the Payment Orchestrator."""

from collections.abc import Iterable


class OrchestratorError(Exception):
    """Base exception for orchestration errors."""

    pass


class RegistryError(OrchestratorError):
    """
    Base exception for processor wiring errors.

    These are CONFIGURATION defects, not transient failures. They are never
    retried.
    """

    pass


class DuplicateProcessor(RegistryError):
    """Raised when a processor name is registered twice."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Processor {name} is already registered")
        self.name = name


class ProcessorNotFound(RegistryError):
    """Raised when resolving a processor name that was never registered."""

    def __init__(self, name: str, available: Iterable[str]) -> None:
        self.name = name
        self.available = sorted(available)
        super().__init__(
            f"Processor {name} not found. "
            f"Available: {', '.join(self.available) or '(none)'}"
        )


class ProcessorConfigNotFound(RegistryError):
    """Raised when a merchant has no enabled configuration for a processor."""

    pass


class ProcessorTimeout(OrchestratorError):
    """
    Raised when a processor or delivery transport times out or returns a
    transient error.

    This is a RETRYABLE error.

    Examples:
    - Processor API returns 5xx errors
    - Processor API returns 429 (rate limit)
    - Network timeout
    - Connection errors
    """

    pass


class ExternalCallFailed(OrchestratorError):
    """Raised when an external call still fails after its retry ceiling."""

    def __init__(self, operation: str, attempts: int, last_error: BaseException) -> None:
        super().__init__(
            f"{operation} failed after {attempts} attempt(s): {last_error}"
        )
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error


class OrchestrationTimeout(OrchestratorError):
    """Deadline exceeded while awaiting customer action."""

    pass


class OrchestrationCancelled(OrchestratorError):
    """Cancellation signal received while awaiting customer action."""

    pass


class WorkflowError(OrchestratorError):
    """Any other failure during orchestration."""

    pass


class InvalidTransition(OrchestratorError):
    """Raised when a state transition is not allowed by the state machine."""

    pass


class WorkflowAlreadyStarted(OrchestratorError):
    """Raised when starting a workflow id that already exists."""

    pass


class WorkflowNotFound(OrchestratorError):
    """Raised when addressing a workflow id the engine does not know."""

    pass


class UnknownSignal(OrchestratorError):
    """Raised when a signal name is not handled by the target workflow."""

    pass
