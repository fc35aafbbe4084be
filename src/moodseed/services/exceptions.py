"""Service error hierarchy for credit metering, generation and execution control.

This module defines the exception hierarchy for service-level errors:
- ServiceError: Base for all service errors
- TransientError: Retryable errors (network, rate limits, timeouts)
- PermanentError: Non-retryable errors (authentication, validation)
"""


class ServiceError(Exception):
    """Base exception for all service errors."""

    pass


class TransientError(ServiceError):
    """Transient error that may succeed on retry.

    Examples:
    - Network timeouts
    - Rate limit exceeded (429)
    - Service unavailable (503)
    """

    pass


class PermanentError(ServiceError):
    """Permanent error that will not succeed on retry.

    Examples:
    - Authentication failures (401, 403)
    - Invalid request parameters (400)
    - Configuration errors
    """

    pass


# Provider-specific errors
class ProviderError(ServiceError):
    """Base exception for text and image provider failures."""

    pass


class ProviderTransientError(ProviderError, TransientError):
    """Network timeout, rate limit or provider unavailability."""

    pass


class ProviderPermanentError(ProviderError, PermanentError):
    """Authentication failure, invalid input or unexpected output."""

    pass


class ContentPolicyError(ProviderError, PermanentError):
    """Prompt rejected by the provider's content policy."""

    pass


# Credit ledger errors
class InsufficientCreditsError(PermanentError):
    """Organization balance is below the requested amount."""

    def __init__(self, required: int, available: int):
        self.required = required
        self.available = available
        super().__init__(f"Insufficient credits: required {required}, available {available}")


class RefundNotAllowedError(PermanentError):
    """Refund has no matching usage or the usage was already refunded."""

    pass


# Execution errors
class UnitGenerationError(ServiceError):
    """One work unit failed; the batch continues with the next unit.

    Attributes:
        step: Pipeline step that failed
    """

    def __init__(self, message: str, step: str | None = None):
        self.step = step
        super().__init__(message)


class StateStoreError(ServiceError):
    """Execution checkpoint could not be written; the run cannot continue safely."""

    pass


class ExecutionNotFoundError(PermanentError):
    """No execution exists with the requested id."""

    pass
