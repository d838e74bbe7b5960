"""Exception taxonomy for the alerting core.

Each exception carries an ``error_type`` tag that the API layer uses
to build structured error bodies without leaking exception text.
"""


class AlertingError(Exception):
    """Base exception for alerting errors."""

    error_type = "internal"


class ValidationError(AlertingError):
    """Raised when an update is malformed.

    Attributes:
        errors: Mapping of field name to the reason it was rejected.
    """

    error_type = "validation"

    def __init__(self, errors: dict[str, str]) -> None:
        self.errors = dict(errors)
        super().__init__("Invalid values for: " + ", ".join(self.fields))

    @property
    def fields(self) -> list[str]:
        """Offending field names, sorted."""
        return sorted(self.errors)


class ThresholdValidationError(ValidationError):
    """Raised when a threshold update violates range or ordering rules."""

    @property
    def metrics(self) -> list[str]:
        """Offending metric names, sorted."""
        return self.fields


class SettingsValidationError(ValidationError):
    """Raised when a notification settings update is malformed."""


class PermissionDeniedError(AlertingError):
    """Raised when the caller's plan or role forbids the operation."""

    error_type = "permission"


class NotFoundError(AlertingError):
    """Raised for unknown servers or workspaces."""

    error_type = "not_found"


class MetricsUnavailableError(AlertingError):
    """Raised by a metrics source when a poll fails."""

    error_type = "metrics_unavailable"


class DeliveryError(AlertingError):
    """Base exception for notification transport failures."""

    error_type = "delivery"

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class TransientDeliveryError(DeliveryError):
    """5xx, 429, timeout or network failure. Retried with backoff."""


class TerminalDeliveryError(DeliveryError):
    """Non-retryable failure such as a 4xx response."""
