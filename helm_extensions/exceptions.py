"""Exceptions related to helm-extensions."""

__all__ = [
    "HelmExtensionsException",
    "InputException",
    "CommandException",
    "HelmException",
    "ManifestSaveException",
    "StoreException",
    "ConflictError",
    "ObjectNotFoundError",
    "KindNotRegisteredError",
    "SynchronizationError",
    "ChartReconcileError",
    "ReadinessError",
    "ReadinessCancelledError",
    "BackoffExhaustedError",
    "ExtensionsControllerException",
]


class HelmExtensionsException(Exception):
    """Generic base exception used for this library."""


class InputException(HelmExtensionsException):
    """Raised when the input files or values are not formatted as expected."""


class CommandException(HelmExtensionsException):
    """Raised when there is a failure running a subcommand."""


class HelmException(CommandException):
    """Raised when there is a failure running a helm command."""


class ManifestSaveException(HelmExtensionsException):
    """Raised when a manifest could not be persisted."""


class StoreException(HelmExtensionsException):
    """Raised by the record store."""


class ConflictError(StoreException):
    """Raised when a write is issued against a stale version of a record."""


class ObjectNotFoundError(StoreException):
    """Raised when an object is not found in the store."""


class KindNotRegisteredError(StoreException):
    """Raised when a kind has not been registered with the store."""


class SynchronizationError(HelmExtensionsException):
    """Raised when the desired extensions could not be translated into records.

    Exactly one of `repository_url` or `chart_name` identifies the entity that
    caused the failure.
    """

    def __init__(
        self,
        message: str,
        *,
        repository_url: str | None = None,
        chart_name: str | None = None,
    ) -> None:
        super().__init__(message)
        self.repository_url = repository_url
        self.chart_name = chart_name


class ChartReconcileError(HelmExtensionsException):
    """Raised when a chart record could not be converged."""

    def __init__(self, chart: str, message: str) -> None:
        super().__init__(message)
        self.chart = chart


class ReadinessError(HelmExtensionsException):
    """Raised when a startup precondition was never observed."""


class ReadinessCancelledError(ReadinessError):
    """Raised when waiting for a precondition was cancelled."""


class BackoffExhaustedError(ReadinessError):
    """Raised when a retry loop ran out of attempts."""

    def __init__(self, attempts: int, last_error: Exception | None) -> None:
        super().__init__(f"Gave up after {attempts} attempts: {last_error}")
        self.attempts = attempts
        self.last_error = last_error


class ExtensionsControllerException(HelmExtensionsException):
    """Raised by the extensions controller lifecycle."""
