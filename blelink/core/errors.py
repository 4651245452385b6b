"""Domain-specific errors for blelink."""

from __future__ import annotations

from blelink.core.model import ErrorKind


class BlelinkError(Exception):
    """Base error for blelink."""

    kind: ErrorKind | None = None


class ConfigLoadError(BlelinkError):
    """Raised when reading a config profile fails."""


class ConfigValidationError(BlelinkError):
    """Raised when a config profile does not conform to schema or semantics."""


class PermissionDeniedError(BlelinkError):
    """Raised when BLE capabilities are not granted."""

    kind = ErrorKind.PERMISSION_DENIED


class AdapterUnavailableError(BlelinkError):
    """Raised when the radio is off, unsupported, unauthorized or resetting."""

    kind = ErrorKind.ADAPTER_UNAVAILABLE


class ScanFailedError(BlelinkError):
    """Raised when the BLE stack reports a scan error."""

    kind = ErrorKind.SCAN_FAILED


class InvalidArgumentError(BlelinkError):
    """Raised when an operation is invoked without a usable device id."""

    kind = ErrorKind.INVALID_ARGUMENT


class BusyError(BlelinkError):
    """Raised when a connection attempt is already in flight."""

    kind = ErrorKind.BUSY


class ConnectFailedError(BlelinkError):
    """Raised when the transport-level connect fails."""

    kind = ErrorKind.CONNECT_FAILED


class DiscoveryFailedError(BlelinkError):
    """Raised when service/characteristic discovery fails."""

    kind = ErrorKind.DISCOVERY_FAILED


class ConnectionCancelledError(BlelinkError):
    """Raised to the waiter of a connection attempt abandoned by shutdown."""

    kind = ErrorKind.CANCELLED


class SessionShutdownError(BlelinkError):
    """Raised after shutdown when one or more cleanup steps failed."""

    def __init__(self, message: str, failures: tuple[BaseException, ...]) -> None:
        super().__init__(message)
        self.failures = failures
