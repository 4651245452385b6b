"""Core data models shared by the gate, monitor, scanner, connection manager and session."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any


class AdapterState(str, Enum):
    UNKNOWN = "Unknown"
    RESETTING = "Resetting"
    UNSUPPORTED = "Unsupported"
    UNAUTHORIZED = "Unauthorized"
    POWERED_OFF = "PoweredOff"
    POWERED_ON = "PoweredOn"


class PermissionStatus(str, Enum):
    UNKNOWN = "Unknown"
    DENIED = "Denied"
    GRANTED = "Granted"


class ErrorKind(str, Enum):
    PERMISSION_DENIED = "PermissionDenied"
    ADAPTER_UNAVAILABLE = "AdapterUnavailable"
    SCAN_FAILED = "ScanFailed"
    INVALID_ARGUMENT = "InvalidArgument"
    BUSY = "Busy"
    CONNECT_FAILED = "ConnectFailed"
    DISCOVERY_FAILED = "DiscoveryFailed"
    CANCELLED = "Cancelled"


class ConnectionState(str, Enum):
    IDLE = "Idle"
    CONNECTING = "Connecting"
    CONNECTED = "Connected"
    DISCOVERING_SERVICES = "DiscoveringServices"
    READY = "Ready"
    FAILED = "Failed"


class SessionStatus(str, Enum):
    UNREADY = "Unready"
    PERMISSION_PENDING = "Permission-Pending"
    ADAPTER_WAITING = "Adapter-Waiting"
    SCANNING = "Scanning"
    CANDIDATE_SELECTED = "Candidate-Selected"
    CONNECTING = "Connecting"
    READY = "Ready"
    FAILED = "Failed"
    SHUTTING_DOWN = "ShuttingDown"


@dataclass(frozen=True)
class DiscoveredDevice:
    id: str
    name: str | None = None
    rssi: int | None = None


class ConnectionHandle:
    """Reference to a live transport connection for one device id.

    Only the connection manager invalidates a handle; everyone else reads `valid`.
    """

    __slots__ = ("device_id", "transport", "_valid")

    def __init__(self, device_id: str, transport: Any) -> None:
        self.device_id = device_id
        self.transport = transport
        self._valid = True

    @property
    def valid(self) -> bool:
        return self._valid

    def _invalidate(self) -> None:
        self._valid = False

    def __repr__(self) -> str:
        state = "live" if self._valid else "invalidated"
        return f"ConnectionHandle({self.device_id!r}, {state})"


@dataclass(frozen=True)
class ServiceCatalog:
    services: Mapping[str, tuple[str, ...]] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Sequence[str]]) -> ServiceCatalog:
        return cls(
            services=MappingProxyType(
                {str(service): tuple(str(c) for c in chars) for service, chars in raw.items()}
            )
        )

    def characteristics(self, service_id: str) -> tuple[str, ...]:
        return self.services.get(service_id, ())

    def __len__(self) -> int:
        return len(self.services)


@dataclass(frozen=True)
class TargetFilter:
    names: tuple[str, ...] = ()


@dataclass(frozen=True)
class SessionConfig:
    target_names: tuple[str, ...]
    connect_timeout_s: float | None = None
    discovery_timeout_s: float | None = None
    scan_timeout_s: float = 10.0


@dataclass(frozen=True)
class SessionSnapshot:
    status: SessionStatus
    permission: PermissionStatus
    adapter: AdapterState
    candidate: DiscoveredDevice | None
    connection: ConnectionHandle | None
    catalog: ServiceCatalog | None
    scanning: bool
    last_error: ErrorKind | None
    last_error_message: str | None = None
