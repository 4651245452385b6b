"""Platform collaborator interfaces."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping, Sequence
from typing import Any, Protocol

from blelink.core.model import AdapterState, PermissionStatus

AdapterCallback = Callable[[AdapterState], None]
AdvertisementCallback = Callable[[str, str | None, int | None], None]
ScanErrorCallback = Callable[[Exception], None]
DisconnectCallback = Callable[[str], None]


class Subscription:
    """Cancellable registration returned by a BLE stack."""

    def __init__(self, remove: Callable[[], None]) -> None:
        self._remove: Callable[[], None] | None = remove

    @property
    def active(self) -> bool:
        return self._remove is not None

    def remove(self) -> None:
        remove, self._remove = self._remove, None
        if remove is not None:
            remove()


class PermissionAPI(Protocol):
    has_permission_model: bool
    api_level: int

    def supports(self, permission: str) -> bool:
        """Return whether the platform knows about a capability."""

    async def request(self, permission: str) -> PermissionStatus:
        """Check or request a single capability."""

    async def request_many(self, permissions: Sequence[str]) -> Mapping[str, PermissionStatus]:
        """Check or request several capabilities as one grouped request."""

    def notify(self, message: str) -> None:
        """Show a user-visible notice."""


class BLEStack(Protocol):
    def subscribe_adapter_state(self, callback: AdapterCallback) -> Subscription:
        """Register for power-state changes; the current state is delivered immediately."""

    def start_scan(self, on_advertisement: AdvertisementCallback, on_error: ScanErrorCallback) -> None:
        """Begin delivering advertisements until stop_scan is called."""

    def stop_scan(self) -> None:
        """Stop delivering advertisements."""

    def connect(self, device_id: str, *, on_disconnect: DisconnectCallback) -> Awaitable[Any]:
        """Open a transport connection; resolves exactly once."""

    def discover_services(self, transport: Any) -> Awaitable[Mapping[str, Sequence[str]]]:
        """Discover services and characteristics for a connected transport."""

    def disconnect(self, transport: Any) -> Awaitable[None]:
        """Close a transport connection."""
