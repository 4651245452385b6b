from __future__ import annotations

import asyncio
from collections.abc import Mapping, Sequence

import pytest

from blelink.core.model import AdapterState, PermissionStatus
from blelink.transports.base import Subscription


class FakeTransport:
    def __init__(self, device_id: str) -> None:
        self.device_id = device_id


class FakeStack:
    """Scriptable BLE stack recording every primitive it is asked to run."""

    def __init__(self, adapter_state: AdapterState = AdapterState.UNKNOWN) -> None:
        self.adapter_state = adapter_state
        self.adapter_callbacks: list = []
        self.calls: list[tuple[str, ...]] = []
        self.scanning = False
        self.on_advertisement = None
        self.on_error = None
        self.on_disconnect = None
        self.start_error: Exception | None = None
        self.connect_error: Exception | None = None
        self.discover_error: Exception | None = None
        self.disconnect_error: Exception | None = None
        self.connect_gate: asyncio.Event | None = None
        self.catalog: Mapping[str, Sequence[str]] = {"svc1": ["char1", "char2"]}

    @property
    def transport_calls(self) -> list[tuple[str, ...]]:
        return [c for c in self.calls if c[0] in {"connect", "discover", "disconnect"}]

    @property
    def scan_starts(self) -> int:
        return sum(1 for c in self.calls if c[0] == "start_scan")

    def subscribe_adapter_state(self, callback) -> Subscription:
        self.calls.append(("subscribe",))
        self.adapter_callbacks.append(callback)
        callback(self.adapter_state)

        def _remove() -> None:
            self.calls.append(("unsubscribe",))
            self.adapter_callbacks.remove(callback)

        return Subscription(_remove)

    def set_adapter_state(self, state: AdapterState) -> None:
        self.adapter_state = state
        for callback in list(self.adapter_callbacks):
            callback(state)

    def start_scan(self, on_advertisement, on_error) -> None:
        self.calls.append(("start_scan",))
        if self.start_error is not None:
            raise self.start_error
        self.on_advertisement = on_advertisement
        self.on_error = on_error
        self.scanning = True

    def stop_scan(self) -> None:
        self.calls.append(("stop_scan",))
        self.scanning = False

    def advertise(self, device_id: str, name: str | None, rssi: int | None = -60) -> None:
        assert self.on_advertisement is not None, "scan was never started"
        self.on_advertisement(device_id, name, rssi)

    def fail_scan(self, exc: Exception) -> None:
        assert self.on_error is not None, "scan was never started"
        self.on_error(exc)

    async def connect(self, device_id: str, *, on_disconnect) -> FakeTransport:
        self.calls.append(("connect", device_id))
        self.on_disconnect = on_disconnect
        if self.connect_gate is not None:
            await self.connect_gate.wait()
        if self.connect_error is not None:
            raise self.connect_error
        return FakeTransport(device_id)

    async def discover_services(self, transport: FakeTransport) -> Mapping[str, Sequence[str]]:
        self.calls.append(("discover", transport.device_id))
        if self.discover_error is not None:
            raise self.discover_error
        return self.catalog

    async def disconnect(self, transport: FakeTransport) -> None:
        self.calls.append(("disconnect", transport.device_id))
        if self.disconnect_error is not None:
            raise self.disconnect_error


class FakePermissions:
    def __init__(
        self,
        *,
        has_permission_model: bool = True,
        api_level: int = 33,
        single: PermissionStatus = PermissionStatus.GRANTED,
        grouped: Mapping[str, PermissionStatus] | None = None,
        supported: set[str] | None = None,
    ) -> None:
        self.has_permission_model = has_permission_model
        self.api_level = api_level
        self.single = single
        self.grouped = grouped
        self.supported = supported
        self.requests: list[tuple[str, ...]] = []
        self.notices: list[str] = []

    def supports(self, permission: str) -> bool:
        return self.supported is None or permission in self.supported

    async def request(self, permission: str) -> PermissionStatus:
        self.requests.append((permission,))
        return self.single

    async def request_many(self, permissions: Sequence[str]) -> Mapping[str, PermissionStatus]:
        self.requests.append(tuple(permissions))
        if self.grouped is not None:
            return dict(self.grouped)
        return {permission: PermissionStatus.GRANTED for permission in permissions}

    def notify(self, message: str) -> None:
        self.notices.append(message)


@pytest.fixture
def stack() -> FakeStack:
    return FakeStack()


@pytest.fixture
def permissions() -> FakePermissions:
    return FakePermissions()
