"""Stable public API for building tooling on top of blelink.

This module is the supported integration surface for third-party callers
(GUIs, TUIs, services, scripts). Avoid importing from internal modules unless
intentionally depending on non-stable internals.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from pathlib import Path

from blelink.core.config_loader import load_config
from blelink.core.device_match import find_target, is_target
from blelink.core.errors import (
    AdapterUnavailableError,
    BlelinkError,
    BusyError,
    ConfigLoadError,
    ConfigValidationError,
    ConnectFailedError,
    ConnectionCancelledError,
    DiscoveryFailedError,
    InvalidArgumentError,
    PermissionDeniedError,
    ScanFailedError,
    SessionShutdownError,
)
from blelink.core.model import (
    AdapterState,
    ConnectionHandle,
    DiscoveredDevice,
    ErrorKind,
    PermissionStatus,
    ServiceCatalog,
    SessionConfig,
    SessionSnapshot,
    SessionStatus,
    TargetFilter,
)
from blelink.core.session import Session
from blelink.transports.base import BLEStack, PermissionAPI
from blelink.transports.bleak_stack import BleakStack
from blelink.transports.host_permissions import HostPermissions

__all__ = [
    "BlelinkError",
    "AdapterUnavailableError",
    "BusyError",
    "ConfigLoadError",
    "ConfigValidationError",
    "ConnectFailedError",
    "ConnectionCancelledError",
    "DiscoveryFailedError",
    "InvalidArgumentError",
    "PermissionDeniedError",
    "ScanFailedError",
    "SessionShutdownError",
    "AdapterState",
    "ConnectionHandle",
    "DiscoveredDevice",
    "ErrorKind",
    "PermissionStatus",
    "ServiceCatalog",
    "SessionConfig",
    "SessionSnapshot",
    "SessionStatus",
    "TargetFilter",
    "Session",
    "BLEStack",
    "PermissionAPI",
    "BleakStack",
    "HostPermissions",
    "Client",
]

DeviceCallback = Callable[[DiscoveredDevice], None]


class Client:
    """Public client wrapping a `Session` with scan-and-connect conveniences.

    Without explicit collaborators the client uses bleak and the desktop
    permission model, configured from the packaged/user YAML profile.
    """

    def __init__(
        self,
        *,
        stack: BLEStack | None = None,
        permissions: PermissionAPI | None = None,
        config: SessionConfig | None = None,
        config_path: Path | None = None,
    ) -> None:
        warnings: tuple[str, ...] = ()
        if config is None:
            loaded = load_config(config_path)
            config, warnings = loaded.config, loaded.warnings
        self._config_warnings = warnings
        if stack is None:
            stack = BleakStack(connect_timeout_s=config.connect_timeout_s or 10.0)
        self.session = Session(stack, permissions or HostPermissions(), config=config)

    async def __aenter__(self) -> Client:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.shutdown()

    @property
    def config(self) -> SessionConfig:
        return self.session.config

    @property
    def config_warnings(self) -> tuple[str, ...]:
        return self._config_warnings

    @property
    def snapshot(self) -> SessionSnapshot:
        return self.session.snapshot()

    async def scan_for_target(
        self,
        timeout_s: float | None = None,
        *,
        on_device: DeviceCallback | None = None,
    ) -> DiscoveredDevice | None:
        """Scan until a configured target is sighted or the timeout passes."""
        target_filter = self.session.target_filter
        found = await self._scan_until(lambda d: is_target(d, target_filter), timeout_s, on_device)
        # A target sighted by an earlier scan of this session still counts.
        return found or find_target(self.session.scanner.devices.values(), target_filter)

    async def connect_to_target(
        self,
        device_id: str | None = None,
        timeout_s: float | None = None,
        *,
        on_device: DeviceCallback | None = None,
    ) -> SessionSnapshot:
        """Scan for a device (a configured target by default), select it and connect."""
        if device_id is None:
            device = await self.scan_for_target(timeout_s, on_device=on_device)
        else:
            device = await self._scan_until(
                lambda d: d.id == device_id, timeout_s, on_device, target_filter=TargetFilter()
            )
        if device is None:
            wanted = f"device '{device_id}'" if device_id else "target device"
            raise InvalidArgumentError(f"No {wanted} found within {self._timeout(timeout_s)}s")

        self.session.select(device.id)
        await self.session.connect()
        return self.session.snapshot()

    async def disconnect(self) -> None:
        await self.session.disconnect()

    async def shutdown(self) -> None:
        await self.session.shutdown()

    async def _scan_until(
        self,
        predicate: Callable[[DiscoveredDevice], bool],
        timeout_s: float | None,
        on_device: DeviceCallback | None,
        *,
        target_filter: TargetFilter | None = None,
    ) -> DiscoveredDevice | None:
        """Consume sightings until `predicate` matches.

        With `target_filter` the scan is restarted under that filter so the
        configured targets cannot auto-stop it first.
        """
        status = await self.session.start()
        if status is not PermissionStatus.GRANTED:
            raise PermissionDeniedError("Bluetooth permissions have not been granted")

        stream = self.session.stream
        if target_filter is not None:
            self.session.stop_scan(forget=False)
            seen = next((d for d in self.session.scanner.devices.values() if predicate(d)), None)
            if seen is not None:
                return seen
            stream = self.session.start_scan(target_filter)
        elif stream is None or stream.exhausted:
            stream = self.session.start_scan()

        found: DiscoveredDevice | None = None

        async def _consume() -> None:
            nonlocal found
            async for device in stream:
                if on_device is not None:
                    on_device(device)
                if predicate(device):
                    found = device
                    return

        try:
            await asyncio.wait_for(_consume(), timeout=self._timeout(timeout_s))
        except asyncio.TimeoutError:
            pass
        finally:
            self.session.stop_scan(forget=False)
        if found is None:
            return None
        # Hand back the newest sighting of the matched id.
        return self.session.scanner.devices.get(found.id, found)

    def _timeout(self, timeout_s: float | None) -> float:
        return self.config.scan_timeout_s if timeout_s is None else timeout_s
