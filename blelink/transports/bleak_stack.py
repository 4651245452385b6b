"""BLE stack implementation backed by bleak."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Mapping, Sequence

from bleak import BleakClient, BleakScanner
from bleak.backends.device import BLEDevice
from bleak.backends.scanner import AdvertisementData

from blelink.core.model import AdapterState
from blelink.transports.base import (
    AdapterCallback,
    AdvertisementCallback,
    DisconnectCallback,
    ScanErrorCallback,
    Subscription,
)

LOGGER = logging.getLogger(__name__)


class BleakStack:
    """Desktop BLE stack (BlueZ, CoreBluetooth, WinRT) via bleak.

    bleak has no portable power-state notifications, so the adapter is
    reported as PoweredOn at subscribe time; a radio that is actually off
    surfaces as a scan error when scanning starts.
    """

    def __init__(self, *, adapter: str | None = None, connect_timeout_s: float = 10.0) -> None:
        self._adapter = adapter
        self._connect_timeout_s = connect_timeout_s
        self._scanner: BleakScanner | None = None
        self._pending: asyncio.Task[None] | None = None
        self._adapter_callbacks: list[AdapterCallback] = []
        self.adapter_state = AdapterState.POWERED_ON

    def subscribe_adapter_state(self, callback: AdapterCallback) -> Subscription:
        self._adapter_callbacks.append(callback)
        callback(self.adapter_state)

        def _remove() -> None:
            if callback in self._adapter_callbacks:
                self._adapter_callbacks.remove(callback)

        return Subscription(_remove)

    def report_adapter_state(self, state: AdapterState) -> None:
        """Push a power-state change learned from a platform-specific source."""
        self.adapter_state = AdapterState(state)
        for callback in list(self._adapter_callbacks):
            callback(self.adapter_state)

    def start_scan(self, on_advertisement: AdvertisementCallback, on_error: ScanErrorCallback) -> None:
        def _detection(device: BLEDevice, adv: AdvertisementData) -> None:
            on_advertisement(device.address, adv.local_name or device.name, adv.rssi)

        kwargs = {"adapter": self._adapter} if self._adapter else {}
        scanner = BleakScanner(detection_callback=_detection, **kwargs)
        self._scanner = scanner
        self._chain(self._start(scanner, on_error))

    def stop_scan(self) -> None:
        scanner, self._scanner = self._scanner, None
        if scanner is not None:
            self._chain(self._stop(scanner))

    async def wait_idle(self) -> None:
        """Wait for queued scanner start/stop operations to finish."""
        while self._pending is not None and not self._pending.done():
            await asyncio.shield(self._pending)

    async def connect(self, device_id: str, *, on_disconnect: DisconnectCallback) -> BleakClient:
        await self.wait_idle()

        def _disconnected(_: BleakClient) -> None:
            on_disconnect(device_id)

        client = BleakClient(
            device_id,
            disconnected_callback=_disconnected,
            timeout=self._connect_timeout_s,
        )
        await client.connect()
        return client

    async def discover_services(self, transport: BleakClient) -> Mapping[str, Sequence[str]]:
        # bleak resolves the GATT table as part of connect.
        return {
            service.uuid: [characteristic.uuid for characteristic in service.characteristics]
            for service in transport.services
        }

    async def disconnect(self, transport: BleakClient) -> None:
        await transport.disconnect()

    def _chain(self, operation: Awaitable[None]) -> None:
        previous = self._pending

        async def _run() -> None:
            if previous is not None and not previous.done():
                await asyncio.wait([previous])
            await operation

        self._pending = asyncio.get_running_loop().create_task(_run())

    async def _start(self, scanner: BleakScanner, on_error: ScanErrorCallback) -> None:
        try:
            await scanner.start()
        except Exception as exc:
            LOGGER.warning("Scanner failed to start: %s", exc)
            if self._scanner is scanner:
                self._scanner = None
            on_error(exc)

    async def _stop(self, scanner: BleakScanner) -> None:
        try:
            await scanner.stop()
        except Exception as exc:
            LOGGER.warning("Scanner stop failed: %s", exc)
