"""Device discovery driven by the BLE stack's scan primitives."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import cast

from blelink.core.device_match import is_target
from blelink.core.errors import ScanFailedError
from blelink.core.model import DiscoveredDevice, TargetFilter
from blelink.transports.base import BLEStack

LOGGER = logging.getLogger(__name__)

STREAM_BACKLOG = 256


class ScanEventKind(str, Enum):
    DEVICE = "device"
    STOPPED = "stopped"
    ERROR = "error"


@dataclass(frozen=True)
class ScanEvent:
    """Notification delivered to scanner listeners."""

    kind: ScanEventKind
    device: DiscoveredDevice | None = None
    error: ScanFailedError | None = None
    target_acquired: bool = False


ScanListener = Callable[[ScanEvent], None]

_END = object()


class ScanStream:
    """Async iterator over the sightings of one scan.

    Iteration ends when the scan stops and raises `ScanFailedError` when the
    stack reports an error. At most `backlog` unread sightings are held; the
    oldest are dropped first, the full history lives in `Scanner.devices`.
    """

    def __init__(self, backlog: int = STREAM_BACKLOG) -> None:
        self._queue: asyncio.Queue[object] = asyncio.Queue()
        self._backlog = backlog
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def exhausted(self) -> bool:
        return self._closed and self._queue.empty()

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def _push(self, device: DiscoveredDevice) -> None:
        if self._closed:
            return
        while self._queue.qsize() >= self._backlog:
            self._queue.get_nowait()
        self._queue.put_nowait(device)

    def _close(self, error: ScanFailedError | None = None) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(error if error is not None else _END)

    def __aiter__(self) -> ScanStream:
        return self

    async def __anext__(self) -> DiscoveredDevice:
        item = await self._queue.get()
        if item is _END:
            raise StopAsyncIteration
        if isinstance(item, ScanFailedError):
            raise item
        return cast(DiscoveredDevice, item)


class Scanner:
    """Owns the discovered-device set; the only writer of sightings."""

    def __init__(self, stack: BLEStack) -> None:
        self._stack = stack
        self._devices: dict[str, DiscoveredDevice] = {}
        self._latest: DiscoveredDevice | None = None
        self._stream: ScanStream | None = None
        self._filter: TargetFilter | None = None
        self._listeners: list[ScanListener] = []

    @property
    def scanning(self) -> bool:
        return self._stream is not None

    @property
    def devices(self) -> Mapping[str, DiscoveredDevice]:
        return MappingProxyType(self._devices)

    @property
    def latest(self) -> DiscoveredDevice | None:
        return self._latest

    def add_listener(self, listener: ScanListener) -> Callable[[], None]:
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def start_scan(self, target_filter: TargetFilter | None = None) -> ScanStream:
        if self._stream is not None:
            LOGGER.debug("Scan already active; coalescing start request")
            return self._stream

        stream = ScanStream()
        self._stream = stream
        self._filter = target_filter
        LOGGER.info("Starting scan")
        try:
            self._stack.start_scan(self._on_advertisement, self._on_error)
        except Exception as exc:
            self._fail(exc)
        return stream

    def stop_scan(self) -> None:
        stream, self._stream = self._stream, None
        if stream is None:
            return
        LOGGER.info("Stopping scan")
        try:
            self._stack.stop_scan()
        finally:
            stream._close()
            self._emit(ScanEvent(kind=ScanEventKind.STOPPED))

    def clear(self) -> None:
        self._devices.clear()
        self._latest = None

    def _on_advertisement(self, device_id: str, name: str | None, rssi: int | None) -> None:
        device = DiscoveredDevice(id=device_id, name=name, rssi=rssi)
        LOGGER.debug("Device found: %s (%s, rssi=%s)", device.id, device.name, device.rssi)
        self._devices[device.id] = device
        self._latest = device

        stream = self._stream
        if stream is None:
            # Late sighting after the scan stopped; last sighting still wins.
            self._emit(ScanEvent(kind=ScanEventKind.DEVICE, device=device))
            return

        stream._push(device)
        acquired = is_target(device, self._filter)
        self._emit(ScanEvent(kind=ScanEventKind.DEVICE, device=device, target_acquired=acquired))
        if acquired:
            LOGGER.info("Target %s (%s) acquired", device.name, device.id)
            self.stop_scan()

    def _on_error(self, exc: Exception) -> None:
        if self._stream is None:
            LOGGER.debug("Ignoring scan error after stop: %s", exc)
            return
        self._fail(exc)

    def _fail(self, exc: Exception) -> None:
        error = exc if isinstance(exc, ScanFailedError) else ScanFailedError(f"Scan failed: {exc}")
        if error is not exc:
            error.__cause__ = exc
        LOGGER.warning("Error while scanning: %s", exc)
        stream, self._stream = self._stream, None
        if stream is not None:
            stream._close(error)
        self._emit(ScanEvent(kind=ScanEventKind.ERROR, error=error))

    def _emit(self, event: ScanEvent) -> None:
        for listener in list(self._listeners):
            listener(event)
