"""Single-slot connection lifecycle: connect, discover services, or fail."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from blelink.core.errors import (
    BusyError,
    ConnectFailedError,
    ConnectionCancelledError,
    DiscoveryFailedError,
    InvalidArgumentError,
)
from blelink.core.model import ConnectionHandle, ConnectionState, ServiceCatalog
from blelink.transports.base import BLEStack

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")
StateListener = Callable[[ConnectionState], None]


class ConnectionManager:
    """Owns the one connection slot and the catalog discovered on it.

    Idle -> Connecting -> Connected -> DiscoveringServices -> Ready. A failure
    at either stage passes through Failed and rests in Idle. Each `connect`
    call is an independent attempt; nothing is retried here.
    """

    def __init__(
        self,
        stack: BLEStack,
        *,
        connect_timeout_s: float | None = None,
        discovery_timeout_s: float | None = None,
    ) -> None:
        self._stack = stack
        self._connect_timeout_s = connect_timeout_s
        self._discovery_timeout_s = discovery_timeout_s
        self._attempt: asyncio.Future[ConnectionHandle] | None = None
        self._pending_id: str | None = None
        self._cancel_requested = False
        self._listeners: list[StateListener] = []
        self.state = ConnectionState.IDLE
        self.handle: ConnectionHandle | None = None
        self.catalog: ServiceCatalog | None = None

    @property
    def in_flight(self) -> bool:
        return self._attempt is not None

    def add_listener(self, listener: StateListener) -> Callable[[], None]:
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    async def connect(self, device_id: str | None) -> ConnectionHandle:
        if not device_id:
            raise InvalidArgumentError("No device selected; a device id is required to connect")
        if self._attempt is not None:
            raise BusyError(f"A connection attempt to {self._pending_id} is already in flight")

        self._cancel_requested = False
        self._pending_id = device_id
        attempt = asyncio.ensure_future(self._establish(device_id))
        self._attempt = attempt
        try:
            return await attempt
        except asyncio.CancelledError:
            if self._cancel_requested and attempt.cancelled():
                raise ConnectionCancelledError(f"Connection attempt to {device_id} was cancelled") from None
            raise
        finally:
            if self._attempt is attempt:
                self._attempt = None
                self._pending_id = None

    def cancel(self) -> bool:
        """Abandon the in-flight attempt; its waiter gets `ConnectionCancelledError`."""
        if self._attempt is None or self._attempt.done():
            return False
        LOGGER.info("Cancelling connection attempt to %s", self._pending_id)
        self._cancel_requested = True
        self._attempt.cancel()
        return True

    async def disconnect(self) -> None:
        handle = self._invalidate()
        if handle is None:
            return
        LOGGER.info("Disconnecting from %s", handle.device_id)
        await self._stack.disconnect(handle.transport)

    async def _establish(self, device_id: str) -> ConnectionHandle:
        if self.handle is not None:
            await self.disconnect()

        self._set_state(ConnectionState.CONNECTING)
        LOGGER.info("Connecting to %s", device_id)
        try:
            transport = await self._bounded(
                self._stack.connect(device_id, on_disconnect=self._on_disconnect),
                self._connect_timeout_s,
            )
        except asyncio.CancelledError:
            self._set_state(ConnectionState.IDLE)
            raise
        except Exception as exc:
            self._fail()
            raise ConnectFailedError(f"Connect to {device_id} failed: {exc}") from exc

        handle = ConnectionHandle(device_id, transport)
        self._set_state(ConnectionState.CONNECTED)
        self._set_state(ConnectionState.DISCOVERING_SERVICES)
        try:
            raw = await self._bounded(self._stack.discover_services(transport), self._discovery_timeout_s)
            catalog = ServiceCatalog.from_mapping(raw)
        except asyncio.CancelledError:
            handle._invalidate()
            await self._close_transport(device_id, transport)
            self._set_state(ConnectionState.IDLE)
            raise
        except Exception as exc:
            handle._invalidate()
            await self._close_transport(device_id, transport)
            self._fail()
            raise DiscoveryFailedError(f"Service discovery on {device_id} failed: {exc}") from exc

        self.handle = handle
        self.catalog = catalog
        self._set_state(ConnectionState.READY)
        LOGGER.info("Connected to %s with %d service(s)", device_id, len(catalog))
        return handle

    async def _bounded(self, awaitable: Awaitable[T], timeout_s: float | None) -> T:
        if timeout_s is None:
            return await awaitable
        return await asyncio.wait_for(awaitable, timeout=timeout_s)

    async def _close_transport(self, device_id: str, transport: Any) -> None:
        try:
            await self._stack.disconnect(transport)
        except Exception as exc:
            LOGGER.warning("Could not release transport for %s: %s", device_id, exc)

    def _on_disconnect(self, device_id: str) -> None:
        if self.handle is None or self.handle.device_id != device_id:
            return
        LOGGER.warning("Device %s disconnected", device_id)
        self._invalidate()

    def _invalidate(self) -> ConnectionHandle | None:
        handle, self.handle = self.handle, None
        self.catalog = None
        if handle is None:
            return None
        handle._invalidate()
        self._set_state(ConnectionState.IDLE)
        return handle

    def _fail(self) -> None:
        self._set_state(ConnectionState.FAILED)
        self._set_state(ConnectionState.IDLE)

    def _set_state(self, state: ConnectionState) -> None:
        if state is self.state:
            return
        LOGGER.debug("Connection state %s -> %s", self.state.value, state.value)
        self.state = state
        for listener in list(self._listeners):
            listener(state)
