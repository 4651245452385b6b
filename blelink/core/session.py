"""Session state machine composing the gate, monitor, scanner and connection manager.

States::

    Unready -> Permission-Pending -> Adapter-Waiting -> Scanning
            -> Candidate-Selected -> Connecting -> Ready

`Failed` is reachable from every active state and is left by re-invoking the
failed operation. `shutdown` passes through ShuttingDown back to Unready.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from blelink.core.adapter import AdapterMonitor
from blelink.core.connection import ConnectionManager
from blelink.core.device_match import build_filter
from blelink.core.errors import (
    AdapterUnavailableError,
    BlelinkError,
    BusyError,
    ConnectionCancelledError,
    InvalidArgumentError,
    PermissionDeniedError,
    SessionShutdownError,
)
from blelink.core.model import (
    AdapterState,
    ConnectionHandle,
    ConnectionState,
    DiscoveredDevice,
    ErrorKind,
    PermissionStatus,
    SessionConfig,
    SessionSnapshot,
    SessionStatus,
    TargetFilter,
)
from blelink.core.permissions import PermissionGate
from blelink.core.scanner import Scanner, ScanEvent, ScanEventKind, ScanStream
from blelink.transports.base import BLEStack, PermissionAPI

LOGGER = logging.getLogger(__name__)

SessionListener = Callable[[SessionSnapshot], None]

_SCAN_PHASES = (SessionStatus.SCANNING, SessionStatus.CANDIDATE_SELECTED)


class Session:
    """Single externally observable BLE session.

    The session owns its components and talks to them only through their
    operations and published events. It is driven from one asyncio loop.
    """

    def __init__(
        self,
        stack: BLEStack,
        permissions: PermissionAPI,
        *,
        config: SessionConfig | None = None,
        target_filter: TargetFilter | None = None,
    ) -> None:
        self.config = config or SessionConfig(target_names=build_filter().names)
        self.target_filter = target_filter or build_filter(self.config.target_names)
        self.gate = PermissionGate(permissions)
        self.monitor = AdapterMonitor(stack)
        self.scanner = Scanner(stack)
        self.connections = ConnectionManager(
            stack,
            connect_timeout_s=self.config.connect_timeout_s,
            discovery_timeout_s=self.config.discovery_timeout_s,
        )
        self.status = SessionStatus.UNREADY
        self.last_error: ErrorKind | None = None
        self.last_error_message: str | None = None
        self._selected_id: str | None = None
        self._stream: ScanStream | None = None
        self._listeners: list[SessionListener] = []
        self._detach: list[Callable[[], None]] = []

    @property
    def stream(self) -> ScanStream | None:
        return self._stream

    @property
    def candidate(self) -> DiscoveredDevice | None:
        if self._selected_id is not None:
            return self.scanner.devices.get(self._selected_id)
        return self.scanner.latest

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            status=self.status,
            permission=self.gate.status,
            adapter=self.monitor.state,
            candidate=self.candidate,
            connection=self.connections.handle,
            catalog=self.connections.catalog,
            scanning=self.scanner.scanning,
            last_error=self.last_error,
            last_error_message=self.last_error_message,
        )

    def add_listener(self, listener: SessionListener) -> Callable[[], None]:
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    async def start(self) -> PermissionStatus:
        """Resolve permissions, then wait on the adapter.

        Scanning begins on its own once the adapter reports PoweredOn.
        """
        if self.status not in (SessionStatus.UNREADY, SessionStatus.FAILED, SessionStatus.PERMISSION_PENDING):
            LOGGER.debug("Session already started (%s)", self.status.value)
            return self.gate.status

        self._set_status(SessionStatus.PERMISSION_PENDING)
        status = await self.gate.ensure_permissions()
        if status is not PermissionStatus.GRANTED:
            self._record_failure(PermissionDeniedError("Bluetooth permissions have not been granted"))
            return status

        self._clear_error()
        self._set_status(SessionStatus.ADAPTER_WAITING)
        if not self._detach:
            self._detach = [
                self.monitor.add_listener(self._on_adapter_state),
                self.scanner.add_listener(self._on_scan_event),
                self.connections.add_listener(self._on_connection_state),
            ]
        if self.monitor.subscribed:
            self._on_adapter_state(self.monitor.state)
        else:
            self.monitor.start()
        return status

    def start_scan(self, target_filter: TargetFilter | None = None) -> ScanStream:
        """Start (or join) a scan; `target_filter` overrides the configured auto-stop names."""
        if self.gate.status is not PermissionStatus.GRANTED:
            raise PermissionDeniedError("Cannot scan before Bluetooth permissions are granted")
        if not self.monitor.powered_on:
            raise AdapterUnavailableError(f"Bluetooth adapter is {self.monitor.state.value}")
        if self.connections.in_flight:
            raise BusyError("Cannot scan while a connection attempt is in flight")
        return self._begin_scan(target_filter)

    def stop_scan(self, *, forget: bool = True) -> None:
        """Stop scanning; by default also forget the sightings and any selection.

        Outside the scan phases the selection backs a connection and is kept.
        """
        self.scanner.stop_scan()
        if not forget or self.status not in _SCAN_PHASES:
            self._notify()
            return
        self.scanner.clear()
        self._selected_id = None
        self._set_status(SessionStatus.ADAPTER_WAITING)

    def select(self, device_id: str | None = None) -> DiscoveredDevice:
        if self.status not in (SessionStatus.SCANNING, SessionStatus.CANDIDATE_SELECTED, SessionStatus.FAILED):
            raise InvalidArgumentError(f"Cannot select a device while {self.status.value}")
        device = self.scanner.latest if device_id is None else self.scanner.devices.get(device_id)
        if device is None:
            raise InvalidArgumentError(f"No discovered device with id '{device_id}'" if device_id else "No device discovered yet")

        self._selected_id = device.id
        self.scanner.stop_scan()
        self._clear_error()
        self._set_status(SessionStatus.CANDIDATE_SELECTED)
        LOGGER.info("Selected %s (%s)", device.id, device.name)
        return device

    async def connect(self) -> ConnectionHandle:
        device_id = self._selected_id
        if self.connections.in_flight:
            # Rejected without touching the pending attempt or the session status.
            return await self.connections.connect(device_id)

        if device_id is not None:
            self._set_status(SessionStatus.CONNECTING)
        try:
            handle = await self.connections.connect(device_id)
        except BlelinkError as exc:
            torn_down = self.status in (SessionStatus.SHUTTING_DOWN, SessionStatus.UNREADY)
            if not (exc.kind is ErrorKind.CANCELLED and torn_down):
                self._record_failure(exc)
            raise
        if self.status in (SessionStatus.SHUTTING_DOWN, SessionStatus.UNREADY) or not handle.valid:
            # Shutdown ran between the attempt finishing and this waiter resuming.
            raise ConnectionCancelledError(f"Connection to {device_id} was abandoned by shutdown")
        self._clear_error()
        self._set_status(SessionStatus.READY)
        return handle

    async def disconnect(self) -> None:
        await self.connections.disconnect()
        if self.status is SessionStatus.READY:
            self._set_status(SessionStatus.CANDIDATE_SELECTED)

    async def shutdown(self) -> None:
        """Tear everything down, running every step even if earlier ones fail."""
        self._set_status(SessionStatus.SHUTTING_DOWN)
        failures: list[BaseException] = []

        for step in (self.scanner.stop_scan, self.monitor.stop, self.connections.cancel):
            try:
                step()
            except Exception as exc:
                LOGGER.warning("Shutdown step %s failed: %s", step.__name__, exc)
                failures.append(exc)
        try:
            await self.connections.disconnect()
        except Exception as exc:
            LOGGER.warning("Shutdown disconnect failed: %s", exc)
            failures.append(exc)

        for detach in self._detach:
            detach()
        self._detach = []
        self.scanner.clear()
        self.gate.reset()
        self.monitor.reset()
        self._selected_id = None
        self._stream = None
        self._clear_error()
        self._set_status(SessionStatus.UNREADY)

        if failures:
            raise SessionShutdownError(
                f"{len(failures)} shutdown step(s) failed: " + "; ".join(str(f) for f in failures),
                tuple(failures),
            )

    def _begin_scan(self, target_filter: TargetFilter | None = None) -> ScanStream:
        self._selected_id = None
        if not self.scanner.scanning:
            self._clear_error()
        self._stream = self.scanner.start_scan(self.target_filter if target_filter is None else target_filter)
        # A synchronous start failure already moved the session to Failed.
        if self.scanner.scanning:
            self._set_status(SessionStatus.SCANNING)
        return self._stream

    def _on_adapter_state(self, state: AdapterState) -> None:
        if state is AdapterState.POWERED_ON:
            if self.status is SessionStatus.ADAPTER_WAITING and self.gate.status is PermissionStatus.GRANTED:
                self._begin_scan()
            else:
                self._notify()
            return

        self.scanner.stop_scan()
        if self.status in _SCAN_PHASES:
            self._selected_id = None
            self._set_status(SessionStatus.ADAPTER_WAITING)
        else:
            self._notify()

    def _on_scan_event(self, event: ScanEvent) -> None:
        if event.kind is ScanEventKind.ERROR and event.error is not None:
            self._record_failure(event.error)
            return
        self._notify()

    def _on_connection_state(self, state: ConnectionState) -> None:
        # Unexpected link loss while Ready leaves the candidate selected for a retry.
        if state is ConnectionState.IDLE and self.status is SessionStatus.READY:
            self._set_status(SessionStatus.CANDIDATE_SELECTED)

    def _record_failure(self, exc: BlelinkError) -> None:
        self.last_error = exc.kind
        self.last_error_message = str(exc)
        LOGGER.warning("Session failed (%s): %s", exc.kind.value if exc.kind else "error", exc)
        self._set_status(SessionStatus.FAILED)

    def _clear_error(self) -> None:
        self.last_error = None
        self.last_error_message = None

    def _set_status(self, status: SessionStatus) -> None:
        if status is not self.status:
            LOGGER.info("Session %s -> %s", self.status.value, status.value)
            self.status = status
        self._notify()

    def _notify(self) -> None:
        if not self._listeners:
            return
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            listener(snapshot)
