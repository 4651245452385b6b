"""Permission gate: resolves whether the process may use BLE."""

from __future__ import annotations

import logging

from blelink.core.model import PermissionStatus
from blelink.transports.base import PermissionAPI

ACCESS_FINE_LOCATION = "android.permission.ACCESS_FINE_LOCATION"
BLUETOOTH_SCAN = "android.permission.BLUETOOTH_SCAN"
BLUETOOTH_CONNECT = "android.permission.BLUETOOTH_CONNECT"

SPLIT_PERMISSIONS_API_LEVEL = 31
SPLIT_PERMISSIONS = (BLUETOOTH_SCAN, BLUETOOTH_CONNECT, ACCESS_FINE_LOCATION)

DENIED_NOTICE = "Bluetooth permissions have not been granted"
LOGGER = logging.getLogger(__name__)


class PermissionGate:
    """One-shot permission resolution.

    `ensure_permissions` only returns a verdict; it never touches the radio.
    Calling it again issues a fresh request.
    """

    def __init__(self, api: PermissionAPI) -> None:
        self._api = api
        self.status = PermissionStatus.UNKNOWN

    async def ensure_permissions(self) -> PermissionStatus:
        status = await self._resolve()
        self.status = status
        if status is PermissionStatus.DENIED:
            LOGGER.warning(DENIED_NOTICE)
            self._api.notify(DENIED_NOTICE)
        else:
            LOGGER.info("BLE permissions granted")
        return status

    def reset(self) -> None:
        self.status = PermissionStatus.UNKNOWN

    async def _resolve(self) -> PermissionStatus:
        if not self._api.has_permission_model:
            return PermissionStatus.GRANTED

        if self._api.api_level < SPLIT_PERMISSIONS_API_LEVEL:
            result = await self._api.request(ACCESS_FINE_LOCATION)
            return PermissionStatus.GRANTED if result is PermissionStatus.GRANTED else PermissionStatus.DENIED

        if not all(self._api.supports(permission) for permission in SPLIT_PERMISSIONS):
            LOGGER.warning("Platform tier %s lacks split Bluetooth permissions", self._api.api_level)
            return PermissionStatus.DENIED

        results = await self._api.request_many(SPLIT_PERMISSIONS)
        if all(results.get(permission) is PermissionStatus.GRANTED for permission in SPLIT_PERMISSIONS):
            return PermissionStatus.GRANTED
        denied = [p for p in SPLIT_PERMISSIONS if results.get(p) is not PermissionStatus.GRANTED]
        LOGGER.debug("Denied capabilities: %s", ", ".join(denied))
        return PermissionStatus.DENIED
