"""Permission API for desktop hosts."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence

from blelink.core.model import PermissionStatus

LOGGER = logging.getLogger(__name__)


class HostPermissions:
    """Desktop BLE stacks have no runtime capability requests; everything is granted."""

    has_permission_model = False
    api_level = 0

    def supports(self, permission: str) -> bool:
        return False

    async def request(self, permission: str) -> PermissionStatus:
        return PermissionStatus.GRANTED

    async def request_many(self, permissions: Sequence[str]) -> Mapping[str, PermissionStatus]:
        return {permission: PermissionStatus.GRANTED for permission in permissions}

    def notify(self, message: str) -> None:
        LOGGER.warning(message)
