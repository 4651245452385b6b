"""Target filter matching for discovered devices."""

from __future__ import annotations

from collections.abc import Iterable

from blelink.core.model import DiscoveredDevice, TargetFilter

DEFAULT_TARGET_NAMES = ("TI BLE Sensor Tag", "SensorTag")


def build_filter(names: Iterable[str] | None = None) -> TargetFilter:
    if names is None:
        return TargetFilter(names=DEFAULT_TARGET_NAMES)
    return TargetFilter(names=tuple(names))


def is_target(device: DiscoveredDevice, target_filter: TargetFilter | None) -> bool:
    # Exact, case-sensitive equality; unnamed devices never match.
    if target_filter is None or device.name is None:
        return False
    return device.name in target_filter.names


def find_target(devices: Iterable[DiscoveredDevice], target_filter: TargetFilter) -> DiscoveredDevice | None:
    for device in devices:
        if is_target(device, target_filter):
            return device
    return None
