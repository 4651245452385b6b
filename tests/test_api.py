from __future__ import annotations

import asyncio

import pytest

from blelink.api import Client, PermissionDeniedError, SessionConfig, SessionStatus
from blelink.core.errors import InvalidArgumentError
from blelink.core.model import AdapterState, PermissionStatus
from blelink.core.permissions import BLUETOOTH_CONNECT

CONFIG = SessionConfig(target_names=("TI BLE Sensor Tag", "SensorTag"), scan_timeout_s=1.0)


def _client(stack, permissions) -> Client:
    stack.adapter_state = AdapterState.POWERED_ON
    return Client(stack=stack, permissions=permissions, config=CONFIG)


def test_client_loads_packaged_config(stack, permissions, monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
    client = Client(stack=stack, permissions=permissions)
    assert client.config.target_names == ("TI BLE Sensor Tag", "SensorTag")
    assert client.config_warnings == ()


def test_scan_for_target_streams_until_target(stack, permissions) -> None:
    client = _client(stack, permissions)
    seen = []

    async def _feed() -> None:
        while not stack.scanning:
            await asyncio.sleep(0)
        stack.advertise("11:22", "Thermometer")
        stack.advertise("AA:BB", "SensorTag")

    async def _run():
        feeder = asyncio.ensure_future(_feed())
        device = await client.scan_for_target(on_device=seen.append)
        await feeder
        return device

    device = asyncio.run(_run())
    assert device is not None
    assert device.id == "AA:BB"
    assert [d.id for d in seen] == ["11:22", "AA:BB"]
    assert not stack.scanning


def test_sightings_before_consumption_are_not_lost(stack, permissions) -> None:
    client = _client(stack, permissions)

    async def _run():
        await client.session.start()
        stack.advertise("AA:BB", "TI BLE Sensor Tag")
        return await client.scan_for_target(0.5)

    device = asyncio.run(_run())
    assert device is not None
    assert device.name == "TI BLE Sensor Tag"
    assert stack.scan_starts == 1


def test_scan_timeout_returns_none_and_stops(stack, permissions) -> None:
    client = _client(stack, permissions)

    device = asyncio.run(client.scan_for_target(0.01))

    assert device is None
    assert not stack.scanning


def test_scan_with_denied_permission_raises(stack, permissions) -> None:
    permissions.grouped = {BLUETOOTH_CONNECT: PermissionStatus.DENIED}
    client = _client(stack, permissions)

    with pytest.raises(PermissionDeniedError):
        asyncio.run(client.scan_for_target(0.01))
    assert stack.scan_starts == 0


def test_connect_to_target_reaches_ready(stack, permissions) -> None:
    client = _client(stack, permissions)

    async def _run():
        await client.session.start()
        stack.advertise("AA:BB", "SensorTag")
        return await client.connect_to_target(timeout_s=0.5)

    snapshot = asyncio.run(_run())
    assert snapshot.status is SessionStatus.READY
    assert snapshot.candidate.id == "AA:BB"
    assert snapshot.catalog.characteristics("svc1") == ("char1", "char2")


def test_connect_to_specific_device_id(stack, permissions) -> None:
    client = _client(stack, permissions)

    async def _run():
        await client.session.start()
        stack.advertise("11:22", "Thermometer")
        return await client.connect_to_target("11:22", timeout_s=0.5)

    snapshot = asyncio.run(_run())
    assert snapshot.connection.device_id == "11:22"
    assert ("connect", "11:22") in stack.calls


def test_connect_to_missing_device_raises(stack, permissions) -> None:
    client = _client(stack, permissions)

    with pytest.raises(InvalidArgumentError):
        asyncio.run(client.connect_to_target("FF:FF", timeout_s=0.01))
    assert stack.transport_calls == []


def test_context_manager_shuts_down(stack, permissions) -> None:
    client = _client(stack, permissions)

    async def _run() -> None:
        async with client:
            await client.session.start()

    asyncio.run(_run())
    assert client.snapshot.status is SessionStatus.UNREADY
    assert stack.adapter_callbacks == []


def test_connect_to_device_id_is_not_cut_short_by_configured_target(stack, permissions) -> None:
    stack.adapter_state = AdapterState.POWERED_ON
    client = Client(stack=stack, permissions=permissions, config=SessionConfig(target_names=("SensorTag",)))

    async def _feed() -> None:
        while not stack.scanning:
            await asyncio.sleep(0)
        stack.advertise("11:22", "Thermometer")

    async def _run():
        await client.session.start()
        stack.advertise("AA:BB", "SensorTag")
        assert not stack.scanning
        feeder = asyncio.ensure_future(_feed())
        snapshot = await client.connect_to_target("11:22", timeout_s=0.5)
        await feeder
        return snapshot

    snapshot = asyncio.run(_run())
    assert snapshot.status is SessionStatus.READY
    assert snapshot.connection.device_id == "11:22"
    assert ("connect", "AA:BB") not in stack.calls


def test_scan_for_target_counts_earlier_sighting(stack, permissions) -> None:
    client = _client(stack, permissions)

    async def _run():
        await client.session.start()
        stack.advertise("AA:BB", "SensorTag")
        # Another consumer already read the stream to its end.
        assert [d.id async for d in client.session.stream] == ["AA:BB"]
        return await client.scan_for_target(0.01)

    device = asyncio.run(_run())
    assert device is not None
    assert device.id == "AA:BB"
    assert stack.scan_starts == 2
