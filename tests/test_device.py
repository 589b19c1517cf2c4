from __future__ import annotations

import asyncio
from typing import Any

import pytest

from am43ctl.core.device import Am43Device
from am43ctl.core.errors import TransportConnectError
from am43ctl.core.model import DeviceEvent, DeviceIdentity, Direction, LinkState, Profile, TimingSettings
from conftest import FakeCharacteristic, FakeTransport, reply

SET_POSITION_40 = bytes.fromhex("00ff00009a0d0128be")
GET_POSITION = bytes.fromhex("00ff00009aa701013d")


def _device(transport: FakeTransport, profile: Profile) -> tuple[Am43Device, list[tuple[DeviceEvent, Any]]]:
    device = Am43Device(transport, DeviceIdentity.build("AA:BB:CC:DD:EE:FF", "Bedroom"), profile=profile)
    events: list[tuple[DeviceEvent, Any]] = []
    for event in DeviceEvent:
        device.add_listener(event, lambda value, event=event: events.append((event, value)))
    return device, events


def _of(events: list[tuple[DeviceEvent, Any]], kind: DeviceEvent) -> list[Any]:
    return [value for event, value in events if event is kind]


@pytest.mark.asyncio
async def test_open_updates_state_before_writing(transport: FakeTransport, fast_profile: Profile) -> None:
    device, events = _device(transport, fast_profile)

    assert await device.open() is True
    assert device.target_position == 0
    assert device.direction is Direction.OPENING
    assert events[:2] == [
        (DeviceEvent.DIRECTION, Direction.OPENING),
        (DeviceEvent.TARGET_POSITION, 0),
    ]
    assert transport.characteristic.writes == [(bytes.fromhex("00ff00009a0a01dd4c"), True)]


@pytest.mark.asyncio
async def test_close_and_stop(transport: FakeTransport, fast_profile: Profile) -> None:
    device, events = _device(transport, fast_profile)

    await device.close()
    assert (device.direction, device.target_position) == (Direction.CLOSING, 100)
    await device.stop()
    assert (device.direction, device.target_position) == (Direction.STOPPED, None)

    payloads = [frame[7] for frame, _ in transport.characteristic.writes]
    assert payloads == [0xEE, 0xCC]
    assert _of(events, DeviceEvent.TARGET_POSITION) == [100, None]


@pytest.mark.asyncio
async def test_command_dropped_when_link_never_comes_up(transport: FakeTransport, fast_profile: Profile) -> None:
    transport.connect_error = TransportConnectError("out of range")
    device, events = _device(transport, fast_profile)

    assert await device.open() is False
    assert transport.characteristic.writes == []
    assert device.link_state is LinkState.DISCONNECTED
    assert _of(events, DeviceEvent.DIRECTION) == [Direction.OPENING]


@pytest.mark.asyncio
async def test_write_failure_is_swallowed(transport: FakeTransport, fast_profile: Profile) -> None:
    transport.characteristic.fail_writes = True
    device, _ = _device(transport, fast_profile)

    assert await device.update_battery_status() is False
    assert device.is_connected


@pytest.mark.asyncio
async def test_write_timeout_is_soft_failure(transport: FakeTransport) -> None:
    profile = Profile(
        id="am43",
        name="AM43",
        timing=TimingSettings(settle_delay_s=0, poll_interval_s=0, write_timeout_s=0.01),
    )
    transport.characteristic.write_gate = asyncio.Event()
    device, _ = _device(transport, profile)

    assert await device.update_light_sensor() is False


@pytest.mark.asyncio
async def test_prepare_connects_and_requests_position(transport: FakeTransport, fast_profile: Profile) -> None:
    transport.characteristic.responder = lambda frame: reply(0xA7, b5=63) if frame[5] == 0xA7 else None
    device, events = _device(transport, fast_profile)

    assert await device.prepare() is True
    assert transport.connect_calls == 1
    assert transport.characteristic.writes == [(GET_POSITION, True)]
    assert device.position == 63
    assert (DeviceEvent.CONNECTION, True) in events
    assert _of(events, DeviceEvent.POSITION) == [63]


@pytest.mark.asyncio
async def test_sensor_notifications_reach_listeners(transport: FakeTransport, fast_profile: Profile) -> None:
    device, events = _device(transport, fast_profile)
    await device.connect()

    transport.characteristic.notify(reply(0xA2, b7=55))
    transport.characteristic.notify(reply(0xAA, b4=7))
    transport.characteristic.notify(reply(0xA1, b4=20))

    assert device.battery_percentage == 55
    assert device.position == 20
    assert _of(events, DeviceEvent.LIGHT_LEVEL) == [7]


@pytest.mark.asyncio
async def test_removed_listener_is_not_called(transport: FakeTransport, fast_profile: Profile) -> None:
    device = Am43Device(transport, DeviceIdentity.build("AA:BB:CC:DD:EE:FF"), profile=fast_profile)
    seen: list[int] = []
    unsubscribe = device.add_listener(DeviceEvent.BATTERY_PERCENTAGE, seen.append)
    await device.connect()

    transport.characteristic.notify(reply(0xA2, b7=90))
    unsubscribe()
    transport.characteristic.notify(reply(0xA2, b7=80))
    assert seen == [90]


@pytest.mark.asyncio
async def test_set_position_tracks_until_stall(fast_profile: Profile) -> None:
    characteristic = FakeCharacteristic(
        responder=lambda frame: reply(0xA7, b5=41) if frame[5] == 0xA7 else reply(0x0D, b3=0x5A)
    )
    transport = FakeTransport(characteristic)
    device, events = _device(transport, fast_profile)
    await device.connect()
    for _ in range(6):
        device.tracker.push(41)

    settled = asyncio.Event()
    device.add_listener(DeviceEvent.TARGET_POSITION, lambda target: target is None and settled.set())

    assert await device.set_position(40, track_position=True) is True
    assert device.target_position == 40
    await asyncio.wait_for(settled.wait(), 1.0)

    frames = [frame for frame, _ in characteristic.writes]
    assert frames[0] == SET_POSITION_40
    assert frames[1:] == [GET_POSITION] * 6
    assert device.position_history == [41] * 6
    assert device.target_position is None
    assert device.direction is Direction.STOPPED
    assert _of(events, DeviceEvent.TARGET_POSITION) == [40, None]
    assert _of(events, DeviceEvent.DIRECTION) == [Direction.CLOSING, Direction.OPENING, Direction.STOPPED]
    assert events[-2:] == [
        (DeviceEvent.DIRECTION, Direction.STOPPED),
        (DeviceEvent.TARGET_POSITION, None),
    ]


@pytest.mark.asyncio
async def test_set_position_infers_direction_from_known_position(
    transport: FakeTransport, fast_profile: Profile
) -> None:
    device, events = _device(transport, fast_profile)
    await device.connect()
    transport.characteristic.notify(reply(0xA1, b4=80))

    await device.set_position(20)
    assert device.direction is Direction.OPENING
    assert events[-2:] == [
        (DeviceEvent.DIRECTION, Direction.OPENING),
        (DeviceEvent.TARGET_POSITION, 20),
    ]
    assert not device.tracker.is_polling


@pytest.mark.asyncio
async def test_repeated_set_position_keeps_one_polling_chain(fast_profile: Profile) -> None:
    characteristic = FakeCharacteristic(
        responder=lambda frame: reply(0xA7, b5=41) if frame[5] == 0xA7 else None
    )
    transport = FakeTransport(characteristic)
    device, _ = _device(transport, fast_profile)
    await device.connect()

    settled = asyncio.Event()
    device.add_listener(DeviceEvent.TARGET_POSITION, lambda target: target is None and settled.set())
    await device.set_position(40, track_position=True)
    await device.set_position(40, track_position=True)
    await asyncio.wait_for(settled.wait(), 1.0)
    await asyncio.sleep(0)

    polls = [frame for frame, _ in characteristic.writes if frame[5] == 0xA7]
    assert len(polls) == 6


@pytest.mark.asyncio
async def test_disconnect_stops_tracking(transport: FakeTransport, fast_profile: Profile) -> None:
    device, events = _device(transport, fast_profile)
    await device.connect()
    await device.set_position(30, track_position=True)
    assert device.tracker.is_polling

    await device.disconnect()
    assert not device.is_connected
    assert transport.disconnect_calls == 1
    assert (DeviceEvent.CONNECTION, False) in events
    await asyncio.sleep(0)
    await asyncio.sleep(0)
    assert not device.tracker.is_polling


@pytest.mark.asyncio
async def test_set_position_rejects_out_of_range(transport: FakeTransport, fast_profile: Profile) -> None:
    device, _ = _device(transport, fast_profile)
    with pytest.raises(ValueError):
        await device.set_position(101)


@pytest.mark.asyncio
async def test_open_after_stall_keeps_new_target(fast_profile: Profile) -> None:
    def respond(frame: bytes) -> bytes | None:
        if frame[5] == 0xA7:
            return reply(0xA7, b5=41)
        return reply(frame[5], b3=0x5A)

    transport = FakeTransport(FakeCharacteristic(respond))
    device, _ = _device(transport, fast_profile)
    await device.connect()

    settled = asyncio.Event()
    device.add_listener(DeviceEvent.TARGET_POSITION, lambda target: target is None and settled.set())
    await device.set_position(40, track_position=True)
    await asyncio.wait_for(settled.wait(), 1.0)
    assert device.position_history == [41] * 6

    assert await device.open() is True
    assert device.position_history == []
    assert device.target_position == 0
    assert device.direction is Direction.OPENING


@pytest.mark.asyncio
async def test_set_position_with_unknown_position_is_closing(
    transport: FakeTransport, fast_profile: Profile
) -> None:
    device, events = _device(transport, fast_profile)
    await device.connect()

    await device.set_position(40)
    assert device.position is None
    assert (device.direction, device.target_position) == (Direction.CLOSING, 40)
    assert events[-2:] == [
        (DeviceEvent.DIRECTION, Direction.CLOSING),
        (DeviceEvent.TARGET_POSITION, 40),
    ]


@pytest.mark.asyncio
async def test_set_position_to_current_position_has_no_target(
    transport: FakeTransport, fast_profile: Profile
) -> None:
    device, events = _device(transport, fast_profile)
    await device.connect()
    transport.characteristic.notify(reply(0xA1, b4=55))

    assert await device.set_position(55, track_position=True) is True
    assert (device.direction, device.target_position) == (Direction.STOPPED, None)
    assert _of(events, DeviceEvent.TARGET_POSITION) == []
    assert transport.characteristic.writes[-1][0][5] == 0x0D
    assert not device.tracker.is_polling


@pytest.mark.asyncio
async def test_undelivered_set_position_does_not_track(
    transport: FakeTransport, fast_profile: Profile
) -> None:
    transport.connect_error = TransportConnectError("out of range")
    device, _ = _device(transport, fast_profile)

    assert await device.set_position(30, track_position=True) is False
    assert device.target_position == 30
    assert not device.tracker.is_polling
    assert transport.connect_calls == 1
