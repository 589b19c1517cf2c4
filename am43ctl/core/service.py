"""Service layer used by the CLI and the public API."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager

from am43ctl.core.device import Am43Device
from am43ctl.core.errors import DeviceNotReadyError, ProfileResolutionError
from am43ctl.core.model import DeviceEvent, DeviceIdentity, Profile, StatusReport
from am43ctl.core.profile_loader import load_profiles
from am43ctl.transports.base import BLETransport
from am43ctl.transports.ble_gatt import BleakTransport

LOGGER = logging.getLogger(__name__)

TransportFactory = Callable[[str, Profile], BLETransport]

MOVE_ACTIONS = ("open", "close", "stop")


def _bleak_transport(address: str, profile: Profile) -> BLETransport:
    return BleakTransport(address, timeout_s=profile.timing.connect_timeout_s)


class Am43Service:
    def __init__(
        self,
        *,
        profile_id: str = "am43",
        transport_factory: TransportFactory | None = None,
    ) -> None:
        loaded = load_profiles()
        self.profiles = loaded.profiles
        self.load_warnings = loaded.warnings
        self.profile_id = profile_id
        self.transport_factory = transport_factory or _bleak_transport

    def list_profiles(self) -> list[Profile]:
        return sorted(self.profiles.values(), key=lambda p: p.id)

    def resolve_profile(self, profile_id: str | None = None) -> Profile:
        wanted = profile_id or self.profile_id
        profile = self.profiles.get(wanted)
        if profile is None:
            available = ", ".join(sorted(self.profiles.keys()))
            raise ProfileResolutionError(f"Unknown profile '{wanted}'. Available: {available}")
        return profile

    def create_device(
        self,
        address: str,
        *,
        name: str | None = None,
        profile_id: str | None = None,
    ) -> Am43Device:
        profile = self.resolve_profile(profile_id)
        transport = self.transport_factory(address, profile)
        return Am43Device(transport, DeviceIdentity.build(address, name), profile=profile)

    @asynccontextmanager
    async def session(self, address: str, *, profile_id: str | None = None) -> AsyncIterator[Am43Device]:
        device = self.create_device(address, profile_id=profile_id)
        try:
            if not await device.connect():
                raise DeviceNotReadyError(f"Could not connect to {device.description}")
            yield device
        finally:
            await device.disconnect()

    async def move(self, address: str, action: str, *, profile_id: str | None = None) -> bool:
        if action not in MOVE_ACTIONS:
            raise ValueError(f"Unsupported move '{action}'. Allowed: {', '.join(MOVE_ACTIONS)}")
        async with self.session(address, profile_id=profile_id) as device:
            sent = await getattr(device, action)()
            if not sent:
                raise DeviceNotReadyError(f"Command '{action}' was not delivered to {device.description}")
            return sent

    async def move_to(
        self,
        address: str,
        position: int,
        *,
        track: bool = True,
        timeout_s: float = 60.0,
        profile_id: str | None = None,
    ) -> int | None:
        """Send the blind to position and, when tracking, wait for it to settle.

        Returns the last known position.
        """
        async with self.session(address, profile_id=profile_id) as device:
            settled = asyncio.Event()

            def _on_target(target: int | None) -> None:
                if target is None:
                    settled.set()

            unsubscribe = device.add_listener(DeviceEvent.TARGET_POSITION, _on_target)
            try:
                if not await device.set_position(position, track_position=track):
                    raise DeviceNotReadyError(
                        f"Set position was not delivered to {device.description}"
                    )
                if track:
                    try:
                        await asyncio.wait_for(settled.wait(), timeout_s)
                    except asyncio.TimeoutError:
                        LOGGER.warning(
                            "%s: still moving after %.1fs", device.description, timeout_s
                        )
            finally:
                unsubscribe()
            return device.position

    async def read_status(
        self,
        address: str,
        *,
        wait_s: float = 3.0,
        profile_id: str | None = None,
    ) -> StatusReport:
        async with self.session(address, profile_id=profile_id) as device:
            light: list[int] = []
            received = {
                DeviceEvent.POSITION: asyncio.Event(),
                DeviceEvent.BATTERY_PERCENTAGE: asyncio.Event(),
                DeviceEvent.LIGHT_LEVEL: asyncio.Event(),
            }
            unsubscribers = [
                device.add_listener(event, lambda _, flag=flag: flag.set())
                for event, flag in received.items()
            ]
            unsubscribers.append(device.add_listener(DeviceEvent.LIGHT_LEVEL, light.append))
            try:
                await device.prepare()
                await device.update_battery_status()
                await device.update_light_sensor()
                try:
                    await asyncio.wait_for(
                        asyncio.gather(*(flag.wait() for flag in received.values())),
                        wait_s,
                    )
                except asyncio.TimeoutError:
                    missing = ", ".join(e.value for e, flag in received.items() if not flag.is_set())
                    LOGGER.warning("%s: no reply for %s", device.description, missing)
            finally:
                for unsubscribe in unsubscribers:
                    unsubscribe()

            return StatusReport(
                identity=device.identity,
                position=device.position,
                direction=device.direction,
                battery_percentage=device.battery_percentage,
                light_level=light[-1] if light else None,
            )
