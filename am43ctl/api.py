"""Stable public API for building tooling on top of am43ctl.

This module is the supported integration surface for third-party callers
such as home-automation bridges. Avoid importing from private/internal
modules unless intentionally depending on non-stable internals.
"""

from __future__ import annotations

from am43ctl.core.codec import FrameCodec, checksum
from am43ctl.core.device import Am43Device
from am43ctl.core.errors import (
    Am43Error,
    DeviceNotReadyError,
    FrameDecodeError,
    ProfileLoadError,
    ProfileResolutionError,
    ProfileValidationError,
    TransportConnectError,
    TransportError,
    TransportSendError,
    TransportTimeoutError,
)
from am43ctl.core.model import (
    DeviceEvent,
    DeviceIdentity,
    Direction,
    LinkState,
    Profile,
    ProtocolConstants,
    StatusReport,
    TimingSettings,
)
from am43ctl.core.service import Am43Service, TransportFactory
from am43ctl.transports.base import BLETransport, Characteristic
from am43ctl.transports.ble_gatt import BleakTransport

__all__ = [
    "Am43Error",
    "DeviceNotReadyError",
    "FrameDecodeError",
    "ProfileLoadError",
    "ProfileResolutionError",
    "ProfileValidationError",
    "TransportError",
    "TransportConnectError",
    "TransportSendError",
    "TransportTimeoutError",
    "DeviceEvent",
    "DeviceIdentity",
    "Direction",
    "LinkState",
    "Profile",
    "ProtocolConstants",
    "StatusReport",
    "TimingSettings",
    "FrameCodec",
    "checksum",
    "Am43Device",
    "BLETransport",
    "Characteristic",
    "BleakTransport",
    "Client",
]


class Client:
    """Public client for interacting with am43ctl core capabilities.

    A `Client` instance wraps profile loading, device construction and the
    one-shot blind operations behind a stable API. Long-lived consumers
    should keep the `Am43Device` returned by `device()` and register
    listeners on it.
    """

    def __init__(
        self,
        *,
        profile_id: str = "am43",
        transport_factory: TransportFactory | None = None,
    ) -> None:
        self._service = Am43Service(profile_id=profile_id, transport_factory=transport_factory)

    @property
    def load_warnings(self) -> tuple[str, ...]:
        return self._service.load_warnings

    def list_profiles(self) -> list[Profile]:
        return self._service.list_profiles()

    def device(
        self,
        address: str,
        *,
        name: str | None = None,
        profile_id: str | None = None,
    ) -> Am43Device:
        return self._service.create_device(address, name=name, profile_id=profile_id)

    async def open(self, address: str) -> bool:
        return await self._service.move(address, "open")

    async def close(self, address: str) -> bool:
        return await self._service.move(address, "close")

    async def stop(self, address: str) -> bool:
        return await self._service.move(address, "stop")

    async def set_position(
        self,
        address: str,
        position: int,
        *,
        track: bool = True,
        timeout_s: float = 60.0,
    ) -> int | None:
        return await self._service.move_to(address, position, track=track, timeout_s=timeout_s)

    async def status(self, address: str, *, wait_s: float = 3.0) -> StatusReport:
        return await self._service.read_status(address, wait_s=wait_s)
