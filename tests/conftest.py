from __future__ import annotations

import asyncio
from collections.abc import Callable

import pytest

from am43ctl.core.errors import TransportSendError
from am43ctl.core.model import Profile, TimingSettings

Responder = Callable[[bytes], "bytes | None"]


class FakeCharacteristic:
    def __init__(self, responder: Responder | None = None) -> None:
        self.responder = responder
        self.writes: list[tuple[bytes, bool]] = []
        self.handler: Callable[[bytes], None] | None = None
        self.fail_writes = False
        self.fail_subscribe = False
        self.write_gate: asyncio.Event | None = None

    async def subscribe(self, handler: Callable[[bytes], None]) -> None:
        if self.fail_subscribe:
            raise TransportSendError("subscribe rejected")
        self.handler = handler

    async def write(self, data: bytes, *, with_response: bool) -> None:
        if self.write_gate is not None:
            await self.write_gate.wait()
        if self.fail_writes:
            raise TransportSendError("write rejected")
        self.writes.append((data, with_response))
        if self.responder is not None:
            reply = self.responder(data)
            if reply is not None:
                self.notify(reply)

    def notify(self, data: bytes) -> None:
        assert self.handler is not None, "not subscribed"
        self.handler(data)


class FakeTransport:
    def __init__(self, characteristic: FakeCharacteristic | None = None) -> None:
        self.characteristic = characteristic or FakeCharacteristic()
        self.connect_calls = 0
        self.discover_calls: list[tuple[str, str]] = []
        self.disconnect_calls = 0
        self.connect_gate: asyncio.Event | None = None
        self.discover_gate: asyncio.Event | None = None
        self.connect_error: Exception | None = None
        self.report_connected = True
        self.characteristics_found = True
        self._listener: Callable[[bool], None] | None = None
        self._connected = False

    @property
    def is_connected(self) -> bool:
        return self._connected

    def set_connection_listener(self, listener: Callable[[bool], None] | None) -> None:
        self._listener = listener

    def drop_link(self) -> None:
        self._connected = False
        if self._listener is not None:
            self._listener(False)

    async def connect(self) -> None:
        self.connect_calls += 1
        if self.connect_gate is not None:
            await self.connect_gate.wait()
        if self.connect_error is not None:
            raise self.connect_error
        if self.report_connected:
            self._connected = True
            if self._listener is not None:
                self._listener(True)

    async def discover_characteristics(self, service_uuid: str, characteristic_uuid: str):
        self.discover_calls.append((service_uuid, characteristic_uuid))
        if self.discover_gate is not None:
            await self.discover_gate.wait()
        return [self.characteristic] if self.characteristics_found else []

    async def disconnect(self) -> None:
        self.disconnect_calls += 1
        self._connected = False


def reply(command_id: int, **offsets: int) -> bytes:
    """Build a notification frame with byte values at the given offsets."""
    frame = bytearray(9)
    frame[0] = 0x9A
    frame[1] = command_id
    for key, value in offsets.items():
        frame[int(key.removeprefix("b"))] = value
    return bytes(frame)


@pytest.fixture
def fast_profile() -> Profile:
    return Profile(
        id="am43",
        name="AM43 Blind Motor",
        timing=TimingSettings(settle_delay_s=0, poll_interval_s=0, write_timeout_s=1.0),
    )


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()
