"""AM43 blind device: public operations, state and event listeners."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from am43ctl.core.codec import FrameCodec
from am43ctl.core.dispatcher import CommandDispatcher
from am43ctl.core.lifecycle import ConnectionLifecycle
from am43ctl.core.model import (
    DeviceEvent,
    DeviceIdentity,
    DeviceState,
    Direction,
    LinkState,
    Profile,
)
from am43ctl.core.router import NotificationRouter, update_movement
from am43ctl.core.tracker import PositionTracker
from am43ctl.transports.base import BLETransport

LOGGER = logging.getLogger(__name__)

Listener = Callable[[Any], None]

DEFAULT_PROFILE = Profile(id="am43", name="AM43 Blind Motor")


class Am43Device:
    """One AM43 blind motor reached through a BLE transport.

    Positions are closed percentages: 0 is fully open and 100 fully closed.
    Operations never raise on link or write failures; they return False and
    leave the state untouched apart from optimistic movement updates.
    """

    def __init__(
        self,
        transport: BLETransport,
        identity: DeviceIdentity,
        *,
        profile: Profile = DEFAULT_PROFILE,
    ) -> None:
        self.transport = transport
        self.identity = identity
        self.profile = profile
        self.state = DeviceState()
        self._listeners: dict[DeviceEvent, list[Listener]] = {event: [] for event in DeviceEvent}

        description = identity.description
        self.codec = FrameCodec(profile.protocol)
        self.tracker = PositionTracker(
            profile.protocol.history_length,
            poll_interval_s=profile.timing.poll_interval_s,
            description=description,
        )
        self.router = NotificationRouter(
            self.codec,
            self.state,
            self.tracker,
            self._emit,
            description=description,
        )
        self.lifecycle = ConnectionLifecycle(
            transport,
            self.router.handle,
            constants=profile.protocol,
            settle_delay_s=profile.timing.settle_delay_s,
            description=description,
            on_connection_change=lambda connected: self._emit(DeviceEvent.CONNECTION, connected),
        )
        self.dispatcher = CommandDispatcher(
            self.lifecycle,
            self.codec,
            write_with_response=profile.write_with_response,
            write_timeout_s=profile.timing.write_timeout_s,
            description=description,
        )

    def __repr__(self) -> str:
        return f"Am43Device({self.identity.description!r}, state={self.state!r})"

    @property
    def description(self) -> str:
        return self.identity.description

    @property
    def is_connected(self) -> bool:
        return self.lifecycle.is_connected

    @property
    def link_state(self) -> LinkState:
        return self.lifecycle.state

    @property
    def position(self) -> int | None:
        return self.state.position

    @property
    def target_position(self) -> int | None:
        return self.state.target_position

    @property
    def direction(self) -> Direction:
        return self.state.direction

    @property
    def battery_percentage(self) -> int | None:
        return self.state.battery_percentage

    @property
    def position_history(self) -> list[int]:
        return self.tracker.history

    def add_listener(self, event: DeviceEvent, callback: Listener) -> Callable[[], None]:
        """Register callback for event and return a function that removes it."""
        self._listeners[event].append(callback)
        return lambda: self.remove_listener(event, callback)

    def remove_listener(self, event: DeviceEvent, callback: Listener) -> None:
        self._listeners[event][:] = [cb for cb in self._listeners[event] if cb != callback]

    def _emit(self, event: DeviceEvent, value: Any) -> None:
        for callback in list(self._listeners[event]):
            callback(value)

    async def prepare(self) -> bool:
        if not self.is_connected:
            await self.connect()
        return await self.update_position()

    async def connect(self) -> bool:
        LOGGER.debug("%s: connect", self.description)
        return await self.lifecycle.ensure_ready()

    async def disconnect(self) -> None:
        LOGGER.debug("%s: disconnect", self.description)
        self.tracker.cancel()
        await self.lifecycle.disconnect()

    def _force_movement(self, direction: Direction, target: int | None) -> None:
        self.tracker.reset()
        self.state.direction = direction
        self.state.target_position = target
        self._emit(DeviceEvent.DIRECTION, direction)
        self._emit(DeviceEvent.TARGET_POSITION, target)

    async def open(self) -> bool:
        self._force_movement(Direction.OPENING, 0)
        return await self.dispatcher.open()

    async def close(self) -> bool:
        self._force_movement(Direction.CLOSING, 100)
        return await self.dispatcher.close()

    async def stop(self) -> bool:
        self._force_movement(Direction.STOPPED, None)
        return await self.dispatcher.stop()

    async def set_position(self, position: int, track_position: bool = False) -> bool:
        if not 0 <= position <= 100:
            raise ValueError(f"position must be within 0..100, got {position}")

        self.tracker.reset()
        current = self.state.position
        target: int | None = position
        if current == position:
            direction = Direction.STOPPED
            target = None
        elif current is not None and position < current:
            direction = Direction.OPENING
        else:
            # unknown current position counts as fully open
            direction = Direction.CLOSING
        update_movement(self.state, direction, target, self._emit)

        sent = await self.dispatcher.set_position(position)
        if sent and track_position and target is not None:
            self.tracker.start(self.update_position, lambda: self.state.target_position is not None)
        return sent

    async def update_position(self) -> bool:
        return await self.dispatcher.get_position()

    async def update_battery_status(self) -> bool:
        return await self.dispatcher.get_battery_status()

    async def update_light_sensor(self) -> bool:
        return await self.dispatcher.get_light_sensor()
