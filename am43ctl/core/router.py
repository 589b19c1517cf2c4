"""Inbound notification handling and movement-state reconciliation."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from am43ctl.core.codec import FrameCodec
from am43ctl.core.errors import FrameDecodeError
from am43ctl.core.model import DeviceEvent, DeviceState, Direction, NotificationFrame
from am43ctl.core.tracker import PositionTracker

LOGGER = logging.getLogger(__name__)

Emit = Callable[[DeviceEvent, Any], None]


def clamp_polled_position(value: int) -> int:
    if value >= 99:
        return 100
    if value <= 1:
        return 0
    return value


class NotificationRouter:
    def __init__(
        self,
        codec: FrameCodec,
        state: DeviceState,
        tracker: PositionTracker,
        emit: Emit,
        *,
        description: str = "",
    ) -> None:
        self.codec = codec
        self.state = state
        self.tracker = tracker
        self.emit = emit
        self.description = description
        c = codec.constants
        self._handlers: dict[int, Callable[[NotificationFrame], None]] = {
            c.get_position: self._on_polled_position,
            c.notify_position: self._on_pushed_position,
            c.get_light_sensor: self._on_light_level,
            c.get_battery_status: self._on_battery_status,
            c.set_move: self._on_move_response,
            c.set_position: self._on_set_position_response,
        }

    def handle(self, raw: bytes) -> None:
        LOGGER.debug("%s: notification received: %s", self.description, bytes(raw).hex())
        try:
            frame = self.codec.decode(raw)
        except FrameDecodeError as exc:
            LOGGER.debug("%s: ignoring malformed notification: %s", self.description, exc)
            frame = None

        if frame is not None:
            handler = self._handlers.get(frame.command_id)
            if handler is not None:
                handler(frame)

        self.reconcile()

    def _record_position(self, position: int) -> None:
        self.state.position = position
        self.tracker.push(position)
        self.emit(DeviceEvent.POSITION, position)

    def _on_polled_position(self, frame: NotificationFrame) -> None:
        position = clamp_polled_position(frame.fields["position"])
        LOGGER.debug("%s: closed percentage %d", self.description, position)
        self._record_position(position)

    def _on_pushed_position(self, frame: NotificationFrame) -> None:
        position = frame.fields["position"]
        LOGGER.debug("%s: closed percentage %d (notify)", self.description, position)
        self._record_position(position)

    def _on_light_level(self, frame: NotificationFrame) -> None:
        LOGGER.debug("%s: light level %d", self.description, frame.fields["light_level"])
        self.emit(DeviceEvent.LIGHT_LEVEL, frame.fields["light_level"])

    def _on_battery_status(self, frame: NotificationFrame) -> None:
        self.state.battery_percentage = frame.fields["battery_percentage"]
        LOGGER.debug("%s: battery percentage %d", self.description, self.state.battery_percentage)
        self.emit(DeviceEvent.BATTERY_PERCENTAGE, self.state.battery_percentage)

    def _log_response(self, frame: NotificationFrame, what: str) -> None:
        response = frame.fields["response"]
        if response == self.codec.constants.response_ack:
            LOGGER.debug("%s: %s acknowledged", self.description, what)
        elif response == self.codec.constants.response_nack:
            LOGGER.debug("%s: %s denied", self.description, what)

    def _on_move_response(self, frame: NotificationFrame) -> None:
        self._log_response(frame, "set move")

    def _on_set_position_response(self, frame: NotificationFrame) -> None:
        self._log_response(frame, "set position")

    def reconcile(self) -> None:
        state = self.state
        if state.target_position is None or state.position is None:
            return

        direction = Direction.OPENING if state.target_position < state.position else Direction.CLOSING
        target: int | None = state.target_position
        if state.position == state.target_position or self.tracker.is_stalled():
            LOGGER.debug(
                "%s: target position %d reached @ %d",
                self.description,
                state.target_position,
                state.position,
            )
            target = None
            direction = Direction.STOPPED

        update_movement(state, direction, target, self.emit)


def update_movement(
    state: DeviceState,
    direction: Direction,
    target: int | None,
    emit: Emit,
) -> None:
    """Apply direction then target, emitting only the values that changed."""
    if direction != state.direction:
        state.direction = direction
        emit(DeviceEvent.DIRECTION, direction)
    if target != state.target_position:
        state.target_position = target
        emit(DeviceEvent.TARGET_POSITION, target)
