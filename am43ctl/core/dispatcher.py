"""Best-effort command sending over the control characteristic."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable

from am43ctl.core.codec import FrameCodec
from am43ctl.core.errors import TransportError
from am43ctl.core.lifecycle import ConnectionLifecycle

LOGGER = logging.getLogger(__name__)


class CommandDispatcher:
    def __init__(
        self,
        lifecycle: ConnectionLifecycle,
        codec: FrameCodec,
        *,
        write_with_response: bool = True,
        write_timeout_s: float | None = None,
        description: str = "",
    ) -> None:
        self.lifecycle = lifecycle
        self.codec = codec
        self.write_with_response = write_with_response
        self.write_timeout_s = write_timeout_s
        self.description = description

    async def send(self, command_id: int, payload: Iterable[int] = ()) -> bool:
        """Encode and write one command frame.

        Returns False when the link could not be made ready or the write
        failed. Neither case raises; the protocol has no delivery guarantee
        at this layer.
        """
        if not self.lifecycle.is_ready:
            await self.lifecycle.ensure_ready()
            if not self.lifecycle.is_ready:
                LOGGER.debug(
                    "%s: dropping command 0x%02x, link not ready", self.description, command_id
                )
                return False

        characteristic = self.lifecycle.characteristic
        if characteristic is None:
            return False

        frame = self.codec.encode(command_id, payload)
        LOGGER.debug("%s: sending command %s", self.description, frame.hex())
        try:
            write = characteristic.write(frame, with_response=self.write_with_response)
            if self.write_timeout_s is None:
                await write
            else:
                await asyncio.wait_for(write, self.write_timeout_s)
        except (TransportError, asyncio.TimeoutError) as exc:
            LOGGER.warning(
                "%s: failed to write command %s: %r", self.description, frame.hex(), exc
            )
            return False
        return True

    async def set_move(self, move: int) -> bool:
        return await self.send(self.codec.constants.set_move, [move])

    async def open(self) -> bool:
        return await self.set_move(self.codec.constants.move_open)

    async def close(self) -> bool:
        return await self.set_move(self.codec.constants.move_close)

    async def stop(self) -> bool:
        return await self.set_move(self.codec.constants.move_stop)

    async def set_position(self, position: int) -> bool:
        return await self.send(self.codec.constants.set_position, [position])

    async def get_position(self) -> bool:
        return await self.send(self.codec.constants.get_position, [0x01])

    async def get_battery_status(self) -> bool:
        return await self.send(self.codec.constants.get_battery_status, [0x01])

    async def get_light_sensor(self) -> bool:
        return await self.send(self.codec.constants.get_light_sensor, [0x01])
