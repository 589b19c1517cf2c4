"""Command frame encoding and notification frame decoding."""

from __future__ import annotations

from collections.abc import Iterable
from functools import reduce

from am43ctl.core.errors import FrameDecodeError
from am43ctl.core.model import NotificationFrame, ProtocolConstants

_MAX_PAYLOAD_BYTES = 247
_COMMAND_ID_OFFSET = 1


def checksum(frame: bytes | bytearray) -> int:
    """XOR every byte except the trailing checksum slot, then XOR with 0xFF."""
    return reduce(lambda acc, byte: acc ^ byte, frame[:-1], 0) ^ 0xFF


class FrameCodec:
    def __init__(self, constants: ProtocolConstants | None = None) -> None:
        self.constants = constants or ProtocolConstants()
        c = self.constants
        # Field offsets are positional per command id.
        self._offsets: dict[int, dict[str, int]] = {
            c.get_position: {"position": 5},
            c.notify_position: {"position": 4},
            c.get_light_sensor: {"light_level": 4},
            c.get_battery_status: {"battery_percentage": 7},
            c.set_move: {"response": 3},
            c.set_position: {"response": 3},
        }

    def encode(self, command_id: int, payload: Iterable[int] = ()) -> bytes:
        data = bytes(payload)
        if len(data) > _MAX_PAYLOAD_BYTES:
            raise ValueError(f"payload exceeds {_MAX_PAYLOAD_BYTES} bytes")

        frame = bytearray(self.constants.command_prefix)
        frame.append(command_id)
        frame.append(len(data))
        frame.extend(data)
        frame.append(0)
        frame[-1] = checksum(frame)
        return bytes(frame)

    def decode(self, raw: bytes | bytearray) -> NotificationFrame:
        """Extract the command id and its positional fields.

        Prefix and checksum of inbound frames are not validated. Unknown
        command ids decode with no fields.
        """
        data = bytes(raw)
        if len(data) <= _COMMAND_ID_OFFSET:
            raise FrameDecodeError(f"frame too short to carry a command id: {data.hex()}")

        command_id = data[_COMMAND_ID_OFFSET]
        fields: dict[str, int] = {}
        for name, offset in self._offsets.get(command_id, {}).items():
            if offset >= len(data):
                raise FrameDecodeError(
                    f"frame {data.hex()} for command 0x{command_id:02x} has no byte {offset} ({name})"
                )
            fields[name] = data[offset]
        return NotificationFrame(command_id=command_id, fields=fields, raw=data)
